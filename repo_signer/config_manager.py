"""Repository target configuration: built-in table plus YAML overrides."""

import logging
from pathlib import Path

import yaml

from .config import REPO_TARGETS_DIR
from .models import DEFAULT_ARCHITECTURES, CoreProduct, TargetConfig

logger = logging.getLogger(__name__)

WEBMIN_DESCRIPTION = (
    "Automatically generated development builds of Webmin, Usermin and "
    "Authentic Theme"
)

DEFAULT_TARGET = TargetConfig(
    name="default",
    origin="Webmin Developers",
    description=WEBMIN_DESCRIPTION,
    codename="webmin",
    architectures=list(DEFAULT_ARCHITECTURES),
)

BUILTIN_TARGETS: dict[str, TargetConfig] = {
    "webmin.dev": TargetConfig(
        name="webmin.dev",
        origin="Webmin Developers",
        description=WEBMIN_DESCRIPTION,
        codename="webmin",
        # Webmin and Usermin ship architecture independent packages only
        architectures=["all"],
        purge_old_builds=True,
    ),
    "usermin.dev": TargetConfig(
        name="usermin.dev",
        origin="Webmin Developers",
        description=WEBMIN_DESCRIPTION,
        codename="webmin",
        architectures=list(DEFAULT_ARCHITECTURES),
        purge_old_builds=True,
    ),
    "download.virtualmin.com": TargetConfig(
        name="download.virtualmin.com",
        origin="Virtualmin Releases",
        description=(
            "Stable builds of Virtualmin and its plugins, Webmin, Usermin, "
            "and related installation scripts"
        ),
        codename="virtualmin",
        architectures=list(DEFAULT_ARCHITECTURES),
    ),
    "virtualmin.dev": TargetConfig(
        name="virtualmin.dev",
        origin="Virtualmin Developers",
        description=(
            "Automatically generated development builds of Virtualmin, and "
            "its plugins"
        ),
        codename="virtualmin",
        architectures=list(DEFAULT_ARCHITECTURES),
        purge_old_builds=True,
    ),
    "cloudmin.dev": TargetConfig(
        name="cloudmin.dev",
        origin="Cloudmin Developers",
        description=(
            "Automatically generated development builds of Cloudmin, and "
            "its dependencies"
        ),
        codename="cloudmin",
        architectures=list(DEFAULT_ARCHITECTURES),
        purge_old_builds=True,
    ),
}

# Virtualmin and Cloudmin are packaged as Webmin modules but released on
# their own schedule
CORE_PRODUCTS = [
    CoreProduct(
        name="webmin",
        module_prefixes=["webmin-", "wbm-"],
        excluded=["virtual-server", "server-manager"],
    ),
    CoreProduct(
        name="usermin",
        module_prefixes=["usermin-", "usm-"],
    ),
]


class ConfigManager:
    """Resolves repository targets.

    Targets are looked up in ``<config_dir>/repo-targets/*.yaml`` first,
    then in the built-in table. Unknown targets fall back to the Webmin
    developer repository identity, under the requested name.

    Attributes:
        config_dir: Base configuration directory
    """

    def __init__(self, config_dir: str | Path) -> None:
        """Initialize ConfigManager.

        Args:
            config_dir: Directory that may contain a ``repo-targets`` folder
        """
        self.config_dir = Path(config_dir)
        self.targets_dir = self.config_dir / REPO_TARGETS_DIR

    def load_overrides(self) -> dict[str, TargetConfig]:
        """Load all target overrides from YAML files.

        Returns:
            Mapping of target name to TargetConfig. Files that fail to parse
            are skipped with a warning.
        """
        overrides: dict[str, TargetConfig] = {}
        if not self.targets_dir.is_dir():
            return overrides

        for yaml_file in sorted(self.targets_dir.glob("*.yaml")):
            try:
                with open(yaml_file) as f:
                    data = yaml.safe_load(f)
                target = TargetConfig.from_dict(data)
            except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring target config {yaml_file}: {e}")
                continue
            overrides[target.name] = target
        return overrides

    def get_target(self, name: str) -> TargetConfig:
        """Get configuration for a repository target.

        Args:
            name: Target label as passed by the dispatcher (e.g. "webmin.dev")

        Returns:
            TargetConfig for the target
        """
        overrides = self.load_overrides()
        if name in overrides:
            logger.debug(f"Using target override for {name}")
            return overrides[name]
        if name in BUILTIN_TARGETS:
            return BUILTIN_TARGETS[name]

        logger.debug(f"No configuration for {name}, using defaults")
        return TargetConfig(
            name=name,
            origin=DEFAULT_TARGET.origin,
            description=DEFAULT_TARGET.description,
            codename=DEFAULT_TARGET.codename,
            architectures=list(DEFAULT_TARGET.architectures),
        )

    def get_core_products(self) -> list[CoreProduct]:
        """Get the products whose packages are ordered above their modules."""
        return list(CORE_PRODUCTS)
