"""Configuration and logging setup for the repository signer."""

import logging
import os
import sys
from pathlib import Path


def setup_logging(level: str | None = None) -> None:
    """Set up human-readable progress logging on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
    """
    log_level = level or os.getenv(ENV_LOG_LEVEL, "INFO")

    # Configure root logger
    logging.basicConfig(
        level=LOG_LEVELS.get(log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Comps downloads are the only HTTP traffic; keep their noise down
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_env_var(name: str, default: str | None = None, required: bool = False) -> str:
    """Get environment variable with optional default and validation.

    Args:
        name: Environment variable name
        default: Default value if not set
        required: Whether the variable is required

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set
    """
    value = os.getenv(name, default)

    if required and not value:
        raise ValueError(f"Required environment variable {name} is not set")

    return value or ""


def default_config_dir() -> Path:
    """Directory holding the promotion map, group lists and target overrides."""
    return Path(get_env_var(ENV_CONFIG_DIR, str(Path.home() / ".config"))).expanduser()


def default_lock_timeout() -> float:
    """Seconds to wait for the repository lock before giving up."""
    raw = get_env_var(ENV_LOCK_TIMEOUT, str(DEFAULT_LOCK_TIMEOUT))
    try:
        return float(raw)
    except ValueError:
        return float(DEFAULT_LOCK_TIMEOUT)


# Environment variable names
ENV_GPG_KEY = "GPG_KEY"
ENV_GPG_PASSPHRASE = "GPG_PASSPHRASE"
ENV_CONFIG_DIR = "REPO_SIGNER_CONFIG_DIR"
ENV_LOCK_TIMEOUT = "REPO_SIGNER_LOCK_TIMEOUT"
ENV_LOG_LEVEL = "LOG_LEVEL"
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

DEFAULT_GPG_KEY = "developers@webmin.com"
DEFAULT_LOCK_TIMEOUT = 120

# File names inside a repository directory
LOCK_FILE = ".lock"
CHECKSUM_CACHE_FILE = ".known_checksums"
UPLOADED_LIST_FILE = ".uploaded_list"
UPLOADED_LIST_LOCK_FILE = ".uploaded_list.lock"

# File names inside the config directory
STABLE_MAP_FILE = "stable-map.txt"
DNF_GROUPS_DIR = "dnf-groups"
REPO_TARGETS_DIR = "repo-targets"

# Path segment that marks a release-candidate repository
RC_MARKER = "/rc."
