"""Data models for the repository signer."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import RC_MARKER

# Extension classes handled by the latest resolver and the purge step
FORMAT_DEB = "deb"
FORMAT_RPM = "rpm"
FORMAT_TARBALL = "tar.gz"
ARTIFACT_FORMATS = (FORMAT_DEB, FORMAT_RPM, FORMAT_TARBALL)

# Architectures that carry no variance and are omitted from link names
NEUTRAL_ARCHES = {FORMAT_DEB: "all", FORMAT_RPM: "noarch", FORMAT_TARBALL: ""}


@dataclass(frozen=True)
class GroupKey:
    """Bucket of artifacts that compete for one ``-latest`` link."""

    name: str
    edition: str
    arch: str


@dataclass
class Artifact:
    """A package file on disk with the attributes parsed out of it."""

    path: Path
    name: str
    version: str
    release: str
    arch: str
    edition: str
    fmt: str
    mtime: float

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def key(self) -> GroupKey:
        return GroupKey(self.name, self.edition, self.arch)

    @property
    def is_neutral_arch(self) -> bool:
        return self.arch == NEUTRAL_ARCHES[self.fmt]


@dataclass(frozen=True)
class BuildType:
    """Label and suite written verbatim into the APT Release file."""

    kind: str
    label: str
    suite: str


@dataclass
class CoreProduct:
    """A product whose package should sort just above its own modules.

    Attributes:
        name: Package name of the product itself (e.g. "webmin")
        module_prefixes: Name prefixes of the product's module packages
        excluded: Module names (without prefix) that ship as separate products
    """

    name: str
    module_prefixes: list[str]
    excluded: list[str] = field(default_factory=list)

    def is_module(self, package_name: str) -> bool:
        """Check whether a package is one of this product's own modules."""
        for prefix in self.module_prefixes:
            if package_name.startswith(prefix) and package_name != self.name:
                return package_name[len(prefix):] not in self.excluded
        return False


@dataclass
class TargetConfig:
    """Identity and policy of one repository target (e.g. "webmin.dev")."""

    name: str
    origin: str
    description: str
    codename: str
    architectures: list[str]
    purge_old_builds: bool = False
    keep_builds: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetConfig":
        """Create TargetConfig from a parsed YAML mapping."""
        return cls(
            name=data["name"],
            origin=data["origin"],
            description=data["description"],
            codename=data["codename"],
            architectures=list(data.get("architectures", DEFAULT_ARCHITECTURES)),
            purge_old_builds=bool(data.get("purge_old_builds", False)),
            keep_builds=int(data.get("keep_builds", 1)),
        )


@dataclass
class PromotionEntry:
    """One ``rc_path=stable_path:label[:gpg_key]`` row of the promotion map."""

    source: Path
    destination: Path
    label: str
    gpg_key: str | None = None


@dataclass
class RepoContext:
    """Everything a signing run needs, passed explicitly to each component.

    Attributes:
        repo_dir: Absolute repository directory being signed
        target: Target identity and policy
        gpg_key: Key id used for every signature of this run
        config_dir: Directory with the promotion map and group lists
        gpg_passphrase: Optional passphrase for loopback pinentry
    """

    repo_dir: Path
    target: TargetConfig
    gpg_key: str
    config_dir: Path
    gpg_passphrase: str | None = None

    @property
    def is_release_candidate(self) -> bool:
        return is_release_candidate_path(self.repo_dir)


DEFAULT_ARCHITECTURES = ["all", "arm64", "amd64", "i386"]


def is_release_candidate_path(path: Path | str) -> bool:
    """Check whether a repository path contains the release-candidate marker."""
    return RC_MARKER in f"{path}/"
