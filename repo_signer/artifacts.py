"""Reading package name, architecture and edition out of artifact files."""

import logging
import re
from pathlib import Path

from .exceptions import ToolFailureError
from .models import FORMAT_DEB, FORMAT_RPM, FORMAT_TARBALL, Artifact
from .tools import ToolRunner

logger = logging.getLogger(__name__)

DEB_EDITION_RE = re.compile(r"(^|[.+~-])(gpl|pro)($|[.+~-])")
RPM_EDITION_RE = re.compile(r"(^|[.])(gpl|pro)($|[.])")
TARBALL_NAME_RE = re.compile(r"^([A-Za-z0-9_-]+)-[0-9]")
TARBALL_EDITION_RE = re.compile(r"\.(gpl|pro)\.")

LATEST_MARKER = "-latest"


def artifact_format(filename: str) -> str | None:
    """Map a filename to its extension class, or None if not an artifact."""
    if filename.endswith(".tar.gz"):
        return FORMAT_TARBALL
    if filename.endswith(".deb"):
        return FORMAT_DEB
    if filename.endswith(".rpm"):
        return FORMAT_RPM
    return None


def is_latest_link(path: Path) -> bool:
    return path.is_symlink() and LATEST_MARKER in path.name


def parse_edition(text: str, fmt: str) -> str:
    """Extract ``gpl``/``pro`` from a version or release string.

    Returns:
        The edition, or an empty string for edition-neutral packages
    """
    pattern = DEB_EDITION_RE if fmt == FORMAT_DEB else RPM_EDITION_RE
    match = pattern.search(text)
    return match.group(2) if match else ""


def parse_tarball_name(filename: str) -> tuple[str, str] | None:
    """Split a tarball filename into (name, edition).

    ``virtualmin-7.10.0.pro.tar.gz`` -> ``("virtualmin", "pro")``
    """
    base = filename[: -len(".tar.gz")] if filename.endswith(".tar.gz") else filename
    match = TARBALL_NAME_RE.match(base)
    if not match:
        return None
    edition_match = TARBALL_EDITION_RE.search(filename)
    return match.group(1), edition_match.group(1) if edition_match else ""


class ArtifactInspector:
    """Parses artifacts with dpkg-deb, rpm, or the filename for tarballs.

    Results are cached by (path, size, mtime) so the several passes of one
    run query each package only once, while files re-signed in between are
    queried again.
    """

    def __init__(self, runner: ToolRunner):
        self.runner = runner
        self._cache: dict[tuple[str, int, int], Artifact | None] = {}

    def inspect(self, path: Path) -> Artifact | None:
        """Parse a single artifact.

        Args:
            path: Artifact path; symlinks are followed for metadata and mtime

        Returns:
            The Artifact, or None if the file cannot be parsed
        """
        fmt = artifact_format(path.name)
        if fmt is None:
            return None

        try:
            stat = path.stat()
        except OSError:
            logger.debug(f"Skipping unreadable artifact {path}")
            return None

        cache_key = (str(path), stat.st_size, stat.st_mtime_ns)
        if cache_key not in self._cache:
            self._cache[cache_key] = self._inspect(path, fmt, stat.st_mtime)
        return self._cache[cache_key]

    def _inspect(self, path: Path, fmt: str, mtime: float) -> Artifact | None:
        try:
            if fmt == FORMAT_DEB:
                fields = self._query_deb(path)
            elif fmt == FORMAT_RPM:
                fields = self._query_rpm(path)
            else:
                fields = self._query_tarball(path)
        except ToolFailureError as e:
            logger.debug(f"Cannot read package metadata from {path.name}: {e}")
            return None

        if fields is None:
            return None
        name, arch, version, release, edition = fields
        if not name:
            return None

        return Artifact(
            path=path,
            name=name,
            version=version,
            release=release,
            arch=arch,
            edition=edition,
            fmt=fmt,
            mtime=mtime,
        )

    def _query_deb(self, path: Path):
        proc = self.runner.run(["dpkg-deb", "-f", str(path), "Package", "Architecture", "Version"])
        control: dict[str, str] = {}
        for line in proc.stdout.splitlines():
            key, sep, value = line.partition(":")
            if sep:
                control[key.strip()] = value.strip()
        version = control.get("Version", "")
        # Debian versions carry the revision after the last hyphen
        upstream, _, revision = version.rpartition("-") if "-" in version else (version, "", "")
        return (
            control.get("Package", ""),
            control.get("Architecture", ""),
            upstream,
            revision,
            parse_edition(version, FORMAT_DEB),
        )

    def _query_rpm(self, path: Path):
        proc = self.runner.run(
            ["rpm", "-qp", "--qf", "%{NAME}|%{ARCH}|%{VERSION}|%{RELEASE}\\n", str(path)]
        )
        line = proc.stdout.strip().splitlines()[0] if proc.stdout.strip() else ""
        parts = line.split("|")
        if len(parts) != 4:
            return None
        name, arch, version, release = parts
        edition = parse_edition(release, FORMAT_RPM) or parse_edition(version, FORMAT_RPM)
        return name, arch, version, release, edition

    def _query_tarball(self, path: Path):
        parsed = parse_tarball_name(path.name)
        if parsed is None:
            return None
        name, edition = parsed
        base = path.name[: -len(".tar.gz")]
        version = base[len(name) + 1:]
        return name, "", version, "", edition


def list_candidates(repo_dir: Path, fmt: str, include_symlinks: bool = True) -> list[Path]:
    """Root-level files of one extension class, ignoring ``-latest`` links.

    Args:
        repo_dir: Repository directory
        fmt: Extension class (deb, rpm, tar.gz)
        include_symlinks: Also return symlinks that resolve to a regular file

    Returns:
        Sorted list of candidate paths
    """
    candidates = []
    for path in sorted(repo_dir.iterdir()):
        if artifact_format(path.name) != fmt or LATEST_MARKER in path.name:
            continue
        if path.is_symlink():
            if include_symlinks and path.is_file():
                candidates.append(path)
        elif path.is_file():
            candidates.append(path)
    return candidates


def collect_artifacts(
    repo_dir: Path, fmt: str, inspector: ArtifactInspector, include_symlinks: bool = True
) -> list[Artifact]:
    """Inspect every candidate of one extension class at the repository root."""
    artifacts = []
    for path in list_candidates(repo_dir, fmt, include_symlinks):
        artifact = inspector.inspect(path)
        if artifact is not None:
            artifacts.append(artifact)
    return artifacts
