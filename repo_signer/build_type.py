"""Infers the stable/testing/preview label written into the Release file."""

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from .models import BuildType, is_release_candidate_path

logger = logging.getLogger(__name__)

PREVIEW = BuildType(kind="preview", label="Preview Builds", suite="preview")
TESTING = BuildType(kind="testing", label="Testing Builds", suite="testing")
STABLE = BuildType(kind="stable", label="Stable Releases", suite="stable")

# Testing builds embed the commit time as YYYYMMDDHHMM
TIMESTAMP_RE = re.compile(r"[0-9]{12}")


def _scan_order(filenames: Iterable[str]) -> list[str]:
    """RPMs first, then DEBs, each alphabetically."""
    names = sorted(set(filenames))
    return [n for n in names if n.endswith(".rpm")] + [
        n for n in names if n.endswith(".deb")
    ]


def classify_build(repo_dir: str | Path, filenames: Iterable[str]) -> BuildType:
    """Classify a repository for its Release metadata.

    A release-candidate path always means preview. Otherwise the first
    package filename carrying a 12-digit timestamp marks the whole
    repository as testing, even when other packages are plain releases.
    Everything else is stable.

    Args:
        repo_dir: Repository directory path
        filenames: Artifact basenames present at the repository root

    Returns:
        The BuildType for the repository
    """
    if is_release_candidate_path(repo_dir):
        return PREVIEW

    for filename in _scan_order(filenames):
        if TIMESTAMP_RE.search(filename):
            logger.debug(f"Timestamped build found: {filename}")
            return TESTING

    return STABLE


def classify_directory(repo_dir: Path) -> BuildType:
    """Classify using the package files at the repository root, following symlinks."""
    filenames = [
        p.name
        for p in repo_dir.iterdir()
        if p.is_file() and p.name.endswith((".rpm", ".deb"))
    ]
    build_type = classify_build(repo_dir, filenames)
    logger.info(f"Detected build type: {build_type.kind}")
    return build_type
