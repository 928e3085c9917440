"""Purging superseded builds from development repositories."""

import logging
from pathlib import Path

from .artifacts import ArtifactInspector, collect_artifacts
from .latest_links import group_artifacts
from .models import ARTIFACT_FORMATS, RepoContext

logger = logging.getLogger(__name__)


def superseded(artifacts, keep: int = 1):
    """Artifacts beyond the ``keep`` newest of each (name, edition, arch) group."""
    stale = []
    for members in group_artifacts(artifacts).values():
        stale.extend(members[max(keep, 1):])
    return sorted(stale, key=lambda a: a.filename)


def purge_old_builds(context: RepoContext, inspector: ArtifactInspector) -> list[Path]:
    """Delete old builds so development repositories only carry the newest ones.

    Release-candidate repositories, and targets that do not enable purging,
    keep every release.

    Returns:
        Paths of the deleted files
    """
    target = context.target
    if not target.purge_old_builds:
        return []
    if context.is_release_candidate:
        logger.debug(f"Not purging release-candidate repository {context.repo_dir}")
        return []

    removed = []
    for fmt in ARTIFACT_FORMATS:
        artifacts = collect_artifacts(context.repo_dir, fmt, inspector, include_symlinks=False)
        for artifact in superseded(artifacts, target.keep_builds):
            logger.info(f"Purging superseded build {artifact.filename}")
            artifact.path.unlink()
            removed.append(artifact.path)

    logger.info(f"Purged {len(removed)} superseded builds")
    return removed
