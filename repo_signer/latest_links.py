"""Per-package ``<name>-latest`` convenience symlinks.

The links are created after the repository metadata has been generated,
so they never show up as extra entries in Packages or repodata.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from .artifacts import ArtifactInspector, artifact_format, collect_artifacts, is_latest_link
from .models import ARTIFACT_FORMATS, NEUTRAL_ARCHES, Artifact, GroupKey

logger = logging.getLogger(__name__)


def newest_first(artifacts: Iterable[Artifact]) -> list[Artifact]:
    """Order by modification time, newest first; filename breaks exact ties."""
    return sorted(artifacts, key=lambda a: (a.mtime, a.filename), reverse=True)


def group_artifacts(artifacts: Iterable[Artifact]) -> dict[GroupKey, list[Artifact]]:
    """Bucket artifacts by (name, edition, arch), each bucket newest first."""
    groups: dict[GroupKey, list[Artifact]] = defaultdict(list)
    for artifact in artifacts:
        groups[artifact.key].append(artifact)
    return {key: newest_first(members) for key, members in groups.items()}


def has_variance(artifacts: Iterable[Artifact]) -> bool:
    """True if a package comes in editions or in more than one real architecture.

    Architecture-neutral builds (``all``, ``noarch``) never count as a
    variant of their own.
    """
    arches = set()
    for artifact in artifacts:
        if artifact.edition:
            return True
        if not artifact.is_neutral_arch:
            arches.add(artifact.arch)
    return len(arches) > 1


def link_name(key: GroupKey, fmt: str) -> str:
    """``<name>-latest[-<edition>][-<arch>].<ext>``, neutral arch omitted."""
    name = f"{key.name}-latest"
    if key.edition:
        name += f"-{key.edition}"
    if key.arch and key.arch != NEUTRAL_ARCHES[fmt]:
        name += f"-{key.arch}"
    return f"{name}.{fmt}"


def plan_links(artifacts: list[Artifact], fmt: str) -> dict[str, str]:
    """Decide every ``-latest`` link for one extension class.

    Args:
        artifacts: Parsed artifacts of a single extension class
        fmt: The extension class

    Returns:
        Mapping of link name to the filename it should point to
    """
    by_name: dict[str, list[Artifact]] = defaultdict(list)
    for artifact in artifacts:
        by_name[artifact.name].append(artifact)

    links: dict[str, str] = {}
    for name, members in sorted(by_name.items()):
        if not has_variance(members):
            links[f"{name}-latest.{fmt}"] = newest_first(members)[0].filename

    # Variant links win when their name coincides with the generic one
    for key, members in sorted(group_artifacts(artifacts).items(), key=lambda i: link_name(i[0], fmt)):
        links[link_name(key, fmt)] = members[0].filename

    return links


class LatestSymlinkResolver:
    """Rebuilds all ``-latest`` links at a repository root."""

    def __init__(self, repo_dir: Path, inspector: ArtifactInspector):
        self.repo_dir = repo_dir
        self.inspector = inspector

    def remove_links(self, formats: Iterable[str] = ARTIFACT_FORMATS) -> int:
        """Delete existing ``-latest`` symlinks of the given extension classes."""
        formats = set(formats)
        removed = 0
        for path in self.repo_dir.iterdir():
            if is_latest_link(path) and artifact_format(path.name) in formats:
                path.unlink()
                removed += 1
        return removed

    def regenerate(self) -> dict[str, str]:
        """Destroy and recreate the links for every extension class.

        Returns:
            Mapping of created link name to target filename
        """
        created: dict[str, str] = {}
        for fmt in ARTIFACT_FORMATS:
            self.remove_links([fmt])
            artifacts = collect_artifacts(self.repo_dir, fmt, self.inspector)
            for name, target in plan_links(artifacts, fmt).items():
                link = self.repo_dir / name
                if link.exists() or link.is_symlink():
                    logger.warning(f"{name} exists and is not a latest link, leaving as-is")
                    continue
                link.symlink_to(target)
                logger.debug(f"{name} -> {target}")
                created[name] = target

        logger.info(f"Created {len(created)} latest symlinks")
        return created
