"""Promotion of a release-candidate repository into stable repositories."""

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from .artifacts import ArtifactInspector
from .config import LOCK_FILE, STABLE_MAP_FILE, UPLOADED_LIST_FILE, UPLOADED_LIST_LOCK_FILE
from .exceptions import MalformedMappingError, OptionalInputError
from .latest_links import LatestSymlinkResolver
from .lock import locked
from .models import CoreProduct, PromotionEntry, RepoContext
from .ordering import fix_product_ordering

logger = logging.getLogger(__name__)

PROMOTED_SUFFIXES = (".rpm", ".deb", ".tar.gz", ".sh")

# Signature of the callback that signs a stable repository:
# (repo_dir, target_name, gpg_key) -> None
SignCallback = Callable[[Path, str, str | None], None]


def _normalize(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def parse_mapping_line(line: str) -> PromotionEntry:
    """Parse ``/rc/path=/stable/path:label[:gpg_key]``.

    Raises:
        MalformedMappingError: If the line lacks a source, destination or label
    """
    source, sep, rhs = line.partition("=")
    if not sep or not source.strip():
        raise MalformedMappingError(line, "missing source path")

    destination, _, rest = rhs.partition(":")
    label, _, gpg_key = rest.partition(":")
    if not destination.strip() or not label.strip():
        raise MalformedMappingError(line, "missing stable path or label")

    return PromotionEntry(
        source=Path(source.strip()),
        destination=Path(destination.strip()),
        label=label.strip(),
        gpg_key=gpg_key.strip() or None,
    )


def load_promotion_map(map_file: Path) -> list[PromotionEntry]:
    """Read all usable rows of the promotion map.

    Blank lines and ``#`` comments are ignored; malformed rows are skipped
    with a warning so the remaining rows still apply.

    Raises:
        OptionalInputError: If the map file is missing or unreadable
    """
    try:
        lines = map_file.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise OptionalInputError(
            f"Cannot promote to stable because mapping file {map_file} "
            f"is not readable: {getattr(e, 'strerror', None) or e}"
        ) from e

    entries = []
    for line in lines:
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            entries.append(parse_mapping_line(line))
        except MalformedMappingError as e:
            logger.warning(f"Malformed stable mapping line in {map_file}: {e}")
    return entries


def consume_uploaded_list(rc_dir: Path, timeout: float = 120) -> set[str] | None:
    """Read and delete the uploaded-list manifest under its own lock.

    Lines are decoded with surrogate escapes, the same way Path.iterdir
    decodes filenames, so names that are not valid UTF-8 still match.

    Returns:
        Basenames uploaded by the current CI run, or None if there is no
        manifest and everything should be promoted
    """
    manifest = rc_dir / UPLOADED_LIST_FILE
    with locked(rc_dir / UPLOADED_LIST_LOCK_FILE, timeout):
        if not manifest.is_file():
            return None
        names = {
            os.path.basename(line.strip())
            for line in manifest.read_text(encoding="utf-8", errors="surrogateescape").splitlines()
            if line.strip()
        }
        manifest.unlink()

    logger.info(f"Restricting promotion to {len(names)} uploaded files")
    return names


class PromotionEngine:
    """Replicates an RC repository into every stable repository mapped to it."""

    def __init__(
        self,
        context: RepoContext,
        sign: SignCallback,
        inspector: ArtifactInspector,
        products: list[CoreProduct],
        lock_timeout: float = 120,
    ):
        """Initialize the engine.

        Args:
            context: Context of the RC signing run
            sign: Callback that signs a stable repository
            inspector: Artifact inspector shared with the RC run
            products: Core products for the ordering fixup
            lock_timeout: Seconds to wait for the manifest lock
        """
        self.context = context
        self.sign = sign
        self.inspector = inspector
        self.products = products
        self.lock_timeout = lock_timeout
        self.map_file = context.config_dir / STABLE_MAP_FILE

    def promote(self) -> list[PromotionEntry]:
        """Promote the RC repository to all mapped stable repositories.

        Returns:
            The mapping entries that were promoted
        """
        rc_dir = self.context.repo_dir
        if not self.context.is_release_candidate:
            logger.info(f"{rc_dir} is not a release-candidate repository, not promoting")
            return []

        try:
            entries = load_promotion_map(self.map_file)
        except OptionalInputError as e:
            logger.warning(str(e))
            return []

        rc_home = _normalize(rc_dir)
        matching = [e for e in entries if _normalize(e.source) == rc_home]
        if not matching:
            logger.info(f"No stable mapping for {rc_dir}")
            return []

        allowed = consume_uploaded_list(rc_dir, self.lock_timeout)
        for entry in matching:
            destination = _normalize(entry.destination)
            rc_roots = [e.source for e in entries if _normalize(e.destination) == destination]
            self.promote_entry(entry, rc_roots, allowed)
        return matching

    def promote_entry(
        self, entry: PromotionEntry, rc_roots: list[Path], allowed: set[str] | None = None
    ) -> None:
        """Run every promotion step for one mapping row."""
        rc_dir = self.context.repo_dir
        stable_dir = entry.destination
        logger.info(
            f"Promoting pre-release repo from {rc_dir} to {stable_dir} "
            f"({entry.label}) with key {entry.gpg_key or self.context.gpg_key}"
        )

        stable_dir.mkdir(parents=True, exist_ok=True)
        stable_lock = stable_dir / LOCK_FILE

        with locked(stable_lock, self.lock_timeout):
            self.promote_files(rc_dir, stable_dir, allowed)
            self.prune_orphans(stable_dir, rc_roots)
            self.remove_broken_links(stable_dir)

        # Takes the stable lock itself
        self.sign(stable_dir, entry.label, entry.gpg_key)

        with locked(stable_lock, self.lock_timeout):
            self.sync_rpm_mtimes(rc_dir, stable_dir)
            stable_context = RepoContext(
                repo_dir=stable_dir,
                target=self.context.target,
                gpg_key=entry.gpg_key or self.context.gpg_key,
                config_dir=self.context.config_dir,
            )
            fix_product_ordering(stable_context, self.inspector, self.products)

            # Latest links in stable were chosen before the mtimes moved
            LatestSymlinkResolver(stable_dir, self.inspector).regenerate()

    def promote_files(self, rc_dir: Path, stable_dir: Path, allowed: set[str] | None = None) -> list[str]:
        """Copy RPMs and symlink everything else from RC into stable.

        RPMs are copied because the stable repository signs them with its
        own key. Symlinks in the RC repository are never promoted.

        Returns:
            Basenames that were promoted
        """
        stable_dir.mkdir(parents=True, exist_ok=True)
        promoted = []

        for source in sorted(rc_dir.iterdir()):
            if not source.name.endswith(PROMOTED_SUFFIXES):
                continue
            if source.is_symlink() or not source.is_file():
                continue
            if allowed is not None and source.name not in allowed:
                continue

            target = stable_dir / source.name
            if source.name.endswith(".rpm"):
                if target.is_symlink():
                    target.unlink()
                shutil.copy2(source, target)
            elif target.is_symlink():
                target.unlink()
                target.symlink_to(source)
            elif target.exists():
                logger.warning(f"{target} exists and is not a symlink; leaving as-is")
                continue
            else:
                target.symlink_to(source)
            promoted.append(source.name)

        logger.info(f"Promoted {len(promoted)} files to {stable_dir}")
        return promoted

    def prune_orphans(self, stable_dir: Path, rc_roots: list[Path]) -> list[str]:
        """Delete stable RPMs that no longer exist in any RC mapped to it.

        Pruning is skipped when an RC root is missing, since an empty
        listing would otherwise wipe the stable repository.

        Returns:
            Basenames of the deleted RPMs
        """
        known: set[str] = set()
        for root in rc_roots:
            if not root.is_dir():
                logger.warning(f"RC root {root} not found, not pruning {stable_dir}")
                return []
            known.update(p.name for p in root.glob("*.rpm"))

        removed = []
        for rpm_file in sorted(stable_dir.glob("*.rpm")):
            if rpm_file.is_symlink() or not rpm_file.is_file():
                continue
            if rpm_file.name not in known:
                logger.info(f"Pruning {rpm_file.name} from {stable_dir}")
                rpm_file.unlink()
                removed.append(rpm_file.name)
        return removed

    def remove_broken_links(self, stable_dir: Path) -> list[str]:
        """Remove root-level symlinks whose target no longer exists."""
        removed = []
        for path in sorted(stable_dir.iterdir()):
            if path.is_symlink() and not path.exists():
                logger.info(f"Removing broken symlink {path.name}")
                path.unlink()
                removed.append(path.name)
        return removed

    def sync_rpm_mtimes(self, rc_dir: Path, stable_dir: Path) -> int:
        """Give stable RPMs the modification time of their RC originals.

        Returns:
            Number of files updated
        """
        updated = 0
        for rpm_file in sorted(stable_dir.glob("*.rpm")):
            if rpm_file.is_symlink() or not rpm_file.is_file():
                continue
            source = rc_dir / rpm_file.name
            if source.is_symlink() or not source.is_file():
                continue
            os.utime(rpm_file, (rpm_file.stat().st_atime, source.stat().st_mtime))
            updated += 1
        return updated
