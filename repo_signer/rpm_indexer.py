"""Incremental RPM signing and DNF repodata generation."""

import logging
import shutil
from pathlib import Path

from .checksum_cache import ChecksumCache, sha256_file
from .config import CHECKSUM_CACHE_FILE
from .models import RepoContext
from .tools import GpgSigner, RpmSigner, ToolRunner

logger = logging.getLogger(__name__)


class DnfRepositoryIndexer:
    """Signs changed RPMs and builds a signed ``repodata/`` tree."""

    def __init__(
        self,
        context: RepoContext,
        runner: ToolRunner,
        gpg: GpgSigner,
        rpm_signer: RpmSigner | None = None,
    ):
        self.context = context
        self.runner = runner
        self.gpg = gpg
        self.rpm_signer = rpm_signer or RpmSigner(runner, context.gpg_key)
        self.repo_dir = context.repo_dir
        self.repodata_dir = self.repo_dir / "repodata"
        self.cache = ChecksumCache(self.repodata_dir / CHECKSUM_CACHE_FILE)

    def index(self, groups_file: Path | None = None) -> list[str]:
        """Sign what changed, then regenerate and sign the repository metadata.

        Args:
            groups_file: Optional merged comps file passed to createrepo_c

        Returns:
            Filenames of the RPMs signed during this run

        Raises:
            ToolFailureError: If signing or indexing fails
        """
        logger.info(f"Indexing RPM repository in {self.repo_dir}")
        self.reset_repodata()

        signed = self.sign_packages()
        self.create_repo(groups_file)
        self.gpg.detach_sign(
            self.repodata_dir / "repomd.xml", self.repodata_dir / "repomd.xml.asc"
        )

        logger.info(f"RPM repository indexed ({len(signed)} packages signed)")
        return signed

    def reset_repodata(self) -> None:
        """Empty ``repodata/`` except for the checksum cache."""
        self.repodata_dir.mkdir(parents=True, exist_ok=True)
        for entry in self.repodata_dir.iterdir():
            if entry.name == CHECKSUM_CACHE_FILE:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def rpm_files(self) -> list[Path]:
        """Real (non-symlink) RPM files at the repository root."""
        return sorted(
            p for p in self.repo_dir.glob("*.rpm") if p.is_file() and not p.is_symlink()
        )

    def sign_packages(self) -> list[str]:
        """Re-sign every RPM whose checksum is unknown or has changed.

        The cache is only rewritten after all packages are processed, so an
        aborted run leaves the previous cache in place and the next run
        simply signs again.

        Returns:
            Filenames of the RPMs that were signed
        """
        self.cache.load()
        entries: dict[str, str] = {}
        signed: list[str] = []

        for rpm_file in self.rpm_files():
            current_sum = sha256_file(rpm_file)
            if current_sum != self.cache.get(rpm_file.name):
                self.rpm_signer.delete_signature(rpm_file)
                self.rpm_signer.add_signature(rpm_file)
                current_sum = sha256_file(rpm_file)
                signed.append(rpm_file.name)
            else:
                logger.debug(f"{rpm_file.name} unchanged, keeping signature")
            entries[rpm_file.name] = current_sum

        self.cache.save(entries)
        return signed

    def create_repo(self, groups_file: Path | None = None) -> None:
        cmd = ["createrepo_c"]
        if groups_file is not None:
            cmd.extend(["--groupfile", str(groups_file)])
        cmd.append(str(self.repo_dir))
        self.runner.run(cmd)
