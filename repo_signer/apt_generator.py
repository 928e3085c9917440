"""APT repository generator: pool symlink farm, Packages and signed Release."""

import gzip
import hashlib
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from .build_type import classify_directory
from .models import BuildType, RepoContext
from .tools import GpgSigner, ToolRunner

logger = logging.getLogger(__name__)

APT_COMPONENT = "main"
POOL_DIR = Path("pool") / APT_COMPONENT


class AptMetadataGenerator:
    """Creates the ``pool/`` and ``dists/`` trees of an APT repository."""

    def __init__(self, context: RepoContext, runner: ToolRunner, gpg: GpgSigner):
        """Initialize the generator.

        Args:
            context: Signing run context
            runner: Tool runner used for dpkg-scanpackages
            gpg: Signer used for InRelease and Release.gpg
        """
        self.context = context
        self.runner = runner
        self.gpg = gpg
        self.repo_dir = context.repo_dir
        self.pool_dir = self.repo_dir / POOL_DIR
        self.dists_dir = self.repo_dir / "dists" / context.target.codename
        self.component_dir = self.dists_dir / APT_COMPONENT

    def generate(self) -> Path:
        """Rebuild the pool, index it, and write a signed Release.

        Returns:
            Path of the generated Release file

        Raises:
            ToolFailureError: If scanning or signing fails
        """
        logger.info(f"Generating APT repository for {self.context.target.name}")

        self.pool_dir.mkdir(parents=True, exist_ok=True)
        self.component_dir.mkdir(parents=True, exist_ok=True)

        self.update_pool_symlinks()
        sha256_entries, sha512_entries = self.generate_arch_metadata()

        build_type = classify_directory(self.repo_dir)
        release_content = self.generate_release_file(build_type, sha256_entries, sha512_entries)

        release_file = self.dists_dir / "Release"
        release_file.write_text(release_content)
        self.sign_release_files(release_file)

        logger.info("Generated APT repository metadata")
        return release_file

    def update_pool_symlinks(self) -> int:
        """Replace every pool symlink with a fresh one per ``.deb`` in the tree.

        Returns:
            Number of symlinks created
        """
        for entry in self.pool_dir.iterdir():
            if entry.is_symlink():
                entry.unlink()

        created = 0
        pool_real = os.path.realpath(self.pool_dir)
        for root, dirs, files in os.walk(self.repo_dir):
            if os.path.realpath(root) == pool_real:
                dirs[:] = []
                continue
            dirs.sort()
            for filename in sorted(files):
                if not filename.endswith(".deb"):
                    continue
                source = Path(root) / filename
                link = self.pool_dir / filename
                if link.is_symlink() or link.exists():
                    logger.warning(f"Duplicate package {filename} at {source}, skipping")
                    continue
                link.symlink_to(source)
                created += 1

        logger.info(f"Linked {created} packages into {POOL_DIR}")
        return created

    def generate_arch_metadata(self) -> tuple[list[str], list[str]]:
        """Write Packages and Packages.gz for every configured architecture.

        Returns:
            SHA256 and SHA512 Release entries, one line per generated file
        """
        sha256_entries: list[str] = []
        sha512_entries: list[str] = []

        for arch in self.context.target.architectures:
            arch_dir = self.component_dir / f"binary-{arch}"
            arch_dir.mkdir(parents=True, exist_ok=True)
            packages_file = arch_dir / "Packages"
            packages_gz = arch_dir / "Packages.gz"

            logger.info(f"Generating Packages and Packages.gz for {arch}")
            proc = self.runner.run(
                ["dpkg-scanpackages", "--multiversion", str(POOL_DIR)],
                cwd=self.repo_dir,
                text=False,
            )
            packages_file.write_bytes(proc.stdout)
            write_gzip(packages_gz, proc.stdout)

            for generated in (packages_file, packages_gz):
                relative = f"{APT_COMPONENT}/binary-{arch}/{generated.name}"
                data = generated.read_bytes()
                sha256_entries.append(f" {hashlib.sha256(data).hexdigest()} {len(data)} {relative}")
                sha512_entries.append(f" {hashlib.sha512(data).hexdigest()} {len(data)} {relative}")

        return sha256_entries, sha512_entries

    def generate_release_file(
        self,
        build_type: BuildType,
        sha256_entries: list[str],
        sha512_entries: list[str],
        now: datetime | None = None,
    ) -> str:
        """Generate Release file with repository information and checksums.

        Args:
            build_type: Label and suite of the repository
            sha256_entries: SHA256 table lines
            sha512_entries: SHA512 table lines
            now: Timestamp for the Date field, defaults to the current time

        Returns:
            Release file content as string
        """
        target = self.context.target
        date = (now or datetime.now(UTC)).strftime("%a, %d %b %Y %H:%M:%S UTC")
        lines = [
            f"Origin: {target.origin}",
            f"Label: {build_type.label}",
            f"Suite: {build_type.suite}",
            f"Codename: {target.codename}",
            "Version: 1.0",
            f"Architectures: {' '.join(target.architectures)}",
            f"Components: {APT_COMPONENT}",
            f"Description: {target.description}",
            f"Date: {date}",
            "SHA256:",
            *sha256_entries,
            "SHA512:",
            *sha512_entries,
        ]
        return "\n".join(lines) + "\n"

    def sign_release_files(self, release_file: Path) -> None:
        """Produce InRelease and Release.gpg; never keeps an old signature."""
        self.gpg.clearsign(release_file, self.dists_dir / "InRelease")
        self.gpg.detach_sign(release_file, self.dists_dir / "Release.gpg")


def write_gzip(path: Path, data: bytes) -> None:
    """Compress ``data`` into ``path`` with a fixed header for stable checksums."""
    with open(path, "wb") as raw:
        with gzip.GzipFile(filename="", mode="wb", fileobj=raw, compresslevel=1, mtime=0) as gz:
            gz.write(data)
