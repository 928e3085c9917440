"""Persisted map of RPM filename to SHA256, replaced atomically."""

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def sha256_file(path: Path) -> str:
    """Calculate SHA256 checksum of a file.

    Args:
        path: Path to the file

    Returns:
        SHA256 checksum as hex string
    """
    sha256_hash = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


class ChecksumCache:
    """Known checksums of already signed RPMs.

    A missing or unreadable cache is treated as empty, which only means
    every RPM gets signed again.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.entries: dict[str, str] = {}

    def load(self) -> "ChecksumCache":
        """Read the cache from disk.

        Understands both the JSON map and the older ``name:sha256`` lines.
        """
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return self
        except OSError as e:
            logger.warning(f"Cannot read checksum cache {self.path}: {e}")
            return self

        try:
            data = json.loads(content) if content.strip() else {}
            if not isinstance(data, dict):
                raise ValueError("checksum cache is not a mapping")
            self.entries = {str(k): str(v) for k, v in data.items()}
        except ValueError:
            self.entries = {}
            for line in content.splitlines():
                name, sep, checksum = line.rpartition(":")
                if sep and name:
                    self.entries[name] = checksum.strip()
        return self

    def get(self, filename: str) -> str | None:
        return self.entries.get(filename)

    def save(self, entries: dict[str, str]) -> bool:
        """Replace the cache with ``entries`` via write-temp-then-rename.

        Returns:
            True if the file was rewritten, False if nothing changed
        """
        if entries == self.entries and self.path.exists():
            return False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=f"{self.path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(dict(sorted(entries.items())), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self.entries = dict(entries)
        logger.debug(f"Saved {len(entries)} checksums to {self.path}")
        return True
