"""Thin wrappers around the external programs the signer drives.

Every program is started with an argument vector, never through a shell,
and every non-zero exit becomes a ToolFailureError. Callers decide whether
a failure is fatal; by default it is.
"""

import logging
import subprocess
from pathlib import Path

from .exceptions import ToolFailureError

logger = logging.getLogger(__name__)


class ToolRunner:
    """Runs external commands and raises on failure."""

    def run(
        self,
        cmd: list[str],
        cwd: str | Path | None = None,
        input: str | bytes | None = None,
        text: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a command to completion.

        Args:
            cmd: Argument vector; ``cmd[0]`` is looked up on PATH
            cwd: Working directory for the command
            input: Data fed to the command's stdin
            text: Decode stdout/stderr as text

        Returns:
            The completed process with captured stdout and stderr

        Raises:
            ToolFailureError: If the program is missing or exits non-zero
        """
        logger.debug(f"Running: {' '.join(str(c) for c in cmd)}")
        try:
            proc = subprocess.run(
                [str(c) for c in cmd],
                cwd=str(cwd) if cwd is not None else None,
                input=input,
                capture_output=True,
                text=text,
                check=False,
            )
        except OSError as e:
            raise ToolFailureError(cmd, 127, str(e)) from e

        if proc.returncode != 0:
            stderr = proc.stderr if text else proc.stderr.decode(errors="replace")
            logger.error(f"{cmd[0]} failed with status {proc.returncode}")
            raise ToolFailureError(cmd, proc.returncode, stderr or "")
        return proc


class GpgSigner:
    """Produces the clear-signed and detached signatures for repository metadata."""

    def __init__(self, runner: ToolRunner, key_id: str, passphrase: str | None = None):
        self.runner = runner
        self.key_id = key_id
        self.passphrase = passphrase

    def _base_cmd(self) -> list[str]:
        cmd = ["gpg", "--batch", "--yes"]
        if self.passphrase:
            cmd.extend(["--pinentry-mode", "loopback", "--passphrase-fd", "0"])
        cmd.extend(["--default-key", self.key_id, "--digest-algo", "SHA512"])
        return cmd

    def _run(self, cmd: list[str]) -> None:
        self.runner.run(cmd, input=self.passphrase if self.passphrase else None)

    def clearsign(self, source: Path, output: Path) -> None:
        """Write a clear-signed copy of ``source`` to ``output``."""
        output.unlink(missing_ok=True)
        self._run(self._base_cmd() + ["--clearsign", "-o", str(output), str(source)])
        logger.info(f"Clear-signed {source.name} -> {output.name} with {self.key_id}")

    def detach_sign(self, source: Path, output: Path) -> None:
        """Write a detached ASCII-armored signature of ``source`` to ``output``."""
        output.unlink(missing_ok=True)
        self._run(self._base_cmd() + ["-abs", "-o", str(output), str(source)])
        logger.info(f"Signed {source.name} -> {output.name} with {self.key_id}")


class RpmSigner:
    """Adds and removes embedded RPM signatures."""

    def __init__(self, runner: ToolRunner, key_id: str):
        self.runner = runner
        self.key_id = key_id

    def _macros(self) -> list[str]:
        # Explicit macros so the key never comes from a stale ~/.rpmmacros
        return [
            "--define", "_signature gpg",
            "--define", "__gpg /usr/bin/gpg",
            "--define", f"_gpg_name {self.key_id}",
        ]

    def delete_signature(self, rpm_file: Path) -> None:
        """Strip any existing signature. Failure is only worth a warning."""
        try:
            self.runner.run(["rpm", *self._macros(), "--delsign", str(rpm_file)])
        except ToolFailureError as e:
            logger.warning(f"Failed to delete signature from {rpm_file.name}: {e}")

    def add_signature(self, rpm_file: Path) -> None:
        """Sign the package in place.

        Raises:
            ToolFailureError: If rpm cannot sign the package
        """
        self.runner.run(["rpm", *self._macros(), "--addsign", str(rpm_file)])
        logger.info(f"Signed {rpm_file.name} with {self.key_id}")
