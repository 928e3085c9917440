"""Error taxonomy for the repository signer."""


class RepoSignerError(Exception):
    """Base class for all signer failures."""


class LockTimeoutError(RepoSignerError):
    """Another signing run holds the repository lock."""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s as another signing process "
            f"is still running ({lock_path})"
        )


class ToolFailureError(RepoSignerError):
    """An external program exited non-zero or could not be started."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        message = f"{cmd[0]} exited with status {returncode}"
        if stderr:
            message += f": {stderr.strip()[:300]}"
        super().__init__(message)


class OptionalInputError(RepoSignerError):
    """An optional input (group files, promotion map) cannot be used."""


class MalformedMappingError(RepoSignerError):
    """A promotion mapping row cannot be parsed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")
