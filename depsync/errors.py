"""Error taxonomy for DepSync.

Every error carries the repository, file path and operation it relates to
(when known) so callers can report failures per item.
"""


class DepSyncError(Exception):
    """Base class for all DepSync errors."""

    def __init__(
        self,
        message: str,
        *,
        repo: str | None = None,
        file_path: str | None = None,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.repo = repo
        self.file_path = file_path
        self.operation = operation

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        """Structured form used in per-item run reports."""
        return {
            "error": self.kind,
            "message": self.message,
            "repo": self.repo,
            "file": self.file_path,
            "operation": self.operation,
        }


class TransportError(DepSyncError):
    """Network, TLS or timeout failure talking to a remote service."""


class RegistryError(DepSyncError):
    """A remote service answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None, **context):
        super().__init__(message, **context)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class ParseError(DepSyncError):
    """A response body or document could not be decoded."""


class ShapeError(DepSyncError):
    """A dependency entry has a form that cannot be patched."""


class NotFoundError(DepSyncError):
    """The dependency table or the named entry is absent."""


class SubprocessError(DepSyncError):
    """A version-control step exited non-zero or could not be spawned."""

    def __init__(
        self,
        message: str,
        *,
        args: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
        **context,
    ):
        super().__init__(message, **context)
        self.command = list(args or [])
        self.returncode = returncode
        self.stderr = stderr


class NoFallbackAvailable(DepSyncError):
    """The remote commit failed and no local checkout was supplied."""


class LocalCommitFailed(DepSyncError):
    """The local checkout commit sequence failed."""


class ConfigError(DepSyncError):
    """Sync configuration is missing or invalid."""
