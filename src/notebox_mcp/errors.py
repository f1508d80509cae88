"""Error taxonomy for workspace operations.

Every error carries a ``kind`` string so that collaborators (MCP clients, UI
layers) can branch on the failure without parsing messages.
"""


class WorkspaceError(Exception):
    """Base class for all workspace errors."""

    kind = "WorkspaceError"

    def to_payload(self) -> dict:
        """Structured form returned in-band by read tools."""
        return {"kind": self.kind, "message": str(self)}


class InvalidPath(WorkspaceError):
    """Path is empty, uses ``..`` or resolves outside the workspace root."""

    kind = "InvalidPath"


class RestrictedPath(WorkspaceError):
    """Path targets the metadata subtree without permission."""

    kind = "RestrictedPath"


class NotFound(WorkspaceError):
    """Target file or folder does not exist."""

    kind = "NotFound"


class AlreadyExists(WorkspaceError):
    """Create or move target is already present."""

    kind = "AlreadyExists"


class NoPreviousVersion(WorkspaceError):
    """Undo requested for a document without snapshots."""

    kind = "NoPreviousVersion"


class IndexUnavailable(WorkspaceError):
    """Search index is not open or not initialized yet."""

    kind = "IndexUnavailable"


class InvalidMove(WorkspaceError):
    """A folder cannot be moved into itself or one of its descendants."""

    kind = "InvalidMove"


class WorkspaceClosed(WorkspaceError):
    """No workspace is currently open."""

    kind = "WorkspaceClosed"


class ReadOnlyError(WorkspaceError):
    """Raised when a write is attempted while the server is read-only."""

    kind = "ReadOnly"


class WorkspaceIOError(WorkspaceError):
    """Generic I/O failure (permission denied, disk full, bad encoding...)."""

    kind = "IOError"

    def __init__(self, operation: str, path: str, cause: Exception):
        super().__init__(f"{operation} failed for {path}: {cause}")
        self.operation = operation
        self.path = path
        self.cause = cause
