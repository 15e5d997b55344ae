# =============================================================================
# PME Notify -- Error Types
# =============================================================================


class NotifyError(Exception):
    """Base exception for all notification client errors."""


class NotifyConnectionError(NotifyError):
    """Connection-related errors (failed to connect, lost connection)."""


class NotifyProtocolError(NotifyError):
    """Wire protocol errors (malformed line, non-object document)."""

    def __init__(self, message: str, line: str = "") -> None:
        self.line = line
        super().__init__(message)


class NotifyStorageError(NotifyError):
    """Cursor persistence failed (unreadable or unwritable store)."""


class NotifyTimeoutError(NotifyError):
    """Operation timed out."""
