"""Errors shared by the store, the sync engine, and the API layer."""


class StorageError(Exception):
    """Raised when the record store cannot complete a read or write."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a sync is requested while another one is still running."""

    def __init__(self, message: str = "Sync operation is already in progress") -> None:
        self.message = message
        super().__init__(message)
