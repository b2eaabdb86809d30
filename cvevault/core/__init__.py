"""Configuration, database engine and shared errors."""

from cvevault.core.config import get_settings, settings
from cvevault.core.exceptions import ConflictError, StorageError

__all__ = ["get_settings", "settings", "ConflictError", "StorageError"]
