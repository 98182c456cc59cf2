"""Persistent cache error classes."""

from pathlib import Path
from typing import Optional


class CacheStorageError(Exception):
    """Raised when the node cache file cannot be written.

    Attributes:
        path: Cache file path involved in the failure.
        reason: Description of what went wrong.
    """

    def __init__(self, message: str, path: Optional[Path] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.reason = reason


class LockAcquisitionError(CacheStorageError):
    """Raised when file lock cannot be acquired within timeout."""
    pass
