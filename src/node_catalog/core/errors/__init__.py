"""Unified error hierarchy for node-catalog.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.

Usage:
    from node_catalog.core.errors.remote import RemoteTimeoutError
    from node_catalog.core.errors import NoDataAvailableError
"""

# --- Catalog errors ---
from node_catalog.core.errors.catalog import (
    LiteralSyntaxError,
    NoDataAvailableError,
    NodeLoadError,
)

# --- Remote source errors ---
from node_catalog.core.errors.remote import (
    RemoteAuthenticationError,
    RemoteRateLimitError,
    RemoteSourceError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)

# --- Storage errors ---
from node_catalog.core.errors.storage import (
    CacheStorageError,
    LockAcquisitionError,
)

__all__ = [
    # Catalog
    "LiteralSyntaxError",
    "NoDataAvailableError",
    "NodeLoadError",
    # Remote
    "RemoteAuthenticationError",
    "RemoteRateLimitError",
    "RemoteSourceError",
    "RemoteTimeoutError",
    "RemoteUnavailableError",
    # Storage
    "CacheStorageError",
    "LockAcquisitionError",
]
