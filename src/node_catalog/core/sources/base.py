"""
Remote node source interface.

A remote source reports a cheap version token for its current state and can
deliver every raw node entry for that state. The sync coordinator compares
tokens to decide whether a full fetch is needed.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from node_catalog.core.discovery.types import RawEntry


class RemoteNodeSource(ABC):
    """Abstract base class for remote node sources.

    Subclasses must implement:
        - get_source_name(): identifier used in errors and logs
        - get_version_token(): opaque token for the current remote state
        - fetch_all(version_token): every raw entry for the state the token
          names, or for the current state when no token is given

    Both remote calls may raise ``RemoteSourceError`` subclasses; callers treat
    any failure as "remote unavailable".
    """

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the source identifier (e.g. "github")."""
        ...

    @abstractmethod
    async def get_version_token(self) -> str:
        """Return a token that changes whenever the remote content changes."""
        ...

    @abstractmethod
    async def fetch_all(self, version_token: Optional[str] = None) -> List[RawEntry]:
        """Fetch every raw node entry, pinned to ``version_token`` when given."""
        ...
