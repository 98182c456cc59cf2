"""Catalog error classes: discovery, lazy loading and source parsing."""

from typing import Optional


class NoDataAvailableError(Exception):
    """Raised when the cache is empty and a refresh could not populate it.

    Distinct from an empty result: callers can tell "nothing matched" apart
    from "nothing has ever been synced".

    Attributes:
        cause: The refresh failure that left the cache empty.
    """

    def __init__(self, message: str = "No node data available", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class NodeLoadError(Exception):
    """Raised when a registry loader cannot produce its node record."""

    def __init__(self, short_name: str, reason: str):
        self.short_name = short_name
        self.reason = reason
        super().__init__(f"Failed to load node '{short_name}': {reason}")


class LiteralSyntaxError(ValueError):
    """Raised when an object literal in node source cannot be read.

    Attributes:
        position: Character offset where reading failed.
    """

    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} (at offset {position})"
        super().__init__(message)
