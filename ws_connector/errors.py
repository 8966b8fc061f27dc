# =============================================================================
# WS Connector -- Error Types
# =============================================================================

from __future__ import annotations

from typing import Any


class WSCError(Exception):
    """Base exception for all connector errors."""


class WSCConnectionError(WSCError):
    """Transport errors (failed to connect, lost connection, send refused)."""


class WSCTimeoutError(WSCError):
    """Operation timed out."""


class WSCProtocolError(WSCError):
    """Malformed incoming frame (not JSON, missing envelope, unknown action)."""


class WSCAuthError(WSCError):
    """The server rejected the login exchange.

    Attributes:
        error: The raw ``error`` value sent by the server.
    """

    def __init__(self, error: Any) -> None:
        self.error = error
        super().__init__(f"Authentication failed: {error}")


class WSCNotAuthenticatedError(WSCError):
    """A package other than the login was sent before a session existed."""

    def __init__(self, message: str = "not authenticated") -> None:
        super().__init__(message)


class WSCRequestError(WSCError):
    """The server answered an awaited request with an error.

    Attributes:
        error: The raw ``error`` value sent by the server.
    """

    def __init__(self, error: Any) -> None:
        self.error = error
        super().__init__(f"Request failed: {error}")


class WSCCancelledError(WSCError):
    """A pending request was discarded by a connection reset or close."""
