# =============================================================================
# WS Connector -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .constants import DEFAULT_HOST, DEFAULT_RECONNECTION_DELAY_MS


class ConnectionState(str, Enum):
    """Connector lifecycle state.

    Typical flow: DISCONNECTED -> CONNECTING -> AUTHENTICATING -> CONNECTED.
    ERROR and RECONNECTING are transient. DISCONNECTED is terminal after
    ``close()`` or a rejected login.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


class Action(str, Enum):
    """Package action tag carried in ``info.action``."""

    GROUP = "group"
    CALL = "call"
    AUTH = "auth"
    BROADCAST = "broadcast"


@dataclass(frozen=True, slots=True)
class PackageInfo:
    """Envelope shared by outbound packages and inbound responses.

    Attributes:
        action: Which of the four package kinds this is.
        request: Remote procedure name, group verb, or broadcast subject.
        group: Group name for ``group`` actions, ``None`` otherwise.
        package_id: Correlation id (``packageID`` on the wire).
    """

    action: Action
    request: str | int | None
    group: str | None = None
    package_id: int | None = None


@dataclass(frozen=True, slots=True)
class Package:
    """An outbound unit: envelope plus opaque payload."""

    info: PackageInfo
    data: Any = None


@dataclass(frozen=True, slots=True)
class PackageResponse:
    """An inbound unit: envelope, optional server error, and payload."""

    info: PackageInfo
    error: Any = None
    response: Any = None


ResponseCallback = Callable[[Any, Any], Any]
BroadcastCallback = Callable[[Any], Any]


@dataclass
class ConnectorOptions:
    """Configuration for the connector's reconnection and notification policy.

    Attributes:
        reconnect_on_connection_error: Reopen the transport after an error.
        replay_auth_callback_on_reconnect: Fire ``when_connected`` again after
            each successful re-login, not only the first one.
        reconnection_delay: Milliseconds to wait before reopening.
        reconnect_on_close: Also reopen after a clean close from the server.
        notify_close_without_session: Report closes that happen before any
            session was established (suppressed by default).
        cancel_pending_on_reset: Fail requests still pending at reset with
            ``WSCCancelledError`` instead of dropping them silently.
        default_host: Host used when ``connect()`` is given a bare path.
    """

    reconnect_on_connection_error: bool = True
    replay_auth_callback_on_reconnect: bool = True
    reconnection_delay: int = DEFAULT_RECONNECTION_DELAY_MS
    reconnect_on_close: bool = False
    notify_close_without_session: bool = False
    cancel_pending_on_reset: bool = False
    default_host: str = DEFAULT_HOST

    def __post_init__(self) -> None:
        if self.reconnection_delay < 0:
            raise ValueError("reconnection_delay must be >= 0")


@dataclass
class ConnectorStats:
    """Counters for a connector across all of its connection cycles."""

    packages_sent: int = 0
    packages_received: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    malformed_messages: int = 0
    unmatched_responses: int = 0
    rejected_unauthenticated: int = 0
    broadcasts_delivered: int = 0
    connection_cycles: int = 0
    reconnect_count: int = 0
