"""Request/response and pub/sub connector over a reconnecting WebSocket.

Async usage::

    from ws_connector import connect

    connector = connect("wss://example.com/socket", {"user": "u", "pass": "p"})
    session = await connector.wait_connected()
    reply = await connector.call("profile", {"id": 7})

Callback usage::

    connector = AsyncSocketConnector()
    connector.when_connected = lambda: connector.join_group("news", on_joined)
    connector.connect("/socket", credentials)

Sync usage::

    from ws_connector import SyncSocketConnector

    connector = SyncSocketConnector()
    connector.connect("ws://localhost:8080/socket", credentials)
    print(connector.echo({"x": 1}))
    connector.close()

Optional extras::

    pip install ws-connector[fast]   # orjson
"""

from typing import Any

from ._version import __version__
from .client import AsyncSocketConnector
from .errors import (
    WSCAuthError,
    WSCCancelledError,
    WSCConnectionError,
    WSCError,
    WSCNotAuthenticatedError,
    WSCProtocolError,
    WSCRequestError,
    WSCTimeoutError,
)
from .sync_client import SyncSocketConnector
from .transport import Transport, WebSocketTransport, normalize_url
from .types import (
    Action,
    ConnectionState,
    ConnectorOptions,
    Package,
    PackageInfo,
    PackageResponse,
)


def connect(
    url: str,
    credentials: Any = None,
    **kwargs,
) -> AsyncSocketConnector:
    """Create a connector and start connecting to *url*.

    Must be called from a running event loop. Keyword arguments are
    forwarded to :class:`AsyncSocketConnector` -- ``options``,
    ``transport_factory``, ``on_state_change``.

    Args:
        url: WebSocket URL, ``http(s)://`` URL, or bare path.
        credentials: Login payload sent on every open.
        **kwargs: Passed to :class:`AsyncSocketConnector`.

    Returns:
        The connecting :class:`AsyncSocketConnector`.
    """
    return AsyncSocketConnector(**kwargs).connect(url, credentials)


__all__ = [
    "__version__",
    "connect",
    "AsyncSocketConnector",
    "SyncSocketConnector",
    "Transport",
    "WebSocketTransport",
    "normalize_url",
    "Action",
    "ConnectionState",
    "ConnectorOptions",
    "Package",
    "PackageInfo",
    "PackageResponse",
    "WSCError",
    "WSCConnectionError",
    "WSCTimeoutError",
    "WSCProtocolError",
    "WSCAuthError",
    "WSCNotAuthenticatedError",
    "WSCRequestError",
    "WSCCancelledError",
]
