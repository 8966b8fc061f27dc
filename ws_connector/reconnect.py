# =============================================================================
# WS Connector -- Reconnection Policy
# =============================================================================

from __future__ import annotations

from .types import ConnectorOptions


class ReconnectPolicy:
    """Decides whether and when the connector reopens its transport.

    ``enabled`` is the lifecycle switch: ``connect()`` turns it on,
    ``close()`` and a rejected login turn it off for good. The options
    decide which transport events may use it.

    Args:
        options: Connector options holding the configured behaviour.
    """

    def __init__(self, options: ConnectorOptions) -> None:
        self._options = options
        self._enabled = False
        self._has_connected_before = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def delay(self) -> float:
        """Reconnection delay in seconds."""
        return self._options.reconnection_delay / 1000.0

    def begin(self) -> None:
        """Start a new lifecycle (called by ``connect()``)."""
        self._enabled = True
        self._has_connected_before = False

    def disable(self) -> None:
        self._enabled = False

    def should_reconnect_on_error(self) -> bool:
        return self._enabled and self._options.reconnect_on_connection_error

    def should_reconnect_on_close(self) -> bool:
        return self._enabled and self._options.reconnect_on_close

    def should_notify_close(self, has_session: bool) -> bool:
        return has_session or self._options.notify_close_without_session

    def should_notify_connected(self) -> bool:
        """Record a successful login and say whether to fire ``when_connected``.

        The first login of a lifecycle always notifies; later ones only
        when ``replay_auth_callback_on_reconnect`` is set.
        """
        if not self._has_connected_before:
            self._has_connected_before = True
            return True
        return self._options.replay_auth_callback_on_reconnect
