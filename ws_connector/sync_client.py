# =============================================================================
# WS Connector -- Synchronous Wrapper
# =============================================================================
#
# Thread-based wrapper around AsyncSocketConnector for blocking usage.
# Callbacks registered here run on the background thread.
# =============================================================================

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

from ._logging import logger
from .client import AsyncSocketConnector, future_callback
from .errors import WSCConnectionError, WSCTimeoutError
from .transport import TransportFactory
from .types import BroadcastCallback, ConnectionState, ConnectorOptions


class SyncSocketConnector:
    """Blocking / thread-based connector.

    Runs an :class:`AsyncSocketConnector` on a background event loop. The
    request helpers block until the server answers and raise on failure.

    Args:
        options: Reconnection and notification policy.
        transport_factory: Forwarded to :class:`AsyncSocketConnector`.

    Example::

        connector = SyncSocketConnector()
        session = connector.connect("ws://localhost:8080/socket", {"token": "t"})
        print(connector.echo({"x": 1}))
        connector.close()
    """

    def __init__(
        self,
        options: ConnectorOptions | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._options = options
        self._transport_factory = transport_factory

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._connector: AsyncSocketConnector | None = None
        self._loop_ready = threading.Event()

        # Hooks applied when the async connector is created
        self._hooks: dict[str, Callable[..., Any]] = {}

    # -- Hooks ----------------------------------------------------------------

    def set_hook(self, name: str, hook: Callable[..., Any]) -> None:
        """Set ``on_connection_error``, ``on_connection_closed``,
        ``if_authentication_fails`` or ``when_connected``."""
        if name not in (
            "on_connection_error",
            "on_connection_closed",
            "if_authentication_fails",
            "when_connected",
        ):
            raise ValueError(f"Unknown hook: {name}")
        self._hooks[name] = hook
        if self._loop and self._connector:
            self._loop.call_soon_threadsafe(setattr, self._connector, name, hook)

    # -- Lifecycle ------------------------------------------------------------

    def connect(
        self,
        url: str,
        credentials: Any = None,
        timeout: float = 15.0,
    ) -> Any:
        """Connect, log in, and return the session. Blocks until done.

        Raises:
            WSCAuthError: The server rejected the credentials.
            WSCTimeoutError: No login outcome within *timeout*.
        """
        self._ensure_loop()
        assert self._loop is not None and self._connector is not None
        connector = self._connector

        async def _connect() -> Any:
            connector.connect(url, credentials)
            return await connector.wait_connected(timeout)

        future = asyncio.run_coroutine_threadsafe(_connect(), self._loop)
        return future.result(timeout=timeout + 1.0)

    def close(self) -> None:
        """Close the connector and stop the background thread."""
        loop = self._loop
        if loop is None:
            return
        connector = self._connector

        async def _shutdown() -> None:
            if connector is not None:
                connector.close()
            # Let cancelled transport and reconnect tasks unwind
            await asyncio.sleep(0)

        try:
            asyncio.run_coroutine_threadsafe(_shutdown(), loop).result(timeout=5.0)
        except Exception as exc:
            logger.warning("Shutdown error: %s", exc)
        loop.call_soon_threadsafe(loop.stop)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._thread = None

    # -- Requests -------------------------------------------------------------

    def call(self, request: str | int, data: Any = None, timeout: float = 10.0) -> Any:
        """Call a remote procedure and return its response."""
        connector = self._require_connector()
        return self._run(connector.call(request, data, timeout=timeout), timeout)

    def echo(self, data: Any, timeout: float = 10.0) -> Any:
        return self._run_callback_api("echo", data, timeout=timeout)

    def join_group(self, group: str, timeout: float = 10.0) -> Any:
        return self._run_callback_api("join_group", group, timeout=timeout)

    def leave_group(self, group: str, timeout: float = 10.0) -> Any:
        return self._run_callback_api("leave_group", group, timeout=timeout)

    def leave_all_groups(self, timeout: float = 10.0) -> Any:
        return self._run_callback_api("leave_all_groups", timeout=timeout)

    def on_message_received(self, subject: str, callback: BroadcastCallback) -> None:
        """Subscribe *callback* (run on the background thread) to *subject*."""
        connector = self._require_connector()
        assert self._loop is not None
        self._loop.call_soon_threadsafe(connector.on_message_received, subject, callback)

    # -- Properties -----------------------------------------------------------

    @property
    def session(self) -> Any:
        if self._connector:
            return self._connector.session
        return None

    @property
    def is_connected(self) -> bool:
        return self._connector is not None and self._connector.is_connected

    @property
    def state(self) -> ConnectionState:
        if self._connector:
            return self._connector.state
        return ConnectionState.DISCONNECTED

    def get_stats(self) -> dict[str, Any]:
        if self._connector:
            return self._connector.get_stats()
        return {}

    # -- Internal -------------------------------------------------------------

    def _ensure_loop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._loop_ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop, daemon=True, name="ws-connector"
        )
        self._thread.start()
        if not self._loop_ready.wait(timeout=5.0):
            raise WSCTimeoutError("Background loop did not start")

    def _run_loop(self) -> None:
        """Background thread: run the async event loop."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            self._connector = AsyncSocketConnector(
                self._options, transport_factory=self._transport_factory
            )
            for name, hook in self._hooks.items():
                setattr(self._connector, name, hook)
            self._loop_ready.set()
            loop.run_forever()
        except Exception as exc:
            logger.error("Background loop error: %s", exc)
        finally:
            self._loop_ready.set()  # Unblock _ensure_loop() if still waiting
            self._drain_tasks(loop)
            loop.close()
            self._loop = None

    @staticmethod
    def _drain_tasks(loop: asyncio.AbstractEventLoop) -> None:
        """Cancel leftover tasks and let them finish before the loop closes."""
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

    def _require_connector(self) -> AsyncSocketConnector:
        if not self._loop or not self._connector:
            raise WSCConnectionError("Not connected; call connect() first")
        return self._connector

    def _run(self, coro: Any, timeout: float) -> Any:
        assert self._loop is not None
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=timeout + 1.0)

    def _run_callback_api(self, method: str, *args: Any, timeout: float) -> Any:
        """Drive a callback-style connector method and wait for its answer."""
        connector = self._require_connector()

        async def _await_response() -> Any:
            future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            getattr(connector, method)(*args, future_callback(future))
            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise WSCTimeoutError(f"No response to {method} after {timeout}s") from None

        return self._run(_await_response(), timeout)
