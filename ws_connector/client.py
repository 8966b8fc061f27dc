# =============================================================================
# WS Connector -- Async Connector
# =============================================================================
#
# Primary public API: lifecycle, login gate, correlated requests, group
# membership and broadcast subscriptions over one reconnecting transport.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ._logging import logger
from .constants import (
    ECHO_REQUEST,
    GROUP_JOIN,
    GROUP_LEAVE,
    GROUP_LEAVE_ALL,
    INITIAL_CONNECT_DELAY,
    LOGIN_REQUEST,
    MSG_CONNECTION_CLOSED,
    MSG_CONNECTION_ERROR,
    MSG_INVALID_DATA,
    WAIT_CONNECTED_TIMEOUT,
)
from .context import ConnectionContext
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
from .protocol import PackageCodec
from .reconnect import ReconnectPolicy
from .transport import Transport, TransportFactory, WebSocketTransport, normalize_url
from .types import (
    Action,
    BroadcastCallback,
    ConnectionState,
    ConnectorOptions,
    ConnectorStats,
    Package,
    PackageInfo,
    PackageResponse,
    ResponseCallback,
)

# Hook signatures
ConnectionHook = Callable[[str, Any], Any]
AuthFailureHook = Callable[[Any], Any]
ConnectedHook = Callable[[], Any]


def _default_error_hook(message: str, info: Any) -> None:
    logger.error("%s: %s", message, info)


def _default_close_hook(message: str, info: Any) -> None:
    logger.info("%s: %s", message, info)


def _default_auth_failure_hook(error: Any) -> None:
    logger.error("Authentication failed: %s", error)


def _noop() -> None:
    pass


def future_callback(future: asyncio.Future[Any]) -> ResponseCallback:
    """Adapt *future* to the ``(error, response)`` callback shape.

    Local errors are raised as they are; a server error value is wrapped
    in :class:`~ws_connector.errors.WSCRequestError`. Answers arriving
    after the future is done (e.g. cancelled by a timeout) are ignored.
    """

    def _complete(error: Any, response: Any) -> None:
        if future.done():
            return
        if isinstance(error, WSCError):
            future.set_exception(error)
        elif error is not None:
            future.set_exception(WSCRequestError(error))
        else:
            future.set_result(response)

    return _complete


class AsyncSocketConnector:
    """Request/response and pub/sub client over one reconnecting socket.

    Every public method returns immediately; results arrive through
    callbacks on the event loop that called :meth:`connect`. Callbacks may
    be plain functions or coroutine functions. Exceptions raised by
    callbacks are logged and never reach the connector.

    Args:
        options: Reconnection and notification policy.
        transport_factory: Builds a transport for a normalised URL.
            Defaults to :class:`~ws_connector.transport.WebSocketTransport`.
        on_state_change: Called with each new
            :class:`~ws_connector.types.ConnectionState`.

    Example::

        connector = AsyncSocketConnector()
        connector.when_connected = lambda: connector.request(
            "profile", {"id": 7}, lambda err, res: print(err, res)
        )
        connector.connect("https://example.com/socket", {"user": "u", "pass": "p"})
    """

    def __init__(
        self,
        options: ConnectorOptions | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        on_state_change: Callable[[ConnectionState], Any] | None = None,
    ) -> None:
        self._options = options or ConnectorOptions()
        self._transport_factory: TransportFactory = (
            transport_factory or WebSocketTransport
        )
        self._on_state_change = on_state_change

        self._codec = PackageCodec()
        self._policy = ReconnectPolicy(self._options)
        self._stats = ConnectorStats()

        # Lifecycle
        self._url: str | None = None
        self._credentials: Any = None
        self._transport: Transport | None = None
        self._context = ConnectionContext()
        self._state = ConnectionState.DISCONNECTED

        # Hooks
        self._on_connection_error: ConnectionHook = _default_error_hook
        self._on_connection_closed: ConnectionHook = _default_close_hook
        self._if_authentication_fails: AuthFailureHook = _default_auth_failure_hook
        self._when_connected: ConnectedHook = _noop

        # Awaitable login outcome for wait_connected()
        self._ready_event = asyncio.Event()
        self._auth_error: Any = None
        self._auth_failed = False

        # Tasks
        self._reconnect_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

        # Action -> handler (dict lookup = O(1))
        self._response_handlers: dict[Action, Callable[[PackageResponse], None]] = {
            Action.CALL: self._dispatch_response,
            Action.GROUP: self._dispatch_response,
            Action.AUTH: self._dispatch_response,
            Action.BROADCAST: self._dispatch_broadcast,
        }

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -- Properties -----------------------------------------------------------

    @property
    def session(self) -> Any:
        return self._context.session

    @property
    def is_connected(self) -> bool:
        return self._context.session is not None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def options(self) -> ConnectorOptions:
        return self._options

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def pending_requests(self) -> int:
        return len(self._context.correlations)

    # -- Hooks ----------------------------------------------------------------

    @property
    def on_connection_error(self) -> ConnectionHook:
        return self._on_connection_error

    @on_connection_error.setter
    def on_connection_error(self, hook: ConnectionHook) -> None:
        self._on_connection_error = hook

    @property
    def on_connection_closed(self) -> ConnectionHook:
        return self._on_connection_closed

    @on_connection_closed.setter
    def on_connection_closed(self, hook: ConnectionHook) -> None:
        self._on_connection_closed = hook

    @property
    def if_authentication_fails(self) -> AuthFailureHook:
        return self._if_authentication_fails

    @if_authentication_fails.setter
    def if_authentication_fails(self, hook: AuthFailureHook) -> None:
        self._if_authentication_fails = hook

    @property
    def when_connected(self) -> ConnectedHook:
        return self._when_connected

    @when_connected.setter
    def when_connected(self, hook: ConnectedHook) -> None:
        self._when_connected = hook

    # -- Connect / Close ------------------------------------------------------

    def connect(self, url: str, credentials: Any = None) -> AsyncSocketConnector:
        """Start a connection lifecycle towards *url*.

        Must be called from a running event loop. The first attempt is
        scheduled almost immediately; watch ``when_connected`` and
        ``if_authentication_fails`` (or await :meth:`wait_connected`) for
        the outcome.

        Args:
            url: ``ws://``/``wss://`` URL, an ``http(s)://`` URL mapped onto
                the matching WebSocket scheme, or a bare path resolved
                against ``options.default_host``.
            credentials: Sent as the login payload on every open. ``None``
                keeps the credentials of the previous ``connect()``.
        """
        self._url = normalize_url(url, self._options.default_host)
        if credentials is not None:
            self._credentials = credentials
        self._policy.begin()
        self._ready_event.clear()
        self._auth_error = None
        self._auth_failed = False
        logger.info("Connecting to %s", self._url)
        self._schedule_reload(INITIAL_CONNECT_DELAY)
        return self

    def close(self) -> None:
        """End the lifecycle: no more reconnects, transport dropped, state reset."""
        self._policy.disable()
        self._cancel_reconnect()
        self._teardown()
        self._reset_context(ConnectionContext())
        self._ready_event.set()  # release wait_connected()
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_connected(self, timeout: float | None = WAIT_CONNECTED_TIMEOUT) -> Any:
        """Wait for the login of the current lifecycle and return the session.

        Raises:
            WSCAuthError: If the server rejected the credentials.
            WSCTimeoutError: If no login outcome arrived within *timeout*.
            WSCConnectionError: If the connector was closed meanwhile.
        """
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise WSCTimeoutError(f"Not connected after {timeout}s") from None
        if self._auth_failed:
            raise WSCAuthError(self._auth_error)
        if self._context.session is None:
            raise WSCConnectionError("Connector closed before login completed")
        return self._context.session

    # -- Requests -------------------------------------------------------------

    def request(
        self,
        request: str | int,
        data: Any = None,
        callback: ResponseCallback | None = None,
    ) -> None:
        """Call a remote procedure; *callback* receives ``(error, response)``."""
        self._send(Action.CALL, request, None, data, callback)

    def echo(self, data: Any, callback: ResponseCallback | None = None) -> None:
        """Round-trip diagnostic: the server answers ``{echoAt, received}``."""
        self._send(Action.CALL, ECHO_REQUEST, None, data, callback)

    def join_group(self, group: str, callback: ResponseCallback | None = None) -> None:
        self._send(Action.GROUP, GROUP_JOIN, group, None, callback)

    def leave_group(self, group: str, callback: ResponseCallback | None = None) -> None:
        self._send(Action.GROUP, GROUP_LEAVE, group, None, callback)

    def leave_all_groups(self, callback: ResponseCallback | None = None) -> None:
        self._send(Action.GROUP, GROUP_LEAVE_ALL, None, None, callback)

    def on_message_received(self, subject: str, callback: BroadcastCallback) -> None:
        """Subscribe *callback* to broadcasts for *subject*.

        Subscriptions belong to the current connection cycle and are lost on
        reconnect; register them from ``when_connected`` to keep them.
        """
        self._context.broadcasts.subscribe(subject, callback)

    async def call(
        self,
        request: str | int,
        data: Any = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Awaitable form of :meth:`request`.

        Raises:
            WSCRequestError: The server answered with an error.
            WSCNotAuthenticatedError: No session exists yet.
            WSCTimeoutError: No answer within *timeout*. The request stays
                pending in the connector until the next reset.
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._send(Action.CALL, request, None, data, future_callback(future))
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise WSCTimeoutError(f"No response to '{request}' after {timeout}s") from None

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return connector statistics."""
        return {
            "state": self._state.value,
            "url": self._url,
            "is_connected": self.is_connected,
            "pending_requests": len(self._context.correlations),
            "next_package_id": self._context.correlations.next_id,
            "broadcast_subjects": sorted(self._context.broadcasts.subjects),
            "packages_sent": self._stats.packages_sent,
            "packages_received": self._stats.packages_received,
            "bytes_sent": self._stats.bytes_sent,
            "bytes_received": self._stats.bytes_received,
            "malformed_messages": self._stats.malformed_messages,
            "unmatched_responses": self._stats.unmatched_responses,
            "rejected_unauthenticated": self._stats.rejected_unauthenticated,
            "broadcasts_delivered": self._stats.broadcasts_delivered,
            "connection_cycles": self._stats.connection_cycles,
            "reconnect_count": self._stats.reconnect_count,
        }

    # -- Internal: outbound ---------------------------------------------------

    def _send(
        self,
        action: Action,
        request: str | int | None,
        group: str | None,
        data: Any,
        callback: ResponseCallback | None,
    ) -> None:
        ctx = self._context
        is_login = action == Action.AUTH and request == LOGIN_REQUEST
        if ctx.session is None and not is_login:
            self._stats.rejected_unauthenticated += 1
            logger.debug("Rejected %s/%s: not authenticated", action.value, request)
            if callback is not None:
                self._invoke(callback, WSCNotAuthenticatedError(), None)
            return

        table = ctx.correlations
        if callback is not None:
            package_id = table.register(action, request, callback)
        else:
            package_id = table.next_id

        package = Package(
            info=PackageInfo(
                action=action,
                request=request,
                group=group,
                package_id=package_id,
            ),
            data=data,
        )
        encoded = self._codec.encode(package)

        transport = self._transport
        try:
            if transport is None:
                raise WSCConnectionError("Transport is not open")
            transport.send(encoded)
        except WSCConnectionError as exc:
            logger.debug("Send of %s/%s failed: %s", action.value, request, exc)
            pending = table.resolve(package_id) if callback is not None else None
            if pending is not None:
                self._invoke(pending.callback, exc, None)
            return

        self._stats.packages_sent += 1
        self._stats.bytes_sent += len(encoded.encode("utf-8"))

    # -- Internal: inbound ----------------------------------------------------

    def _handle_message(self, data: str | bytes) -> None:
        self._stats.packages_received += 1
        if isinstance(data, str):
            self._stats.bytes_received += len(data.encode("utf-8"))
        else:
            self._stats.bytes_received += len(data)
        try:
            response = self._codec.decode(data)
        except WSCProtocolError as exc:
            self._stats.malformed_messages += 1
            logger.warning("Dropping malformed frame: %s", exc)
            self._invoke(self._on_connection_error, MSG_INVALID_DATA, data)
            return

        self._response_handlers[response.info.action](response)

    def _dispatch_response(self, response: PackageResponse) -> None:
        """Resolve the pending request matching ``info.packageID``."""
        pending = self._context.correlations.resolve(response.info.package_id)
        if pending is None:
            self._stats.unmatched_responses += 1
            logger.debug(
                "No pending request for %s/%s packageID=%s, dropping",
                response.info.action.value,
                response.info.request,
                response.info.package_id,
            )
            return
        self._invoke(pending.callback, response.error, response.response)

    def _dispatch_broadcast(self, response: PackageResponse) -> None:
        subscribers = self._context.broadcasts.subscribers(response.info.request)
        for subscriber in subscribers:
            self._stats.broadcasts_delivered += 1
            self._invoke(subscriber, response.response)

    # -- Internal: transport events -------------------------------------------

    def _on_transport_open(self) -> None:
        self._set_state(ConnectionState.AUTHENTICATING)
        self._send(
            Action.AUTH,
            LOGIN_REQUEST,
            None,
            self._credentials,
            self._on_login_response,
        )

    def _on_login_response(self, error: Any, session: Any) -> None:
        if error is not None:
            self._context.session = None
            self._policy.disable()
            self._cancel_reconnect()
            self._teardown()
            self._auth_error = error
            self._auth_failed = True
            self._ready_event.set()
            self._set_state(ConnectionState.DISCONNECTED)
            logger.error("Login rejected: %s", error)
            self._invoke(self._if_authentication_fails, error)
            return

        self._context.session = session
        self._set_state(ConnectionState.CONNECTED)
        self._ready_event.set()
        logger.info("Authenticated on %s", self._url)
        if self._policy.should_notify_connected():
            self._invoke(self._when_connected)

    def _on_transport_error(self, exc: Exception) -> None:
        self._set_state(ConnectionState.ERROR)
        self._invoke(self._on_connection_error, MSG_CONNECTION_ERROR, exc)
        if self._policy.should_reconnect_on_error():
            self._schedule_reload(self._policy.delay)

    def _on_transport_close(self, code: int, reason: str) -> None:
        ctx = self._context
        if self._policy.should_notify_close(ctx.session is not None):
            self._invoke(
                self._on_connection_closed,
                MSG_CONNECTION_CLOSED,
                {"code": code, "reason": reason},
            )
        ctx.session = None
        if self._policy.should_reconnect_on_close():
            self._schedule_reload(self._policy.delay)
        elif self._reconnect_task is None:
            self._set_state(ConnectionState.DISCONNECTED)

    # -- Internal: lifecycle --------------------------------------------------

    def _schedule_reload(self, delay: float) -> None:
        """Tear down and reopen the transport after *delay* seconds."""
        if not self._policy.enabled:
            return
        self._cancel_reconnect()
        if self._stats.connection_cycles > 0:
            self._set_state(ConnectionState.RECONNECTING)
            logger.info("Reconnecting in %.1fs", delay)
        self._reconnect_task = asyncio.ensure_future(self._reload_after(delay))

    async def _reload_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        self._reconnect_task = None
        try:
            self._teardown()
            self._start()
        except Exception as exc:
            logger.debug("Reopen failed: %s", exc)
            self._invoke(self._on_connection_error, MSG_CONNECTION_ERROR, exc)

    def _start(self) -> None:
        """Fresh context first, then a new transport."""
        self._reset_context(ConnectionContext())
        self._ready_event.clear()
        if self._stats.connection_cycles > 0:
            self._stats.reconnect_count += 1
        self._stats.connection_cycles += 1
        self._set_state(ConnectionState.CONNECTING)

        assert self._url is not None
        transport = self._transport_factory(self._url)
        transport.on_error = self._bind(self._on_transport_error)
        transport.on_close = self._bind(self._on_transport_close)
        transport.on_open = self._bind(self._on_transport_open)
        transport.on_message = self._bind(self._handle_message)
        self._transport = transport
        transport.open()

    def _teardown(self) -> None:
        transport = self._transport
        if transport is None:
            return
        self._transport = None
        transport.terminate()
        transport.remove_all_listeners()

    def _bind(self, handler: Callable[..., None]) -> Callable[..., None]:
        """Wrap *handler* so it only runs while its transport is current."""
        ctx = self._context

        def listener(*args: Any) -> None:
            if self._context is not ctx:
                logger.debug("Ignoring event from a stale transport")
                return
            handler(*args)

        return listener

    def _reset_context(self, ctx: ConnectionContext) -> None:
        old = self._context
        self._context = ctx
        pending = old.correlations.drain()
        if not pending:
            return
        if self._options.cancel_pending_on_reset:
            for entry in pending:
                self._invoke(
                    entry.callback,
                    WSCCancelledError(f"Request '{entry.request}' cancelled by reset"),
                    None,
                )
        else:
            logger.debug("Discarding %d pending requests on reset", len(pending))

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    def _invoke(self, fn: Callable[..., Any], *args: Any) -> None:
        """Run a user callback; log its errors, schedule its coroutine."""
        try:
            result = fn(*args)
            if asyncio.iscoroutine(result):
                self._fire_task(result)
        except Exception as exc:
            logger.error("Callback error in %s: %s", getattr(fn, "__name__", fn), exc)

    # -- State management -----------------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("State: %s -> %s", old.value, new_state.value)
        if self._on_state_change:
            self._invoke(self._on_state_change, new_state)
