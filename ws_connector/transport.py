# =============================================================================
# WS Connector -- Socket Transport
# =============================================================================
#
# The connector talks to the network through the Transport contract below:
# four listener slots (open / message / error / close), send(text), and a
# forcible terminate(). WebSocketTransport implements it on top of the
# websockets asyncio client.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from ._logging import logger
from .constants import (
    CONNECTION_TIMEOUT,
    DEFAULT_HOST,
    MAX_MESSAGE_SIZE,
    WS_CLOSE_ABNORMAL,
)
from .errors import WSCConnectionError, WSCTimeoutError


class Transport(Protocol):
    """What the connector needs from a message-oriented socket."""

    on_open: Callable[[], Any] | None
    on_message: Callable[[str | bytes], Any] | None
    on_error: Callable[[Exception], Any] | None
    on_close: Callable[[int, str], Any] | None

    def open(self) -> None: ...

    def send(self, data: str) -> None: ...

    def terminate(self) -> None: ...

    def remove_all_listeners(self) -> None: ...


TransportFactory = Callable[[str], Transport]


def normalize_url(url: str, default_host: str = DEFAULT_HOST) -> str:
    """Map an HTTP-ish address onto its WebSocket scheme.

    ``http://`` becomes ``ws://``, ``https://`` becomes ``wss://`` and a bare
    path such as ``/socket`` is resolved against *default_host*.
    """
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("/"):
        return f"ws://{default_host}{url}"
    return url


class WebSocketTransport:
    """Transport over a single ``websockets`` client connection.

    ``open()`` starts a background task that connects, fires ``on_open``,
    then forwards every frame to ``on_message``. A failed connect or an
    abnormal closure fires ``on_error`` (followed by ``on_close`` when the
    socket had been open); a clean closure fires ``on_close`` only. A
    listener that raises aborts the socket and is reported the same way as
    an abnormal closure.

    Args:
        url: ``ws://`` or ``wss://`` address.
        extra_headers: Additional HTTP headers for the handshake.
        connect_timeout: Seconds allowed for the opening handshake.
    """

    def __init__(
        self,
        url: str,
        *,
        extra_headers: dict[str, str] | None = None,
        connect_timeout: float = CONNECTION_TIMEOUT,
    ) -> None:
        self._url = url
        self._extra_headers = extra_headers or {}
        self._connect_timeout = connect_timeout

        # Listeners
        self.on_open: Callable[[], Any] | None = None
        self.on_message: Callable[[str | bytes], Any] | None = None
        self.on_error: Callable[[Exception], Any] | None = None
        self.on_close: Callable[[int, str], Any] | None = None

        # State
        self._ws_cm: Any | None = None  # websocket context manager
        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._terminated = False
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._terminated

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -- Contract -------------------------------------------------------------

    def open(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.ensure_future(self._run())

    def send(self, data: str) -> None:
        """Queue a text frame. Raises if the socket is not open."""
        ws = self._ws
        if ws is None or self._terminated:
            raise WSCConnectionError("Transport is not open")
        self._fire_task(self._send(ws, data))

    def terminate(self) -> None:
        """Drop the connection without a closing handshake."""
        self._terminated = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        ws = self._ws
        self._ws = None
        self._ws_cm = None
        if ws is not None:
            ws.transport.abort()
        for task in self._background_tasks:
            task.cancel()
        self._background_tasks.clear()

    def remove_all_listeners(self) -> None:
        self.on_open = None
        self.on_message = None
        self.on_error = None
        self.on_close = None

    # -- Internal -------------------------------------------------------------

    async def _run(self) -> None:
        try:
            self._ws_cm = websockets.asyncio.client.connect(
                self._url,
                additional_headers=self._extra_headers,
                max_size=MAX_MESSAGE_SIZE,
                open_timeout=None,  # asyncio.wait_for handles timeout
            )
            self._ws = await asyncio.wait_for(
                self._ws_cm.__aenter__(),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            return
        except asyncio.TimeoutError:
            self._ws_cm = None
            self._emit_error(
                WSCTimeoutError(f"Connection timed out after {self._connect_timeout}s")
            )
            return
        except Exception as exc:
            self._ws_cm = None
            self._emit_error(WSCConnectionError(f"Failed to connect: {exc}"))
            return

        logger.debug("Transport open: %s", self._url)
        ws = self._ws
        try:
            if self.on_open is not None:
                self.on_open()
            async for message in ws:
                if self.on_message is not None:
                    self.on_message(message)
        except ConnectionClosedError as exc:
            logger.debug("Transport closed abnormally: %s", exc)
            self._ws = None
            self._emit_error(WSCConnectionError(f"Connection lost: {exc}"))
            self._emit_close(ws.close_code or WS_CLOSE_ABNORMAL, ws.close_reason or "")
            return
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)
            self._ws = None
            ws.transport.abort()
            self._emit_error(WSCConnectionError(f"Receive loop error: {exc}"))
            self._emit_close(WS_CLOSE_ABNORMAL, str(exc))
            return

        logger.debug("Transport closed normally")
        self._ws = None
        self._emit_close(ws.close_code or WS_CLOSE_ABNORMAL, ws.close_reason or "")

    async def _send(self, ws: websockets.asyncio.client.ClientConnection, data: str) -> None:
        try:
            await ws.send(data)
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
        except Exception as exc:
            logger.debug("Send failed: %s", exc)

    def _emit_error(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)

    def _emit_close(self, code: int, reason: str) -> None:
        if self.on_close is not None:
            self.on_close(code, reason)
