"""Shared fixtures: an in-memory transport the tests drive by hand."""

import asyncio
import json

import pytest
import pytest_asyncio

from ws_connector.client import AsyncSocketConnector
from ws_connector.errors import WSCConnectionError
from ws_connector.types import ConnectorOptions

TEST_URL = "ws://test.local/socket"
CREDENTIALS = {"user": "alice", "password": "secret"}


class FakeTransport:
    """Transport double: records frames, lets tests fire events."""

    def __init__(self, url):
        self.url = url
        self.on_open = None
        self.on_message = None
        self.on_error = None
        self.on_close = None
        self.opened = False
        self.is_open = False
        self.terminated = False
        self.sent = []

    # -- Transport contract ---------------------------------------------------

    def open(self):
        self.opened = True

    def send(self, data):
        if not self.is_open or self.terminated:
            raise WSCConnectionError("Transport is not open")
        self.sent.append(data)

    def terminate(self):
        self.terminated = True
        self.is_open = False

    def remove_all_listeners(self):
        self.on_open = None
        self.on_message = None
        self.on_error = None
        self.on_close = None

    # -- Test drivers ---------------------------------------------------------

    @property
    def packages(self):
        return [json.loads(frame) for frame in self.sent]

    def emit_open(self):
        self.is_open = True
        if self.on_open:
            self.on_open()

    def emit_raw(self, data):
        if self.on_message:
            self.on_message(data)

    def emit(self, info, error=None, response=None):
        self.emit_raw(json.dumps({"info": info, "error": error, "response": response}))

    def reply(self, package, error=None, response=None):
        """Answer an outbound package with the same info envelope."""
        self.emit(package["info"], error=error, response=response)

    def broadcast(self, subject, response):
        self.emit(
            {"action": "broadcast", "request": subject, "group": None, "packageID": None},
            response=response,
        )

    def emit_error(self, exc=None):
        self.is_open = False
        if self.on_error:
            self.on_error(exc or WSCConnectionError("boom"))

    def emit_close(self, code=1000, reason=""):
        self.is_open = False
        if self.on_close:
            self.on_close(code, reason)


async def wait_for_transports(transports, count, attempts=100):
    """Let the loop run until *count* transports were created."""
    for _ in range(attempts):
        if len(transports) >= count:
            return transports[count - 1]
        await asyncio.sleep(0.005)
    raise AssertionError(f"expected {count} transports, got {len(transports)}")


async def establish(connector, transports, session=None, count=1):
    """Connect (for the first cycle), open the transport and accept the login."""
    if count == 1:
        connector.connect(TEST_URL, CREDENTIALS)
    transport = await wait_for_transports(transports, count)
    transport.emit_open()
    login = transport.packages[-1]
    transport.reply(login, response=session if session is not None else {"id": 1})
    return transport


@pytest.fixture
def transports():
    return []


@pytest.fixture
def transport_factory(transports):
    def factory(url):
        transport = FakeTransport(url)
        transports.append(transport)
        return transport

    return factory


@pytest.fixture
def options():
    return ConnectorOptions(reconnection_delay=10)


@pytest_asyncio.fixture
async def connector(options, transport_factory):
    c = AsyncSocketConnector(options, transport_factory=transport_factory)
    yield c
    c.close()
