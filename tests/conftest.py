import asyncio
import json

import pytest

from jamroom.broadcast import Broadcaster
from jamroom.router import Router
from jamroom.state import Endpoint, RoomRegistry


class FakeSocket:
    """Stands in for an aiohttp WebSocketResponse"""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self.close_message = None

    async def send_str(self, data):
        self.sent.append(json.loads(data))

    async def close(self, *, code=1000, message=b""):
        self.closed = True
        self.close_code = code
        self.close_message = message

    def of_type(self, kind):
        return [m["payload"] for m in self.sent if m["type"] == kind]

    def last(self, kind):
        found = self.of_type(kind)
        return found[-1] if found else None


class BrokenSocket(FakeSocket):
    async def send_str(self, data):
        raise ConnectionResetError("peer went away")


class HangingSocket(FakeSocket):
    """Accepts frames except `hang_on`, which never finishes sending"""

    def __init__(self, hang_on="room_state_update"):
        super().__init__()
        self.hang_on = hang_on

    async def send_str(self, data):
        if json.loads(data)["type"] == self.hang_on:
            await asyncio.Event().wait()
        await super().send_str(data)


class StuckSocket(FakeSocket):
    """Never finishes the close handshake"""

    async def close(self, *, code=1000, message=b""):
        await asyncio.Event().wait()


class FakeTransport:
    def __init__(self):
        self.closing = False

    def is_closing(self):
        return self.closing

    def close(self):
        self.closing = True


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def router(registry):
    return Router(registry, Broadcaster())


@pytest.fixture
def endpoint():
    return Endpoint(FakeSocket())


@pytest.fixture
def connect(router):
    async def _connect(socket=None, transport=None):
        return await router.connect(socket or FakeSocket(), transport)
    return _connect


@pytest.fixture
def send(router):
    async def _send(endpoint, kind, payload=None):
        message = {"type": kind}
        if payload is not None:
            message["payload"] = payload
        await router.handle(endpoint, json.dumps(message))
    return _send
