import json

import pytest

from api.relay import RelayEngine
from database_client.memory import MemoryStore
from room_con.room import RoomController
from room_con.socket_client import socket_client


class FakeSocket:
    """Stands in for web.WebSocketResponse: records every frame sent."""

    def __init__(self):
        self.closed = False
        self.frames: list[dict] = []

    async def send_str(self, data: str):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.frames.append(json.loads(data))


@pytest.fixture
async def make_client():
    clients = []

    def factory(ws=None):
        client = socket_client(ws or FakeSocket())
        client.start()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.close()


@pytest.fixture
def drain():
    async def _drain(client: socket_client) -> list[dict]:
        await client.flush()
        frames = list(client.ws.frames)
        client.ws.frames.clear()
        return frames

    return _drain


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry():
    return RoomController()


@pytest.fixture
def engine(store, registry):
    return RelayEngine(store, registry)
