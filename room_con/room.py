import asyncio
from contextlib import AsyncExitStack, asynccontextmanager

from room_con.socket_client import socket_client
from logging_config import get_logger

logger = get_logger(__name__)


class Room:
    """Live member set of one room code."""

    def __init__(self, room_code: str):
        self.room_code = room_code
        self.clients: set[socket_client] = set()

    def add_client(self, client: socket_client) -> None:
        self.clients.add(client)
        logger.debug(f"{client.user_id} joined {self.room_code} ({len(self.clients)} live)")

    def remove_client(self, client: socket_client) -> None:
        if client in self.clients:
            self.clients.discard(client)
            logger.debug(f"{client.user_id} left {self.room_code} ({len(self.clients)} live)")

    def get_client_count(self) -> int:
        return len(self.clients)


class _RoomLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class RoomController:
    """
    Registry of live rooms: room code -> connected clients.

    Only answers "who is connected right now"; durable membership lives in the
    Store. A client is in at most one room, and a room entry is dropped as soon
    as its last client goes. Callers that mutate a room and report the result
    hold lock(code) around both.
    """

    def __init__(self):
        self.rooms: dict[str, Room] = {}
        self._locks: dict[str, _RoomLock] = {}

    @asynccontextmanager
    async def lock(self, room_code: str):
        entry = self._locks.get(room_code)
        if entry is None:
            entry = self._locks[room_code] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[room_code]

    @asynccontextmanager
    async def lock_all(self, *room_codes: str | None):
        """Hold the locks of several rooms at once, always taken in sorted order."""
        async with AsyncExitStack() as stack:
            for room_code in sorted({code for code in room_codes if code}):
                await stack.enter_async_context(self.lock(room_code))
            yield

    def ensure(self, room_code: str) -> Room:
        room = self.rooms.get(room_code)
        if room is None:
            room = self.rooms[room_code] = Room(room_code)
        return room

    def add(self, room_code: str, client: socket_client) -> int:
        room = self.ensure(room_code)
        room.add_client(client)
        return room.get_client_count()

    def remove(self, room_code: str, client: socket_client) -> int:
        """Remove client and return how many remain. Empty rooms are deleted."""
        room = self.rooms.get(room_code)
        if room is None:
            return 0
        room.remove_client(client)
        remaining = room.get_client_count()
        if remaining == 0:
            del self.rooms[room_code]
            logger.debug(f"Room {room_code} has no live clients, entry removed")
        return remaining

    def has(self, room_code: str) -> bool:
        return room_code in self.rooms

    def count_of(self, room_code: str) -> int:
        room = self.rooms.get(room_code)
        return room.get_client_count() if room else 0

    def members_of(self, room_code: str) -> list[socket_client]:
        room = self.rooms.get(room_code)
        return list(room.clients) if room else []

    def codes(self) -> list[str]:
        return list(self.rooms)
