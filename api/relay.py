"""
RelayEngine - interprets inbound events and fans results out to room members

Architecture:
1. The transport hands every text frame of a connection to handle()
2. The frame is decoded by api.codec; bad frames get "Invalid message format"
3. Durable changes go through the Store and are awaited first
4. Live membership changes go through the RoomController under the room lock,
   together with the broadcast that reports them, so every userCount sent is
   the size of the live set at that moment
5. Outbound events are queued on each target socket_client and never awaited,
   so one slow recipient does not hold up the others
"""

import secrets
from typing import Callable

from api import codec
from api.codec import (
    ChatMessage,
    CreateRoomAck,
    ErrorEvent,
    JoinAck,
    JoinNotice,
    LeaveNotice,
    OutboundEvent,
    encode,
    format_timestamp,
    utcnow_iso,
)
from constants import ROOM_CODE_LENGTH
from database_client.models import MESSAGE_TYPE_MESSAGE, MESSAGE_TYPE_SYSTEM
from database_client.store import Store, StoreError
from logging_config import get_logger
from room_con.room import RoomController
from room_con.socket_client import socket_client

logger = get_logger(__name__)

# No 0/O, 1/I/l
ROOM_CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz"
MAX_CODE_ATTEMPTS = 10
SYSTEM_USER = "system"


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


class RelayEngine:
    def __init__(
        self,
        store: Store,
        registry: RoomController,
        code_factory: Callable[[], str] = generate_room_code,
    ):
        """
        Args:
            store: durable rooms/messages/membership
            registry: live room code -> connected clients
            code_factory: produces candidate room codes for create_room
        """
        self.store = store
        self.registry = registry
        self.code_factory = code_factory
        self._handlers = {
            "join": self._on_join,
            "leave": self._on_leave,
            "message": self._on_message,
            "create_room": self._on_create_room,
        }

    async def handle(self, client: socket_client, raw: str | bytes) -> None:
        try:
            event = codec.decode(raw)
        except codec.InvalidEvent as e:
            logger.warning(f"Rejected frame from user={client.user_id}: {e}")
            client.send(ErrorEvent(message="Invalid message format"))
            return

        logger.debug(f"[{event.type}] user={client.user_id} room={client.room_code}")
        try:
            await self._handlers[event.type](client, event)
        except StoreError as e:
            logger.error(f"Store failure while handling {event.type}: {e}", exc_info=True)
            client.send(ErrorEvent(message="Storage unavailable"))

    async def _on_join(self, client: socket_client, event: codec.JoinRequest) -> None:
        await self.join(client, event.room, event.user_id)

    async def _on_leave(self, client: socket_client, event: codec.LeaveRequest) -> None:
        await self.leave(client, event.room, event.user_id)

    async def _on_message(self, client: socket_client, event: codec.MessageRequest) -> None:
        await self.message(client, event.room, event.user_id, event.message, event.timestamp)

    async def _on_create_room(self, client: socket_client, event: codec.CreateRoomRequest) -> None:
        await self.create_room(client, event.user_id, event.room_name, event.message)

    async def join(self, client: socket_client, room_code: str | None, user_id: str | None) -> None:
        if not room_code:
            client.send(ErrorEvent(message="Room code is required"))
            return
        if not user_id:
            client.send(ErrorEvent(message="User ID is required"))
            return

        room = await self.store.get_room_by_code(room_code)
        if room is None:
            client.send(ErrorEvent(message="Room not found"))
            return

        await self._enter(client, room, user_id)

    async def leave(self, client: socket_client, room_code: str | None, user_id: str | None) -> None:
        if not room_code:
            return

        async with self.registry.lock(room_code):
            if not self.registry.has(room_code):
                return
            if user_id:
                await self.store.remove_user_from_room(room_code, user_id)
            remaining = self._depart(client, room_code, user_id)

        logger.info(f"{user_id} left {room_code} ({remaining} live)")

    async def message(
        self,
        client: socket_client,
        room_code: str | None,
        user_id: str | None,
        content: str | None,
        timestamp: str | None = None,
    ) -> None:
        if not room_code or not content or not user_id:
            logger.debug(f"Dropped incomplete message from {client!r}")
            return

        async with self.registry.lock(room_code):
            await self.store.create_message(room_code, user_id, content, MESSAGE_TYPE_MESSAGE)
            delivered = self.broadcast(room_code, ChatMessage(
                room_code=room_code,
                user_id=user_id,
                message=content,
                timestamp=timestamp or utcnow_iso(),
            ))

        logger.debug(f"Message from {user_id} in {room_code} relayed to {delivered} clients")

    async def create_room(
        self,
        client: socket_client,
        user_id: str | None,
        room_name: str | None,
        description: str | None = None,
    ) -> None:
        if not room_name:
            client.send(ErrorEvent(message="Room name is required"))
            return
        if not user_id:
            client.send(ErrorEvent(message="User ID is required"))
            return

        room_code = await self._allocate_room_code()
        room = await self.store.create_room(room_name, room_code, description or "")
        await self.store.create_message(
            room_code, SYSTEM_USER, f"Room created by {user_id}", MESSAGE_TYPE_SYSTEM
        )
        logger.info(f"Room {room_code} ({room_name!r}) created by {user_id}")

        await self._enter(client, room, user_id, created=CreateRoomAck(
            room_id=room.id,
            room_name=room.name,
            room_code=room.code,
            message=description,
            user_count=1,
        ))

    async def disconnect(self, client: socket_client) -> None:
        """Connection closed: drop it from its live room. Durable membership is kept."""
        room_code = client.room_code
        if not room_code:
            return
        async with self.registry.lock(room_code):
            remaining = self._depart(client, room_code, client.user_id)
        logger.info(f"{client.user_id} disconnected from {room_code} ({remaining} live)")

    def broadcast(self, room_code: str, event: OutboundEvent) -> int:
        payload = encode(event)
        members = self.registry.members_of(room_code)
        for member in members:
            member.send_raw(payload)
        return len(members)

    async def _enter(
        self,
        client: socket_client,
        room,
        user_id: str,
        created: CreateRoomAck | None = None,
    ) -> None:
        """
        Put client into room: durable membership, then the live set, then the
        acks, the join broadcast and the history replay.

        A client already in another room is moved out of it in the same step.
        Both rooms stay locked until the sends are queued, and nothing live
        changes unless every store call succeeded.
        """
        room_code = room.code
        previous = client.room_code if client.room_code != room_code else None

        async with self.registry.lock_all(room_code, previous):
            await self.store.add_user_to_room(room_code, user_id)
            history = await self.store.get_messages_by_room_code(room_code)

            if previous:
                self._depart(client, previous, client.user_id)
                logger.info(f"{client.user_id} switched from {previous} to {room_code}")

            user_count = self.registry.add(room_code, client)
            client.attach(room_code, user_id)

            if created is not None:
                client.send(created)
            client.send(JoinAck(
                room_id=room.id,
                room_name=room.name,
                room_code=room_code,
                user_count=user_count,
            ))
            self.broadcast(room_code, JoinNotice(
                room_code=room_code,
                user_id=user_id,
                message=f"User {user_id} joined the room",
                user_count=user_count,
            ))
            for msg in history:
                client.send(ChatMessage(
                    type=msg.type or MESSAGE_TYPE_MESSAGE,
                    room_code=room_code,
                    user_id=msg.user_id,
                    message=msg.content,
                    timestamp=format_timestamp(msg.timestamp),
                ))

        logger.info(f"{user_id} joined {room_code} ({user_count} live, {len(history)} replayed)")

    def _depart(self, client: socket_client, room_code: str, user_id: str | None) -> int:
        """Remove client from the live set and tell whoever is left. Caller holds the room lock."""
        remaining = self.registry.remove(room_code, client)
        if client.room_code == room_code:
            client.detach()
        self.broadcast(room_code, LeaveNotice(
            room_code=room_code,
            user_id=user_id,
            message=f"User {user_id} left the room",
            user_count=remaining,
        ))
        return remaining

    async def _allocate_room_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            candidate = self.code_factory()
            if await self.store.get_room_by_code(candidate) is None:
                return candidate
            logger.debug(f"Room code collision on {candidate}, regenerating")
        raise StoreError(f"could not allocate a free room code in {MAX_CODE_ATTEMPTS} attempts")
