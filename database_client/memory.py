from itertools import count

from database_client.models import Room, Message, RoomUser, utcnow, MESSAGE_TYPE_MESSAGE
from database_client.store import Store, RoomCodeTaken


class MemoryStore(Store):
    """Dict-backed store. Nothing survives a restart."""

    def __init__(self):
        self.rooms: dict[str, Room] = {}
        self.messages: list[Message] = []
        self.room_users: list[RoomUser] = []
        self._room_ids = count(1)
        self._message_ids = count(1)
        self._room_user_ids = count(1)

    async def get_rooms(self) -> list[Room]:
        return sorted(self.rooms.values(), key=lambda room: room.id)

    async def get_room_by_code(self, code: str) -> Room | None:
        return self.rooms.get(code)

    async def create_room(self, name: str, code: str, description: str | None = None) -> Room:
        if code in self.rooms:
            raise RoomCodeTaken(code)
        room = Room(
            id=next(self._room_ids),
            code=code,
            name=name,
            description=description or None,
            created_at=utcnow(),
        )
        self.rooms[code] = room
        return room

    async def get_messages_by_room_code(self, code: str) -> list[Message]:
        room = self.rooms.get(code)
        if room is None:
            return []
        return [msg for msg in self.messages if msg.room_id == room.id]

    async def create_message(
        self, code: str, user_id: str, content: str, type: str = MESSAGE_TYPE_MESSAGE
    ) -> Message:
        room = await self.resolve_or_create_room(code)
        msg = Message(
            id=next(self._message_ids),
            room_id=room.id,
            user_id=user_id,
            content=content,
            type=type,
            timestamp=utcnow(),
        )
        self.messages.append(msg)
        return msg

    async def add_user_to_room(self, code: str, user_id: str) -> None:
        room = await self.resolve_or_create_room(code)
        for member in self.room_users:
            if member.room_id == room.id and member.user_id == user_id:
                return
        self.room_users.append(
            RoomUser(id=next(self._room_user_ids), room_id=room.id, user_id=user_id, joined=utcnow())
        )

    async def remove_user_from_room(self, code: str, user_id: str) -> None:
        room = self.rooms.get(code)
        if room is None:
            return
        self.room_users = [
            member for member in self.room_users
            if not (member.room_id == room.id and member.user_id == user_id)
        ]

    async def get_users_in_room_by_code(self, code: str) -> list[str]:
        room = self.rooms.get(code)
        if room is None:
            return []
        return [member.user_id for member in self.room_users if member.room_id == room.id]
