"""
Store - durable record of rooms, messages and room membership.

The relay only talks to this interface. Two backends implement it:
- DBStore (database_client.manager): SQLAlchemy async ORM, PostgreSQL or SQLite
- MemoryStore (database_client.memory): plain dicts, lost on restart

Room auto-creation for unknown codes lives in resolve_or_create_room and is
shared by create_message and add_user_to_room.
"""

from abc import ABC, abstractmethod

from database_client.models import Room, Message, MESSAGE_TYPE_MESSAGE
from logging_config import get_logger

logger = get_logger(__name__)

AUTO_CREATED_DESCRIPTION = "Auto-created room"


class StoreError(Exception):
    """The backing store could not complete an operation."""


class RoomCodeTaken(StoreError):
    def __init__(self, code: str):
        super().__init__(f"room code already exists: {code}")
        self.code = code


class Store(ABC):

    @abstractmethod
    async def get_rooms(self) -> list[Room]:
        ...

    @abstractmethod
    async def get_room_by_code(self, code: str) -> Room | None:
        ...

    @abstractmethod
    async def create_room(self, name: str, code: str, description: str | None = None) -> Room:
        """Insert a new room. Raises RoomCodeTaken if the code is in use."""

    async def resolve_or_create_room(self, code: str) -> Room:
        """
        Return the room for code, creating it from the auto-create template if missing.
        A creator that loses a concurrent race reads back the winner's row.
        """
        room = await self.get_room_by_code(code)
        if room is not None:
            return room
        try:
            room = await self.create_room(f"Room {code}", code, AUTO_CREATED_DESCRIPTION)
            logger.info(f"Auto-created room {code}")
            return room
        except RoomCodeTaken:
            room = await self.get_room_by_code(code)
            if room is None:
                raise
            return room

    @abstractmethod
    async def get_messages_by_room_code(self, code: str) -> list[Message]:
        """History of a room in append order; empty for unknown codes."""

    @abstractmethod
    async def create_message(
        self, code: str, user_id: str, content: str, type: str = MESSAGE_TYPE_MESSAGE
    ) -> Message:
        ...

    @abstractmethod
    async def add_user_to_room(self, code: str, user_id: str) -> None:
        """Idempotent; re-adding an existing member is a no-op."""

    @abstractmethod
    async def remove_user_from_room(self, code: str, user_id: str) -> None:
        ...

    @abstractmethod
    async def get_users_in_room_by_code(self, code: str) -> list[str]:
        ...

    async def close(self) -> None:
        pass
