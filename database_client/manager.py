"""
DBStore - SQLAlchemy backed implementation of the relay Store

Every public call opens its own short session from DatabaseClient and commits
before returning, so a broadcast that follows an awaited write never runs ahead
of the row it reports. Driver and SQLAlchemy failures surface as StoreError.
"""

from contextlib import asynccontextmanager

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database_client.initialize import DatabaseClient
from database_client.models import Room, Message, RoomUser, utcnow, MESSAGE_TYPE_MESSAGE
from database_client.store import Store, StoreError, RoomCodeTaken
from logging_config import get_logger

logger = get_logger(__name__)


class DBStore(Store):
    def __init__(self, db_client: DatabaseClient):
        """
        Args:
            db_client: initialized DatabaseClient whose tables already exist
        """
        self.db = db_client

    @asynccontextmanager
    async def _session(self):
        try:
            async with self.db.get_session() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database error: {e}")
            raise StoreError(str(e)) from e

    async def get_rooms(self) -> list[Room]:
        async with self._session() as session:
            result = await session.execute(select(Room).order_by(Room.id))
            return list(result.scalars().all())

    async def get_room_by_code(self, code: str) -> Room | None:
        async with self._session() as session:
            stmt = select(Room).where(Room.code == code)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_room(self, name: str, code: str, description: str | None = None) -> Room:
        room = Room(code=code, name=name, description=description or None, created_at=utcnow())
        async with self._session() as session:
            session.add(room)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise RoomCodeTaken(code) from e
        logger.debug(f"Created room: {room!r}")
        return room

    async def get_messages_by_room_code(self, code: str) -> list[Message]:
        async with self._session() as session:
            stmt = (
                select(Message)
                .join(Room, Message.room_id == Room.id)
                .where(Room.code == code)
                .order_by(Message.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def create_message(
        self, code: str, user_id: str, content: str, type: str = MESSAGE_TYPE_MESSAGE
    ) -> Message:
        room = await self.resolve_or_create_room(code)
        msg = Message(
            room_id=room.id,
            user_id=user_id,
            content=content,
            type=type,
            timestamp=utcnow(),
        )
        async with self._session() as session:
            session.add(msg)
            await session.commit()
        return msg

    async def add_user_to_room(self, code: str, user_id: str) -> None:
        room = await self.resolve_or_create_room(code)
        async with self._session() as session:
            stmt = select(RoomUser).where(RoomUser.room_id == room.id, RoomUser.user_id == user_id)
            result = await session.execute(stmt)
            if result.scalar_one_or_none() is not None:
                return

            session.add(RoomUser(room_id=room.id, user_id=user_id, joined=utcnow()))
            try:
                await session.commit()
            except IntegrityError:
                # Another task inserted the same pair first
                await session.rollback()

    async def remove_user_from_room(self, code: str, user_id: str) -> None:
        room = await self.get_room_by_code(code)
        if room is None:
            return
        async with self._session() as session:
            stmt = delete(RoomUser).where(RoomUser.room_id == room.id, RoomUser.user_id == user_id)
            await session.execute(stmt)
            await session.commit()

    async def get_users_in_room_by_code(self, code: str) -> list[str]:
        async with self._session() as session:
            stmt = (
                select(RoomUser.user_id)
                .join(Room, RoomUser.room_id == Room.id)
                .where(Room.code == code)
                .order_by(RoomUser.id)
            )
            result = await session.execute(stmt)
            return [row[0] for row in result.all()]

    async def close(self) -> None:
        await self.db.close()
