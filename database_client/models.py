from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, relationship


MESSAGE_TYPE_MESSAGE = "message"
MESSAGE_TYPE_SYSTEM = "system"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    pass


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationship
    messages = relationship("Message", back_populates="room", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Room(id={self.id}, code={self.code}, name={self.name})>"


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default=MESSAGE_TYPE_MESSAGE)
    timestamp = Column(DateTime(timezone=True), default=utcnow)

    # Relationship
    room = relationship("Room", back_populates="messages")

    # History is read per room in append order
    __table_args__ = (
        Index("idx_messages_room_id", "room_id", "id"),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, room={self.room_id}, user={self.user_id}, type={self.type})>"


class RoomUser(Base):
    __tablename__ = "room_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Text, nullable=False)
    joined = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("room_id", "user_id", name="uq_room_users_room_user"),
    )

    def __repr__(self):
        return f"<RoomUser(room={self.room_id}, user={self.user_id})>"
