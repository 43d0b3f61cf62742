"""Conversation message database model."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Text

from campus_chat.core.storage.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(Base):
    """A message sent from one user to another. Immutable once stored."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, nullable=False)
    recipient_id = Column(Integer, nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_messages_recipient_created", "recipient_id", "created_at"),
    )
