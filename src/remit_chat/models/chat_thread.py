"""Models describing one-to-one chat threads and abuse reports."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow


def build_participant_key(user_a: int, user_b: int) -> str:
    """Return the canonical key for an unordered pair of users."""
    return ":".join(sorted((str(user_a), str(user_b))))


class ChatThread(Base):
    """Conversation between exactly two users.

    ``participant_key`` is unique, so an unordered pair can only ever have
    one thread no matter which side opened it.
    """

    __tablename__ = "chat_thread"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_a_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=False,
    )
    participant_b_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=False,
    )
    participant_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def participants(self) -> tuple[int, int]:
        return (self.participant_a_id, self.participant_b_id)

    def contains(self, user_id: int) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in self.participants

    def other_participant(self, user_id: int) -> int | None:
        """Return the participant that is not ``user_id``."""
        if user_id == self.participant_a_id:
            return self.participant_b_id
        if user_id == self.participant_b_id:
            return self.participant_a_id
        return None


class ChatReport(Base):
    """Abuse report filed by a participant against the other one.

    The reporter may voluntarily reveal decrypted excerpts; nothing else in
    the thread is ever readable by the server.
    """

    __tablename__ = "chat_report"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_thread.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reported_by_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=False,
    )
    target_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    # List of {"messageId": int, "plaintext": str}.
    revealed_messages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
