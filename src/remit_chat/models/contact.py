"""Saved-contact rows backing the mutual-contact check."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow


class Contact(Base):
    """A user's saved contact entry pointing at another account."""

    __tablename__ = "contact"
    __table_args__ = (UniqueConstraint("owner_id", "peer_id", name="uq_contact_owner_peer"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    peer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
