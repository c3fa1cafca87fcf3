"""Model storing each user's advertised chat public key."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow


class ChatKey(Base):
    """Current public key of a user, as a JWK.

    Only the newest key is advertised; older private generations stay on the
    client for reading history.
    """

    __tablename__ = "chat_key"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    public_key_jwk: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )
