"""SQLAlchemy model for user accounts.

Accounts are created and authenticated by the identity service; the chat
subsystem only reads contact details and owns the payment-code fields.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow


class User(Base):
    """Registered account able to chat and move funds."""

    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_disabled: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Single-use payment verification code; cleared on use, expiry, or reissue.
    payment_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_code_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    payment_code_channel: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def display_name(self) -> str:
        """Return a human-friendly name for chat headers."""
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return full_name or self.username or "User"

    def clear_payment_code(self) -> None:
        """Forget any outstanding payment verification code."""
        self.payment_code = None
        self.payment_code_expires_at = None
        self.payment_code_channel = None
