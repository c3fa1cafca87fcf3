"""Append-only audit trail of user actions."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow


class AuditLog(Base):
    """Audit event recorded after a user-visible state change."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_account.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    # "metadata" is reserved on declarative classes.
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
