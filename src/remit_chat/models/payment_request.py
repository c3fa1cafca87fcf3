"""Model tracking money requests embedded in chat messages."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow

REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_PROCESSING = "processing"
REQUEST_STATUS_PAID = "paid"
REQUEST_STATUS_CANCELLED = "cancelled"
REQUEST_TERMINAL_STATUSES = (REQUEST_STATUS_PAID, REQUEST_STATUS_CANCELLED)


class PaymentRequest(Base):
    """State machine representing a requested transfer between participants.

    pending -> processing -> paid, or pending -> cancelled. processing ->
    pending happens only as a rollback when settlement fails.
    """

    __tablename__ = "payment_request"
    __table_args__ = (Index("ix_payment_request_thread_created", "thread_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_thread.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requester_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_account.id"), nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_account.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=REQUEST_STATUS_PENDING,
        index=True,
    )

    processing_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by_user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=True,
    )
    paid_transaction_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("transaction.id"),
        nullable=True,
    )
    paid_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user_account.id"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
