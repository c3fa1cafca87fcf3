"""Models describing end-to-end encrypted chat messages."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remit_chat.db.session import Base
from remit_chat.db.time import utcnow

MESSAGE_TYPE_TEXT = "text"
MESSAGE_TYPE_REQUEST = "request"
MESSAGE_TYPES = (MESSAGE_TYPE_TEXT, MESSAGE_TYPE_REQUEST)


@dataclass(frozen=True)
class CipherPayload:
    """One recipient-bound copy of an encrypted message."""

    ciphertext: str
    iv: str
    wrapped_key: str

    def as_dict(self) -> dict[str, str]:
        return {"ciphertext": self.ciphertext, "iv": self.iv, "wrappedKey": self.wrapped_key}


class ChatMessage(Base):
    """Immutable message in a thread.

    Two copies of the same AES-GCM ciphertext are kept, differing only in
    which public key wrapped the content key. The server never holds
    plaintext and returns exactly one copy per viewer.
    """

    __tablename__ = "chat_message"
    __table_args__ = (Index("ix_chat_message_thread_created", "thread_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chat_thread.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_account.id"), nullable=False)
    recipient_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_account.id"), nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False, default=MESSAGE_TYPE_TEXT)
    request_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("payment_request.id"),
        nullable=True,
        index=True,
    )

    sender_ciphertext: Mapped[str] = mapped_column(Text, nullable=False)
    sender_iv: Mapped[str] = mapped_column(String(256), nullable=False)
    sender_wrapped_key: Mapped[str] = mapped_column(Text, nullable=False)

    recipient_ciphertext: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_iv: Mapped[str] = mapped_column(String(256), nullable=False)
    recipient_wrapped_key: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def cipher_for_sender(self) -> CipherPayload:
        return CipherPayload(self.sender_ciphertext, self.sender_iv, self.sender_wrapped_key)

    @property
    def cipher_for_recipient(self) -> CipherPayload:
        return CipherPayload(self.recipient_ciphertext, self.recipient_iv, self.recipient_wrapped_key)

    def cipher_for_viewer(self, viewer_id: int) -> CipherPayload:
        """Return the copy the viewer can unwrap."""
        if viewer_id == self.sender_id:
            return self.cipher_for_sender
        return self.cipher_for_recipient
