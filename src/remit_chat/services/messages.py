"""Append-only log of encrypted chat messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from remit_chat.core.settings import settings
from remit_chat.models import ChatMessage, ChatThread, Contact, PaymentRequest, Transaction, User
from remit_chat.models.chat_message import (
    MESSAGE_TYPE_REQUEST,
    MESSAGE_TYPES,
    CipherPayload,
)
from remit_chat.models.chat_thread import build_participant_key
from remit_chat.services.errors import (
    ChatAuthorizationError,
    ChatValidationError,
)
from remit_chat.services.payment_requests import PaymentRequestService
from remit_chat.services.threads import ThreadService
from remit_chat.services.wallets import WalletLookup

logger = logging.getLogger(__name__)

DIRECTION_SENT = "sent"
DIRECTION_RECEIVED = "received"


@dataclass
class MessageView:
    """A message as one viewer sees it: a single cipher copy plus live request state."""

    message: ChatMessage
    payload: CipherPayload
    request: PaymentRequest | None = None


@dataclass
class PaymentView:
    transaction: Transaction
    direction: str


@dataclass
class HistoryPage:
    thread: ChatThread
    messages: list[MessageView] = field(default_factory=list)
    payments: list[PaymentView] = field(default_factory=list)


@dataclass
class ConversationView:
    """One saved contact with its thread and newest message, if any."""

    contact: Contact
    peer: User
    thread: ChatThread | None = None
    latest: MessageView | None = None


def clamp_history_limit(limit: Any) -> int:
    """Return ``limit`` bounded to the configured history window."""
    try:
        value = int(limit) if limit not in (None, "") else 0
    except (TypeError, ValueError):
        value = 0
    if value == 0:
        value = settings.chat_history_default_limit
    return min(max(value, 1), settings.chat_history_max_limit)


def validate_payload(payload: CipherPayload | None, label: str) -> CipherPayload:
    """Check an encrypted copy is complete and within storage bounds."""
    if payload is None:
        raise ChatValidationError(f"{label} is required.")

    ciphertext = (payload.ciphertext or "").strip()
    iv = (payload.iv or "").strip()
    wrapped_key = (payload.wrapped_key or "").strip()
    if not ciphertext or not iv or not wrapped_key:
        raise ChatValidationError(f"{label} must include ciphertext, iv and wrappedKey.")
    if len(ciphertext) > settings.chat_max_ciphertext_length:
        raise ChatValidationError(f"{label} ciphertext is too large.")
    if len(iv) > settings.chat_max_iv_length:
        raise ChatValidationError(f"{label} iv is too large.")
    if len(wrapped_key) > settings.chat_max_wrapped_key_length:
        raise ChatValidationError(f"{label} wrappedKey is too large.")
    return CipherPayload(ciphertext, iv, wrapped_key)


class MessageLogService:
    """Store dual-wrapped messages and project them per viewer."""

    def __init__(
        self,
        db: Session,
        threads: ThreadService,
        requests: PaymentRequestService,
        wallets: WalletLookup,
    ) -> None:
        self._db = db
        self._threads = threads
        self._requests = requests
        self._wallets = wallets

    def append_message(
        self,
        thread_id: int,
        sender_id: int,
        sender_payload: CipherPayload | None,
        recipient_payload: CipherPayload | None,
        *,
        recipient_id: int | None = None,
        message_type: str = "text",
        request_amount: Any = None,
        request_note: str | None = None,
    ) -> MessageView:
        """Persist a message (and its payment request, for ``request`` messages).

        Returns the sender's projection of the stored message.
        """
        thread = self._threads.get_thread_for_participant(thread_id, sender_id)
        other_id = thread.other_participant(sender_id)
        if recipient_id is None:
            recipient_id = other_id
        if recipient_id != other_id:
            raise ChatAuthorizationError("Recipient must be the other chat participant.")

        message_type = (message_type or "").strip().lower()
        if message_type not in MESSAGE_TYPES:
            raise ChatValidationError("messageType must be text or request.")

        sender_copy = validate_payload(sender_payload, "senderPayload")
        recipient_copy = validate_payload(recipient_payload, "recipientPayload")

        request: PaymentRequest | None = None
        if message_type == MESSAGE_TYPE_REQUEST:
            if not self._wallets.get_verified_wallet(sender_id):
                raise ChatValidationError("Verify your wallet before requesting money.")
            if not self._wallets.get_verified_wallet(recipient_id):
                raise ChatValidationError("This contact has no verified wallet yet.")
            request = self._requests.create_request(
                thread,
                requester_id=sender_id,
                target_id=recipient_id,
                amount=request_amount,
                note=request_note,
            )

        message = ChatMessage(
            thread_id=thread.id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            message_type=message_type,
            request_id=request.id if request is not None else None,
            sender_ciphertext=sender_copy.ciphertext,
            sender_iv=sender_copy.iv,
            sender_wrapped_key=sender_copy.wrapped_key,
            recipient_ciphertext=recipient_copy.ciphertext,
            recipient_iv=recipient_copy.iv,
            recipient_wrapped_key=recipient_copy.wrapped_key,
        )
        self._db.add(message)
        try:
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            if request is not None:
                self._requests.delete_orphan(request.id)
            raise

        self._db.refresh(message)
        self._threads.touch(thread)
        logger.debug("Stored %s message %s in thread %s", message_type, message.id, thread.id)
        return MessageView(message=message, payload=message.cipher_for_sender, request=request)

    def get_history(self, thread_id: int, viewer_id: int, limit: Any = None) -> HistoryPage:
        """Return the newest ``limit`` messages in chronological order."""
        thread = self._threads.get_thread_for_participant(thread_id, viewer_id)
        window = clamp_history_limit(limit)

        newest_first = list(
            self._db.execute(
                select(ChatMessage)
                .where(ChatMessage.thread_id == thread.id)
                .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
                .limit(window)
            ).scalars()
        )

        requests_by_id = self._live_requests(newest_first)
        messages = [self._view(message, viewer_id, requests_by_id) for message in reversed(newest_first)]
        return HistoryPage(thread=thread, messages=messages, payments=self._payments(thread, viewer_id))

    def list_conversations(self, viewer_id: int) -> list[ConversationView]:
        """Return the viewer's saved contacts, newest first, with thread metadata.

        Contacts without a thread yet are listed with ``thread`` and ``latest``
        left empty. The newest message is projected for the viewer so clients
        can track unread state without fetching full history.
        """
        rows = self._db.execute(
            select(Contact, User)
            .join(User, User.id == Contact.peer_id)
            .where(Contact.owner_id == viewer_id, User.is_disabled.is_(False))
            .order_by(Contact.created_at.desc(), Contact.id.desc())
        ).all()
        if not rows:
            return []

        keys = [build_participant_key(viewer_id, peer.id) for _, peer in rows]
        threads_by_key = {
            thread.participant_key: thread
            for thread in self._db.execute(
                select(ChatThread).where(ChatThread.participant_key.in_(keys))
            ).scalars()
        }

        latest_by_thread: dict[int, ChatMessage] = {}
        if threads_by_key:
            # Ids grow with insertion order, so the max id is the newest message.
            newest_ids = (
                select(func.max(ChatMessage.id))
                .where(ChatMessage.thread_id.in_([t.id for t in threads_by_key.values()]))
                .group_by(ChatMessage.thread_id)
            )
            latest_by_thread = {
                message.thread_id: message
                for message in self._db.execute(
                    select(ChatMessage).where(ChatMessage.id.in_(newest_ids))
                ).scalars()
            }
        requests_by_id = self._live_requests(latest_by_thread.values())

        conversations = []
        for (contact, peer), key in zip(rows, keys):
            thread = threads_by_key.get(key)
            latest = latest_by_thread.get(thread.id) if thread is not None else None
            conversations.append(
                ConversationView(
                    contact=contact,
                    peer=peer,
                    thread=thread,
                    latest=self._view(latest, viewer_id, requests_by_id) if latest is not None else None,
                )
            )
        return conversations

    def _live_requests(self, messages: Iterable[ChatMessage]) -> dict[int, PaymentRequest]:
        request_ids = {m.request_id for m in messages if m.request_id is not None}
        if not request_ids:
            return {}
        return {
            request.id: request
            for request in self._db.execute(
                select(PaymentRequest)
                .where(PaymentRequest.id.in_(request_ids))
                .execution_options(populate_existing=True)
            ).scalars()
        }

    @staticmethod
    def _view(
        message: ChatMessage,
        viewer_id: int,
        requests_by_id: dict[int, PaymentRequest],
    ) -> MessageView:
        return MessageView(
            message=message,
            payload=message.cipher_for_viewer(viewer_id),
            request=requests_by_id.get(message.request_id) if message.request_id else None,
        )

    def _payments(self, thread: ChatThread, viewer_id: int) -> list[PaymentView]:
        low, high = thread.participants
        stmt = (
            select(Transaction)
            .where(
                or_(
                    and_(Transaction.sender_id == low, Transaction.receiver_id == high),
                    and_(Transaction.sender_id == high, Transaction.receiver_id == low),
                )
            )
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        )
        return [
            PaymentView(
                transaction=tx,
                direction=DIRECTION_SENT if tx.sender_id == viewer_id else DIRECTION_RECEIVED,
            )
            for tx in self._db.execute(stmt).scalars()
        ]
