"""Thread store: one conversation per unordered pair of users."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from remit_chat.core.settings import settings
from remit_chat.db.time import utcnow
from remit_chat.models import ChatMessage, ChatReport, ChatThread
from remit_chat.models.chat_thread import build_participant_key
from remit_chat.services.audit import AuditSink
from remit_chat.services.contacts import ContactsProvider
from remit_chat.services.errors import (
    ChatAuthorizationError,
    ChatNotFoundError,
    ChatValidationError,
)

logger = logging.getLogger(__name__)


class ThreadService:
    """Service handling thread creation, access checks and reports."""

    def __init__(self, db: Session, contacts: ContactsProvider, audit: AuditSink) -> None:
        self._db = db
        self._contacts = contacts
        self._audit = audit

    def _find_by_key(self, participant_key: str) -> ChatThread | None:
        return self._db.execute(
            select(ChatThread).where(ChatThread.participant_key == participant_key)
        ).scalar_one_or_none()

    def open_thread(self, user_a: int, user_b: int) -> ChatThread:
        """Return the thread between two users, creating it on first contact.

        Safe under concurrent calls for the same pair: whoever loses the
        unique-key race re-reads the winner's row.
        """
        if user_a == user_b:
            raise ChatValidationError("Cannot create a chat with yourself.")
        if not self._contacts.is_mutual_contact(user_a, user_b):
            raise ChatAuthorizationError("You can only open request chats with your saved contacts.")

        participant_key = build_participant_key(user_a, user_b)
        thread = self._find_by_key(participant_key)
        if thread is not None:
            return thread

        low, high = sorted((user_a, user_b))
        thread = ChatThread(
            participant_a_id=low,
            participant_b_id=high,
            participant_key=participant_key,
            last_message_at=utcnow(),
        )
        self._db.add(thread)
        try:
            self._db.commit()
        except IntegrityError:
            self._db.rollback()
            logger.debug("Thread %s created concurrently; re-reading", participant_key)
            existing = self._find_by_key(participant_key)
            if existing is None:
                raise
            return existing

        self._db.refresh(thread)
        logger.info("Opened chat thread %s for %s", thread.id, participant_key)
        return thread

    def get_thread_for_participant(self, thread_id: int, user_id: int) -> ChatThread:
        """Load a thread and require ``user_id`` to be one of its participants."""
        thread = self._db.get(ChatThread, thread_id)
        if thread is None:
            raise ChatNotFoundError("Chat thread not found.")
        if not thread.contains(user_id):
            raise ChatAuthorizationError("You do not have access to this chat thread.")
        return thread

    def touch(self, thread: ChatThread) -> None:
        """Bump ``last_message_at`` to now."""
        thread.last_message_at = utcnow()
        self._db.commit()

    def _clean_revealed(
        self,
        thread: ChatThread,
        revealed_messages: Iterable[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        entries = list(revealed_messages)
        if len(entries) > settings.chat_report_max_revealed:
            raise ChatValidationError(
                f"revealedMessages cannot exceed {settings.chat_report_max_revealed} items."
            )

        candidates: list[tuple[int, str]] = []
        for entry in entries:
            plaintext = str(entry.get("plaintext") or "").strip()
            try:
                message_id = int(entry.get("messageId"))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
            if not plaintext or len(plaintext) > settings.chat_report_max_plaintext_length:
                continue
            candidates.append((message_id, plaintext))

        if not candidates:
            return []

        known_ids = set(
            self._db.execute(
                select(ChatMessage.id).where(
                    ChatMessage.thread_id == thread.id,
                    ChatMessage.id.in_([message_id for message_id, _ in candidates]),
                )
            ).scalars()
        )
        return [
            {"messageId": message_id, "plaintext": plaintext}
            for message_id, plaintext in candidates
            if message_id in known_ids
        ]

    def report_thread(
        self,
        thread_id: int,
        reporter_id: int,
        reason: str,
        target_id: int | None = None,
        revealed_messages: Iterable[Mapping[str, Any]] = (),
    ) -> ChatReport:
        """File an abuse report, optionally with excerpts the reporter decrypted."""
        thread = self.get_thread_for_participant(thread_id, reporter_id)

        reason = (reason or "").strip()
        if len(reason) < settings.chat_report_reason_min_length:
            raise ChatValidationError(
                f"Report reason must be at least {settings.chat_report_reason_min_length} characters."
            )
        if len(reason) > settings.chat_report_reason_max_length:
            raise ChatValidationError(
                f"Report reason cannot exceed {settings.chat_report_reason_max_length} characters."
            )

        resolved_target = target_id if target_id is not None else thread.other_participant(reporter_id)
        if resolved_target is None or resolved_target == reporter_id or not thread.contains(resolved_target):
            raise ChatValidationError("targetUserId must be the other participant.")

        revealed = self._clean_revealed(thread, revealed_messages)
        report = ChatReport(
            thread_id=thread.id,
            reported_by_user_id=reporter_id,
            target_user_id=resolved_target,
            reason=reason,
            revealed_messages=revealed,
        )
        self._db.add(report)
        self._db.commit()
        self._db.refresh(report)

        self._audit.record(
            reporter_id,
            "REPORT_CHAT_THREAD",
            {
                "threadId": thread.id,
                "targetUserId": resolved_target,
                "reasonLength": len(reason),
                "revealedMessages": len(revealed),
            },
        )
        return report
