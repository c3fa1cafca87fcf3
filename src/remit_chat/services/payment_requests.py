"""Payment request state machine.

    pending --cancel (requester)--> cancelled
    pending --claim (target)------> processing --settled--> paid
                                    processing --failed---> pending  (rollback only)

Every transition is one conditional UPDATE keyed on the current status. No
row affected means another actor moved the request first; that surfaces as
ChatConflictError and is never retried here.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from remit_chat.core.settings import settings
from remit_chat.db.time import utcnow
from remit_chat.models import ChatThread, PaymentRequest
from remit_chat.models.payment_request import (
    REQUEST_STATUS_CANCELLED,
    REQUEST_STATUS_PAID,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_PROCESSING,
)
from remit_chat.services.audit import AuditSink
from remit_chat.services.errors import (
    ChatAuthorizationError,
    ChatConflictError,
    ChatNotFoundError,
    ChatValidationError,
)

logger = logging.getLogger(__name__)


def parse_amount(value: Any, field: str = "requestAmount") -> Decimal:
    """Return ``value`` as a positive finite Decimal or raise ChatValidationError."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as err:
        raise ChatValidationError(f"{field} must be a positive number.") from err
    if not amount.is_finite() or amount <= 0:
        raise ChatValidationError(f"{field} must be a positive number.")
    return amount


class PaymentRequestService:
    """Service owning every status change of a PaymentRequest."""

    def __init__(self, db: Session, audit: AuditSink) -> None:
        self._db = db
        self._audit = audit

    # --- reads ---------------------------------------------------------------------
    def reload(self, request_id: int) -> PaymentRequest:
        """Return the request with fresh column values from the store."""
        request = self._db.get(PaymentRequest, request_id, populate_existing=True)
        if request is None:
            raise ChatNotFoundError("Request not found in this chat.")
        return request

    def get_in_thread(self, request_id: int, thread_id: int) -> PaymentRequest:
        request = self._db.get(PaymentRequest, request_id, populate_existing=True)
        if request is None or request.thread_id != thread_id:
            raise ChatNotFoundError("Request not found in this chat.")
        return request

    # --- creation ------------------------------------------------------------------
    def create_request(
        self,
        thread: ChatThread,
        requester_id: int,
        target_id: int,
        amount: Any,
        note: str | None = None,
    ) -> PaymentRequest:
        """Persist a new pending request between the two thread participants."""
        if requester_id == target_id:
            raise ChatValidationError("You cannot request money from yourself.")
        if not (thread.contains(requester_id) and thread.contains(target_id)):
            raise ChatAuthorizationError("Both parties must belong to this chat thread.")

        parsed_amount = parse_amount(amount)
        cleaned_note = (note or "").strip()
        if len(cleaned_note) > settings.chat_request_note_max_length:
            raise ChatValidationError(
                f"requestNote cannot exceed {settings.chat_request_note_max_length} characters."
            )

        request = PaymentRequest(
            thread_id=thread.id,
            requester_id=requester_id,
            target_id=target_id,
            amount=parsed_amount,
            note=cleaned_note or None,
            status=REQUEST_STATUS_PENDING,
        )
        self._db.add(request)
        self._db.commit()
        self._db.refresh(request)
        logger.info("Created payment request %s in thread %s", request.id, thread.id)
        return request

    def delete_orphan(self, request_id: int) -> None:
        """Best-effort removal of a request whose message could not be stored."""
        try:
            self._db.execute(
                delete(PaymentRequest).where(
                    PaymentRequest.id == request_id,
                    PaymentRequest.status == REQUEST_STATUS_PENDING,
                )
            )
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            logger.error("Failed to delete orphaned payment request %s", request_id, exc_info=True)

    # --- conditional transitions ---------------------------------------------------
    def _transition(
        self,
        request_id: int,
        expected_status: str,
        values: dict[str, Any],
        *conditions: Any,
    ) -> bool:
        stmt = (
            update(PaymentRequest)
            .where(
                PaymentRequest.id == request_id,
                PaymentRequest.status == expected_status,
                *conditions,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._db.execute(stmt)
        self._db.commit()
        return result.rowcount == 1

    def claim_for_payment(self, request_id: int, thread_id: int, payer_id: int) -> PaymentRequest:
        """Move pending -> processing; exactly one concurrent payer can win."""
        claimed = self._transition(
            request_id,
            REQUEST_STATUS_PENDING,
            {"status": REQUEST_STATUS_PROCESSING, "processing_at": utcnow()},
            PaymentRequest.thread_id == thread_id,
            PaymentRequest.target_id == payer_id,
        )
        if not claimed:
            raise ChatConflictError("Request is no longer pending.")
        logger.info("Payment request %s claimed by user %s", request_id, payer_id)
        return self.reload(request_id)

    def mark_paid(
        self,
        request_id: int,
        payer_id: int,
        transaction_id: int,
        tx_hash: str | None,
    ) -> PaymentRequest:
        """Move processing -> paid and attach the settlement reference."""
        paid = self._transition(
            request_id,
            REQUEST_STATUS_PROCESSING,
            {
                "status": REQUEST_STATUS_PAID,
                "paid_at": utcnow(),
                "paid_by_user_id": payer_id,
                "paid_transaction_id": transaction_id,
                "paid_tx_hash": tx_hash,
                "processing_at": None,
            },
        )
        if not paid:
            raise ChatConflictError("Request status changed during processing.")
        logger.info("Payment request %s paid (tx %s)", request_id, tx_hash)
        return self.reload(request_id)

    def revert_to_pending(self, request_id: int) -> bool:
        """Compensating rollback processing -> pending. Returns False if nothing moved."""
        reverted = self._transition(
            request_id,
            REQUEST_STATUS_PROCESSING,
            {"status": REQUEST_STATUS_PENDING, "processing_at": None},
        )
        if reverted:
            logger.info("Payment request %s reverted to pending", request_id)
        else:
            logger.warning("Payment request %s was not processing; nothing to revert", request_id)
        return reverted

    # --- user-facing cancellation --------------------------------------------------
    def cancel(self, request_id: int, thread: ChatThread, caller_id: int) -> PaymentRequest:
        """Cancel a pending request on behalf of its requester.

        Cancelling an already-cancelled request returns it unchanged.
        """
        request = self.get_in_thread(request_id, thread.id)
        if request.requester_id != caller_id:
            raise ChatAuthorizationError("Only the requester can cancel this request.")
        if request.status == REQUEST_STATUS_PAID:
            raise ChatConflictError("Paid requests cannot be cancelled.")
        if request.status == REQUEST_STATUS_CANCELLED:
            return request

        cancelled = self._transition(
            request_id,
            REQUEST_STATUS_PENDING,
            {
                "status": REQUEST_STATUS_CANCELLED,
                "cancelled_at": utcnow(),
                "cancelled_by_user_id": caller_id,
            },
            PaymentRequest.thread_id == thread.id,
            PaymentRequest.requester_id == caller_id,
        )
        if not cancelled:
            raise ChatConflictError("Request is no longer pending.")

        thread.last_message_at = utcnow()
        self._db.commit()
        request = self.reload(request_id)

        self._audit.record(
            caller_id,
            "CANCEL_CHAT_REQUEST",
            {"threadId": thread.id, "requestId": request.id, "amount": str(request.amount)},
        )
        return request
