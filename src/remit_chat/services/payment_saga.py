"""Payment execution sagas for chat payments.

``PaymentSaga.pay`` walks ``PAYMENT_STEPS`` top to bottom to pay a request;
``PaymentSaga.send`` walks ``TRANSFER_STEPS`` for a direct in-chat transfer.
Each step may name one compensating action; when a step raises, that
compensation runs (best-effort) and the original error propagates.

For requests the claim step is the linearization point: only one concurrent
payer gets past it. For direct transfers the single-use verification code
plays that role.

The settlement call is never cancelled from here. Its outcome is awaited
to completion before any compensation runs; the gateway client bounds the
call with its own timeout and reports that as SettlementError.

A crash between the claim and the compensation leaves the request in
``processing``; there is no background sweep for that case.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from remit_chat.core.settings import settings
from remit_chat.models import ChatThread, PaymentRequest, Transaction
from remit_chat.models.payment_request import REQUEST_TERMINAL_STATUSES
from remit_chat.models.transaction import TX_STATUS_FAILED, TX_STATUS_PENDING, TX_STATUS_SUCCESS
from remit_chat.services.audit import AuditSink
from remit_chat.services.errors import (
    ChatAuthorizationError,
    ChatConflictError,
    ChatError,
    ChatValidationError,
    SettlementError,
)
from remit_chat.services.payment_requests import PaymentRequestService, parse_amount
from remit_chat.services.settlement import SettlementProvider, SettlementResult
from remit_chat.services.threads import ThreadService
from remit_chat.services.verification import VerificationCodeGate
from remit_chat.services.wallets import WalletLookup

logger = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    transaction: Transaction
    request: PaymentRequest | None = None


@dataclass
class _PaymentContext:
    thread_id: int
    payer_id: int
    verification_code: str | None
    request_id: int | None = None
    raw_amount: Any = None
    raw_note: str | None = None
    thread: ChatThread | None = None
    request: PaymentRequest | None = None
    payee_id: int | None = None
    note: str | None = None
    payer_wallet: str | None = None
    payee_wallet: str | None = None
    amount: Decimal | None = None
    transaction: Transaction | None = None
    settlement: SettlementResult | None = None

    @property
    def subject(self) -> str:
        if self.request_id is not None:
            return f"request {self.request_id}"
        return f"transfer in thread {self.thread_id}"


StepAction = Callable[["PaymentSaga", _PaymentContext], Awaitable[None]]


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: StepAction
    compensation: StepAction | None = None


class PaymentSaga:
    """Move funds between chat participants: verify, settle, record."""

    def __init__(
        self,
        db: Session,
        threads: ThreadService,
        requests: PaymentRequestService,
        wallets: WalletLookup,
        settlement: SettlementProvider,
        verification: VerificationCodeGate,
        audit: AuditSink,
        *,
        timeout_seconds: float | None = None,
        asset_symbol: str | None = None,
    ) -> None:
        self._db = db
        self._threads = threads
        self._requests = requests
        self._wallets = wallets
        self._settlement = settlement
        self._verification = verification
        self._audit = audit
        # Bounds the balance query only; transfers are never cancelled here.
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.settlement_timeout_seconds
        self._asset_symbol = asset_symbol or settings.settlement_asset_symbol

    async def pay(
        self,
        thread_id: int,
        request_id: int,
        payer_id: int,
        verification_code: str | None,
    ) -> PaymentOutcome:
        """Pay a pending request addressed to ``payer_id``."""
        ctx = _PaymentContext(
            thread_id=thread_id,
            payer_id=payer_id,
            verification_code=verification_code,
            request_id=request_id,
        )
        await self._run(PAYMENT_STEPS, ctx)
        assert ctx.request is not None and ctx.transaction is not None
        return PaymentOutcome(transaction=ctx.transaction, request=ctx.request)

    async def send(
        self,
        thread_id: int,
        sender_id: int,
        amount: Any,
        note: str | None,
        verification_code: str | None,
    ) -> PaymentOutcome:
        """Transfer ``amount`` to the other participant without a prior request."""
        ctx = _PaymentContext(
            thread_id=thread_id,
            payer_id=sender_id,
            verification_code=verification_code,
            raw_amount=amount,
            raw_note=note,
        )
        await self._run(TRANSFER_STEPS, ctx)
        assert ctx.transaction is not None
        return PaymentOutcome(transaction=ctx.transaction)

    async def _run(self, steps: Sequence[SagaStep], ctx: _PaymentContext) -> None:
        for step in steps:
            try:
                await step.action(self, ctx)
            except Exception as exc:
                logger.warning("Payment of %s failed at step %s: %s", ctx.subject, step.name, exc)
                if step.compensation is not None:
                    await self._run_compensation(step, ctx)
                raise

    async def _run_compensation(self, step: SagaStep, ctx: _PaymentContext) -> None:
        assert step.compensation is not None
        try:
            self._db.rollback()
            await step.compensation(self, ctx)
        except Exception:
            self._db.rollback()
            logger.error(
                "Compensation after step %s failed for %s",
                step.name,
                ctx.subject,
                exc_info=True,
            )

    # --- forward steps -----------------------------------------------------------
    async def _load(self, ctx: _PaymentContext) -> None:
        assert ctx.request_id is not None
        ctx.thread = self._threads.get_thread_for_participant(ctx.thread_id, ctx.payer_id)
        request = self._requests.get_in_thread(ctx.request_id, ctx.thread.id)
        if request.target_id != ctx.payer_id:
            raise ChatAuthorizationError("Only the requested user can pay this request.")
        if request.status in REQUEST_TERMINAL_STATUSES:
            raise ChatConflictError(f"Request is already {request.status}.")
        ctx.request = request
        ctx.payee_id = request.requester_id
        ctx.note = request.note
        ctx.amount = Decimal(request.amount)

    async def _load_transfer(self, ctx: _PaymentContext) -> None:
        ctx.thread = self._threads.get_thread_for_participant(ctx.thread_id, ctx.payer_id)
        ctx.payee_id = ctx.thread.other_participant(ctx.payer_id)
        ctx.amount = parse_amount(ctx.raw_amount, "amount")
        note = (ctx.raw_note or "").strip()
        if len(note) > settings.chat_request_note_max_length:
            raise ChatValidationError(
                f"note cannot exceed {settings.chat_request_note_max_length} characters."
            )
        ctx.note = note or None

    async def _resolve_wallets(self, ctx: _PaymentContext) -> None:
        assert ctx.payee_id is not None
        ctx.payer_wallet = self._wallets.get_verified_wallet(ctx.payer_id)
        if not ctx.payer_wallet:
            raise ChatValidationError("Verify your wallet before paying.")
        ctx.payee_wallet = self._wallets.get_verified_wallet(ctx.payee_id)
        if not ctx.payee_wallet:
            raise ChatValidationError("Recipient has no verified wallet.")

    async def _check_balance(self, ctx: _PaymentContext) -> None:
        assert ctx.payer_wallet is not None and ctx.amount is not None
        # Nothing is claimed yet, so abandoning a slow balance query is safe.
        try:
            balance = await asyncio.wait_for(
                self._settlement.get_balance(ctx.payer_wallet),
                timeout=self._timeout,
            )
        except TimeoutError as exc:
            raise SettlementError("Balance query timed out.") from exc
        if ctx.amount > balance:
            raise ChatValidationError("Insufficient balance.")

    async def _claim(self, ctx: _PaymentContext) -> None:
        assert ctx.request_id is not None
        ctx.request = self._requests.claim_for_payment(ctx.request_id, ctx.thread_id, ctx.payer_id)

    async def _consume_code(self, ctx: _PaymentContext) -> None:
        self._verification.consume(ctx.payer_id, ctx.verification_code)

    async def _create_transaction(self, ctx: _PaymentContext) -> None:
        assert ctx.payee_id is not None
        transaction = Transaction(
            sender_id=ctx.payer_id,
            receiver_id=ctx.payee_id,
            sender_wallet=ctx.payer_wallet,
            receiver_wallet=ctx.payee_wallet,
            amount=ctx.amount,
            note=ctx.note,
            asset_symbol=self._asset_symbol,
            status=TX_STATUS_PENDING,
        )
        self._db.add(transaction)
        self._db.commit()
        self._db.refresh(transaction)
        ctx.transaction = transaction

    async def _settle(self, ctx: _PaymentContext) -> None:
        assert ctx.payee_wallet is not None and ctx.amount is not None
        try:
            result = await self._settlement.transfer(ctx.payee_wallet, ctx.amount)
        except ChatError:
            raise
        except Exception as exc:
            raise SettlementError(f"Settlement failed: {exc}") from exc

        if not result.succeeded:
            raise SettlementError(f"Settlement finished with status {result.status or 'unknown'}.")
        ctx.settlement = result

    def _record_settlement(self, ctx: _PaymentContext) -> None:
        assert ctx.transaction is not None and ctx.settlement is not None
        ctx.transaction.status = TX_STATUS_SUCCESS
        ctx.transaction.tx_hash = ctx.settlement.reference
        self._db.commit()

    def _bookkeeping(self, ctx: _PaymentContext, action: str, metadata: dict[str, Any]) -> None:
        assert ctx.thread is not None
        try:
            self._threads.touch(ctx.thread)
            self._audit.record(ctx.payer_id, action, metadata)
        except Exception:
            self._db.rollback()
            logger.error("Post-payment bookkeeping failed for %s", ctx.subject, exc_info=True)

    async def _finalize(self, ctx: _PaymentContext) -> None:
        assert ctx.request_id is not None and ctx.transaction is not None and ctx.settlement is not None
        self._record_settlement(ctx)

        # Funds have moved; nothing past this point may undo the payment.
        ctx.request = self._requests.mark_paid(
            ctx.request_id,
            ctx.payer_id,
            ctx.transaction.id,
            ctx.settlement.reference,
        )
        self._db.refresh(ctx.transaction)
        self._bookkeeping(
            ctx,
            "PAY_CHAT_REQUEST",
            {
                "threadId": ctx.thread_id,
                "requestId": ctx.request_id,
                "transactionId": ctx.transaction.id,
                "amount": str(ctx.amount),
                "txHash": ctx.settlement.reference,
            },
        )

    async def _finalize_transfer(self, ctx: _PaymentContext) -> None:
        assert ctx.transaction is not None and ctx.settlement is not None
        self._record_settlement(ctx)
        self._db.refresh(ctx.transaction)
        self._bookkeeping(
            ctx,
            "SEND_CHAT_TRANSFER",
            {
                "threadId": ctx.thread_id,
                "transactionId": ctx.transaction.id,
                "amount": str(ctx.amount),
                "assetSymbol": self._asset_symbol,
                "txHash": ctx.settlement.reference,
            },
        )

    # --- compensations -----------------------------------------------------------
    async def _release_claim(self, ctx: _PaymentContext) -> None:
        assert ctx.request_id is not None
        self._requests.revert_to_pending(ctx.request_id)

    async def _fail_transaction_and_release(self, ctx: _PaymentContext) -> None:
        if ctx.transaction is not None:
            try:
                ctx.transaction.status = TX_STATUS_FAILED
                self._db.commit()
            except Exception:
                self._db.rollback()
                logger.error("Could not mark transaction %s failed", ctx.transaction.id, exc_info=True)
        if ctx.request_id is not None:
            self._requests.revert_to_pending(ctx.request_id)


PAYMENT_STEPS: tuple[SagaStep, ...] = (
    SagaStep("load", PaymentSaga._load),
    SagaStep("resolve_wallets", PaymentSaga._resolve_wallets),
    SagaStep("check_balance", PaymentSaga._check_balance),
    SagaStep("claim", PaymentSaga._claim),
    SagaStep("consume_code", PaymentSaga._consume_code, PaymentSaga._release_claim),
    SagaStep("create_transaction", PaymentSaga._create_transaction, PaymentSaga._release_claim),
    SagaStep("settle", PaymentSaga._settle, PaymentSaga._fail_transaction_and_release),
    SagaStep("finalize", PaymentSaga._finalize),
)

TRANSFER_STEPS: tuple[SagaStep, ...] = (
    SagaStep("load", PaymentSaga._load_transfer),
    SagaStep("resolve_wallets", PaymentSaga._resolve_wallets),
    SagaStep("check_balance", PaymentSaga._check_balance),
    SagaStep("consume_code", PaymentSaga._consume_code),
    SagaStep("create_transaction", PaymentSaga._create_transaction),
    SagaStep("settle", PaymentSaga._settle, PaymentSaga._fail_transaction_and_release),
    SagaStep("finalize", PaymentSaga._finalize_transfer),
)
