# src/remit_chat/services/__init__.py
"""Business logic services for encrypted chat and payment requests."""

from .directory import KeyDirectoryService
from .messages import MessageLogService
from .payment_requests import PaymentRequestService
from .payment_saga import PaymentOutcome, PaymentSaga
from .threads import ThreadService
from .verification import VerificationCodeGate

__all__ = [
    "KeyDirectoryService",
    "ThreadService",
    "MessageLogService",
    "PaymentRequestService",
    "PaymentSaga",
    "PaymentOutcome",
    "VerificationCodeGate",
]
