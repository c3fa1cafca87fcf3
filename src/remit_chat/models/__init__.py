# src/remit_chat/models/__init__.py
"""SQLAlchemy models for the Remit Chat application."""

from .audit_log import AuditLog
from .chat_key import ChatKey
from .chat_message import ChatMessage
from .chat_thread import ChatReport, ChatThread
from .contact import Contact
from .payment_request import PaymentRequest
from .transaction import Transaction
from .user import User
from .wallet import Wallet

__all__ = [
    "AuditLog",
    "ChatKey",
    "ChatMessage",
    "ChatReport", "ChatThread",
    "Contact",
    "PaymentRequest",
    "Transaction",
    "User",
    "Wallet",
]
