# src/remit_chat/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import (
    EncryptedPayload,
    HistoryResponse,
    MessageCreate,
    MessageResponse,
    PaymentCodeRequest,
    PaymentCodeResponse,
    PaymentResponse,
    PayRequest,
    PublicKeyResponse,
    PublishKeyRequest,
    ReportCreate,
    ReportResponse,
    RequestResponse,
    ThreadResponse,
    TransactionResponse,
)

__all__ = [
    "EncryptedPayload",
    "PublishKeyRequest", "PublicKeyResponse",
    "ThreadResponse",
    "MessageCreate", "MessageResponse", "HistoryResponse",
    "RequestResponse", "TransactionResponse",
    "PayRequest", "PaymentResponse",
    "PaymentCodeRequest", "PaymentCodeResponse",
    "ReportCreate", "ReportResponse",
]
