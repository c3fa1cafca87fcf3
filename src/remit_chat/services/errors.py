"""Exception hierarchy for the chat and payment-request services.

Endpoints translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from __future__ import annotations


class ChatError(RuntimeError):
    """Base exception for chat subsystem failures."""

    status_code = 400


class ChatValidationError(ChatError):
    """Raised for malformed payloads, missing fields or out-of-range values.

    Not retryable without the client correcting its input.
    """

    status_code = 400


class VerificationCodeError(ChatValidationError):
    """Raised when a payment verification code is missing, expired or wrong."""


class ChatAuthorizationError(ChatError):
    """Raised when the caller is not allowed to act on a thread, key or request."""

    status_code = 403


class ChatNotFoundError(ChatError):
    """Raised when a referenced thread, request or key does not exist."""

    status_code = 404


class ChatConflictError(ChatError):
    """Raised when a conditional update lost a race or the record is terminal.

    Safe to retry the read; the write must not be retried blindly.
    """

    status_code = 409


class DependencyError(ChatError):
    """Raised when an external collaborator fails or times out."""

    status_code = 502


class SettlementError(DependencyError):
    """Raised when the balance query or the transfer itself fails."""


class NotificationError(DependencyError):
    """Raised when a verification code could not be delivered."""
