"""Encrypted chat and payment-request Pydantic schemas.

Request bodies accept the camelCase wire names; responses are serialized
with the same camelCase aliases.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from remit_chat.models.chat_message import CipherPayload


class EncryptedPayload(BaseModel):
    """One hybrid-encrypted copy of a message (all fields standard base64)."""

    ciphertext: str = Field(..., description="AES-256-GCM ciphertext including the tag")
    iv: str = Field(..., description="12-byte AES-GCM nonce")
    wrapped_key: str = Field(..., alias="wrappedKey", description="RSA-OAEP wrapped content key")

    model_config = ConfigDict(populate_by_name=True)

    def to_cipher(self) -> CipherPayload:
        return CipherPayload(self.ciphertext, self.iv, self.wrapped_key)

    @classmethod
    def from_cipher(cls, payload: CipherPayload) -> "EncryptedPayload":
        return cls(ciphertext=payload.ciphertext, iv=payload.iv, wrapped_key=payload.wrapped_key)


class PublishKeyRequest(BaseModel):
    """Schema for advertising the caller's active public key."""

    public_key_jwk: dict[str, Any] = Field(..., alias="publicKeyJwk")

    model_config = ConfigDict(populate_by_name=True)


class PublicKeyResponse(BaseModel):
    user_id: int = Field(..., serialization_alias="userId")
    public_key_jwk: dict[str, Any] = Field(..., serialization_alias="publicKeyJwk")
    updated_at: datetime | None = Field(None, serialization_alias="updatedAt")

    model_config = ConfigDict(from_attributes=True)


class PeerSummary(BaseModel):
    id: int
    display_name: str = Field(..., serialization_alias="displayName")
    has_chat_key: bool = Field(..., serialization_alias="hasChatKey")


class ThreadResponse(BaseModel):
    """Schema for thread information returned by the API."""

    id: int
    participants: list[int]
    last_message_at: datetime = Field(..., serialization_alias="lastMessageAt")
    peer: PeerSummary | None = None


class MessageCreate(BaseModel):
    """Schema for appending a message (optionally carrying a money request)."""

    sender_payload: EncryptedPayload = Field(..., alias="senderPayload")
    recipient_payload: EncryptedPayload = Field(..., alias="recipientPayload")
    recipient_user_id: int | None = Field(None, alias="recipientUserId")
    message_type: str = Field("text", alias="messageType")
    request_amount: Decimal | None = Field(None, alias="requestAmount")
    request_note: str | None = Field(None, alias="requestNote")

    model_config = ConfigDict(populate_by_name=True)


class RequestResponse(BaseModel):
    """Schema for the live state of a payment request."""

    id: int
    requester_id: int = Field(..., serialization_alias="requesterUserId")
    target_id: int = Field(..., serialization_alias="targetUserId")
    amount: Decimal
    note: str | None = None
    status: str
    paid_at: datetime | None = Field(None, serialization_alias="paidAt")
    paid_by_user_id: int | None = Field(None, serialization_alias="paidByUserId")
    paid_transaction_id: int | None = Field(None, serialization_alias="paidTransactionId")
    paid_tx_hash: str | None = Field(None, serialization_alias="paidTxHash")
    cancelled_at: datetime | None = Field(None, serialization_alias="cancelledAt")
    cancelled_by_user_id: int | None = Field(None, serialization_alias="cancelledByUserId")
    created_at: datetime = Field(..., serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    """Schema for a message as seen by one viewer."""

    id: int
    thread_id: int = Field(..., serialization_alias="threadId")
    sender_id: int = Field(..., serialization_alias="senderUserId")
    recipient_id: int = Field(..., serialization_alias="recipientUserId")
    message_type: str = Field(..., serialization_alias="messageType")
    encrypted_payload: EncryptedPayload = Field(..., serialization_alias="encryptedPayload")
    request: RequestResponse | None = None
    created_at: datetime = Field(..., serialization_alias="createdAt")


class TransactionResponse(BaseModel):
    """Schema for a transfer between the two participants."""

    id: int
    sender_id: int = Field(..., serialization_alias="senderUserId")
    receiver_id: int = Field(..., serialization_alias="receiverUserId")
    sender_wallet: str = Field(..., serialization_alias="senderWallet")
    receiver_wallet: str = Field(..., serialization_alias="receiverWallet")
    amount: Decimal
    note: str | None = None
    asset_symbol: str = Field(..., serialization_alias="assetSymbol")
    status: str
    tx_hash: str | None = Field(None, serialization_alias="txHash")
    direction: str | None = None
    created_at: datetime = Field(..., serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    thread: ThreadResponse
    messages: list[MessageResponse]
    payments: list[TransactionResponse]
    privacy_notice: str = Field(..., serialization_alias="privacyNotice")


class PayRequest(BaseModel):
    verification_code: str | None = Field(None, alias="verificationCode")

    model_config = ConfigDict(populate_by_name=True)


class PaymentResponse(BaseModel):
    request: RequestResponse
    transaction: TransactionResponse


class DirectSendRequest(BaseModel):
    """Schema for sending money to the other participant without a request."""

    amount: Decimal | None = None
    note: str | None = None
    verification_code: str | None = Field(None, alias="verificationCode")

    model_config = ConfigDict(populate_by_name=True)


class TransferResponse(BaseModel):
    transaction: TransactionResponse


class ConversationResponse(BaseModel):
    """A saved contact with its thread and newest message for unread tracking."""

    peer: PeerSummary
    label: str | None = None
    thread: ThreadResponse | None = None
    latest_message: MessageResponse | None = Field(None, serialization_alias="latestMessage")


class ConversationListResponse(BaseModel):
    contacts: list[ConversationResponse]


class PaymentCodeRequest(BaseModel):
    verification_channel: str | None = Field(None, alias="verificationChannel")

    model_config = ConfigDict(populate_by_name=True)


class PaymentCodeResponse(BaseModel):
    channel: str
    destination: str
    expires_in_seconds: int = Field(..., serialization_alias="expiresInSeconds")


class RevealedMessage(BaseModel):
    """Plaintext excerpt the reporter chose to disclose."""

    message_id: int = Field(..., alias="messageId")
    plaintext: str = ""

    model_config = ConfigDict(populate_by_name=True)


class ReportCreate(BaseModel):
    """Schema for filing an abuse report against the other participant."""

    reason: str
    target_user_id: int | None = Field(None, alias="targetUserId")
    revealed_messages: list[RevealedMessage] = Field(default_factory=list, alias="revealedMessages")

    model_config = ConfigDict(populate_by_name=True)


class ReportResponse(BaseModel):
    id: int
    thread_id: int = Field(..., serialization_alias="threadId")
    target_user_id: int = Field(..., serialization_alias="targetUserId")
    revealed_count: int = Field(..., serialization_alias="revealedCount")
    created_at: datetime = Field(..., serialization_alias="createdAt")
