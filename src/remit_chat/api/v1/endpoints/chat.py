# src/remit_chat/api/v1/endpoints/chat.py
"""Encrypted chat and payment-request endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from remit_chat.api.v1.dependencies import (
    CurrentUserDep,
    DirectoryServiceDep,
    MessageServiceDep,
    PaymentSagaDep,
    RequestServiceDep,
    SessionDep,
    ThreadServiceDep,
    VerificationGateDep,
)
from remit_chat.models import ChatKey, ChatThread, User
from remit_chat.schemas.chat import (
    ConversationListResponse,
    ConversationResponse,
    DirectSendRequest,
    EncryptedPayload,
    HistoryResponse,
    MessageCreate,
    MessageResponse,
    PaymentCodeRequest,
    PaymentCodeResponse,
    PaymentResponse,
    PayRequest,
    PeerSummary,
    PublicKeyResponse,
    PublishKeyRequest,
    ReportCreate,
    ReportResponse,
    RequestResponse,
    ThreadResponse,
    TransactionResponse,
    TransferResponse,
)
from remit_chat.services.errors import ChatError
from remit_chat.services.messages import MessageView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

PRIVACY_NOTICE = (
    "Messages are stored as end-to-end encrypted payloads. "
    "Payment records remain visible to the system."
)


def _http_error(exc: ChatError) -> HTTPException:
    """Translate a service error into the matching HTTP response."""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning("Chat dependency failure: %s", exc)
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _serialize_thread(thread: ChatThread, peer: PeerSummary | None = None) -> ThreadResponse:
    return ThreadResponse(
        id=thread.id,
        participants=list(thread.participants),
        last_message_at=thread.last_message_at,
        peer=peer,
    )


def _serialize_message(view: MessageView) -> MessageResponse:
    message = view.message
    return MessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        message_type=message.message_type,
        encrypted_payload=EncryptedPayload.from_cipher(view.payload),
        request=RequestResponse.model_validate(view.request) if view.request is not None else None,
        created_at=message.created_at,
    )


@router.put("/keys/public", response_model=PublicKeyResponse)
async def publish_public_key(
    body: PublishKeyRequest,
    current_user: CurrentUserDep,
    directory: DirectoryServiceDep,
) -> PublicKeyResponse:
    """Advertise the caller's active public key, replacing any previous one."""
    try:
        key: ChatKey = directory.publish_key(current_user.id, body.public_key_jwk)
    except ChatError as exc:
        raise _http_error(exc) from exc
    return PublicKeyResponse.model_validate(key)


@router.get("/keys/{user_id}", response_model=PublicKeyResponse)
async def get_public_key(
    user_id: int,
    current_user: CurrentUserDep,
    directory: DirectoryServiceDep,
) -> PublicKeyResponse:
    """Fetch a contact's public key (or the caller's own)."""
    try:
        public_jwk = directory.lookup_key(current_user.id, user_id)
    except ChatError as exc:
        raise _http_error(exc) from exc
    return PublicKeyResponse(user_id=user_id, public_key_jwk=public_jwk)


@router.get("/contacts", response_model=ConversationListResponse)
async def list_contacts(
    current_user: CurrentUserDep,
    messages: MessageServiceDep,
    directory: DirectoryServiceDep,
) -> ConversationListResponse:
    """List saved contacts with their thread and newest message for unread tracking."""
    items = []
    for view in messages.list_conversations(current_user.id):
        peer = PeerSummary(
            id=view.peer.id,
            display_name=view.peer.display_name,
            has_chat_key=directory.has_key(view.peer.id),
        )
        items.append(
            ConversationResponse(
                peer=peer,
                label=view.contact.label,
                thread=_serialize_thread(view.thread) if view.thread is not None else None,
                latest_message=_serialize_message(view.latest) if view.latest is not None else None,
            )
        )
    return ConversationListResponse(contacts=items)


@router.get("/threads/{peer_user_id}", response_model=ThreadResponse)
async def open_thread(
    peer_user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    threads: ThreadServiceDep,
    directory: DirectoryServiceDep,
) -> ThreadResponse:
    """Return the thread with ``peer_user_id``, creating it on first contact."""
    try:
        thread = threads.open_thread(current_user.id, peer_user_id)
    except ChatError as exc:
        raise _http_error(exc) from exc

    peer = db.get(User, peer_user_id)
    summary = PeerSummary(
        id=peer_user_id,
        display_name=peer.display_name if peer is not None else "User",
        has_chat_key=directory.has_key(peer_user_id),
    )
    return _serialize_thread(thread, summary)


@router.get("/threads/{thread_id}/history", response_model=HistoryResponse)
async def get_history(
    thread_id: int,
    current_user: CurrentUserDep,
    messages: MessageServiceDep,
    limit: int | None = Query(None),
) -> HistoryResponse:
    """Return recent messages in chronological order plus the pair's payments."""
    try:
        page = messages.get_history(thread_id, current_user.id, limit)
    except ChatError as exc:
        raise _http_error(exc) from exc

    payments = []
    for payment in page.payments:
        item = TransactionResponse.model_validate(payment.transaction)
        item.direction = payment.direction
        payments.append(item)

    return HistoryResponse(
        thread=_serialize_thread(page.thread),
        messages=[_serialize_message(view) for view in page.messages],
        payments=payments,
        privacy_notice=PRIVACY_NOTICE,
    )


@router.post(
    "/threads/{thread_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def append_message(
    thread_id: int,
    body: MessageCreate,
    current_user: CurrentUserDep,
    messages: MessageServiceDep,
) -> MessageResponse:
    """Store an encrypted message, creating its payment request when it carries one."""
    try:
        view = messages.append_message(
            thread_id,
            current_user.id,
            body.sender_payload.to_cipher(),
            body.recipient_payload.to_cipher(),
            recipient_id=body.recipient_user_id,
            message_type=body.message_type,
            request_amount=body.request_amount,
            request_note=body.request_note,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return _serialize_message(view)


@router.post("/threads/{thread_id}/requests/{request_id}/pay", response_model=PaymentResponse)
async def pay_request(
    thread_id: int,
    request_id: int,
    body: PayRequest,
    current_user: CurrentUserDep,
    saga: PaymentSagaDep,
) -> PaymentResponse:
    """Pay a pending request addressed to the caller."""
    try:
        outcome = await saga.pay(thread_id, request_id, current_user.id, body.verification_code)
    except ChatError as exc:
        raise _http_error(exc) from exc

    transaction = TransactionResponse.model_validate(outcome.transaction)
    transaction.direction = "sent"
    return PaymentResponse(
        request=RequestResponse.model_validate(outcome.request),
        transaction=transaction,
    )


@router.post(
    "/threads/{thread_id}/send",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_money(
    thread_id: int,
    body: DirectSendRequest,
    current_user: CurrentUserDep,
    saga: PaymentSagaDep,
) -> TransferResponse:
    """Send money to the other participant of the thread."""
    try:
        outcome = await saga.send(
            thread_id,
            current_user.id,
            body.amount,
            body.note,
            body.verification_code,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc

    transaction = TransactionResponse.model_validate(outcome.transaction)
    transaction.direction = "sent"
    return TransferResponse(transaction=transaction)


@router.post("/threads/{thread_id}/requests/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    thread_id: int,
    request_id: int,
    current_user: CurrentUserDep,
    threads: ThreadServiceDep,
    requests: RequestServiceDep,
) -> RequestResponse:
    """Cancel a pending request the caller created."""
    try:
        thread = threads.get_thread_for_participant(thread_id, current_user.id)
        request = requests.cancel(request_id, thread, current_user.id)
    except ChatError as exc:
        raise _http_error(exc) from exc
    return RequestResponse.model_validate(request)


@router.post("/payment-code", response_model=PaymentCodeResponse)
async def send_payment_code(
    body: PaymentCodeRequest,
    current_user: CurrentUserDep,
    gate: VerificationGateDep,
) -> PaymentCodeResponse:
    """Send a one-time payment verification code to the caller."""
    try:
        issued = await gate.issue(current_user.id, body.verification_channel)
    except ChatError as exc:
        raise _http_error(exc) from exc
    return PaymentCodeResponse(
        channel=issued.channel,
        destination=issued.destination,
        expires_in_seconds=issued.expires_in_seconds,
    )


@router.post(
    "/threads/{thread_id}/report",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def report_thread(
    thread_id: int,
    body: ReportCreate,
    current_user: CurrentUserDep,
    threads: ThreadServiceDep,
) -> ReportResponse:
    """Report the other participant, optionally revealing decrypted excerpts."""
    try:
        report = threads.report_thread(
            thread_id,
            current_user.id,
            body.reason,
            target_id=body.target_user_id,
            revealed_messages=[item.model_dump(by_alias=True) for item in body.revealed_messages],
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return ReportResponse(
        id=report.id,
        thread_id=report.thread_id,
        target_user_id=report.target_user_id,
        revealed_count=len(report.revealed_messages),
        created_at=report.created_at,
    )
