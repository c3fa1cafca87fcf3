"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from remit_chat.core.security import decode_access_token
from remit_chat.db.session import get_db
from remit_chat.models import User
from remit_chat.services.audit import AuditSink, DatabaseAuditSink
from remit_chat.services.contacts import ContactsProvider, ContactsService
from remit_chat.services.directory import KeyDirectoryService
from remit_chat.services.messages import MessageLogService
from remit_chat.services.notification import Notifier, get_notifier
from remit_chat.services.payment_requests import PaymentRequestService
from remit_chat.services.payment_saga import PaymentSaga
from remit_chat.services.settlement import SettlementProvider, get_settlement_client
from remit_chat.services.threads import ThreadService
from remit_chat.services.verification import VerificationCodeGate
from remit_chat.services.wallets import WalletDirectory, WalletLookup

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from the bearer token.

    Raises:
        HTTPException: If the token is invalid or the account is unknown or disabled
    """
    try:
        user_id = decode_access_token(credentials.credentials)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, user_id)
    if user is None or user.is_disabled:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


# --- collaborators ---------------------------------------------------------------
def get_contacts_dep(db: SessionDep) -> ContactsProvider:
    return ContactsService(db)


def get_wallets_dep(db: SessionDep) -> WalletLookup:
    return WalletDirectory(db)


def get_audit_dep(db: SessionDep) -> AuditSink:
    return DatabaseAuditSink(db)


def get_settlement_dep() -> SettlementProvider:
    """Return the shared settlement gateway client."""
    return get_settlement_client()


def get_notifier_dep() -> Notifier:
    return get_notifier()


ContactsDep = Annotated[ContactsProvider, Depends(get_contacts_dep)]
WalletsDep = Annotated[WalletLookup, Depends(get_wallets_dep)]
AuditDep = Annotated[AuditSink, Depends(get_audit_dep)]
SettlementDep = Annotated[SettlementProvider, Depends(get_settlement_dep)]
NotifierDep = Annotated[Notifier, Depends(get_notifier_dep)]


# --- services --------------------------------------------------------------------
def get_directory_service_dep(db: SessionDep, contacts: ContactsDep) -> KeyDirectoryService:
    return KeyDirectoryService(db, contacts)


def get_thread_service_dep(db: SessionDep, contacts: ContactsDep, audit: AuditDep) -> ThreadService:
    return ThreadService(db, contacts, audit)


DirectoryServiceDep = Annotated[KeyDirectoryService, Depends(get_directory_service_dep)]
ThreadServiceDep = Annotated[ThreadService, Depends(get_thread_service_dep)]


def get_request_service_dep(db: SessionDep, audit: AuditDep) -> PaymentRequestService:
    return PaymentRequestService(db, audit)


RequestServiceDep = Annotated[PaymentRequestService, Depends(get_request_service_dep)]


def get_message_service_dep(
    db: SessionDep,
    threads: ThreadServiceDep,
    requests: RequestServiceDep,
    wallets: WalletsDep,
) -> MessageLogService:
    return MessageLogService(db, threads, requests, wallets)


def get_verification_gate_dep(db: SessionDep, notifier: NotifierDep) -> VerificationCodeGate:
    return VerificationCodeGate(db, notifier)


MessageServiceDep = Annotated[MessageLogService, Depends(get_message_service_dep)]
VerificationGateDep = Annotated[VerificationCodeGate, Depends(get_verification_gate_dep)]


def get_payment_saga_dep(
    db: SessionDep,
    threads: ThreadServiceDep,
    requests: RequestServiceDep,
    wallets: WalletsDep,
    settlement: SettlementDep,
    verification: VerificationGateDep,
    audit: AuditDep,
) -> PaymentSaga:
    """Assemble the payment saga from per-request collaborators."""
    return PaymentSaga(db, threads, requests, wallets, settlement, verification, audit)


PaymentSagaDep = Annotated[PaymentSaga, Depends(get_payment_saga_dep)]
