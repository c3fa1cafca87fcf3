# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-remit-chat")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from remit_chat.api.v1.dependencies import get_notifier_dep, get_settlement_dep  # noqa: E402
from remit_chat.core.security import create_access_token  # noqa: E402
from remit_chat.db.session import Base  # noqa: E402
from remit_chat.db.session import get_db as app_get_session  # noqa: E402
from remit_chat.main import app as fastapi_app  # noqa: E402
from remit_chat.models import ChatThread, Contact, PaymentRequest, User, Wallet  # noqa: E402
from remit_chat.models.chat_message import CipherPayload  # noqa: E402
from remit_chat.services.audit import DatabaseAuditSink  # noqa: E402
from remit_chat.services.contacts import ContactsService  # noqa: E402
from remit_chat.services.errors import NotificationError  # noqa: E402
from remit_chat.services.messages import MessageLogService  # noqa: E402
from remit_chat.services.payment_requests import PaymentRequestService  # noqa: E402
from remit_chat.services.payment_saga import PaymentSaga  # noqa: E402
from remit_chat.services.settlement import SettlementResult  # noqa: E402
from remit_chat.services.threads import ThreadService  # noqa: E402
from remit_chat.services.verification import VerificationCodeGate  # noqa: E402
from remit_chat.services.wallets import WalletDirectory  # noqa: E402

TEST_DB_URL = "sqlite://"

_USER_COUNTER = count(1)
_WALLET_COUNTER = count(1)


# --- collaborator fakes ------------------------------------------------------------
@dataclass
class FakeSettlement:
    """In-process settlement gateway with scriptable outcomes."""

    balances: dict[str, Decimal] = field(default_factory=dict)
    default_balance: Decimal = Decimal("10")
    transfer_status: str = "success"
    transfer_error: Exception | None = None
    transfer_delay: float = 0.0
    transfers: list[tuple[str, Decimal]] = field(default_factory=list)
    submitted: int = 0
    cancelled: int = 0
    _hashes: Any = field(default_factory=lambda: count(1))

    async def get_balance(self, address: str) -> Decimal:
        await asyncio.sleep(0)
        return self.balances.get(address, self.default_balance)

    async def transfer(self, to_address: str, amount: Decimal) -> SettlementResult:
        self.submitted += 1
        try:
            await asyncio.sleep(self.transfer_delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if self.transfer_error is not None:
            raise self.transfer_error
        self.transfers.append((to_address, amount))
        return SettlementResult(reference=f"0xhash{next(self._hashes):04d}", status=self.transfer_status)


@dataclass
class FakeNotifier:
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    fail: bool = False

    async def send(self, destination: str, channel: str, code: str) -> None:
        if self.fail:
            raise NotificationError("gateway down")
        self.sent.append((destination, channel, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][2]


# --- database ----------------------------------------------------------------------
@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Services commit eagerly, so wipe every table between tests.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def file_engine(tmp_path: Any) -> Generator[Engine, None, None]:
    """File-backed SQLite engine so separate sessions use separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'remit_chat_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


# --- application ---------------------------------------------------------------------
@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def fake_settlement() -> FakeSettlement:
    return FakeSettlement()


@pytest.fixture()
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    fake_settlement: FakeSettlement,
    fake_notifier: FakeNotifier,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_settlement_dep] = lambda: fake_settlement
    app.dependency_overrides[get_notifier_dep] = lambda: fake_notifier
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


# --- users, contacts and wallets -----------------------------------------------------
def create_user(session: Session, username: str | None = None, **fields: Any) -> User:
    number = next(_USER_COUNTER)
    user = User(
        username=username or f"user{number}",
        email=fields.pop("email", f"user{number}@example.com"),
        phone_number=fields.pop("phone_number", f"+1555000{number:04d}"),
        **fields,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def save_contact(session: Session, owner: User, peer: User) -> None:
    session.add(Contact(owner_id=owner.id, peer_id=peer.id, label=peer.username))
    session.commit()


def link_wallet(session: Session, user: User, *, verified: bool = True) -> str:
    address = f"0x{next(_WALLET_COUNTER):040x}"
    session.add(Wallet(user_id=user.id, address=address, is_verified=verified))
    session.commit()
    return address


@pytest.fixture()
def user_factory(db_session: Session) -> Callable[..., User]:
    def _factory(username: str | None = None, **fields: Any) -> User:
        return create_user(db_session, username, **fields)

    return _factory


@pytest.fixture()
def alice(db_session: Session) -> User:
    return create_user(db_session, "alice", first_name="Alice", last_name="Adams", email="alice@example.com")


@pytest.fixture()
def bob(db_session: Session) -> User:
    return create_user(db_session, "bob", first_name="Bob", email="bob@example.com", phone_number="+15551234567")


@pytest.fixture()
def carol(db_session: Session) -> User:
    """A user who is nobody's contact."""
    return create_user(db_session, "carol")


@pytest.fixture()
def contacts(db_session: Session, alice: User, bob: User) -> None:
    """Make alice and bob mutual contacts."""
    save_contact(db_session, alice, bob)
    save_contact(db_session, bob, alice)


@pytest.fixture()
def wallets(db_session: Session, alice: User, bob: User) -> dict[int, str]:
    return {alice.id: link_wallet(db_session, alice), bob.id: link_wallet(db_session, bob)}


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


# --- services ------------------------------------------------------------------------
@pytest.fixture()
def audit(db_session: Session) -> DatabaseAuditSink:
    return DatabaseAuditSink(db_session)


@pytest.fixture()
def thread_service(db_session: Session, audit: DatabaseAuditSink) -> ThreadService:
    return ThreadService(db_session, ContactsService(db_session), audit)


@pytest.fixture()
def request_service(db_session: Session, audit: DatabaseAuditSink) -> PaymentRequestService:
    return PaymentRequestService(db_session, audit)


@pytest.fixture()
def message_service(
    db_session: Session,
    thread_service: ThreadService,
    request_service: PaymentRequestService,
) -> MessageLogService:
    return MessageLogService(db_session, thread_service, request_service, WalletDirectory(db_session))


@pytest.fixture()
def verification_gate(db_session: Session, fake_notifier: FakeNotifier) -> VerificationCodeGate:
    return VerificationCodeGate(db_session, fake_notifier)


def build_saga(
    session: Session,
    settlement: FakeSettlement,
    notifier: FakeNotifier,
    *,
    timeout_seconds: float = 5.0,
) -> PaymentSaga:
    """Wire a saga whose collaborators all share ``session``."""
    audit = DatabaseAuditSink(session)
    threads = ThreadService(session, ContactsService(session), audit)
    return PaymentSaga(
        session,
        threads,
        PaymentRequestService(session, audit),
        WalletDirectory(session),
        settlement,
        VerificationCodeGate(session, notifier),
        audit,
        timeout_seconds=timeout_seconds,
    )


@pytest.fixture()
def payment_saga(db_session: Session, fake_settlement: FakeSettlement, fake_notifier: FakeNotifier) -> PaymentSaga:
    return build_saga(db_session, fake_settlement, fake_notifier)


# --- chat fixtures -------------------------------------------------------------------
def make_cipher(tag: str = "x") -> CipherPayload:
    return CipherPayload(ciphertext=f"Y2lwaGVy{tag}", iv="aXZpdml2aXZpdml2", wrapped_key=f"d3JhcA{tag}")


@pytest.fixture()
def thread(thread_service: ThreadService, alice: User, bob: User, contacts: None) -> ChatThread:
    return thread_service.open_thread(alice.id, bob.id)


@pytest.fixture()
def pending_request(
    message_service: MessageLogService,
    thread: ChatThread,
    alice: User,
    bob: User,
    wallets: dict[int, str],
) -> PaymentRequest:
    """Alice asks Bob for 5 through a request message."""
    view = message_service.append_message(
        thread.id,
        alice.id,
        make_cipher("s"),
        make_cipher("r"),
        message_type="request",
        request_amount="5",
        request_note="dinner",
    )
    assert view.request is not None
    return view.request


@pytest.fixture()
def cipher() -> Callable[..., CipherPayload]:
    return make_cipher


@pytest.fixture()
def saga_factory() -> Callable[..., PaymentSaga]:
    return build_saga


@pytest.fixture()
def wallet_linker(db_session: Session) -> Callable[..., str]:
    def _link(user: User, *, verified: bool = True) -> str:
        return link_wallet(db_session, user, verified=verified)

    return _link


@pytest.fixture()
def contact_saver(db_session: Session) -> Callable[[User, User], None]:
    def _save(owner: User, peer: User) -> None:
        save_contact(db_session, owner, peer)

    return _save
