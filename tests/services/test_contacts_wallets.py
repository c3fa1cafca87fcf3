# tests/services/test_contacts_wallets.py
"""Tests for the contacts, wallet and audit collaborators."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from remit_chat.models import AuditLog, Wallet
from remit_chat.services.audit import DatabaseAuditSink
from remit_chat.services.contacts import ContactsService
from remit_chat.services.wallets import WalletDirectory, normalize_address


class TestContacts:
    def test_mutual_contacts(self, db_session, alice, bob, contacts):
        service = ContactsService(db_session)
        assert service.is_mutual_contact(alice.id, bob.id)
        assert service.is_mutual_contact(bob.id, alice.id)

    def test_one_sided_is_not_mutual(self, db_session, alice, bob, contact_saver):
        contact_saver(alice, bob)
        assert not ContactsService(db_session).is_mutual_contact(alice.id, bob.id)

    def test_self_is_never_a_contact(self, db_session, alice):
        assert not ContactsService(db_session).is_mutual_contact(alice.id, alice.id)


class TestWallets:
    def test_verified_wallet_lookup(self, db_session, alice, wallet_linker):
        wallet_linker(alice, verified=False)
        verified = wallet_linker(alice)

        assert WalletDirectory(db_session).get_verified_wallet(alice.id) == verified

    def test_no_verified_wallet(self, db_session, alice, wallet_linker):
        wallet_linker(alice, verified=False)
        assert WalletDirectory(db_session).get_verified_wallet(alice.id) is None

    def test_address_normalized(self, db_session, bob):
        db_session.add(Wallet(user_id=bob.id, address="  0xABCdef  ", is_verified=True))
        db_session.commit()
        assert WalletDirectory(db_session).get_verified_wallet(bob.id) == "0xabcdef"

    def test_normalize_address_handles_none(self):
        assert normalize_address(None) == ""


class TestAuditSink:
    def test_records_event(self, db_session, alice):
        DatabaseAuditSink(db_session).record(alice.id, "TEST_ACTION", {"threadId": 1})

        row = db_session.scalars(select(AuditLog)).one()
        assert (row.user_id, row.action, row.metadata_) == (alice.id, "TEST_ACTION", {"threadId": 1})

    def test_write_failure_is_logged_not_raised(self, db_session, alice, mocker, caplog):
        mocker.patch.object(
            db_session,
            "commit",
            side_effect=OperationalError("INSERT INTO audit_log", {}, Exception("locked")),
        )
        with caplog.at_level(logging.ERROR):
            DatabaseAuditSink(db_session).record(alice.id, "TEST_ACTION", {})

        assert "Failed to write TEST_ACTION audit log" in caplog.text
