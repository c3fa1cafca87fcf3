# tests/v1/test_chat_contacts.py
"""Tests for the contact listing and direct-send endpoints."""

from decimal import Decimal

import pytest
from fastapi import status

from remit_chat.services.errors import SettlementError

CONTACTS_URL = "/api/v1/chat/contacts"


def _send_url(thread):
    return f"/api/v1/chat/threads/{thread.id}/send"


def _issue_code(client, user, fake_notifier, auth_headers) -> str:
    response = client.post("/api/v1/chat/payment-code", json={}, headers=auth_headers(user))
    assert response.status_code == status.HTTP_200_OK
    return fake_notifier.last_code


def test_contacts_empty_without_saved_contacts(client, alice, auth_headers) -> None:
    response = client.get(CONTACTS_URL, headers=auth_headers(alice))

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"contacts": []}


def test_contact_without_thread(client, alice, bob, contacts, auth_headers) -> None:
    response = client.get(CONTACTS_URL, headers=auth_headers(alice))

    assert response.status_code == status.HTTP_200_OK
    [entry] = response.json()["contacts"]
    assert entry["peer"] == {"id": bob.id, "displayName": bob.display_name, "hasChatKey": False}
    assert entry["label"] == "bob"
    assert entry["thread"] is None
    assert entry["latestMessage"] is None


def test_disabled_contact_is_hidden(client, alice, user_factory, contact_saver, auth_headers) -> None:
    contact_saver(alice, user_factory("gone", is_disabled=True))

    response = client.get(CONTACTS_URL, headers=auth_headers(alice))

    assert response.json()["contacts"] == []


def test_contact_shows_latest_request_for_viewer(client, thread, bob, pending_request, auth_headers) -> None:
    """Bob sees his own copy of the newest message with the live request state."""
    response = client.get(CONTACTS_URL, headers=auth_headers(bob))

    [entry] = response.json()["contacts"]
    assert entry["thread"]["id"] == thread.id
    latest = entry["latestMessage"]
    assert latest["messageType"] == "request"
    assert latest["encryptedPayload"]["ciphertext"] == "Y2lwaGVyr"
    assert latest["request"]["id"] == pending_request.id
    assert latest["request"]["status"] == "pending"


def test_latest_request_state_follows_payment(
    client, thread, bob, pending_request, fake_notifier, auth_headers
) -> None:
    code = _issue_code(client, bob, fake_notifier, auth_headers)
    paid = client.post(
        f"/api/v1/chat/threads/{thread.id}/requests/{pending_request.id}/pay",
        json={"verificationCode": code},
        headers=auth_headers(bob),
    )
    assert paid.status_code == status.HTTP_200_OK

    [entry] = client.get(CONTACTS_URL, headers=auth_headers(bob)).json()["contacts"]
    assert entry["latestMessage"]["request"]["status"] == "paid"


def test_contacts_reject_bad_token(client) -> None:
    response = client.get(CONTACTS_URL, headers={"Authorization": "Bearer nope"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestDirectSend:
    def test_send(self, client, thread, alice, bob, wallets, fake_notifier, fake_settlement, auth_headers) -> None:
        code = _issue_code(client, alice, fake_notifier, auth_headers)

        response = client.post(
            _send_url(thread),
            json={"amount": "1.5", "note": "lunch", "verificationCode": code},
            headers=auth_headers(alice),
        )

        assert response.status_code == status.HTTP_201_CREATED
        transaction = response.json()["transaction"]
        assert transaction["senderUserId"] == alice.id
        assert transaction["receiverUserId"] == bob.id
        assert transaction["receiverWallet"] == wallets[bob.id]
        assert Decimal(str(transaction["amount"])) == Decimal("1.5")
        assert transaction["note"] == "lunch"
        assert transaction["status"] == "success"
        assert transaction["direction"] == "sent"
        assert fake_settlement.transfers == [(wallets[bob.id], Decimal("1.5"))]

    def test_transfer_shows_in_peer_history(
        self, client, thread, alice, bob, wallets, fake_notifier, auth_headers
    ) -> None:
        code = _issue_code(client, alice, fake_notifier, auth_headers)
        client.post(_send_url(thread), json={"amount": "2", "verificationCode": code}, headers=auth_headers(alice))

        history = client.get(f"/api/v1/chat/threads/{thread.id}/history", headers=auth_headers(bob)).json()

        assert [payment["direction"] for payment in history["payments"]] == ["received"]

    @pytest.mark.parametrize("amount", ["0", "-3"])
    def test_amount_must_be_positive(
        self, client, thread, alice, wallets, fake_notifier, fake_settlement, auth_headers, amount
    ) -> None:
        code = _issue_code(client, alice, fake_notifier, auth_headers)

        response = client.post(
            _send_url(thread),
            json={"amount": amount, "verificationCode": code},
            headers=auth_headers(alice),
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "amount must be a positive number" in response.json()["detail"]
        assert fake_settlement.submitted == 0

    def test_code_required(self, client, thread, alice, wallets, fake_settlement, auth_headers) -> None:
        response = client.post(_send_url(thread), json={"amount": "1"}, headers=auth_headers(alice))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert fake_settlement.submitted == 0

    def test_outsider_forbidden(self, client, thread, carol, fake_notifier, auth_headers) -> None:
        code = _issue_code(client, carol, fake_notifier, auth_headers)

        response = client.post(
            _send_url(thread),
            json={"amount": "1", "verificationCode": code},
            headers=auth_headers(carol),
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_settlement_failure(
        self, client, thread, alice, wallets, fake_notifier, fake_settlement, auth_headers
    ) -> None:
        fake_settlement.transfer_error = SettlementError("Settlement request failed: ConnectError")
        code = _issue_code(client, alice, fake_notifier, auth_headers)

        response = client.post(
            _send_url(thread),
            json={"amount": "1", "verificationCode": code},
            headers=auth_headers(alice),
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
