# tests/v1/test_chat_threads.py
"""Tests for thread and report endpoints."""

from fastapi import status

PAYLOAD = {"ciphertext": "Y2lwaGVy", "iv": "aXZpdml2", "wrappedKey": "d3JhcA=="}


def test_open_thread_with_contact(client, alice, bob, contacts, auth_headers) -> None:
    """Opening twice, from either side, yields one thread."""
    first = client.get(f"/api/v1/chat/threads/{bob.id}", headers=auth_headers(alice))
    second = client.get(f"/api/v1/chat/threads/{alice.id}", headers=auth_headers(bob))

    assert first.status_code == status.HTTP_200_OK
    assert first.json()["id"] == second.json()["id"]
    assert sorted(first.json()["participants"]) == sorted([alice.id, bob.id])
    assert first.json()["peer"] == {"id": bob.id, "displayName": "Bob", "hasChatKey": False}
    assert second.json()["peer"]["displayName"] == "Alice Adams"


def test_open_thread_with_self(client, alice, auth_headers) -> None:
    response = client.get(f"/api/v1/chat/threads/{alice.id}", headers=auth_headers(alice))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_open_thread_requires_contact(client, alice, carol, auth_headers) -> None:
    response = client.get(f"/api/v1/chat/threads/{carol.id}", headers=auth_headers(alice))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_report_thread(client, thread, alice, bob, auth_headers) -> None:
    """A participant can report the thread and reveal a decrypted excerpt."""
    sent = client.post(
        f"/api/v1/chat/threads/{thread.id}/messages",
        json={"senderPayload": PAYLOAD, "recipientPayload": PAYLOAD},
        headers=auth_headers(bob),
    )
    message_id = sent.json()["id"]

    response = client.post(
        f"/api/v1/chat/threads/{thread.id}/report",
        json={
            "reason": "threatening messages",
            "revealedMessages": [{"messageId": message_id, "plaintext": "the threat"}],
        },
        headers=auth_headers(alice),
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["threadId"] == thread.id
    assert data["targetUserId"] == bob.id
    assert data["revealedCount"] == 1


def test_report_reason_validated(client, thread, alice, auth_headers) -> None:
    response = client.post(
        f"/api/v1/chat/threads/{thread.id}/report",
        json={"reason": "no"},
        headers=auth_headers(alice),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_outsider_cannot_report(client, thread, carol, auth_headers) -> None:
    response = client.post(
        f"/api/v1/chat/threads/{thread.id}/report",
        json={"reason": "spam spam spam"},
        headers=auth_headers(carol),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
