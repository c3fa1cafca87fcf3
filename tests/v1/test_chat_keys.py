# tests/v1/test_chat_keys.py
"""Tests for public-key directory endpoints."""

from fastapi import status

PUBLIC_JWK = {"kty": "RSA", "alg": "RSA-OAEP-256", "n": "sXch", "e": "AQAB"}


def test_publish_and_read_own_key(client, alice, auth_headers) -> None:
    """A user can publish a key and read it back."""
    response = client.put(
        "/api/v1/chat/keys/public",
        json={"publicKeyJwk": PUBLIC_JWK},
        headers=auth_headers(alice),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["userId"] == alice.id
    assert data["publicKeyJwk"] == PUBLIC_JWK
    assert data["updatedAt"] is not None

    response = client.get(f"/api/v1/chat/keys/{alice.id}", headers=auth_headers(alice))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["publicKeyJwk"] == PUBLIC_JWK


def test_publish_rejects_private_material(client, alice, auth_headers) -> None:
    """Uploading a private JWK is refused."""
    response = client.put(
        "/api/v1/chat/keys/public",
        json={"publicKeyJwk": dict(PUBLIC_JWK, d="c2VjcmV0")},
        headers=auth_headers(alice),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "private key material" in response.json()["detail"]


def test_contact_can_fetch_key(client, alice, bob, contacts, auth_headers) -> None:
    client.put("/api/v1/chat/keys/public", json={"publicKeyJwk": PUBLIC_JWK}, headers=auth_headers(bob))

    response = client.get(f"/api/v1/chat/keys/{bob.id}", headers=auth_headers(alice))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["userId"] == bob.id


def test_non_contact_cannot_fetch_key(client, alice, carol, auth_headers) -> None:
    client.put("/api/v1/chat/keys/public", json={"publicKeyJwk": PUBLIC_JWK}, headers=auth_headers(carol))

    response = client.get(f"/api/v1/chat/keys/{carol.id}", headers=auth_headers(alice))

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_missing_key_is_404(client, alice, bob, contacts, auth_headers) -> None:
    response = client.get(f"/api/v1/chat/keys/{bob.id}", headers=auth_headers(alice))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "Recipient has not enabled encrypted chat yet."
