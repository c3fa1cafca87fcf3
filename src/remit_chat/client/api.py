# src/remit_chat/client/api.py
"""Synchronous HTTP client for the chat API that encrypts and decrypts locally."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

import httpx

from remit_chat.client.cipher import decrypt_or_placeholder, encrypt
from remit_chat.client.identity import ChatIdentity, IdentityStore

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/chat"


class ChatApiError(RuntimeError):
    """Raised when the chat API answers with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ChatClient:
    """Drive the chat API on behalf of one signed-in user.

    Plaintext never leaves this object: outgoing messages are encrypted to
    both participants before upload and history is decrypted on fetch.
    """

    def __init__(
        self,
        user_id: int,
        access_token: str,
        *,
        base_url: str = "http://localhost:8000",
        identity_store: IdentityStore | None = None,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.user_id = user_id
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._store = identity_store or IdentityStore()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._identity: ChatIdentity | None = None

    def __enter__(self) -> ChatClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # --- transport ---------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = self._client.request(
                method,
                f"{API_PREFIX}{path}",
                json=json_data,
                params=params,
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise ChatApiError(0, f"Chat API request failed: {exc}") from exc

        if response.status_code >= httpx.codes.BAD_REQUEST:
            try:
                detail = str(response.json().get("detail") or response.text)
            except ValueError:
                detail = response.text
            raise ChatApiError(response.status_code, detail)
        return response.json()

    # --- identity ----------------------------------------------------------------
    @property
    def identity(self) -> ChatIdentity:
        if self._identity is None:
            self._identity = self._store.load_or_create_identity(self.user_id)
        return self._identity

    def publish_key(self) -> dict[str, Any]:
        """Advertise the active public key to the directory."""
        return self._request("PUT", "/keys/public", json_data={"publicKeyJwk": self.identity.public_jwk})

    def rotate_identity(self) -> ChatIdentity:
        """Switch to a fresh key pair and advertise it."""
        self._identity = self._store.rotate(self.user_id)
        self.publish_key()
        return self._identity

    def fetch_public_key(self, user_id: int) -> dict[str, Any]:
        return self._request("GET", f"/keys/{user_id}")["publicKeyJwk"]

    # --- threads and messages ----------------------------------------------------
    def list_contacts(self) -> list[dict[str, Any]]:
        """List saved contacts; each newest message gets ``plaintext``/``readable``."""
        contacts = self._request("GET", "/contacts").get("contacts", [])
        candidates = self.identity.private_jwks
        for contact in contacts:
            latest = contact.get("latestMessage")
            if latest:
                decrypted = decrypt_or_placeholder(latest.get("encryptedPayload"), candidates)
                latest["plaintext"] = decrypted.text
                latest["readable"] = decrypted.readable
        return contacts

    def open_thread(self, peer_user_id: int) -> dict[str, Any]:
        return self._request("GET", f"/threads/{peer_user_id}")

    def _encrypted_body(self, peer_user_id: int, plaintext: str) -> dict[str, Any]:
        pair = encrypt(plaintext, self.identity.public_jwk, self.fetch_public_key(peer_user_id))
        return {
            "recipientUserId": peer_user_id,
            "senderPayload": pair.for_sender,
            "recipientPayload": pair.for_recipient,
        }

    def send_text(self, thread_id: int, peer_user_id: int, text: str) -> dict[str, Any]:
        body = self._encrypted_body(peer_user_id, text)
        body["messageType"] = "text"
        return self._request("POST", f"/threads/{thread_id}/messages", json_data=body)

    def send_request(
        self,
        thread_id: int,
        peer_user_id: int,
        amount: Decimal | str,
        note: str | None = None,
        text: str | None = None,
    ) -> dict[str, Any]:
        """Send an encrypted message that carries a money request."""
        body = self._encrypted_body(peer_user_id, text or f"Requested {amount}")
        body.update({"messageType": "request", "requestAmount": str(amount), "requestNote": note})
        return self._request("POST", f"/threads/{thread_id}/messages", json_data=body)

    def history(self, thread_id: int, limit: int | None = None) -> dict[str, Any]:
        """Fetch history and attach ``plaintext``/``readable`` to every message."""
        params = {"limit": limit} if limit is not None else None
        page = self._request("GET", f"/threads/{thread_id}/history", params=params)

        candidates = self.identity.private_jwks
        messages = sorted(page.get("messages", []), key=lambda item: (item.get("createdAt") or "", item.get("id") or 0))
        for message in messages:
            decrypted = decrypt_or_placeholder(message.get("encryptedPayload"), candidates)
            message["plaintext"] = decrypted.text
            message["readable"] = decrypted.readable
        page["messages"] = messages
        return page

    # --- payment requests --------------------------------------------------------
    def request_payment_code(self, channel: str = "email") -> dict[str, Any]:
        return self._request("POST", "/payment-code", json_data={"verificationChannel": channel})

    def pay(self, thread_id: int, request_id: int, verification_code: str) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/threads/{thread_id}/requests/{request_id}/pay",
            json_data={"verificationCode": verification_code},
        )

    def send_money(
        self,
        thread_id: int,
        amount: Decimal | str,
        verification_code: str,
        note: str | None = None,
    ) -> dict[str, Any]:
        """Transfer ``amount`` to the other participant of the thread."""
        return self._request(
            "POST",
            f"/threads/{thread_id}/send",
            json_data={"amount": str(amount), "note": note, "verificationCode": verification_code},
        )

    def cancel(self, thread_id: int, request_id: int) -> dict[str, Any]:
        return self._request("POST", f"/threads/{thread_id}/requests/{request_id}/cancel")

    def report(
        self,
        thread_id: int,
        reason: str,
        revealed_messages: Iterable[Mapping[str, Any]] = (),
    ) -> dict[str, Any]:
        """Report the thread, disclosing only the excerpts passed in."""
        body = {
            "reason": reason,
            "revealedMessages": [
                {"messageId": item["id"], "plaintext": item["plaintext"]} for item in revealed_messages
            ],
        }
        return self._request("POST", f"/threads/{thread_id}/report", json_data=body)
