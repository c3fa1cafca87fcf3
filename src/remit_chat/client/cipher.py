# src/remit_chat/client/cipher.py
"""Hybrid message encryption: AES-256-GCM content, RSA-OAEP wrapped keys.

Each message is encrypted once and its content key is wrapped twice, once
for the sender's public key and once for the recipient's, so both sides can
read it back without the server ever seeing plaintext.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from remit_chat.client.keys import (
    KeyFormatError,
    fingerprint,
    hash_candidates,
    private_key_from_jwk,
    public_key_from_jwk,
)

logger = logging.getLogger(__name__)

AES_KEY_BYTES = 32
NONCE_BYTES = 12
UNREADABLE_PLACEHOLDER = "Unable to decrypt this message on this device."


class EncryptionError(ValueError):
    """Raised when a message cannot be encrypted."""


class DecryptionError(ValueError):
    """Raised when no candidate private key can open a payload."""


@dataclass(frozen=True)
class EncryptedPair:
    """Both wrapped copies of one message; they share ciphertext and iv."""

    for_sender: dict[str, str]
    for_recipient: dict[str, str]


@dataclass(frozen=True)
class DecryptedMessage:
    text: str
    readable: bool


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: str) -> bytes:
    """Decode standard or url-safe base64, tolerating missing padding."""
    normalized = value.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError("Encrypted payload is not valid base64.") from err


def _oaep(hash_cls: Any) -> padding.OAEP:
    return padding.OAEP(mgf=padding.MGF1(algorithm=hash_cls()), algorithm=hash_cls(), label=None)


def wrap_key(raw_key: bytes, public_jwk: dict[str, Any]) -> bytes:
    """Encrypt ``raw_key`` to ``public_jwk`` using the first usable OAEP hash."""
    try:
        public_key = public_key_from_jwk(public_jwk)
    except KeyFormatError as err:
        raise EncryptionError(str(err)) from err

    last_error: Exception | None = None
    for hash_cls in hash_candidates(public_jwk):
        try:
            return public_key.encrypt(raw_key, _oaep(hash_cls))
        except ValueError as err:
            last_error = err
    raise EncryptionError("Failed to wrap chat key.") from last_error


def unwrap_key(wrapped_key: bytes, private_jwk: dict[str, Any]) -> bytes:
    """Recover a content key, trying each OAEP hash the key may have used."""
    try:
        private_key = private_key_from_jwk(private_jwk)
    except KeyFormatError as err:
        raise DecryptionError(str(err)) from err

    for hash_cls in hash_candidates(private_jwk):
        try:
            return private_key.decrypt(wrapped_key, _oaep(hash_cls))
        except ValueError:
            continue
    raise DecryptionError("Failed to unwrap chat key.")


def encrypt(
    plaintext: str,
    sender_public_jwk: dict[str, Any] | None,
    recipient_public_jwk: dict[str, Any] | None,
) -> EncryptedPair:
    """Encrypt ``plaintext`` once and wrap its key for both participants."""
    if not plaintext:
        raise EncryptionError("Cannot encrypt empty message.")
    if not sender_public_jwk or not recipient_public_jwk:
        raise EncryptionError("Both sender and recipient public keys are required.")

    content_key = AESGCM.generate_key(bit_length=AES_KEY_BYTES * 8)
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = _b64encode(AESGCM(content_key).encrypt(nonce, plaintext.encode("utf-8"), None))
    iv = _b64encode(nonce)

    return EncryptedPair(
        for_sender={
            "ciphertext": ciphertext,
            "iv": iv,
            "wrappedKey": _b64encode(wrap_key(content_key, sender_public_jwk)),
        },
        for_recipient={
            "ciphertext": ciphertext,
            "iv": iv,
            "wrappedKey": _b64encode(wrap_key(content_key, recipient_public_jwk)),
        },
    )


def _normalize_payload(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, str):
        trimmed = payload.strip()
        if not trimmed:
            return {}
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            return {"plaintext": trimmed}
        return parsed if isinstance(parsed, dict) else {"plaintext": trimmed}
    return {}


def _unique_private_keys(private_jwks: Iterable[dict[str, Any] | None]) -> list[dict[str, Any]]:
    candidates: list[dict[str, Any]] = []
    seen: set[str] = set()
    for candidate in private_jwks:
        if not isinstance(candidate, dict):
            continue
        key_id = fingerprint(private_jwk=candidate)
        if key_id in seen:
            continue
        seen.add(key_id)
        candidates.append(candidate)
    return candidates


def decrypt(payload: Any, private_jwks: Iterable[dict[str, Any] | None]) -> str:
    """Open ``payload`` with the first candidate private key that works.

    ``payload`` may be a dict or its JSON text. Legacy payloads carrying a
    ``plaintext`` or ``text`` member are returned as-is.
    """
    normalized = _normalize_payload(payload)
    ciphertext = str(normalized.get("ciphertext") or "").strip()
    iv = str(normalized.get("iv") or "").strip()
    wrapped_key = str(normalized.get("wrappedKey") or "").strip()

    if not ciphertext or not iv or not wrapped_key:
        for legacy_field in ("plaintext", "text"):
            legacy = str(normalized.get(legacy_field) or "")
            if legacy.strip():
                return legacy
        raise DecryptionError("Encrypted payload is missing required fields.")

    candidates = _unique_private_keys(private_jwks)
    if not candidates:
        raise DecryptionError("A private key is required.")

    wrapped_bytes = _b64decode(wrapped_key)
    nonce = _b64decode(iv)
    cipher_bytes = _b64decode(ciphertext)

    for candidate in candidates:
        try:
            content_key = unwrap_key(wrapped_bytes, candidate)
            plaintext = AESGCM(content_key).decrypt(nonce, cipher_bytes, None)
        except (DecryptionError, InvalidTag, ValueError):
            continue
        return plaintext.decode("utf-8")

    raise DecryptionError("Unable to decrypt message payload.")


def decrypt_or_placeholder(payload: Any, private_jwks: Iterable[dict[str, Any] | None]) -> DecryptedMessage:
    """Decrypt for display, degrading a bad payload to a placeholder."""
    try:
        return DecryptedMessage(text=decrypt(payload, private_jwks), readable=True)
    except DecryptionError as err:
        logger.debug("Message could not be decrypted: %s", err)
        return DecryptedMessage(text=UNREADABLE_PLACEHOLDER, readable=False)
