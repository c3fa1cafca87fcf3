"""Public-key directory for end-to-end encrypted chat."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from remit_chat.models import ChatKey
from remit_chat.services.contacts import ContactsProvider
from remit_chat.services.errors import (
    ChatAuthorizationError,
    ChatNotFoundError,
    ChatValidationError,
)

logger = logging.getLogger(__name__)

_PRIVATE_JWK_MEMBERS = frozenset({"d", "p", "q", "dp", "dq", "qi", "oth"})
_MAX_JWK_MEMBER_LENGTH = 4096


def validate_public_jwk(public_jwk: Any) -> dict[str, Any]:
    """Return a cleaned copy of a public JWK or raise ChatValidationError."""
    if not isinstance(public_jwk, dict) or not public_jwk:
        raise ChatValidationError("publicKeyJwk is required.")
    if not public_jwk.get("kty"):
        raise ChatValidationError("publicKeyJwk is invalid.")
    if _PRIVATE_JWK_MEMBERS & public_jwk.keys():
        raise ChatValidationError("publicKeyJwk must not contain private key material.")
    if public_jwk["kty"] == "RSA" and not (public_jwk.get("n") and public_jwk.get("e")):
        raise ChatValidationError("publicKeyJwk is invalid.")
    for value in public_jwk.values():
        if isinstance(value, str) and len(value) > _MAX_JWK_MEMBER_LENGTH:
            raise ChatValidationError("publicKeyJwk is too large.")
    return dict(public_jwk)


class KeyDirectoryService:
    """Map users to the single public key they currently advertise."""

    def __init__(self, db: Session, contacts: ContactsProvider) -> None:
        self._db = db
        self._contacts = contacts

    def _get(self, user_id: int) -> ChatKey | None:
        return self._db.execute(
            select(ChatKey).where(ChatKey.user_id == user_id)
        ).scalar_one_or_none()

    def publish_key(self, user_id: int, public_jwk: Any) -> ChatKey:
        """Upsert ``user_id``'s public key, replacing any previous one."""
        cleaned = validate_public_jwk(public_jwk)
        key = self._get(user_id)
        if key is None:
            key = ChatKey(user_id=user_id, public_key_jwk=cleaned)
            self._db.add(key)
            try:
                self._db.commit()
            except IntegrityError:
                # A concurrent publish created the row first; overwrite it.
                self._db.rollback()
                key = self._get(user_id)
                if key is None:  # pragma: no cover - row vanished between calls
                    raise
                key.public_key_jwk = cleaned
                self._db.commit()
        else:
            key.public_key_jwk = cleaned
            self._db.commit()
        self._db.refresh(key)
        logger.info("Published chat key for user %s", user_id)
        return key

    def lookup_key(self, requester_id: int, target_id: int) -> dict[str, Any]:
        """Return ``target_id``'s public JWK if ``requester_id`` may see it."""
        if requester_id != target_id and not self._contacts.is_mutual_contact(requester_id, target_id):
            raise ChatAuthorizationError("Encrypted chat is only available with saved contacts.")

        key = self._get(target_id)
        if key is None:
            raise ChatNotFoundError("Recipient has not enabled encrypted chat yet.")
        return dict(key.public_key_jwk)

    def has_key(self, user_id: int) -> bool:
        return self._get(user_id) is not None
