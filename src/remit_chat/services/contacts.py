"""Contacts collaborator: who may exchange keys and open threads."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from remit_chat.models import Contact, User


class ContactsProvider(Protocol):
    """Contract consumed by the directory and thread store."""

    def is_mutual_contact(self, user_a: int, user_b: int) -> bool: ...


class ContactsService:
    """Mutual-contact check over saved contact rows.

    Two users are mutual contacts when each has saved the other and neither
    account is disabled.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def _has_saved(self, owner_id: int, peer_id: int) -> bool:
        stmt = (
            select(Contact.id)
            .join(User, User.id == Contact.peer_id)
            .where(
                Contact.owner_id == owner_id,
                Contact.peer_id == peer_id,
                User.is_disabled.is_(False),
            )
            .limit(1)
        )
        return self._db.execute(stmt).first() is not None

    def is_mutual_contact(self, user_a: int, user_b: int) -> bool:
        if user_a == user_b:
            return False
        return self._has_saved(user_a, user_b) and self._has_saved(user_b, user_a)
