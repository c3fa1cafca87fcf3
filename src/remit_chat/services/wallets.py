"""Wallet Directory collaborator."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from remit_chat.models import Wallet


def normalize_address(value: str | None) -> str:
    """Return a trimmed, lower-cased address ("" for missing input)."""
    return (value or "").strip().lower()


class WalletLookup(Protocol):
    """Contract consumed by the message log and payment saga."""

    def get_verified_wallet(self, user_id: int) -> str | None: ...


class WalletDirectory:
    """Resolve a user's verified wallet address."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_verified_wallet(self, user_id: int) -> str | None:
        """Return the newest verified address for ``user_id`` or None."""
        stmt = (
            select(Wallet.address)
            .where(Wallet.user_id == user_id, Wallet.is_verified.is_(True))
            .order_by(Wallet.created_at.desc(), Wallet.id.desc())
            .limit(1)
        )
        address = self._db.execute(stmt).scalar_one_or_none()
        return normalize_address(address) or None
