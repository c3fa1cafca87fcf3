# src/remit_chat/client/identity.py
"""Per-user chat identities kept on the client device.

A user may hold several key pairs: the active one is advertised to the
directory, older ones are retained so earlier history stays readable. The
stored list is always rebuilt and rewritten as a whole, active pair first,
capped in length.
"""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from remit_chat.client.cipher import DecryptionError, EncryptionError, unwrap_key, wrap_key
from remit_chat.client.keys import DEFAULT_KEY_SIZE, fingerprint, generate_jwk_pair

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
MAX_STORED_IDENTITIES = 6
DEFAULT_STORE_DIR = "~/.remit_chat/identities"
_SAFE_USER_ID = re.compile(r"[^A-Za-z0-9_.-]")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class KeyPair:
    public_jwk: dict[str, Any]
    private_jwk: dict[str, Any]
    created_at: str = field(default_factory=_now_iso)

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.public_jwk, self.private_jwk)

    @classmethod
    def generate(cls, key_size: int | None = None) -> KeyPair:
        public_jwk, private_jwk = generate_jwk_pair(key_size or DEFAULT_KEY_SIZE)
        return cls(public_jwk=public_jwk, private_jwk=private_jwk)

    @classmethod
    def from_record(cls, record: Any) -> KeyPair | None:
        """Rebuild a pair from its stored form, or None if either half is missing."""
        if not isinstance(record, dict):
            return None
        public_jwk = record.get("publicKeyJwk")
        private_jwk = record.get("privateKeyJwk")
        if not isinstance(public_jwk, dict) or not isinstance(private_jwk, dict):
            return None
        if not public_jwk or not private_jwk:
            return None
        return cls(
            public_jwk=public_jwk,
            private_jwk=private_jwk,
            created_at=str(record.get("createdAt") or _now_iso()),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "publicKeyJwk": self.public_jwk,
            "privateKeyJwk": self.private_jwk,
            "createdAt": self.created_at,
        }

    def self_test(self) -> bool:
        """Return True if the private half opens what the public half wraps."""
        challenge = secrets.token_bytes(CHALLENGE_BYTES)
        try:
            wrapped = wrap_key(challenge, self.public_jwk)
            return secrets.compare_digest(unwrap_key(wrapped, self.private_jwk), challenge)
        except (EncryptionError, DecryptionError):
            return False


@dataclass(frozen=True)
class ChatIdentity:
    """The usable key pairs for one user, active pair first."""

    active: KeyPair
    identities: tuple[KeyPair, ...]

    @property
    def public_jwk(self) -> dict[str, Any]:
        return self.active.public_jwk

    @property
    def private_jwk(self) -> dict[str, Any]:
        return self.active.private_jwk

    @property
    def private_jwks(self) -> list[dict[str, Any]]:
        return [pair.private_jwk for pair in self.identities]


class IdentityStore:
    """Load, validate, rotate and persist chat identities as JSON files."""

    def __init__(
        self,
        storage_dir: str | os.PathLike[str] | None = None,
        *,
        max_stored: int | None = None,
        key_size: int | None = None,
    ) -> None:
        self.storage_dir = Path(storage_dir or DEFAULT_STORE_DIR).expanduser()
        self.max_stored = max_stored or MAX_STORED_IDENTITIES
        self.key_size = key_size or DEFAULT_KEY_SIZE

    def _path(self, user_id: int | str) -> Path:
        cleaned = _SAFE_USER_ID.sub("_", str(user_id).strip())
        if not cleaned:
            raise ValueError("user_id is required")
        return self.storage_dir / f"chat_identity_{cleaned}.json"

    def _read(self, user_id: int | str) -> tuple[str, list[KeyPair]]:
        path = self._path(user_id)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return "", []
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable identity store at %s", path)
            return "", []

        if not isinstance(raw, dict):
            return "", []

        # Older stores held a single pair at the top level.
        if raw.get("publicKeyJwk") and raw.get("privateKeyJwk"):
            legacy = KeyPair.from_record(raw)
            return (legacy.fingerprint, [legacy]) if legacy else ("", [])

        records = raw.get("identities") if isinstance(raw.get("identities"), list) else []
        pairs: list[KeyPair] = []
        seen: set[str] = set()
        for record in records:
            pair = KeyPair.from_record(record)
            if pair is None or pair.fingerprint in seen:
                continue
            seen.add(pair.fingerprint)
            pairs.append(pair)
        return str(raw.get("activeFingerprint") or "").strip(), pairs

    def _order(self, pairs: list[KeyPair], active_fingerprint: str) -> list[KeyPair]:
        if not pairs:
            return []
        active = next((pair for pair in pairs if pair.fingerprint == active_fingerprint), pairs[0])
        ordered = [active, *(pair for pair in pairs if pair.fingerprint != active.fingerprint)]
        return ordered[: self.max_stored]

    def _write(self, user_id: int | str, ordered: list[KeyPair]) -> None:
        path = self._path(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "activeFingerprint": ordered[0].fingerprint,
            "identities": [pair.to_record() for pair in ordered],
            "createdAt": ordered[0].created_at,
        }
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".identity-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load_or_create_identity(self, user_id: int | str) -> ChatIdentity:
        """Return the user's identity, repairing or creating the store as needed."""
        active_fingerprint, stored = self._read(user_id)

        valid = [pair for pair in stored[: self.max_stored * 2] if pair.self_test()]
        if len(valid) != len(stored):
            logger.info("Dropped %d unusable chat key pair(s) for user %s", len(stored) - len(valid), user_id)
        if not valid:
            logger.info("Generating new chat identity for user %s", user_id)
            valid.append(KeyPair.generate(self.key_size))

        ordered = self._order(valid, active_fingerprint)
        self._write(user_id, ordered)
        return ChatIdentity(active=ordered[0], identities=tuple(ordered))

    def rotate(self, user_id: int | str) -> ChatIdentity:
        """Make a freshly generated pair active, keeping older pairs for history."""
        current = self.load_or_create_identity(user_id)
        fresh = KeyPair.generate(self.key_size)
        ordered = self._order([fresh, *current.identities], fresh.fingerprint)
        self._write(user_id, ordered)
        logger.info("Rotated chat identity for user %s", user_id)
        return ChatIdentity(active=ordered[0], identities=tuple(ordered))
