"""Single-use payment verification codes delivered out of band."""

from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from remit_chat.core.settings import settings
from remit_chat.db.time import as_utc, utcnow
from remit_chat.models import User
from remit_chat.services.errors import ChatNotFoundError, VerificationCodeError
from remit_chat.services.notification import CHANNEL_EMAIL, CHANNEL_PHONE, Notifier

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_channel(value: str | None) -> str:
    """Return ``phone`` for the phone channel and ``email`` for anything else."""
    return CHANNEL_PHONE if (value or "").strip().lower() == CHANNEL_PHONE else CHANNEL_EMAIL


def mask_email(email: str) -> str:
    name, _, domain = email.strip().partition("@")
    if not name or not domain:
        return email.strip()
    return f"{name[0]}***@{domain}"


def mask_phone(phone_number: str) -> str:
    digits = _NON_DIGITS.sub("", phone_number or "")
    if not digits:
        return ""
    if len(digits) <= 4:
        return f"+{digits}"
    return "+" + "*" * (len(digits) - 4) + digits[-4:]


def generate_code(digits: int | None = None) -> str:
    """Return a zero-padded numeric code from a CSPRNG."""
    length = digits or settings.payment_code_digits
    return f"{secrets.randbelow(10**length):0{length}d}"


@dataclass(frozen=True)
class IssuedCode:
    channel: str
    destination: str
    expires_in_seconds: int


class VerificationCodeGate:
    """Issue and consume the per-user payment verification code.

    At most one code is outstanding per user; issuing replaces it and
    consuming a matching code clears it.
    """

    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._clock = clock

    def _load_user(self, user_id: int) -> User:
        user = self._db.get(User, user_id, populate_existing=True)
        if user is None:
            raise ChatNotFoundError("User not found.")
        return user

    async def issue(self, user_id: int, channel: str | None = None) -> IssuedCode:
        """Generate a code, deliver it, then store it with its expiry."""
        user = self._load_user(user_id)
        resolved_channel = normalize_channel(channel)

        if resolved_channel == CHANNEL_PHONE:
            destination = (user.phone_number or "").strip()
            if not destination:
                raise VerificationCodeError("No phone number found for this account.")
            masked = mask_phone(destination)
        else:
            destination = (user.email or "").strip()
            if not destination:
                raise VerificationCodeError("No email found for this account.")
            masked = mask_email(destination)

        code = generate_code()
        ttl = settings.payment_code_ttl_seconds
        # Delivery failure propagates and leaves any previous code untouched.
        await self._notifier.send(destination, resolved_channel, code)

        user.payment_code = code
        user.payment_code_expires_at = self._clock() + timedelta(seconds=ttl)
        user.payment_code_channel = resolved_channel
        self._db.commit()
        logger.info("Issued payment code for user %s via %s", user_id, resolved_channel)
        return IssuedCode(channel=resolved_channel, destination=masked, expires_in_seconds=ttl)

    def consume(self, user_id: int, code: str | None) -> None:
        """Validate ``code`` and clear it; raises VerificationCodeError otherwise."""
        submitted = (code or "").strip()
        if not submitted:
            raise VerificationCodeError("verificationCode is required.")

        user = self._load_user(user_id)
        if not user.payment_code or user.payment_code_expires_at is None:
            raise VerificationCodeError("No active payment verification code.")

        if self._clock() > as_utc(user.payment_code_expires_at):
            user.clear_payment_code()
            self._db.commit()
            raise VerificationCodeError("Payment verification code expired.")

        if not secrets.compare_digest(user.payment_code.encode(), submitted.encode()):
            raise VerificationCodeError("Invalid payment verification code.")

        # Conditional clear so a code can only be spent once across sessions.
        result = self._db.execute(
            update(User)
            .where(User.id == user_id, User.payment_code == user.payment_code)
            .values(payment_code=None, payment_code_expires_at=None, payment_code_channel=None)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        if result.rowcount != 1:
            raise VerificationCodeError("No active payment verification code.")
        self._db.expire(user)
