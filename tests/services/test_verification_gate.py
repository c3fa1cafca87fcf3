# tests/services/test_verification_gate.py
"""Tests for payment verification codes."""

from datetime import timedelta

import pytest

from remit_chat.db.time import utcnow
from remit_chat.services.errors import ChatNotFoundError, NotificationError, VerificationCodeError
from remit_chat.services.verification import (
    VerificationCodeGate,
    generate_code,
    mask_email,
    mask_phone,
    normalize_channel,
)


class FrozenClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def gate(db_session, fake_notifier, clock):
    return VerificationCodeGate(db_session, fake_notifier, clock=clock)


class TestIssue:
    @pytest.mark.asyncio
    async def test_issue_by_email(self, gate, fake_notifier, db_session, bob):
        issued = await gate.issue(bob.id)

        assert issued.channel == "email"
        assert issued.destination == "b***@example.com"
        assert issued.expires_in_seconds == 300
        destination, channel, code = fake_notifier.sent[-1]
        assert (destination, channel) == ("bob@example.com", "email")
        assert len(code) == 6 and code.isdigit()

        db_session.refresh(bob)
        assert bob.payment_code == code
        assert bob.payment_code_channel == "email"

    @pytest.mark.asyncio
    async def test_issue_by_phone(self, gate, fake_notifier, bob):
        issued = await gate.issue(bob.id, " PHONE ")

        assert issued.channel == "phone"
        assert issued.destination == "+*******4567"
        assert fake_notifier.sent[-1][:2] == ("+15551234567", "phone")

    @pytest.mark.asyncio
    async def test_missing_phone(self, gate, user_factory):
        user = user_factory(phone_number=None)
        with pytest.raises(VerificationCodeError, match="No phone number"):
            await gate.issue(user.id, "phone")

    @pytest.mark.asyncio
    async def test_missing_email(self, gate, user_factory):
        user = user_factory(email=None)
        with pytest.raises(VerificationCodeError, match="No email"):
            await gate.issue(user.id, "email")

    @pytest.mark.asyncio
    async def test_unknown_user(self, gate):
        with pytest.raises(ChatNotFoundError):
            await gate.issue(987_654)

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_previous_code(self, gate, fake_notifier, db_session, bob):
        """A code is only stored once it has actually been sent."""
        await gate.issue(bob.id)
        previous = fake_notifier.last_code

        fake_notifier.fail = True
        with pytest.raises(NotificationError):
            await gate.issue(bob.id)

        db_session.refresh(bob)
        assert bob.payment_code == previous

    @pytest.mark.asyncio
    async def test_reissue_replaces_code(self, gate, bob, mocker):
        mocker.patch("remit_chat.services.verification.secrets.randbelow", side_effect=[111111, 222222])
        await gate.issue(bob.id)
        await gate.issue(bob.id)

        with pytest.raises(VerificationCodeError, match="Invalid"):
            gate.consume(bob.id, "111111")
        gate.consume(bob.id, "222222")


class TestConsume:
    @pytest.mark.asyncio
    async def test_matching_code_is_single_use(self, gate, fake_notifier, db_session, bob):
        await gate.issue(bob.id)
        code = fake_notifier.last_code

        gate.consume(bob.id, f" {code} ")

        db_session.refresh(bob)
        assert bob.payment_code is None
        with pytest.raises(VerificationCodeError, match="No active"):
            gate.consume(bob.id, code)

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_blank_code(self, gate, bob, code):
        with pytest.raises(VerificationCodeError, match="verificationCode is required"):
            gate.consume(bob.id, code)

    def test_no_outstanding_code(self, gate, bob):
        with pytest.raises(VerificationCodeError, match="No active"):
            gate.consume(bob.id, "123456")

    @pytest.mark.asyncio
    async def test_expired_code_is_cleared(self, gate, fake_notifier, clock, db_session, bob):
        await gate.issue(bob.id)
        code = fake_notifier.last_code
        clock.advance(301)

        with pytest.raises(VerificationCodeError, match="expired"):
            gate.consume(bob.id, code)

        db_session.refresh(bob)
        assert bob.payment_code is None

    @pytest.mark.asyncio
    async def test_code_valid_until_expiry(self, gate, fake_notifier, clock, bob):
        await gate.issue(bob.id)
        clock.advance(299)
        gate.consume(bob.id, fake_notifier.last_code)

    @pytest.mark.asyncio
    async def test_wrong_code_keeps_outstanding_code(self, gate, fake_notifier, bob):
        await gate.issue(bob.id)
        code = fake_notifier.last_code
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(VerificationCodeError, match="Invalid"):
            gate.consume(bob.id, wrong)
        gate.consume(bob.id, code)


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, "email"), ("", "email"), ("sms", "email"), ("Phone", "phone"), ("email", "email")],
    )
    def test_normalize_channel(self, value, expected):
        assert normalize_channel(value) == expected

    def test_mask_email(self):
        assert mask_email("alice@example.com") == "a***@example.com"
        assert mask_email("not-an-email") == "not-an-email"

    def test_mask_phone(self):
        assert mask_phone("+1 (555) 123-4567") == "+*******4567"
        assert mask_phone("1234") == "+1234"
        assert mask_phone("n/a") == ""

    def test_generate_code_is_zero_padded(self, mocker):
        mocker.patch("remit_chat.services.verification.secrets.randbelow", return_value=42)
        assert generate_code(6) == "000042"
