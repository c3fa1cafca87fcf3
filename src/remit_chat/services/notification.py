"""Notification collaborator used to deliver payment verification codes."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from remit_chat.core.settings import settings
from remit_chat.services.errors import NotificationError

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_PHONE = "phone"


class Notifier(Protocol):
    """Contract consumed by the verification code gate."""

    async def send(self, destination: str, channel: str, code: str) -> None: ...


class LoggingNotifier:
    """Development notifier that writes codes to the log instead of sending them."""

    async def send(self, destination: str, channel: str, code: str) -> None:
        logger.warning("Payment verification code for %s via %s: %s", destination, channel, code)


class HttpNotifier:
    """Deliver codes through the messaging gateway over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def send(self, destination: str, channel: str, code: str) -> None:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        path = "/sms" if channel == CHANNEL_PHONE else "/email"
        body = {
            "to": destination,
            "template": "payment_code",
            "variables": {"code": code},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=body)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Failed to deliver verification code: {exc}") from exc


def get_notifier() -> Notifier:
    """Return the configured notifier (logging only when no gateway is set)."""
    if settings.notification_base_url:
        return HttpNotifier(
            settings.notification_base_url,
            api_key=settings.notification_api_key,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LoggingNotifier()
