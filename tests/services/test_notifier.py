# tests/services/test_notifier.py
"""Tests for verification-code delivery."""

import json
import logging

import httpx
import pytest

from remit_chat.services.errors import NotificationError
from remit_chat.services.notification import HttpNotifier, LoggingNotifier, get_notifier


@pytest.mark.asyncio
async def test_http_notifier_routes_by_channel():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    notifier = HttpNotifier("https://notify.test", api_key="abc", transport=httpx.MockTransport(handler))
    await notifier.send("+15550001111", "phone", "123456")
    await notifier.send("a@example.com", "email", "654321")

    assert [r.url.path for r in requests] == ["/sms", "/email"]
    assert requests[0].headers["Authorization"] == "Bearer abc"
    assert json.loads(requests[1].content) == {
        "to": "a@example.com",
        "template": "payment_code",
        "variables": {"code": "654321"},
    }


@pytest.mark.asyncio
async def test_http_notifier_failure_raises():
    notifier = HttpNotifier(
        "https://notify.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    with pytest.raises(NotificationError):
        await notifier.send("a@example.com", "email", "123456")


@pytest.mark.asyncio
async def test_logging_notifier_logs_code(caplog):
    with caplog.at_level(logging.WARNING):
        await LoggingNotifier().send("a@example.com", "email", "123456")
    assert "123456" in caplog.text


def test_get_notifier_defaults_to_logging(mocker):
    mocker.patch("remit_chat.services.notification.settings.notification_base_url", None)
    assert isinstance(get_notifier(), LoggingNotifier)


def test_get_notifier_uses_gateway_when_configured(mocker):
    mocker.patch("remit_chat.services.notification.settings.notification_base_url", "https://notify.test")
    assert isinstance(get_notifier(), HttpNotifier)
