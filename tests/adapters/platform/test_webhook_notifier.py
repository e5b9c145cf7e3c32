from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import httpx
import pytest  # noqa: TC002

from fusionid.adapters.http_resilience import ResilienceConfig, ResilientClient
from fusionid.adapters.platform import WebhookNotifier
from fusionid.config import NotificationConfig, get_notification_config

if TYPE_CHECKING:
    from collections.abc import Callable

WEBHOOK_URL = "https://hooks.example/fusion"


def _notifier(handler: Callable[[httpx.Request], httpx.Response]) -> WebhookNotifier:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    resilience = ResilienceConfig(name="notifications")
    http = ResilientClient(resilience)
    http._client = httpx.AsyncClient(transport=httpx.MockTransport(async_handler))  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    return WebhookNotifier(NotificationConfig(url=WEBHOOK_URL, resilience=resilience), http=http)


def test_notification_is_posted_to_webhook() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    asyncio.run(
        _notifier(handler).notify(
            subject="Review required", message="Please review", recipients=["rita@example.com"]
        )
    )

    assert str(requests[0].url) == WEBHOOK_URL
    assert json.loads(requests[0].content) == {
        "subject": "Review required",
        "message": "Please review",
        "recipients": ["rita@example.com"],
    }


def test_empty_recipients_send_nothing() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    asyncio.run(_notifier(handler).notify(subject="s", message="m", recipients=[]))

    assert requests == []


def test_delivery_failure_is_not_raised() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    asyncio.run(_notifier(handler).notify(subject="s", message="m", recipients=["a@example.com"]))


def test_notification_config_is_optional(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FUSIONID_NOTIFY_URL", raising=False)
    assert get_notification_config() is None

    monkeypatch.setenv("FUSIONID_NOTIFY_URL", WEBHOOK_URL)
    config = get_notification_config()
    assert config is not None
    assert config.url == WEBHOOK_URL
