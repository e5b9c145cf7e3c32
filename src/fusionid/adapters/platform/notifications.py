"""Webhook notifier used to tell reviewers about new reviews."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from fusionid.adapters.http_resilience import ResilientClient

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from fusionid.config.platform import NotificationConfig
    from fusionid.domain.ports.notification import Notifier

log = getLogger(__name__)


class WebhookNotifier:
    """Posts ``{subject, message, recipients}`` to a webhook; delivery is best effort."""

    def __init__(self, config: NotificationConfig, *, http: ResilientClient | None = None) -> None:
        self.config = config
        self._http = http or ResilientClient(config.resilience)

    async def __aenter__(self) -> WebhookNotifier:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def notify(self, *, subject: str, message: str, recipients: Sequence[str]) -> None:
        if not recipients:
            log.debug("No recipients for notification %r", subject)
            return
        try:
            response = await self._http.post(
                self.config.url,
                json={"subject": subject, "message": message, "recipients": list(recipients)},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("Failed to deliver notification %r: %s", subject, exc)
            return
        log.debug("Delivered notification %r to %s recipient(s)", subject, len(recipients))


if TYPE_CHECKING:

    def _port_check(notifier: WebhookNotifier) -> Notifier:
        return notifier
