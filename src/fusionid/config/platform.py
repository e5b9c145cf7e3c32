"""Identity platform and notification endpoint configuration."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_var, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig

PLATFORM_URL_ENV = "FUSIONID_PLATFORM_URL"
PLATFORM_TOKEN_ENV = "FUSIONID_PLATFORM_TOKEN"
SOURCE_ID_ENV = "FUSIONID_SOURCE_ID"
NOTIFY_URL_ENV = "FUSIONID_NOTIFY_URL"

PLATFORM_TIMEOUT_SECONDS = 20.0
NOTIFY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class PlatformConfig:
    """Holds the platform API endpoint used for state patches, reviews and correlation."""

    base_url: str
    token: str
    source_id: str
    resilience: ResilienceConfig


@dataclass(frozen=True)
class NotificationConfig:
    """Holds the webhook endpoint used to notify reviewers."""

    url: str
    resilience: ResilienceConfig


def get_platform_config(*, resilience: ResilienceConfig | None = None) -> PlatformConfig:
    values = require_env_vars((PLATFORM_URL_ENV, PLATFORM_TOKEN_ENV, SOURCE_ID_ENV))
    base_url = values[PLATFORM_URL_ENV].rstrip("/")
    return PlatformConfig(
        base_url=base_url,
        token=values[PLATFORM_TOKEN_ENV],
        source_id=values[SOURCE_ID_ENV],
        resilience=resilience
        or ResilienceConfig(
            name="platform",
            base_url=base_url,
            timeout_seconds=PLATFORM_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers={"Authorization": f"Bearer {values[PLATFORM_TOKEN_ENV]}"},
        ),
    )


def get_notification_config() -> NotificationConfig | None:
    url = optional_env_var(NOTIFY_URL_ENV)
    if url is None:
        return None
    return NotificationConfig(
        url=url,
        resilience=ResilienceConfig(name="notifications", timeout_seconds=NOTIFY_TIMEOUT_SECONDS),
    )
