"""Public interface for the identity platform adapter."""

from __future__ import annotations

from .client import PlatformAPIError, PlatformClient
from .notifications import WebhookNotifier
from .schema import ReviewCreatedResponse, ReviewRequest, SourceResponse

__all__ = [
    "PlatformAPIError",
    "PlatformClient",
    "ReviewCreatedResponse",
    "ReviewRequest",
    "SourceResponse",
    "WebhookNotifier",
]
