"""Domain port definitions for adapters."""

from __future__ import annotations

from .notification import Notifier
from .persistence import FUSION_STATE_PATH, RESET_FLAG_PATH, StateStore
from .records import RecordSource
from .reviews import DirectoryCorrelator, ReviewRequester
from .scoring import Scorer
from .templating import TemplateRenderer

__all__ = [
    "FUSION_STATE_PATH",
    "RESET_FLAG_PATH",
    "DirectoryCorrelator",
    "Notifier",
    "RecordSource",
    "ReviewRequester",
    "Scorer",
    "StateStore",
    "TemplateRenderer",
]
