from __future__ import annotations

from .batching import gather_batched
from .locks import KeyedLockManager
from .logging import configure_logging

__all__ = [
    "KeyedLockManager",
    "configure_logging",
    "gather_batched",
]
