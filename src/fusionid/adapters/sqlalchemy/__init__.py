"""SQLAlchemy adapter package for fusionid."""

from __future__ import annotations

from .mappings import ConfigEntry, create_all_tables, mapper_registry, start_mappers
from .store import SqlAlchemyStateStore, StartupError, is_started, shutdown, startup

__all__ = [
    "ConfigEntry",
    "SqlAlchemyStateStore",
    "StartupError",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
