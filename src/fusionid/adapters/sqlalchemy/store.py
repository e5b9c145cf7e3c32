"""SQLAlchemy-backed persistence of counters and run flags."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from fusionid.config.storage import get_database_config
from fusionid.domain.ports.persistence import FUSION_STATE_PATH, StateStore

from .mappings import ConfigEntry, create_all_tables, start_mappers

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

PATCH_OPERATIONS: Final[frozenset[str]] = frozenset({"add", "replace", "remove"})


class StartupError(RuntimeError):
    """Raised when the state store is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call fusionid.adapters.sqlalchemy."
                "store.startup() before opening the state store."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, metadata, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    start_mappers()
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyStateStore:
    """``StateStore`` keeping each patched path as one row.

    Calls run synchronously on the event loop thread; the store is touched
    once or twice per run.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory or _STATE.session_factory

    async def load_counters(self) -> dict[str, int]:
        value = self.get_value(FUSION_STATE_PATH)
        if not isinstance(value, dict):
            return {}
        counters: dict[str, int] = {}
        for key, number in value.items():
            if isinstance(number, int) and not isinstance(number, bool):
                counters[str(key)] = number
            else:
                log.warning("Ignoring non-integer counter %s=%r", key, number)
        return counters

    async def patch_config(self, path: str, value: object, *, op: str = "add") -> None:
        if op not in PATCH_OPERATIONS:
            raise ValueError(f"Unsupported patch operation: {op}")
        with self.session_factory() as session:
            entry = session.get(ConfigEntry, path)
            if op == "remove":
                if entry is not None:
                    session.delete(entry)
            elif entry is None:
                if op == "replace":
                    raise KeyError(path)
                session.add(ConfigEntry(path=path, value=value))
            else:
                entry.value = value
                entry.updated_at = datetime.now(UTC)
            session.commit()
        log.debug("Patched %s (%s)", path, op)

    def get_value(self, path: str) -> object:
        with self.session_factory() as session:
            entry = session.get(ConfigEntry, path)
            return None if entry is None else entry.value

    def paths(self) -> list[str]:
        with self.session_factory() as session:
            stmt = select(ConfigEntry.path).order_by(ConfigEntry.path)  # pyright: ignore[reportArgumentType]
            return list(session.execute(stmt).scalars())


if TYPE_CHECKING:
    _store_check: StateStore = SqlAlchemyStateStore()
