"""Attribute mapping and generation for fusion records.

Responsibilities:

- collapse per-source attribute sets into the current layer (``map_attributes``)
- pass 1: evaluate templated attributes (``refresh_non_unique``)
- pass 2: evaluate uniqueness-enforced attributes under per-attribute locks
  (``refresh_unique``), registering every value handed out
- keep the unique-value registry in sync with records carried over from the
  previous run (``register_unique`` / ``unregister_unique``)
- seed and persist the incrementing counters
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from fusionid.domain.errors import UniqueValueExhaustedError
from fusionid.domain.model.enums import AttributeKind, CaseStyle, RecordVariant
from fusionid.domain.ports.persistence import FUSION_STATE_PATH

from .counters import CounterStore
from .definitions import COUNTER_VARIABLE, DEFAULT_MAX_ATTEMPTS, UUID_VARIABLE, MappingConfig
from .formatting import normalize, pad_number, remove_spaces, switch_case, truncate
from .mapping import apply_mapping_rule
from .registry import UniqueValueRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from fusionid.common.locks import KeyedLockManager
    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.inputs import Attributes
    from fusionid.domain.ports.persistence import StateStore
    from fusionid.domain.ports.templating import TemplateRenderer

    from .definitions import AttributeDefinition, MappingRule

log = logging.getLogger(__name__)

COLLECTION_ATTRIBUTES = frozenset(
    {"accounts", "missing-accounts", "statuses", "actions", "reviews", "sources", "history"}
)


def _is_present(value: object) -> bool:
    return value is not None and value != ""


def _new_uuid() -> str:
    return str(uuid4())


class AttributeGenerator:
    def __init__(
        self,
        *,
        definitions: Sequence[AttributeDefinition],
        renderer: TemplateRenderer,
        locks: KeyedLockManager,
        counters: CounterStore | None = None,
        registry: UniqueValueRegistry | None = None,
        mapping: MappingConfig | None = None,
        identity_attribute: str = "id",
        display_attribute: str = "name",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        force_refresh: bool = False,
        uuid_factory: Callable[[], str] = _new_uuid,
    ) -> None:
        self._definitions = tuple(definitions)
        self._renderer = renderer
        self._locks = locks
        self._counters = counters or CounterStore(locks)
        self._registry = registry or UniqueValueRegistry()
        self._mapping = mapping or MappingConfig()
        self._identity_attribute = identity_attribute
        self._display_attribute = display_attribute
        self._max_attempts = max_attempts
        self._force_refresh = force_refresh
        self._uuid_factory = uuid_factory
        self._rules: dict[str, MappingRule] = {}

    @property
    def definitions(self) -> tuple[AttributeDefinition, ...]:
        return self._definitions

    @property
    def non_unique_definitions(self) -> tuple[AttributeDefinition, ...]:
        return tuple(definition for definition in self._definitions if not definition.is_unique)

    @property
    def unique_definitions(self) -> tuple[AttributeDefinition, ...]:
        return tuple(definition for definition in self._definitions if definition.is_unique)

    @property
    def counters(self) -> CounterStore:
        return self._counters

    @property
    def registry(self) -> UniqueValueRegistry:
        return self._registry

    @property
    def identity_attribute(self) -> str:
        return self._identity_attribute

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def map_attributes(self, record: FusionRecord) -> None:
        """Merge the record's contributing accounts into its current attributes."""

        if record.variant is RecordVariant.IDENTITY:
            return
        if not (record.needs_refresh or self._force_refresh):
            return
        by_source = record.bag.by_source
        if not by_source:
            return

        order = self._source_order(by_source)
        for attribute in self._schema_attributes(by_source):
            if attribute in COLLECTION_ATTRIBUTES:
                continue
            value = apply_mapping_rule(self._rule_for(attribute), by_source, order)
            if value is not None:
                record.set_attribute(attribute, value)

    def _rule_for(self, attribute: str) -> MappingRule:
        rule = self._rules.get(attribute)
        if rule is None:
            rule = self._rules[attribute] = self._mapping.rule_for(attribute)
        return rule

    def _schema_attributes(self, by_source: Mapping[str, Sequence[Attributes]]) -> list[str]:
        if self._mapping.schema_attributes:
            return list(self._mapping.schema_attributes)
        names: dict[str, None] = {}
        for attribute_map in self._mapping.attribute_maps:
            names[attribute_map.new_attribute] = None
        for accounts in by_source.values():
            for account in accounts:
                names.update(dict.fromkeys(account))
        return sorted(names)

    def _source_order(self, by_source: Mapping[str, Sequence[Attributes]]) -> list[str]:
        configured = list(self._mapping.source_order)
        extra = sorted(source for source in by_source if source not in configured)
        return [*configured, *extra]

    # ------------------------------------------------------------------
    # Generation passes
    # ------------------------------------------------------------------

    def build_context(self, record: FusionRecord) -> dict[str, object]:
        bag = record.bag
        context: dict[str, object] = dict(record.attributes)
        context["identity"] = bag.identity
        context["accounts"] = bag.accounts
        context["previous"] = bag.previous
        context["sources"] = bag.by_source
        return context

    async def refresh_non_unique(self, record: FusionRecord) -> None:
        if not (record.needs_refresh or self._force_refresh):
            return
        log.debug("Refreshing non-unique attributes for %s", record)
        await self._refresh(record, self.non_unique_definitions)

    async def refresh_unique(self, record: FusionRecord) -> None:
        """Generate every missing uniqueness-enforced attribute of ``record``."""

        await self._refresh(record, self.unique_definitions)

    async def refresh_all(self, record: FusionRecord) -> None:
        if record.needs_reset:
            await self.reset_attributes(record)
        await self.refresh_non_unique(record)
        await self.refresh_unique(record)

    async def reset_attributes(self, record: FusionRecord) -> None:
        """Drop every generated attribute so the next passes start from scratch.

        Values carried over from the previous run are released from the registry
        first; raw source values of freshly seeded records were never registered.
        """

        if record.variant is RecordVariant.FUSION:
            await self.unregister_unique(record)
        for definition in self._definitions:
            record.remove_attribute(definition.name)
        record.set_needs_reset(False)

    async def _refresh(
        self,
        record: FusionRecord,
        definitions: Iterable[AttributeDefinition],
    ) -> None:
        context = self.build_context(record)
        for definition in definitions:
            try:
                await self._generate_attribute(definition, record, context)
            except Exception:
                if definition.is_unique:
                    log.error("Error generating attribute %s for %s", definition.name, record)
                    raise
                log.exception("Error generating attribute %s for %s", definition.name, record)

    async def _generate_attribute(
        self,
        definition: AttributeDefinition,
        record: FusionRecord,
        context: dict[str, object],
    ) -> None:
        name = definition.name
        locked = self._locked_value(definition, record)
        if locked is not None:
            record.set_attribute(name, locked)
            context[name] = locked
            return

        present = _is_present(record.attributes.get(name))
        if present and (definition.is_unique or not (definition.refresh or self._force_refresh)):
            return

        value = await self._generate_by_kind(definition, context)
        if value is not None:
            record.set_attribute(name, value)
            context[name] = value

    def _locked_value(self, definition: AttributeDefinition, record: FusionRecord) -> str | None:
        name = definition.name
        if name == self._identity_attribute and record.key:
            current = record.attributes.get(name)
            return str(current) if _is_present(current) else record.key
        if name == self._display_attribute and record.identity_key and record.name:
            return record.name
        return None

    async def _generate_by_kind(
        self,
        definition: AttributeDefinition,
        context: dict[str, object],
    ) -> str | None:
        if definition.kind is AttributeKind.UNIQUE:
            return await self._generate_unique(definition, context)
        if definition.kind is AttributeKind.COUNTER:
            return await self._generate_counter(definition, context)
        if definition.kind is AttributeKind.UUID:
            return await self._generate_uuid(definition, context)
        return self._render(definition, context)

    def _render(
        self,
        definition: AttributeDefinition,
        context: dict[str, object],
        *,
        counter: str = "",
    ) -> str | None:
        if not definition.expression:
            log.error("Expression is required for attribute %s", definition.name)
            return None

        context[COUNTER_VARIABLE] = counter
        value = self._renderer.render(definition.expression, context)
        if not value:
            log.error("Failed to evaluate template for attribute %s", definition.name)
            return None

        value = value.strip()
        if definition.case is not CaseStyle.SAME:
            value = switch_case(value, definition.case)
        if definition.spaces:
            value = remove_spaces(value)
        if definition.normalize:
            value = normalize(value)
        if definition.max_length is not None:
            value = truncate(value, definition.max_length, counter=counter)
        log.debug("Rendered attribute %s: %s", definition.name, value)
        return value or None

    async def _generate_unique(
        self,
        definition: AttributeDefinition,
        context: dict[str, object],
    ) -> str | None:
        fresh_token = definition.references(UUID_VARIABLE)
        if not fresh_token:
            definition = definition.with_counter()

        async with self._locks.lock(definition.lock_key):
            next_counter = CounterStore.transient()
            counter = ""
            for attempt in range(1, self._max_attempts + 1):
                if fresh_token:
                    context[UUID_VARIABLE] = self._uuid_factory()
                value = self._render(definition, context, counter=counter)
                if value is None:
                    return None
                if self._registry.register(definition.name, value):
                    log.debug("Registered unique value for %s: %s", definition.name, value)
                    return value
                log.debug(
                    "Value %s already exists for %s, retrying (attempt %s)",
                    value,
                    definition.name,
                    attempt,
                )
                if not fresh_token:
                    counter = pad_number(next_counter(), definition.digits)
        raise UniqueValueExhaustedError(attribute=definition.name, attempts=self._max_attempts)

    async def _generate_counter(
        self,
        definition: AttributeDefinition,
        context: dict[str, object],
    ) -> str | None:
        definition = definition.with_counter()
        async with self._locks.lock(definition.lock_key):
            for attempt in range(1, self._max_attempts + 1):
                number = await self._counters.next_value(definition.name)
                value = self._render(
                    definition, context, counter=pad_number(number, definition.digits)
                )
                if value is None:
                    return None
                if self._registry.register(definition.name, value):
                    log.debug("Registered counter value for %s: %s", definition.name, value)
                    return value
                log.debug(
                    "Counter value %s already taken for %s (attempt %s)",
                    value,
                    definition.name,
                    attempt,
                )
        raise UniqueValueExhaustedError(attribute=definition.name, attempts=self._max_attempts)

    async def _generate_uuid(
        self,
        definition: AttributeDefinition,
        context: dict[str, object],
    ) -> str | None:
        async with self._locks.lock(definition.lock_key):
            for attempt in range(1, self._max_attempts + 1):
                token = self._uuid_factory()
                if definition.expression:
                    context[UUID_VARIABLE] = token
                    value = self._render(definition, context)
                    if value is None:
                        return None
                else:
                    value = token
                if self._registry.register(definition.name, value):
                    return value
                log.debug("UUID collision for %s (attempt %s): %s", definition.name, attempt, value)
        raise UniqueValueExhaustedError(attribute=definition.name, attempts=self._max_attempts)

    # ------------------------------------------------------------------
    # Registry maintenance
    # ------------------------------------------------------------------

    async def register_unique(self, record: FusionRecord) -> None:
        """Reserve the unique values ``record`` already carries."""

        for definition in self.unique_definitions:
            value = record.attributes.get(definition.name)
            if not _is_present(value):
                continue
            async with self._locks.lock(definition.lock_key):
                if not self._registry.register(definition.name, str(value)):
                    log.warning(
                        "Unique value %r of %s is held by more than one record (%s)",
                        value,
                        definition.name,
                        record,
                    )

    async def unregister_unique(self, record: FusionRecord) -> None:
        for definition in self.unique_definitions:
            value = record.attributes.get(definition.name)
            if not _is_present(value):
                continue
            async with self._locks.lock(definition.lock_key):
                self._registry.unregister(definition.name, str(value))

    # ------------------------------------------------------------------
    # Counter state
    # ------------------------------------------------------------------

    async def initialize_counters(self) -> None:
        counter_definitions = [
            definition
            for definition in self._definitions
            if definition.kind is AttributeKind.COUNTER
        ]
        if not counter_definitions:
            return
        await asyncio.gather(
            *(
                self._counters.init_counter(definition.name, definition.counter_start)
                for definition in counter_definitions
            )
        )
        log.debug("Initialized %s counter attribute(s)", len(counter_definitions))

    async def state_snapshot(self) -> dict[str, int]:
        """Return the counter state once no lock holder or waiter remains."""

        await self._locks.wait_for_all_pending()
        return self._counters.snapshot()

    async def save_state(self, store: StateStore) -> dict[str, int]:
        state = await self.state_snapshot()
        log.info("Saving counter state: %s", state)
        await store.patch_config(FUSION_STATE_PATH, state)
        return state

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def output_key(self, record: FusionRecord) -> str | None:
        value = record.attributes.get(self._identity_attribute)
        if _is_present(value):
            return str(value)
        return record.native_key
