"""Static attribute configuration consumed by the mapper and the generator."""

from __future__ import annotations

from dataclasses import dataclass, replace

from fusionid.domain.model.enums import AttributeKind, CaseStyle, MergeStrategy

COUNTER_VARIABLE = "counter"
UUID_VARIABLE = "uuid"
DEFAULT_MAX_ATTEMPTS = 100


@dataclass(slots=True, frozen=True, kw_only=True)
class AttributeDefinition:
    """How one generated attribute is computed.

    ``kind`` selects the generation mode: ``NORMAL`` renders the template once,
    ``UNIQUE`` retries with a transient disambiguator, ``COUNTER`` draws from a
    persisted counter and ``UUID`` ignores the template and mints random tokens.
    """

    name: str
    expression: str | None = None
    kind: AttributeKind = AttributeKind.NORMAL
    case: CaseStyle = CaseStyle.SAME
    spaces: bool = False
    normalize: bool = False
    max_length: int | None = None
    counter_start: int = 1
    digits: int = 1
    refresh: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Attribute definition requires a name")
        if self.kind is not AttributeKind.UUID and not self.expression:
            raise ValueError(f"Attribute definition {self.name} requires an expression")
        if self.digits < 1:
            raise ValueError(f"Attribute definition {self.name} needs at least one counter digit")
        if self.max_length is not None and self.max_length < 1:
            raise ValueError(f"Attribute definition {self.name} has a non-positive max_length")

    @property
    def is_unique(self) -> bool:
        return self.kind.is_unique

    @property
    def lock_key(self) -> str:
        return f"{self.kind}:{self.name}"

    def references(self, variable: str) -> bool:
        expression = self.expression or ""
        return f"${variable}" in expression or f"${{{variable}}}" in expression

    def with_counter(self) -> AttributeDefinition:
        """Return a copy whose expression ends with the counter variable."""

        if self.references(COUNTER_VARIABLE):
            return self
        return replace(self, expression=f"{self.expression or ''}${COUNTER_VARIABLE}")


@dataclass(slots=True, frozen=True, kw_only=True)
class AttributeMap:
    """Maps one output attribute onto one or more source attribute names."""

    new_attribute: str
    existing_attributes: tuple[str, ...] = ()
    merge: MergeStrategy | None = None
    source: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class MappingRule:
    """Resolved mapping for one schema attribute."""

    attribute: str
    source_attributes: tuple[str, ...]
    merge: MergeStrategy
    source: str | None = None

    @property
    def lookup_names(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys((*self.source_attributes, self.attribute)))


@dataclass(slots=True, frozen=True, kw_only=True)
class MappingConfig:
    schema_attributes: tuple[str, ...] = ()
    attribute_maps: tuple[AttributeMap, ...] = ()
    default_merge: MergeStrategy = MergeStrategy.FIRST
    source_order: tuple[str, ...] = ()

    def rule_for(self, attribute: str) -> MappingRule:
        return build_mapping_rule(attribute, self.attribute_maps, self.default_merge)


def build_mapping_rule(
    attribute: str,
    attribute_maps: tuple[AttributeMap, ...],
    default_merge: MergeStrategy,
) -> MappingRule:
    for attribute_map in attribute_maps:
        if attribute_map.new_attribute == attribute:
            return MappingRule(
                attribute=attribute,
                source_attributes=attribute_map.existing_attributes or (attribute,),
                merge=attribute_map.merge or default_merge,
                source=attribute_map.source,
            )
    return MappingRule(attribute=attribute, source_attributes=(attribute,), merge=default_merge)
