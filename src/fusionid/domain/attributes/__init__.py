"""Attribute mapping, formatting and generation."""

from __future__ import annotations

from .counters import CounterStore
from .definitions import (
    COUNTER_VARIABLE,
    DEFAULT_MAX_ATTEMPTS,
    UUID_VARIABLE,
    AttributeDefinition,
    AttributeMap,
    MappingConfig,
    MappingRule,
    build_mapping_rule,
)
from .formatting import normalize, pad_number, remove_spaces, switch_case, truncate
from .generator import COLLECTION_ATTRIBUTES, AttributeGenerator
from .mapping import apply_mapping_rule, attr_concat, attr_split
from .registry import UniqueValueRegistry

__all__ = [
    "COLLECTION_ATTRIBUTES",
    "COUNTER_VARIABLE",
    "DEFAULT_MAX_ATTEMPTS",
    "UUID_VARIABLE",
    "AttributeDefinition",
    "AttributeGenerator",
    "AttributeMap",
    "CounterStore",
    "MappingConfig",
    "MappingRule",
    "UniqueValueRegistry",
    "apply_mapping_rule",
    "attr_concat",
    "attr_split",
    "build_mapping_rule",
    "normalize",
    "pad_number",
    "remove_spaces",
    "switch_case",
    "truncate",
]
