"""Collapse per-source attribute sets into the record's current attribute layer.

Multi-valued attributes travel between runs as bracketed strings
(``"[HR] [LDAP]"``); ``attr_split`` and ``attr_concat`` translate between that
form and plain lists.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from fusionid.domain.model.enums import MergeStrategy

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from fusionid.domain.model.inputs import Attributes

    from .definitions import MappingRule

_BRACKETED = re.compile(r"\[([^ ].+?)\]")


def attr_split(text: str) -> list[str]:
    """Return the bracketed values in ``text``, or ``[text]`` when there are none."""

    values = dict.fromkeys(match for match in _BRACKETED.findall(text) if match)
    return list(values) if values else [text]


def attr_concat(values: Iterable[str], *, already_sorted: bool = False) -> str:
    unique = list(values) if already_sorted else sorted(set(values))
    return " ".join(f"[{value}]" for value in unique)


def _is_present(value: object) -> bool:
    return value is not None and value != ""


def _split_value(value: object) -> list[object]:
    if isinstance(value, str):
        return list(attr_split(value))
    if isinstance(value, list | tuple | set | frozenset):
        return [item for item in value if _is_present(item)]
    return [value]


def _first_value(accounts: Sequence[Attributes], names: Sequence[str]) -> object | None:
    for account in accounts:
        for name in names:
            value = account.get(name)
            if _is_present(value):
                split = _split_value(value)
                if split:
                    return split[0]
    return None


def _all_values(
    by_source: Mapping[str, Sequence[Attributes]],
    source_order: Sequence[str],
    names: Sequence[str],
) -> list[str]:
    values: list[str] = []
    for source_name in source_order:
        for account in by_source.get(source_name, ()):
            for name in names:
                value = account.get(name)
                if _is_present(value):
                    values.extend(str(item) for item in _split_value(value))
    return values


def apply_mapping_rule(
    rule: MappingRule,
    by_source: Mapping[str, Sequence[Attributes]],
    source_order: Sequence[str],
) -> object | None:
    """Resolve one schema attribute from the contributing sources.

    Sources are visited in configured order. ``FIRST`` and ``SOURCE`` return the
    first present value (``SOURCE`` only looks at the named source); ``LIST``
    and ``CONCATENATE`` gather every value, de-duplicate and sort them.
    """

    names = rule.lookup_names
    if rule.merge in (MergeStrategy.FIRST, MergeStrategy.SOURCE):
        for source_name in source_order:
            if rule.merge is MergeStrategy.SOURCE and rule.source and source_name != rule.source:
                continue
            accounts = by_source.get(source_name)
            if not accounts:
                continue
            value = _first_value(accounts, names)
            if value is not None:
                return value
        return None

    values = _all_values(by_source, source_order, names)
    if not values:
        return None
    unique_sorted = sorted(set(values))
    if rule.merge is MergeStrategy.LIST:
        return unique_sorted
    return attr_concat(unique_sorted, already_sorted=True)
