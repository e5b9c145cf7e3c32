from __future__ import annotations

from fusionid.domain.attributes import (
    AttributeMap,
    MappingConfig,
    apply_mapping_rule,
    attr_concat,
    attr_split,
    build_mapping_rule,
)
from fusionid.domain.model import MergeStrategy

BY_SOURCE: dict[str, list[dict[str, object]]] = {
    "HR": [{"mail": "alice@hr.example", "dept": "Sales"}],
    "LDAP": [
        {"email": "alice@ldap.example", "dept": "[Marketing] [Sales]"},
        {"email": "", "dept": None},
    ],
}
ORDER = ("LDAP", "HR")


def test_attr_split_and_concat() -> None:
    assert attr_split("[HR] [LDAP] [HR]") == ["HR", "LDAP"]
    assert attr_split("plain value") == ["plain value"]
    assert attr_concat(["LDAP", "HR", "LDAP"]) == "[HR] [LDAP]"
    assert attr_concat([]) == ""


def test_rule_defaults_to_attribute_name() -> None:
    rule = build_mapping_rule("dept", (), MergeStrategy.FIRST)

    assert rule.source_attributes == ("dept",)
    assert rule.lookup_names == ("dept",)


def test_attribute_map_adds_source_names() -> None:
    config = MappingConfig(
        attribute_maps=(AttributeMap(new_attribute="email", existing_attributes=("mail",)),),
        default_merge=MergeStrategy.LIST,
    )

    rule = config.rule_for("email")

    assert rule.lookup_names == ("mail", "email")
    assert rule.merge is MergeStrategy.LIST


def test_first_follows_source_order() -> None:
    rule = build_mapping_rule(
        "email",
        (AttributeMap(new_attribute="email", existing_attributes=("mail", "email")),),
        MergeStrategy.FIRST,
    )

    assert apply_mapping_rule(rule, BY_SOURCE, ORDER) == "alice@ldap.example"
    assert apply_mapping_rule(rule, BY_SOURCE, ("HR", "LDAP")) == "alice@hr.example"


def test_first_splits_bracketed_values() -> None:
    rule = build_mapping_rule("dept", (), MergeStrategy.FIRST)

    assert apply_mapping_rule(rule, BY_SOURCE, ORDER) == "Marketing"


def test_source_strategy_reads_only_named_source() -> None:
    rule = build_mapping_rule(
        "dept",
        (AttributeMap(new_attribute="dept", merge=MergeStrategy.SOURCE, source="HR"),),
        MergeStrategy.FIRST,
    )

    assert apply_mapping_rule(rule, BY_SOURCE, ORDER) == "Sales"


def test_list_and_concatenate_deduplicate_and_sort() -> None:
    list_rule = build_mapping_rule("dept", (), MergeStrategy.LIST)
    concat_rule = build_mapping_rule("dept", (), MergeStrategy.CONCATENATE)

    assert apply_mapping_rule(list_rule, BY_SOURCE, ORDER) == ["Marketing", "Sales"]
    assert apply_mapping_rule(concat_rule, BY_SOURCE, ORDER) == "[Marketing] [Sales]"


def test_missing_attribute_maps_to_none() -> None:
    for merge in MergeStrategy:
        rule = build_mapping_rule("phone", (), merge)
        assert apply_mapping_rule(rule, BY_SOURCE, ORDER) is None
