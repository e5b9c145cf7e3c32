from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING

import pytest

from fusionid.common.locks import KeyedLockManager
from fusionid.domain.attributes import (
    AttributeDefinition,
    AttributeGenerator,
    AttributeMap,
    MappingConfig,
)
from fusionid.domain.errors import UniqueValueExhaustedError
from fusionid.domain.model import (
    AttributeKind,
    CaseStyle,
    DirectoryIdentity,
    FusionRecord,
    MergeStrategy,
    PriorFusionAccount,
)
from fusionid.domain.ports.persistence import FUSION_STATE_PATH
from tests.support.fusion import InMemoryStateStore, TemplateRendererStub, account, record_settings

if TYPE_CHECKING:
    from collections.abc import Callable

LOGIN = AttributeDefinition(
    name="login",
    expression="$firstname.$lastname",
    kind=AttributeKind.UNIQUE,
    case=CaseStyle.LOWER,
)
DISPLAY = AttributeDefinition(
    name="displayName",
    expression="$firstname $lastname",
    case=CaseStyle.CAPITALIZE,
)


def _sequential_tokens() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"uuid-{next(counter)}"


def _generator(
    *definitions: AttributeDefinition,
    max_attempts: int = 100,
    force_refresh: bool = False,
    mapping: MappingConfig | None = None,
    uuid_factory: Callable[[], str] | None = None,
) -> AttributeGenerator:
    return AttributeGenerator(
        definitions=definitions,
        renderer=TemplateRendererStub(),
        locks=KeyedLockManager(),
        mapping=mapping,
        max_attempts=max_attempts,
        force_refresh=force_refresh,
        uuid_factory=uuid_factory or _sequential_tokens(),
    )


def _managed(account_id: str, **attributes: object) -> FusionRecord:
    return FusionRecord.from_managed_account(
        account(account_id, **attributes), settings=record_settings()
    )


def test_non_unique_attribute_is_rendered_and_formatted() -> None:
    generator = _generator(DISPLAY)
    record = _managed("h1", firstname="ada", lastname="lovelace")

    asyncio.run(generator.refresh_non_unique(record))

    assert record.attributes["displayName"] == "Ada Lovelace"


def test_missing_template_value_leaves_attribute_unset() -> None:
    generator = _generator(DISPLAY)
    record = _managed("h1", firstname="ada")

    asyncio.run(generator.refresh_non_unique(record))

    assert "displayName" not in record.attributes


def test_existing_value_is_kept_unless_refresh_is_forced() -> None:
    record = _managed("h1", firstname="ada", lastname="lovelace", displayName="Countess")

    asyncio.run(_generator(DISPLAY).refresh_non_unique(record))
    assert record.attributes["displayName"] == "Countess"

    asyncio.run(_generator(DISPLAY, force_refresh=True).refresh_non_unique(record))
    assert record.attributes["displayName"] == "Ada Lovelace"


def test_unique_values_get_a_disambiguating_counter() -> None:
    generator = _generator(LOGIN)
    records = [_managed(f"h{index}", firstname="Ada", lastname="Lovelace") for index in range(3)]

    async def run() -> None:
        for record in records:
            await generator.refresh_unique(record)

    asyncio.run(run())

    assert [record.attributes["login"] for record in records] == [
        "ada.lovelace",
        "ada.lovelace1",
        "ada.lovelace2",
    ]
    assert generator.registry.values("login") == {"ada.lovelace", "ada.lovelace1", "ada.lovelace2"}


def test_concurrent_unique_generation_never_hands_out_duplicates() -> None:
    generator = _generator(LOGIN)
    records = [_managed(f"h{index}", firstname="Ada", lastname="Lovelace") for index in range(20)]

    async def run() -> None:
        await asyncio.gather(*(generator.refresh_unique(record) for record in records))

    asyncio.run(run())

    logins = [record.attributes["login"] for record in records]
    assert len(set(logins)) == len(records)


def test_unique_generation_fails_when_attempts_run_out() -> None:
    generator = _generator(LOGIN, max_attempts=3)
    records = [_managed(f"h{index}", firstname="Ada", lastname="Lovelace") for index in range(4)]

    async def run() -> list[None | BaseException]:
        return await asyncio.gather(
            *(generator.refresh_unique(record) for record in records), return_exceptions=True
        )

    results = asyncio.run(run())

    errors = [result for result in results if isinstance(result, BaseException)]
    assert len(errors) == 1
    assert isinstance(errors[0], UniqueValueExhaustedError)
    assert errors[0].attempts == 3
    assert len(generator.registry.values("login")) == 3


def test_unique_value_is_never_regenerated() -> None:
    generator = _generator(LOGIN, force_refresh=True)
    record = _managed("h1", firstname="Ada", lastname="Lovelace", login="custom")
    record.set_needs_reset(False)

    asyncio.run(generator.refresh_all(record))

    assert record.attributes["login"] == "custom"


def test_uuid_placeholder_draws_a_fresh_token_per_attempt() -> None:
    tokens = iter(["a", "a", "b"])
    definition = AttributeDefinition(
        name="badge", expression="u-$uuid", kind=AttributeKind.UNIQUE
    )
    generator = _generator(definition, uuid_factory=lambda: next(tokens))
    first = _managed("h1")
    second = _managed("h2")

    async def run() -> None:
        await generator.refresh_unique(first)
        await generator.refresh_unique(second)

    asyncio.run(run())

    assert first.attributes["badge"] == "u-a"
    assert second.attributes["badge"] == "u-b"


def test_uuid_kind_without_expression_uses_raw_token() -> None:
    generator = _generator(AttributeDefinition(name="id", kind=AttributeKind.UUID))
    record = _managed("h1")

    asyncio.run(generator.refresh_unique(record))

    assert record.attributes["id"] == "uuid-1"
    assert generator.output_key(record) == "uuid-1"


def test_counter_attribute_skips_taken_values_and_persists_state() -> None:
    definition = AttributeDefinition(
        name="employee", expression="E", kind=AttributeKind.COUNTER, digits=4
    )
    generator = _generator(definition)
    generator.registry.register("employee", "E0001")
    store = InMemoryStateStore()
    records = [_managed("h1"), _managed("h2")]

    async def run() -> dict[str, int]:
        await generator.initialize_counters()
        for record in records:
            await generator.refresh_unique(record)
        return await generator.save_state(store)

    state = asyncio.run(run())

    assert [record.attributes["employee"] for record in records] == ["E0002", "E0003"]
    assert state == {"employee": 3}
    assert store.values[FUSION_STATE_PATH] == {"employee": 3}


def test_identity_attribute_is_locked_to_record_key() -> None:
    generator = _generator(AttributeDefinition(name="id", kind=AttributeKind.UUID))
    record = FusionRecord.from_prior_run(
        PriorFusionAccount(native_identity="fa-1", attributes={}), settings=record_settings()
    )

    asyncio.run(generator.refresh_unique(record))

    assert record.attributes["id"] == "fa-1"
    assert generator.registry.values("id") == frozenset()


def test_display_attribute_is_locked_to_identity_name() -> None:
    definition = AttributeDefinition(name="name", expression="$firstname")
    generator = _generator(definition, force_refresh=True)
    record = FusionRecord.from_identity(
        DirectoryIdentity(id="id-1", name="Ada Lovelace", attributes={"firstname": "Augusta"}),
        settings=record_settings(),
    )
    record.add_identity_layer(
        DirectoryIdentity(id="id-1", name="Ada Lovelace", attributes={"firstname": "Augusta"})
    )

    asyncio.run(generator.refresh_non_unique(record))

    assert record.attributes["name"] == "Ada Lovelace"


def test_reset_releases_carried_over_unique_values() -> None:
    generator = _generator(LOGIN)
    prior = FusionRecord.from_prior_run(
        PriorFusionAccount(
            native_identity="fa-1",
            attributes={"login": "ada.lovelace", "firstname": "Ada", "lastname": "Lovelace"},
        ),
        settings=record_settings(),
    )
    newcomer = _managed("h1", firstname="Ada", lastname="Lovelace")

    async def run() -> None:
        await generator.register_unique(prior)
        await generator.reset_attributes(prior)
        await generator.refresh_unique(newcomer)

    asyncio.run(run())

    assert "login" not in prior.attributes
    assert not prior.needs_reset
    assert newcomer.attributes["login"] == "ada.lovelace"


def test_reset_of_fresh_record_keeps_registry() -> None:
    generator = _generator(LOGIN)
    generator.registry.register("login", "taken")
    record = _managed("h1", login="taken")

    asyncio.run(generator.reset_attributes(record))

    assert "login" not in record.attributes
    assert generator.registry.contains("login", "taken")


def test_map_attributes_merges_sources_in_configured_order() -> None:
    mapping = MappingConfig(
        schema_attributes=("email", "groups"),
        attribute_maps=(
            AttributeMap(new_attribute="email", existing_attributes=("mail",)),
            AttributeMap(new_attribute="groups", merge=MergeStrategy.LIST),
        ),
        source_order=("LDAP", "HR"),
    )
    generator = _generator(mapping=mapping)
    record = _managed("h1", mail="ada@hr.example", groups="[staff]")
    record.attach_account(
        account("l1", source_name="LDAP", email="ada@ldap.example", groups="[admins] [staff]")
    )

    generator.map_attributes(record)

    assert record.attributes["email"] == "ada@ldap.example"
    assert record.attributes["groups"] == ["admins", "staff"]


def test_map_attributes_ignores_identity_records() -> None:
    generator = _generator()
    record = FusionRecord.from_identity(
        DirectoryIdentity(id="id-1", name="Ada", attributes={"email": "ada@example.com"}),
        settings=record_settings(),
    )

    generator.map_attributes(record)

    assert dict(record.attributes) == {"email": "ada@example.com"}


@pytest.mark.parametrize("kind", [AttributeKind.UNIQUE, AttributeKind.COUNTER])
def test_definition_requires_expression(kind: AttributeKind) -> None:
    with pytest.raises(ValueError, match="requires an expression"):
        AttributeDefinition(name="login", kind=kind)
