from __future__ import annotations

import pytest

from fusionid.adapters.templating import StringTemplateRenderer


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("$firstname.$lastname", "Ada.Lovelace"),
        ("${identity.email}", "ada@example.com"),
        ("${accounts.0.mail}", "ada@hr.example"),
        ("$firstname-$counter", "Ada-"),
    ],
)
def test_render_resolves_placeholders(expression: str, expected: str) -> None:
    context: dict[str, object] = {
        "firstname": "Ada",
        "lastname": "Lovelace",
        "counter": "",
        "identity": {"email": "ada@example.com"},
        "accounts": [{"mail": "ada@hr.example"}],
    }

    assert StringTemplateRenderer().render(expression, context) == expected


@pytest.mark.parametrize(
    "expression",
    ["$firstname.$middlename", "${accounts.3.mail}", "${identity.phone}"],
)
def test_missing_value_fails_the_render(expression: str) -> None:
    context: dict[str, object] = {
        "firstname": "Ada",
        "identity": {"email": "ada@example.com"},
        "accounts": [],
    }

    assert StringTemplateRenderer().render(expression, context) is None


def test_malformed_template_is_rejected() -> None:
    assert StringTemplateRenderer().render("price: $", {}) is None
