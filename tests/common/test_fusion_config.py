from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003

import pytest

from fusionid.config import (
    ConfigurationError,
    InvalidConfigFileError,
    MissingConfigurationError,
    get_fusion_config_path,
    load_fusion_config,
)
from fusionid.domain.model import AttributeKind, CaseStyle, MergeStrategy


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "fusion.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_fusion_config_translates_payload(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "sources": [{"name": "HR", "reviewers": ["rev-1"]}, {"name": "LDAP"}],
            "attributeDefinitions": [
                {"name": "id", "kind": "uuid"},
                {
                    "name": "login",
                    "expression": "$firstname.$lastname",
                    "kind": "unique",
                    "case": "lower",
                },
            ],
            "attributeMaps": [{"newAttribute": "email", "existingAttributes": ["mail"]}],
            "attributeMerge": "list",
            "matching": [{"attribute": "email", "algorithm": "exact", "mandatory": True}],
            "mergeIdentical": True,
            "globalReviewerIdentity": " ",
            "fusionState": {"employee": 4},
        },
    )

    config = load_fusion_config(path)

    assert config.source_names == ("HR", "LDAP")
    source = config.source("HR")
    assert source is not None
    assert source.reviewers == ("rev-1",)
    login = config.attribute_definitions[1]
    assert login.kind is AttributeKind.UNIQUE
    assert login.case is CaseStyle.LOWER
    assert config.mapping.default_merge is MergeStrategy.LIST
    assert config.mapping.source_order == ("HR", "LDAP")
    assert config.mapping.attribute_maps[0].existing_attributes == ("mail",)
    assert config.matching[0].mandatory
    assert config.merge_identical
    assert config.global_reviewer_identity is None
    assert config.fusion_state == {"employee": 4}
    assert config.excluded_score_algorithms == ("average",)


def test_missing_file_raises_missing_configuration(tmp_path: Path) -> None:
    with pytest.raises(MissingConfigurationError, match="not found"):
        load_fusion_config(tmp_path / "absent.json")


def test_invalid_json_raises_configuration_error(tmp_path: Path) -> None:
    path = tmp_path / "fusion.json"
    path.write_text("[", encoding="utf-8")

    with pytest.raises(InvalidConfigFileError, match="not valid JSON") as exc:
        load_fusion_config(path)

    assert exc.value.path == path
    assert isinstance(exc.value, ConfigurationError)


@pytest.mark.parametrize(
    "payload",
    [
        {"managedAccountsBatchSize": 0},
        {"attributeDefinitions": [{"name": "login", "kind": "unique"}]},
        {"sources": [{"name": "HR"}, {"name": "HR"}]},
        {"matching": [{"attribute": "name", "fusionScore": 120}]},
    ],
)
def test_invalid_values_raise_configuration_error(tmp_path: Path, payload: object) -> None:
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_fusion_config(_write(tmp_path, payload))


def test_config_path_comes_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUSIONID_CONFIG", " /etc/fusion.json ")
    assert get_fusion_config_path() == "/etc/fusion.json"

    monkeypatch.setenv("FUSIONID_CONFIG", "")
    assert get_fusion_config_path() is None
