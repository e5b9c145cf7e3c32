from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest

from fusionid.config import (
    MissingConfigurationError,
    get_database_config,
    get_platform_config,
    get_storage_config,
    optional_env_var,
    require_env_var,
    require_env_vars,
)
from fusionid.config.storage import DEFAULT_DB_FILENAME


def test_require_env_vars_returns_stripped_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", " value ")

    assert require_env_vars(["EXAMPLE_VAR"]) == {"EXAMPLE_VAR": "value"}


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_B", raising=False)
    monkeypatch.setenv("MISSING_A", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_require_env_var_and_optional_env_var(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEMP_VAR", "123")
    monkeypatch.setenv("BLANK_VAR", "")

    assert require_env_var("TEMP_VAR") == "123"
    assert optional_env_var("BLANK_VAR") is None


def test_platform_config_builds_authorized_client_settings(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("FUSIONID_PLATFORM_URL", "https://platform.example/api/")
    monkeypatch.setenv("FUSIONID_PLATFORM_TOKEN", "secret")
    monkeypatch.setenv("FUSIONID_SOURCE_ID", "src-1")

    config = get_platform_config()

    assert config.base_url == "https://platform.example/api"
    assert config.source_id == "src-1"
    assert config.resilience.base_url == "https://platform.example/api"
    assert config.resilience.default_headers == {"Authorization": "Bearer secret"}
    assert config.resilience.ratelimit is not None


def test_platform_config_requires_all_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUSIONID_PLATFORM_URL", "https://platform.example")
    monkeypatch.delenv("FUSIONID_PLATFORM_TOKEN", raising=False)
    monkeypatch.delenv("FUSIONID_SOURCE_ID", raising=False)

    with pytest.raises(MissingConfigurationError, match="FUSIONID_PLATFORM_TOKEN"):
        get_platform_config()


def test_storage_prefers_explicit_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("FUSIONID_DATA_DIR", str(custom))

    assert get_storage_config().resolve_data_dir() == custom.resolve()


def test_database_uri_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert get_database_config().uri == "sqlite:///override.db"


def test_database_uri_creates_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("FUSIONID_DATA_DIR", str(tmp_path / "data-dir"))

    uri = get_database_config().uri

    expected_path = (tmp_path / "data-dir" / DEFAULT_DB_FILENAME).resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()
