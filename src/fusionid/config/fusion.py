"""Load the engine configuration from a JSON file."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fusionid.adapters.schema import FusionConfigPayload
from fusionid.adapters.translator import to_fusion_config

from .env import optional_env_var
from .errors import InvalidConfigFileError, MissingConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from fusionid.domain.settings import FusionConfig

FUSION_CONFIG_ENV = "FUSIONID_CONFIG"


def load_fusion_config(path: Path) -> FusionConfig:
    """Read, validate and translate ``path`` into a ``FusionConfig``."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise MissingConfigurationError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise InvalidConfigFileError(
            path, f"Configuration file {path} is not valid JSON: {exc}"
        ) from exc

    try:
        payload = FusionConfigPayload.model_validate(raw)
        return to_fusion_config(payload)
    except ValueError as exc:
        raise InvalidConfigFileError(path, f"Invalid configuration in {path}: {exc}") from exc


def get_fusion_config_path() -> str | None:
    return optional_env_var(FUSION_CONFIG_ENV)
