"""Global app configuration (API presets, gateway timeout, delivery pacing)."""

import json
import os
from pathlib import Path
from typing import Any

from pocketphone.models import ApiPreset

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "api_presets": [],
    "active_preset_id": None,
    "gateway_timeout": 120.0,
    "delivery_delay_ms": [800, 2000],
    "claim_delay_ms": [2000, 3500],
}

_SCALARS = ("active_preset_id", "gateway_timeout")
_RANGES = ("delivery_delay_ms", "claim_delay_ms")


def _config_path() -> Path:
    return data_dir() / "config.json"


def _defaults() -> dict[str, Any]:
    config = json.loads(json.dumps(_CONFIG_DEFAULTS))
    env_timeout = os.getenv("GATEWAY_TIMEOUT", "")
    if env_timeout:
        config["gateway_timeout"] = float(env_timeout)
    return config


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = _defaults()
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        if "api_presets" in stored:
            config["api_presets"] = stored["api_presets"]
        for key in _SCALARS:
            if key in stored:
                config[key] = stored[key]
        for key in _RANGES:
            if isinstance(stored.get(key), list) and len(stored[key]) == 2:
                config[key] = stored[key]
    return config


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_scalar(key: str, value: Any) -> None:
    if key == "gateway_timeout" and not (_is_number(value) and value > 0):
        raise ValueError(f"gateway_timeout must be a positive number of seconds, got {value!r}")
    if key == "active_preset_id" and value is not None and not isinstance(value, str):
        raise ValueError(f"active_preset_id must be a preset id or null, got {value!r}")


def _check_range(key: str, value: Any) -> list[int]:
    if not (isinstance(value, list) and len(value) == 2 and all(_is_number(v) and v >= 0 for v in value)):
        raise ValueError(f"{key} must be [low, high] in milliseconds, got {value!r}")
    low, high = value
    if low > high:
        raise ValueError(f"{key} must be [low, high], got {value!r}")
    return [low, high]


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    api_presets is replaced wholesale, everything else is overwritten per key.
    Raises ValueError on an invalid value; nothing is written in that case.
    """
    config = get_config()
    if "api_presets" in fields:
        config["api_presets"] = [ApiPreset.model_validate(p).model_dump() for p in fields["api_presets"]]
    for key in _SCALARS:
        if key in fields:
            _check_scalar(key, fields[key])
            config[key] = fields[key]
    for key in _RANGES:
        if key in fields:
            config[key] = _check_range(key, fields[key])
    _config_path().write_text(json.dumps(config, indent=2))
    return config


def get_active_preset() -> ApiPreset | None:
    """Return the selected API preset, or None if no preset is active."""
    config = get_config()
    for preset in config["api_presets"]:
        if preset.get("id") == config["active_preset_id"]:
            return ApiPreset.model_validate(preset)
    return None


def get_gateway_timeout() -> float:
    return float(get_config()["gateway_timeout"])


def get_delivery_delay_ms() -> tuple[int, int]:
    low, high = get_config()["delivery_delay_ms"]
    return low, high


def get_claim_delay_ms() -> tuple[int, int]:
    low, high = get_config()["claim_delay_ms"]
    return low, high
