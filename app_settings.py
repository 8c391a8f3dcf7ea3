import json
import os
from typing import Any

from viz_modes import DEFAULT_MODE_NAMES, MODE_PRESETS


CURRENT_SETTINGS_VERSION = 1
DEFAULT_SETTINGS_PATH = os.path.expanduser("~/.config/asavis/settings.json")

DEFAULT_SETTINGS = {
    "settings_version": CURRENT_SETTINGS_VERSION,
    "volume": 80,
    "last_uri": "",
    "viz_enabled": True,
    "viz_mode": 0,
    "viz_update_hz": 30,
    "viz_smoothing_pct": 10,
    "viz_modes": list(DEFAULT_MODE_NAMES),
    "art_cache_dir": os.path.expanduser("~/.cache/asavis/art"),
}


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return default


def _as_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _as_int(value: Any, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        return default
    if minimum is not None and value < minimum:
        return default
    if maximum is not None and value > maximum:
        return default
    return value


def _as_mode_names(value: Any, default: list[str], max_items: int = 16) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        name = item.strip()
        if name in MODE_PRESETS and name not in out:
            out.append(name)
        if len(out) >= max_items:
            break
    if not out:
        return list(default)
    return out


def normalize_settings(raw: dict[str, Any] | None) -> dict[str, Any]:
    raw = raw or {}
    normalized = dict(DEFAULT_SETTINGS)
    normalized["volume"] = _as_int(raw.get("volume"), DEFAULT_SETTINGS["volume"], minimum=0, maximum=100)
    normalized["last_uri"] = _as_str(raw.get("last_uri"), DEFAULT_SETTINGS["last_uri"])
    normalized["viz_enabled"] = _as_bool(raw.get("viz_enabled"), DEFAULT_SETTINGS["viz_enabled"])
    normalized["viz_update_hz"] = _as_int(raw.get("viz_update_hz"), DEFAULT_SETTINGS["viz_update_hz"], minimum=1, maximum=120)
    # Percent of the new raw RMS folded in per update tick.
    normalized["viz_smoothing_pct"] = _as_int(raw.get("viz_smoothing_pct"), DEFAULT_SETTINGS["viz_smoothing_pct"], minimum=1, maximum=100)
    normalized["viz_modes"] = _as_mode_names(raw.get("viz_modes"), DEFAULT_SETTINGS["viz_modes"])
    # build_mode_table prepends "Off" when the list lacks it.
    table_size = len(normalized["viz_modes"]) + (0 if "Off" in normalized["viz_modes"] else 1)
    normalized["viz_mode"] = _as_int(raw.get("viz_mode"), DEFAULT_SETTINGS["viz_mode"], minimum=0, maximum=table_size - 1)
    normalized["art_cache_dir"] = _as_str(raw.get("art_cache_dir"), DEFAULT_SETTINGS["art_cache_dir"])
    normalized["settings_version"] = CURRENT_SETTINGS_VERSION
    return normalized


def load_settings(path: str = DEFAULT_SETTINGS_PATH) -> dict[str, Any]:
    if not os.path.exists(path):
        return normalize_settings(None)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception:
        return normalize_settings(None)

    if not isinstance(data, dict):
        return normalize_settings(None)
    return normalize_settings(data)


def save_settings(path: str, settings: dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    data = normalize_settings(settings)
    temp_file = f"{path}.tmp"
    with open(temp_file, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(temp_file, path)


def smoothing_alpha(settings: dict[str, Any]) -> float:
    return float(settings.get("viz_smoothing_pct", DEFAULT_SETTINGS["viz_smoothing_pct"])) / 100.0
