from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

DEFAULT_CONFIG_NAME = "mapguard.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def analysis_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("analysis", {})
    return section if isinstance(section, dict) else {}


def well_known_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("well_known", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _as_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def exclude_dir_list(section: TomlTable | None) -> list[str]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return []
    return _normalize_name_list(section.get("exclude_dirs"))


def stub_path_list(section: TomlTable | None) -> list[str]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return []
    return _normalize_name_list(section.get("stub_paths"))


def worker_count(section: TomlTable | None) -> int:
    if not isinstance(section, dict):
        return 1
    return max(1, _as_int(section.get("workers"), 1))


def timeout_ms(section: TomlTable | None) -> int:
    if not isinstance(section, dict):
        return 0
    return max(0, _as_int(section.get("timeout_ms"), 0))


def fail_on_diagnostics(section: TomlTable | None) -> bool:
    if not isinstance(section, dict):
        return True
    if "fail_on_diagnostics" not in section:
        return True
    return _as_bool(section.get("fail_on_diagnostics"))


def proof_mode_enabled(section: TomlTable | None) -> bool:
    if not isinstance(section, dict):
        return False
    return _as_bool(section.get("proof_mode"))


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged
