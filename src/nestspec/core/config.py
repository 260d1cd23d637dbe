from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
import tomllib

_CONFIG_CACHE: dict | None = None

DEFAULT_PATTERN = "*_spec.py"
DEFAULT_SPEC_DIR = "spec"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMATS = ("console", "json")


@dataclass(frozen=True)
class RunSettings:
    pattern: str
    default_path: str
    fail_fast: int
    log_level: str
    log_format: str


def config_path() -> Path:
    override = os.environ.get("NESTSPEC_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base).expanduser() if base else (Path.home() / ".config")
    return root / "nestspec" / "config.toml"


def load_config() -> dict:
    path = config_path()
    if not path.exists():
        return {}
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ValueError(f"Invalid config file: {path}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file structure: {path}")
    return data


def get_config() -> dict:
    global _CONFIG_CACHE
    if _CONFIG_CACHE is None:
        _CONFIG_CACHE = load_config()
    return _CONFIG_CACHE


def reset_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def get_config_value(*keys: str, default: object | None = None) -> object | None:
    current: object = get_config()
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def load_run_settings() -> RunSettings:
    """Merge config file values over the built-in defaults.

    `NESTSPEC_LOG_LEVEL` wins over `[log] level`; CLI flags are applied by the caller on top of this.
    """

    def _str(value: object, fallback: str) -> str:
        return value if isinstance(value, str) and value.strip() else fallback

    fail_fast = get_config_value("run", "fail_fast", default=0)
    if not isinstance(fail_fast, int) or isinstance(fail_fast, bool) or fail_fast < 0:
        raise ValueError(f"[run] fail_fast must be a non-negative integer, got {fail_fast!r}")

    log_format = _str(get_config_value("log", "format"), "console")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"[log] format must be one of {LOG_FORMATS}, got {log_format!r}")

    log_level = os.environ.get("NESTSPEC_LOG_LEVEL") or _str(get_config_value("log", "level"), DEFAULT_LOG_LEVEL)

    return RunSettings(
        pattern=_str(get_config_value("run", "pattern"), DEFAULT_PATTERN),
        default_path=_str(get_config_value("run", "default_path"), DEFAULT_SPEC_DIR),
        fail_fast=fail_fast,
        log_level=log_level.upper(),
        log_format=log_format,
    )
