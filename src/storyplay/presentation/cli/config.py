"""CLI configuration helpers for options persistence."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict

_DEFAULT_DISPLAY_MODE = "novel"
_DEFAULT_LOG_LEVEL = "WARNING"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_user_data_dir() -> Path:
    """Return the per-user data directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "StoryPlay"
        return Path.home() / "StoryPlay"
    return Path.home() / ".config" / "storyplay"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def _normalize_display_mode(value: object) -> str:
    return "waterfall" if value == "waterfall" else _DEFAULT_DISPLAY_MODE


def _normalize_log_level(value: object) -> str:
    if isinstance(value, str) and value.upper() in _LOG_LEVELS:
        return value.upper()
    return _DEFAULT_LOG_LEVEL


def default_config() -> Dict[str, str]:
    return {"display_mode": _DEFAULT_DISPLAY_MODE, "log_level": _DEFAULT_LOG_LEVEL}


def load_config(path: Path | None = None) -> Dict[str, str]:
    """Load config from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return default_config()
    except (OSError, ValueError):
        return default_config()
    if not isinstance(raw, dict):
        return default_config()
    return {
        "display_mode": _normalize_display_mode(raw.get("display_mode")),
        "log_level": _normalize_log_level(raw.get("log_level")),
    }


def save_config(config: Dict[str, str], path: Path | None = None) -> None:
    """Persist config to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "display_mode": _normalize_display_mode(config.get("display_mode")),
        "log_level": _normalize_log_level(config.get("log_level")),
    }
    config_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def resolve_log_level(config: Dict[str, str]) -> int:
    """Return the numeric logging level, forced to DEBUG by STORYPLAY_DEBUG=1."""
    if os.getenv("STORYPLAY_DEBUG") == "1":
        return logging.DEBUG
    return getattr(logging, _normalize_log_level(config.get("log_level")))
