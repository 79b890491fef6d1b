import json
import logging
from pathlib import Path

from storyplay.presentation.cli import config


def test_load_config_defaults_when_missing(tmp_path: Path) -> None:
    assert config.load_config(tmp_path / "missing.json") == {"display_mode": "novel", "log_level": "WARNING"}


def test_load_config_defaults_on_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{oops", encoding="utf-8")
    assert config.load_config(path) == config.default_config()


def test_load_config_normalizes_values(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"display_mode": "waterfall", "log_level": "debug"}), encoding="utf-8")
    assert config.load_config(path) == {"display_mode": "waterfall", "log_level": "DEBUG"}

    path.write_text(json.dumps({"display_mode": "comic", "log_level": 3}), encoding="utf-8")
    assert config.load_config(path) == config.default_config()


def test_save_config_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    config.save_config({"display_mode": "waterfall", "log_level": "INFO"}, path)
    assert config.load_config(path) == {"display_mode": "waterfall", "log_level": "INFO"}


def test_user_data_dir_posix(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config.os, "name", "posix")
    monkeypatch.setattr(config.Path, "home", classmethod(lambda cls: tmp_path))
    assert config.get_default_config_path() == tmp_path / ".config" / "storyplay" / "config.json"


def test_resolve_log_level(monkeypatch) -> None:
    monkeypatch.delenv("STORYPLAY_DEBUG", raising=False)
    assert config.resolve_log_level({"log_level": "ERROR"}) == logging.ERROR
    monkeypatch.setenv("STORYPLAY_DEBUG", "1")
    assert config.resolve_log_level({"log_level": "ERROR"}) == logging.DEBUG
