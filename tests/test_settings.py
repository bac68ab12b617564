"""Tests for the JSON settings helpers exposed by :mod:`harmony_fitness`."""

from __future__ import annotations

import importlib
import logging

import harmony_fitness


def test_settings_roundtrip(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    harmony_fitness.save_settings({"output_dir": "renders", "min_pitch": 40}, path)
    assert harmony_fitness.load_settings(path) == {"output_dir": "renders", "min_pitch": 40}


def test_missing_settings_file_returns_empty(tmp_path):
    assert harmony_fitness.load_settings(tmp_path / "absent.json") == {}


def test_corrupt_settings_file_logs_error(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    caplog.set_level(logging.ERROR)
    assert harmony_fitness.load_settings(path) == {}
    assert "Could not load settings" in caplog.text


def test_non_object_settings_rejected(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")
    caplog.set_level(logging.ERROR)
    assert harmony_fitness.load_settings(path) == {}
    assert "JSON object" in caplog.text


def test_environment_overrides_default_location(monkeypatch, tmp_path):
    """``HARMONY_FITNESS_SETTINGS_FILE`` changes the default settings path."""

    target = tmp_path / "custom.json"
    monkeypatch.setenv("HARMONY_FITNESS_SETTINGS_FILE", str(target))
    module = importlib.reload(harmony_fitness)
    try:
        assert module.DEFAULT_SETTINGS_FILE == target
    finally:
        monkeypatch.delenv("HARMONY_FITNESS_SETTINGS_FILE")
        importlib.reload(harmony_fitness)
