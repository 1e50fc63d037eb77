"""Tests for logging configuration resolution."""
from __future__ import annotations

import json
import logging

import pytest

from organizer_utils import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_logging_respects_configured_dir(tmp_path, restore_logging):
    log_dir = tmp_path / "custom_logs"
    config_file = tmp_path / "organizer.config.json"
    config_file.write_text(json.dumps({"log_dir": str(log_dir)}), encoding="utf-8")

    log_file = setup_logging(config_file)
    logging.getLogger("regroup.test").info("hello")

    assert log_file.parent == log_dir
    assert "hello" in log_file.read_text(encoding="utf-8")


def test_relative_log_dir_is_next_to_config(tmp_path, monkeypatch, restore_logging):
    config_file = tmp_path / "conf" / "organizer.config.json"
    config_file.parent.mkdir()
    config_file.write_text(json.dumps({"log_dir": "logs"}), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    log_file = setup_logging(config_file)
    assert log_file.parent == config_file.parent / "logs"
    assert not (tmp_path / "logs").exists()
