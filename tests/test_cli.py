"""Tests for the command-line entrypoint."""
from __future__ import annotations

import json

import pytest

import regroup.cli as cli


def test_load_config_rejects_bad_files(tmp_path):
    with pytest.raises(SystemExit):
        cli.load_config(tmp_path / "missing.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(SystemExit):
        cli.load_config(broken)
    listed = tmp_path / "list.json"
    listed.write_text("[]", encoding="utf-8")
    with pytest.raises(SystemExit):
        cli.load_config(listed)


def test_main_starts_uvicorn(tmp_path, monkeypatch):
    config_path = tmp_path / "organizer.config.json"
    config_path.write_text(json.dumps({"target_dir": str(tmp_path)}), encoding="utf-8")
    calls = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    monkeypatch.setattr(cli, "setup_logging", lambda path: tmp_path / "x.log")
    monkeypatch.setenv(cli.CONFIG_ENV, "unset")

    cli.main(["--config", str(config_path), "--port", "9001"])

    assert calls == [("regroup.app:app", {"host": "127.0.0.1", "port": 9001})]
    assert cli.os.environ[cli.CONFIG_ENV] == str(config_path.resolve())


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.host == cli.DEFAULT_HOST
    assert args.port == cli.DEFAULT_PORT
    assert args.config == str(cli.DEFAULT_CONFIG_PATH)
