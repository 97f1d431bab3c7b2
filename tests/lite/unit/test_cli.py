"""Tests for the taskcal_lite command line entry and config precedence."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from taskcal_lite import build_config
from taskcal_lite.__main__ import _create_parser, main

pytestmark = pytest.mark.unit


@pytest.fixture
def no_env_file(tmp_path, monkeypatch):
    """Run from an empty directory so no stray .env is picked up."""
    monkeypatch.chdir(tmp_path)
    for name in ("TASKCAL_WEB_PORT", "TASKCAL_SERVER_PORT", "TASKCAL_TASKS_PATH"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_parser_when_no_args_then_defaults_none() -> None:
    args = _create_parser().parse_args([])
    assert args.port is None
    assert args.config is None


def test_parser_when_port_and_config_then_parsed() -> None:
    args = _create_parser().parse_args(["--port", "3000", "--config", "taskcal.yaml"])
    assert args.port == 3000
    assert args.config == "taskcal.yaml"


def test_parser_when_port_not_int_then_exits() -> None:
    with pytest.raises(SystemExit):
        _create_parser().parse_args(["--port", "abc"])


def test_build_config_when_file_only_then_file_values(no_env_file) -> None:
    config_file = no_env_file / "taskcal.yaml"
    config_file.write_text("server_port: 9001\ntasks_path: /tmp/tasks.json\n")

    cfg = build_config(SimpleNamespace(config=str(config_file), port=None))

    assert cfg["server_port"] == 9001
    assert cfg["tasks_path"] == "/tmp/tasks.json"


def test_build_config_when_env_set_then_env_beats_file(no_env_file, monkeypatch) -> None:
    config_file = no_env_file / "taskcal.yaml"
    config_file.write_text("server_port: 9001\n")
    monkeypatch.setenv("TASKCAL_WEB_PORT", "9002")

    cfg = build_config(SimpleNamespace(config=str(config_file), port=None))

    assert cfg["server_port"] == 9002


def test_build_config_when_port_flag_then_flag_wins(no_env_file, monkeypatch) -> None:
    monkeypatch.setenv("TASKCAL_WEB_PORT", "9002")

    cfg = build_config(SimpleNamespace(config=None, port=9003))

    assert cfg["server_port"] == 9003


def test_build_config_when_no_args_then_env_only(no_env_file, monkeypatch) -> None:
    monkeypatch.setenv("TASKCAL_TASKS_PATH", "/data/tasks.json")

    cfg = build_config(None)

    assert cfg["tasks_path"] == "/data/tasks.json"
    assert "server_port" not in cfg


def test_main_when_server_fails_then_exit_code_one(capsys) -> None:
    with patch("taskcal_lite.__main__.run_server", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit) as excinfo:
            main([])

    assert excinfo.value.code == 1
    assert "boom" in capsys.readouterr().err


def test_main_when_server_returns_then_exit_code_zero() -> None:
    with patch("taskcal_lite.__main__.run_server") as run_server:
        with pytest.raises(SystemExit) as excinfo:
            main(["--port", "8181"])

    assert excinfo.value.code == 0
    assert run_server.call_args.args[0].port == 8181
