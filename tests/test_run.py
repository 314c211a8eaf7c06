from __future__ import annotations

import json
import sys

import pytest

import run
from lms.services.session_registry import session_registry


@pytest.fixture(autouse=True)
def restore_sys_argv(monkeypatch):
    original = sys.argv[:]
    monkeypatch.setattr(session_registry, "_settings", None)
    yield
    monkeypatch.setattr(sys, "argv", original, raising=False)


def test_parse_args_defaults(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["run.py"], raising=False)
    monkeypatch.setattr(run, "DEFAULT_CONFIG", run.ROOT / "missing-config.json")
    args = run.parse_args()
    assert args.host is None
    assert args.port is None
    assert args.debug is False


def test_main_configures_registry_and_serves(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"paths": {"project_root": str(tmp_path)}, "server": {"port": 7700}, "check_duplicate_cans": False})
    )
    monkeypatch.setattr(sys, "argv", ["run.py", "--config", str(config_path), "--debug"], raising=False)

    received = {}

    def fake_run(app, host, port, log_level):
        received.update(app=app, host=host, port=port, log_level=log_level)

    monkeypatch.setattr(run.uvicorn, "run", fake_run)

    run.main()

    assert received["host"] == "0.0.0.0"
    assert received["port"] == 7700
    assert received["log_level"] == "debug"
    assert any(getattr(route, "path", None) == "/health" for route in received["app"].routes)
    assert session_registry.settings.projects_dir == tmp_path / "projects"
    assert session_registry.settings.check_duplicate_cans is False


def test_command_line_overrides_server_section(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text("{}")
    monkeypatch.setattr(
        sys, "argv", ["run.py", "--config", str(config_path), "--host", "127.0.0.1", "--port", "6000"], raising=False
    )
    received = {}
    monkeypatch.setattr(run.uvicorn, "run", lambda app, **kwargs: received.update(kwargs))

    run.main()

    assert received["host"] == "127.0.0.1"
    assert received["port"] == 6000
