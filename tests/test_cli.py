import json

import requests

from snapsolve.cli import main

from conftest import FakeResponse

def test_config_set_and_show(tmp_path, capsys):
    cfg = tmp_path / "config.json"
    assert main(["--config", str(cfg), "config", "set", "model_provider=gemini", "gemini_api_key=secret-key"]) == 0

    shown = json.loads(capsys.readouterr().out)
    assert shown["model_provider"] == "gemini"
    assert shown["gemini_api_key"].startswith("len=10 sha8=")
    assert "secret-key" not in json.dumps(shown)

def test_config_set_rejects_bad_assignment(tmp_path):
    assert main(["--config", str(tmp_path / "config.json"), "config", "set", "language"]) == 2
    assert main(["--config", str(tmp_path / "config.json"), "config", "set", "colour=blue"]) == 2

def test_check_key(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(requests, "get", lambda url, headers=None, timeout=None: FakeResponse(200, {"data": []}))
    assert main(["--config", str(tmp_path / "config.json"), "check-key", "sk-" + "a" * 40]) == 0
    assert json.loads(capsys.readouterr().out) == {"valid": True, "error": None}

    assert main(["--config", str(tmp_path / "config.json"), "check-key", "nope"]) == 1

def test_solve_without_credentials(tmp_path, capsys, screenshot):
    code = main(["--config", str(tmp_path / "config.json"), "solve", screenshot(), "--language", "rust"])
    out = json.loads(capsys.readouterr().out)

    assert code == 1
    assert out["ok"] is False
    assert out["failure"] == "invalid-credential"
