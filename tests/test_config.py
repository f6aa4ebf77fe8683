import json

import pytest

from snapsolve.config import ConfigStore, ProviderConfiguration, default_config_path
from snapsolve.errors import ConfigurationError

def _store(tmp_path):
    return ConfigStore(tmp_path / "cfg" / "config.json")

def test_load_creates_file_with_defaults(tmp_path):
    store = _store(tmp_path)
    config = store.load()
    assert config == ProviderConfiguration()
    assert json.loads(store.path.read_text(encoding="utf-8"))["model_provider"] == "openai"

def test_corrupt_file_yields_defaults(tmp_path):
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() == ProviderConfiguration()

def test_config_path_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("SNAPSOLVE_CONFIG_PATH", str(tmp_path / "x.json"))
    assert default_config_path() == tmp_path / "x.json"

def test_provider_switch_resets_models_and_notifies(tmp_path):
    store = _store(tmp_path)
    seen = []
    store.subscribe(seen.append)

    config = store.update(model_provider="Gemini", gemini_api_key="g-key")

    assert config.model_provider == "gemini"
    assert config.extraction_model == "gemini-2.0-flash"
    assert config.debugging_model == "gemini-2.0-flash"
    assert len(seen) == 1 and seen[0].model_provider == "gemini"
    assert store.load().gemini_api_key == "g-key"

def test_explicit_models_survive_provider_switch(tmp_path):
    store = _store(tmp_path)
    config = store.update(model_provider="ollama", solution_model="qwen2.5-coder:7b")
    assert config.solution_model == "qwen2.5-coder:7b"
    assert config.extraction_model == "llama3.2-vision:11b"

def test_unknown_model_for_strict_provider_is_replaced(tmp_path):
    store = _store(tmp_path)
    assert store.update(solution_model="not-a-model").solution_model == "gpt-4o"

def test_opacity_is_clamped_and_does_not_notify(tmp_path):
    store = _store(tmp_path)
    seen = []
    store.subscribe(seen.append)

    assert store.set_opacity(5).opacity == 1.0
    assert store.set_opacity(0).opacity == 0.1
    assert store.get_opacity() == 0.1
    assert seen == []

def test_invalid_updates_raise(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(ConfigurationError):
        store.update(colour="blue")
    with pytest.raises(ConfigurationError):
        store.update(model_provider="anthropic")
    with pytest.raises(ConfigurationError):
        store.update(opacity="very")

def test_unsubscribe_and_failing_listener(tmp_path):
    store = _store(tmp_path)
    seen = []

    def broken(_config):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    unsubscribe = store.subscribe(seen.append)
    store.set_language("java")
    unsubscribe()
    store.set_language("go")

    assert len(seen) == 1
    assert store.get_language() == "go"

def test_credential_falls_back_to_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", ' "sk-from-env" ')
    config = ProviderConfiguration(api_key="")
    assert config.credential() == "sk-from-env"
    assert config.has_credential()

def test_has_api_key(tmp_path):
    store = _store(tmp_path)
    assert store.has_api_key() is False
    store.update(api_key="sk-abc")
    assert store.has_api_key() is True
