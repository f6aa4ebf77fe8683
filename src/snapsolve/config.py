"""Provider configuration and its JSON-backed store.

The store is the single source of truth for which backend is active, its
credential, the three per-stage models and the target language. Listeners
registered with subscribe() are told about changes that affect the model
adapter; cosmetic fields (opacity) never notify, so the adapter is not rebuilt
for them.
"""
from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from . import registry
from .errors import ConfigurationError
from .logging_util import get_logger
from .types import PROVIDERS, STAGES

logger = get_logger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434/api"

# Keys whose change requires rebuilding the model adapter.
PROVIDER_FIELDS = frozenset({
    "model_provider",
    "api_key",
    "gemini_api_key",
    "ollama_url",
    "extraction_model",
    "solution_model",
    "debugging_model",
    "language",
})

_CREDENTIAL_ENV = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "ollama": "OLLAMA_URL",
}

def sanitize_api_key(raw: str) -> str:
    """Strip whitespace, quotes, backticks and smart quotes pasted around a key."""
    k = (raw or "").strip()
    k = k.strip(' "\'`')
    k = k.strip("“”‘’")
    return k

def default_config_path() -> Path:
    env = (os.environ.get("SNAPSOLVE_CONFIG_PATH") or "").strip()
    if env:
        return Path(env).expanduser()
    return Path.home() / ".snapsolve" / "config.json"

@dataclass
class ProviderConfiguration:
    model_provider: str = "openai"
    api_key: str = ""
    gemini_api_key: str = ""
    ollama_url: str = DEFAULT_OLLAMA_URL
    extraction_model: str = "gpt-4o"
    solution_model: str = "gpt-4o"
    debugging_model: str = "gpt-4o"
    language: str = "python"
    opacity: float = 1.0

    def model_for(self, stage: str) -> str:
        if stage not in STAGES:
            raise ConfigurationError(f"unknown stage: {stage}")
        return getattr(self, f"{stage}_model")

    def credential(self) -> str:
        """Credential (or endpoint, for ollama) of the active provider.

        Falls back to the provider's environment variable when the stored
        value is empty.
        """
        stored = {
            "openai": self.api_key,
            "gemini": self.gemini_api_key,
            "ollama": self.ollama_url,
        }.get(self.model_provider, "")
        value = sanitize_api_key(stored)
        if value:
            return value

        env = _CREDENTIAL_ENV.get(self.model_provider)
        return sanitize_api_key(os.getenv(env) or "") if env else ""

    def has_credential(self) -> bool:
        return bool(self.credential())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderConfiguration":
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

def _clamp_opacity(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"opacity must be a number, got {v!r}")
    return min(1.0, max(0.1, f))

Listener = Callable[[ProviderConfiguration], None]

class ConfigStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_config_path()
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def load(self) -> ProviderConfiguration:
        with self._lock:
            if not self.path.exists():
                config = ProviderConfiguration()
                self.save(config)
                return config

            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error("Error loading config %s: %s", self.path, e)
                return ProviderConfiguration()

            if not isinstance(data, dict):
                logger.error("Config %s is not a JSON object, using defaults", self.path)
                return ProviderConfiguration()
            return ProviderConfiguration.from_dict(data)

    def save(self, config: ProviderConfiguration) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(config.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")

    # ------------------------------------------------------------------
    # updates
    # ------------------------------------------------------------------
    def update(self, changes: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ProviderConfiguration:
        """Merge partial changes, persist, and notify listeners if needed."""
        updates: Dict[str, Any] = dict(changes or {})
        updates.update(kwargs)

        known = {f.name for f in fields(ProviderConfiguration)}
        unknown = sorted(k for k in updates if k not in known)
        if unknown:
            raise ConfigurationError(f"unknown config keys: {', '.join(unknown)}")

        with self._lock:
            current = self.load()
            merged = current.to_dict()
            merged.update(updates)

            provider = str(merged.get("model_provider") or "").strip().lower()
            if provider not in PROVIDERS:
                raise ConfigurationError(f"Unsupported provider: {merged.get('model_provider')}")
            merged["model_provider"] = provider

            provider_changed = provider != current.model_provider
            for stage in STAGES:
                key = f"{stage}_model"
                if provider_changed and key not in updates:
                    merged[key] = registry.default_model(provider, stage)
                else:
                    merged[key] = registry.sanitize_model(provider, stage, str(merged.get(key) or ""))

            if "opacity" in updates:
                merged["opacity"] = _clamp_opacity(updates["opacity"])

            new_config = ProviderConfiguration(**merged)
            self.save(new_config)

        if PROVIDER_FIELDS.intersection(updates):
            self._notify(new_config)

        return new_config

    # ------------------------------------------------------------------
    # change notification
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, config: ProviderConfiguration) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(config)
            except Exception:
                logger.exception("config listener failed")

    # ------------------------------------------------------------------
    # convenience accessors
    # ------------------------------------------------------------------
    def has_api_key(self) -> bool:
        return self.load().has_credential()

    def get_language(self) -> str:
        return self.load().language or "python"

    def set_language(self, language: str) -> ProviderConfiguration:
        return self.update(language=language)

    def get_opacity(self) -> float:
        return self.load().opacity

    def set_opacity(self, opacity: float) -> ProviderConfiguration:
        return self.update(opacity=opacity)
