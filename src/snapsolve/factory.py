"""Adapter selection and the shared, versioned adapter handle.

Design:
- select_adapter() builds a brand-new adapter for the configured provider and
  returns it only if initialize() succeeded; otherwise None (unconfigured).
- AdapterHandle publishes immutable AdapterSnapshot objects. Every config
  change builds a new adapter and bumps the version; nothing is reused.
- Pipelines take snapshot() once at start and keep that adapter until they end,
  so a swap never lands in the middle of a pipeline.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type

from .adapters.base import BaseChatAdapter
from .adapters.gemini import GeminiAdapter
from .adapters.ollama import OllamaAdapter
from .adapters.openai_style import OpenAIStyleAdapter
from .config import ConfigStore, ProviderConfiguration
from .errors import ConfigurationError
from .logging_util import get_logger

logger = get_logger(__name__)

ADAPTERS: Dict[str, Type[BaseChatAdapter]] = {
    "openai": OpenAIStyleAdapter,
    "gemini": GeminiAdapter,
    "ollama": OllamaAdapter,
}

def build_adapter(provider: str) -> BaseChatAdapter:
    cls = ADAPTERS.get((provider or "").strip().lower())
    if cls is None:
        raise ConfigurationError(f"Unsupported provider: {provider}")
    return cls()

def select_adapter(config: ProviderConfiguration) -> Optional[BaseChatAdapter]:
    provider = config.model_provider or "openai"
    adapter = build_adapter(provider)

    if adapter.initialize(config):
        logger.info("%s model provider initialized successfully", provider)
        return adapter

    logger.warning("Failed to initialize %s model provider", provider)
    return None

@dataclass(frozen=True)
class AdapterSnapshot:
    version: int
    provider: str
    adapter: Optional[BaseChatAdapter]

    @property
    def ready(self) -> bool:
        return self.adapter is not None and self.adapter.is_initialized()

Selector = Callable[[ProviderConfiguration], Optional[BaseChatAdapter]]

class AdapterHandle:
    def __init__(self, store: ConfigStore, selector: Selector = select_adapter):
        self.store = store
        self._selector = selector
        self._lock = threading.Lock()
        self._snapshot = AdapterSnapshot(version=0, provider="", adapter=None)
        self._unsubscribe: Optional[Callable[[], None]] = None

    def snapshot(self) -> AdapterSnapshot:
        with self._lock:
            return self._snapshot

    def refresh(self, config: Optional[ProviderConfiguration] = None) -> AdapterSnapshot:
        config = config or self.store.load()
        try:
            adapter = self._selector(config)
        except ConfigurationError as e:
            logger.error("Cannot build model provider: %s", e)
            adapter = None

        with self._lock:
            self._snapshot = AdapterSnapshot(
                version=self._snapshot.version + 1,
                provider=config.model_provider,
                adapter=adapter,
            )
            snap = self._snapshot

        logger.debug("published adapter snapshot v%d provider=%s ready=%s", snap.version, snap.provider, snap.ready)
        return snap

    def start(self) -> AdapterSnapshot:
        snap = self.refresh()
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_config_updated)
        return snap

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        adapter = self.snapshot().adapter
        if adapter is not None:
            adapter.close()

    def _on_config_updated(self, config: ProviderConfiguration) -> None:
        logger.info("config updated, re-initializing model provider (%s)", config.model_provider)
        self.refresh(config)
