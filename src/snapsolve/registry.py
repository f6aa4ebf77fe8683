"""Provider/model catalog.

Design:
- Strict provider means: "Only catalog models are accepted for that provider."
  Config updates replace unknown models with the provider's stage default.
- Non-strict provider (local inference): any model name is accepted; the
  catalog only supplies defaults and suggestions.
- If the catalog file is missing or broken, built-in defaults are used and
  every model is allowed.

models.yaml supports:
  providers:
    openai:
      strict: true
      defaults: {extraction: gpt-4o, solution: gpt-4o, debugging: gpt-4o}
      models:
        extraction: [gpt-4o, gpt-4o-mini]
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .logging_util import get_logger

logger = get_logger(__name__)

CATALOG_PATH = Path(__file__).resolve().parent / "configs" / "models.yaml"

_BUILTIN_DEFAULTS: Dict[str, Dict[str, str]] = {
    "openai": {"extraction": "gpt-4o", "solution": "gpt-4o", "debugging": "gpt-4o"},
    "gemini": {"extraction": "gemini-2.0-flash", "solution": "gemini-2.0-flash", "debugging": "gemini-2.0-flash"},
    "ollama": {"extraction": "llama3.2-vision:11b", "solution": "llama3.2:latest", "debugging": "llama3.2-vision:11b"},
}

_cache: Dict[Path, Dict] = {}

def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except Exception as e:
        logger.error("Failed to load YAML: %s (%s)", path, e)
        return {}

def load_catalog(path: Optional[Path] = None) -> Dict:
    p = path or CATALOG_PATH
    if p not in _cache:
        _cache[p] = _load_yaml(p)
    return _cache[p]

def _provider_entry(provider: str, path: Optional[Path] = None) -> Dict:
    providers = load_catalog(path).get("providers") or {}
    return providers.get(provider) or {}

def models_for(provider: str, stage: str, path: Optional[Path] = None) -> List[str]:
    models = _provider_entry(provider, path).get("models") or {}
    return list(models.get(stage) or [])

def default_model(provider: str, stage: str, path: Optional[Path] = None) -> str:
    defaults = _provider_entry(provider, path).get("defaults") or {}
    model = defaults.get(stage)
    if model:
        return str(model)
    listed = models_for(provider, stage, path)
    if listed:
        return listed[0]
    return _BUILTIN_DEFAULTS.get(provider, _BUILTIN_DEFAULTS["openai"])[stage]

def is_strict(provider: str, path: Optional[Path] = None) -> bool:
    return bool(_provider_entry(provider, path).get("strict"))

def is_allowed(provider: str, stage: str, model: str, path: Optional[Path] = None):
    """Return (ok, reason) for a provider+stage+model combination."""
    if not is_strict(provider, path):
        return True, "strict=false"

    allowed = set(models_for(provider, stage, path))
    if not allowed:
        return True, "strict=true but no models listed"
    if model not in allowed:
        return False, f"model not allowed for provider={provider} stage={stage}: {model}"
    return True, "allowed"

def sanitize_model(provider: str, stage: str, model: str, path: Optional[Path] = None) -> str:
    model = (model or "").strip()
    if not model:
        return default_model(provider, stage, path)

    ok, reason = is_allowed(provider, stage, model, path)
    if ok:
        return model

    fallback = default_model(provider, stage, path)
    logger.warning("%s; using %s", reason, fallback)
    return fallback
