"""Ollama (local inference) adapter, /api/generate.

/api/generate has no chat or multimodal structure, so a ChatRequest is flattened:
- every system message and the final user message become "### System" /
  "### User" blocks of one prompt string, in message order
- images of the final user message travel in the separate "images" list

Local servers are the most failure-prone backend (no guaranteed vision
support, tight memory), so images are downsized before sending and a request
with images that fails is retried once as text only.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import DEFAULT_OLLAMA_URL, ProviderConfiguration
from ..errors import InvalidRequestError, ProviderError, ProviderErrorKind
from ..images import shrink_image_b64
from ..logging_util import get_logger
from ..types import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContentPart,
    ImagePart,
    TextPart,
)
from .base import BaseChatAdapter

logger = get_logger(__name__)

GENERATE_TIMEOUT = 120
PROBE_TIMEOUT = 5

IMAGE_RETRY_NOTE = (
    "\n\nNote: the attached screenshots could not be processed by this model. "
    "Answer using only the text above."
)

_BLOCK_RE = re.compile(r"^### (System|User)\n", re.MULTILINE)
_BLOCK_SEP = "\n\n"

def normalize_base_url(url: Optional[str]) -> str:
    u = (url or "").strip() or DEFAULT_OLLAMA_URL
    if "://" not in u:
        u = "http://" + u
    u = u.rstrip("/")
    if not u.endswith("/api"):
        u += "/api"
    return u

def flatten_messages(messages: Tuple[ChatMessage, ...]) -> Tuple[str, List[str]]:
    """Return (prompt, base64 images) for /api/generate."""
    user_indexes = [i for i, m in enumerate(messages) if m.role == "user"]
    if not user_indexes:
        raise InvalidRequestError("ollama requests need a user message")
    last_user = user_indexes[-1]

    blocks: List[str] = []
    for i, m in enumerate(messages):
        if m.role == "system":
            blocks.append(f"### System\n{m.text}")
        elif i == last_user:
            blocks.append(f"### User\n{m.text}")

    images = [img.data for img in messages[last_user].images]
    return _BLOCK_SEP.join(blocks), images

class OllamaAdapter(BaseChatAdapter):
    name = "ollama"

    def __init__(self, timeout: int = GENERATE_TIMEOUT):
        super().__init__(timeout=timeout)
        self.base_url = normalize_base_url(None)
        self._models: List[str] = []

    def initialize(self, config: ProviderConfiguration) -> bool:
        self._ready = False
        try:
            self.base_url = normalize_base_url(config.credential())
            r = requests.get(f"{self.base_url}/tags", timeout=PROBE_TIMEOUT)
            if r.status_code != 200:
                logger.warning("Ollama probe failed: http %s at %s", r.status_code, self.base_url)
                return False
            data = r.json()
            if not isinstance(data, dict):
                logger.warning("Ollama probe at %s did not return a model list", self.base_url)
                return False
            models = data.get("models") or []
            if not isinstance(models, list):
                logger.warning("Ollama probe at %s returned malformed models: %r", self.base_url, models)
                return False
            names = [str(m.get("name") or m.get("model") or "") for m in models if isinstance(m, dict)]
        except Exception as e:
            logger.error("Failed to initialize Ollama client at %s: %s", self.base_url, e)
            return False

        self._models = [m for m in names if m]
        self._ready = True
        logger.info("Ollama ready at %s (%d models installed)", self.base_url, len(self._models))
        return True

    def resolve_model(self, requested: str) -> str:
        """Match a configured model name against the installed ones."""
        name = (requested or "").strip()
        installed = self._models

        if name in installed:
            return name
        if name.endswith(":latest") and name[: -len(":latest")] in installed:
            return name[: -len(":latest")]
        if ":" not in name:
            if f"{name}:latest" in installed:
                return f"{name}:latest"
            for m in installed:
                if m.split(":", 1)[0] == name:
                    return m

        raise ProviderError(
            f"model {name!r} is not installed in Ollama (available: {', '.join(installed) or 'none'})",
            kind=ProviderErrorKind.MODEL_NOT_FOUND,
            provider=self.name,
        )

    def encode_request(self, request: ChatRequest) -> Dict[str, Any]:
        prompt, images = flatten_messages(request.messages)
        payload: Dict[str, Any] = {
            "model": request.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        if images:
            payload["images"] = images
        return payload

    def decode_request(self, payload: Dict[str, Any]) -> ChatRequest:
        pieces = _BLOCK_RE.split(str(payload.get("prompt") or ""))
        # pieces: [preamble, role, body, role, body, ...]
        pairs = list(zip(pieces[1::2], pieces[2::2]))
        if not pairs:
            raise InvalidRequestError("prompt has no ### System / ### User blocks")

        messages: List[ChatMessage] = []
        for i, (role, body) in enumerate(pairs):
            if i < len(pairs) - 1 and body.endswith(_BLOCK_SEP):
                body = body[: -len(_BLOCK_SEP)]
            if role == "System":
                messages.append(ChatMessage(role="system", content=body))
            else:
                parts: List[ContentPart] = [TextPart(body)]
                parts.extend(ImagePart(data=img) for img in payload.get("images") or [])
                messages.append(ChatMessage(role="user", content=tuple(parts)))

        options = payload.get("options") or {}
        return ChatRequest(
            messages=tuple(messages),
            model=payload.get("model") or "",
            max_tokens=options.get("num_predict", DEFAULT_MAX_TOKENS),
            temperature=options.get("temperature", DEFAULT_TEMPERATURE),
        )

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        if "response" not in data:
            raise ProviderError("No valid response from Ollama", kind=ProviderErrorKind.BAD_RESPONSE, provider=self.name)
        return ChatResponse(text=str(data.get("response") or ""), model=str(data.get("model") or ""), raw=data)

    def _generate(self, payload: Dict[str, Any]) -> ChatResponse:
        data = self._post_json(f"{self.base_url}/generate", payload, timeout=self.timeout)
        return self.parse_response(data)

    def complete(self, request: ChatRequest) -> ChatResponse:
        payload = self.encode_request(request)
        payload["model"] = self.resolve_model(request.model)

        if not payload.get("images"):
            return self._generate(payload)

        payload["images"] = [shrink_image_b64(img) for img in payload["images"]]
        try:
            return self._generate(payload)
        except ProviderError as e:
            logger.warning("Ollama request with %d image(s) failed (%s); retrying without images", len(payload["images"]), e)

        text_only = {k: v for k, v in payload.items() if k != "images"}
        text_only["prompt"] = payload["prompt"] + IMAGE_RETRY_NOTE
        return self._generate(text_only)
