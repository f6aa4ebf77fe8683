"""OpenAI-style chat.completions adapter."""
from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import ProviderConfiguration
from ..errors import InvalidRequestError, ProviderError, ProviderErrorKind
from ..logging_util import get_logger, key_fingerprint
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

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
MODELS_ENDPOINT = "https://api.openai.com/v1/models"

_KEY_FORMAT = re.compile(r"^sk-[A-Za-z0-9_-]{32,}$")

def _encode_part(part: ContentPart) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        return {"type": "image_url", "image_url": {"url": part.as_data_url()}}
    raise InvalidRequestError(f"unsupported content part: {type(part).__name__}")

def _decode_part(item: Dict[str, Any]) -> ContentPart:
    kind = item.get("type")
    if kind == "text":
        return TextPart(str(item.get("text") or ""))
    if kind == "image_url":
        url = (item.get("image_url") or {}).get("url") or ""
        return ImagePart.from_data_url(url)
    raise InvalidRequestError(f"unsupported content item: {kind!r}")

class OpenAIStyleAdapter(BaseChatAdapter):
    name = "openai"

    def __init__(self, endpoint: Optional[str] = None, timeout: int = 60):
        super().__init__(timeout=timeout)
        self.endpoint = (endpoint or os.environ.get("OPENAI_ENDPOINT") or DEFAULT_ENDPOINT).strip()
        self._api_key = ""

    def initialize(self, config: ProviderConfiguration) -> bool:
        try:
            key = config.credential()
            if not key:
                logger.warning("OpenAI API key is not set")
                self._ready = False
                return False
            self._api_key = key
            self._ready = True
            logger.info("[OPENAI_KEY] %s endpoint=%s", key_fingerprint(key), self.endpoint)
            return True
        except Exception as e:
            logger.error("Failed to initialize OpenAI adapter: %s", e)
            self._ready = False
            return False

    def encode_request(self, request: ChatRequest) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        for m in request.messages:
            if isinstance(m.content, str):
                content: Any = m.content
            else:
                content = [_encode_part(p) for p in m.content]
            messages.append({"role": m.role, "content": content})

        return {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def decode_request(self, payload: Dict[str, Any]) -> ChatRequest:
        messages = []
        for m in payload.get("messages") or []:
            content = m.get("content", "")
            if isinstance(content, list):
                content = tuple(_decode_part(item) for item in content)
            messages.append(ChatMessage(role=m.get("role"), content=content))

        return ChatRequest(
            messages=tuple(messages),
            model=payload.get("model") or "",
            max_tokens=payload.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=payload.get("temperature", DEFAULT_TEMPERATURE),
        )

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("response has no choices", kind=ProviderErrorKind.BAD_RESPONSE, provider=self.name)

        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, list):
            # some compatible servers return content parts
            content = "".join(str(c.get("text") or "") for c in content if isinstance(c, dict))
        return ChatResponse(text=str(content or ""), model=str(data.get("model") or ""), raw=data)

    def complete(self, request: ChatRequest) -> ChatResponse:
        payload = self.encode_request(request)
        headers = {"Authorization": f"Bearer {self._api_key}"}
        data = self._post_json(self.endpoint, payload, headers=headers)
        return self.parse_response(data)

def is_valid_api_key_format(api_key: str) -> bool:
    return bool(_KEY_FORMAT.match((api_key or "").strip()))

def check_api_key(api_key: str, endpoint: str = MODELS_ENDPOINT, timeout: int = 15) -> Tuple[bool, Optional[str]]:
    """Test a key by listing models. Returns (valid, user-facing error)."""
    try:
        r = requests.get(endpoint, headers={"Authorization": f"Bearer {(api_key or '').strip()}"}, timeout=timeout)
    except requests.RequestException as e:
        logger.error("API key test failed: %s", e)
        return False, f"Error: {e}"

    if r.status_code == 200:
        return True, None
    if r.status_code == 401:
        return False, "Invalid API key. Please check your key and try again."
    if r.status_code == 429:
        return False, "Rate limit exceeded. Your API key has reached its request limit or has insufficient quota."
    if r.status_code == 500:
        return False, "OpenAI server error. Please try again later."
    return False, f"Error: http {r.status_code}"
