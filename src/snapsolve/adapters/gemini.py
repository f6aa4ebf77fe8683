"""Gemini REST adapter (generateContent).

generateContent has no chat roles for our purposes and no max_tokens/temperature
request fields, so the whole ChatRequest becomes one ordered list of parts:
- system messages -> text part prefixed with SYSTEM_PREFIX
- text parts      -> {"text": ...}
- image parts     -> {"inlineData": {"mimeType": ..., "data": ...}}
and generation parameters move into generationConfig.
"""
from __future__ import annotations

from typing import Any, Dict, List

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

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
SYSTEM_PREFIX = "System instruction: "

def _encode_part(part: ContentPart) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, ImagePart):
        return {"inlineData": {"mimeType": part.mime_type, "data": part.data}}
    raise InvalidRequestError(f"unsupported content part: {type(part).__name__}")

def _model_path(model: str) -> str:
    m = (model or "").strip()
    if m.startswith("models/"):
        m = m[len("models/"):]
    return m

class GeminiAdapter(BaseChatAdapter):
    name = "gemini"

    def __init__(self, timeout: int = 60, base_url: str = BASE_URL):
        super().__init__(timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self._api_key = ""

    def initialize(self, config: ProviderConfiguration) -> bool:
        try:
            key = config.credential()
            if not key:
                logger.warning("Gemini API key is not set")
                self._ready = False
                return False
            self._api_key = key
            self._ready = True
            logger.info("[GEMINI_KEY] %s", key_fingerprint(key))
            return True
        except Exception as e:
            logger.error("Failed to initialize Gemini adapter: %s", e)
            self._ready = False
            return False

    def encode_request(self, request: ChatRequest) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = []

        for m in request.messages:
            if m.role == "system":
                if m.images:
                    raise InvalidRequestError("system messages cannot carry images")
                parts.append({"text": f"{SYSTEM_PREFIX}{m.text}"})
                continue
            parts.extend(_encode_part(p) for p in m.parts)

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }

    def decode_request(self, payload: Dict[str, Any], model: str = "") -> ChatRequest:
        """Rebuild messages from the flat part list.

        Prefixed text parts become system messages; runs of other parts become
        one user message each.
        """
        messages: List[ChatMessage] = []
        pending: List[ContentPart] = []

        def flush() -> None:
            if pending:
                messages.append(ChatMessage(role="user", content=tuple(pending)))
                pending.clear()

        for entry in payload.get("contents") or []:
            for part in entry.get("parts") or []:
                if "inlineData" in part:
                    inline = part["inlineData"] or {}
                    pending.append(ImagePart(data=inline.get("data") or "", mime_type=inline.get("mimeType") or "image/png"))
                    continue

                text = str(part.get("text") or "")
                if text.startswith(SYSTEM_PREFIX):
                    flush()
                    messages.append(ChatMessage(role="system", content=text[len(SYSTEM_PREFIX):]))
                else:
                    pending.append(TextPart(text))
        flush()

        gen_cfg = payload.get("generationConfig") or {}
        return ChatRequest(
            messages=tuple(messages),
            model=model or payload.get("model") or "gemini",
            max_tokens=gen_cfg.get("maxOutputTokens", DEFAULT_MAX_TOKENS),
            temperature=gen_cfg.get("temperature", DEFAULT_TEMPERATURE),
        )

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            if reason:
                raise ProviderError(f"prompt blocked by Gemini: {reason}", kind=ProviderErrorKind.BAD_RESPONSE, provider=self.name)
            raise ProviderError("response has no candidates", kind=ProviderErrorKind.BAD_RESPONSE, provider=self.name)

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))
        return ChatResponse(text=text, model=str(data.get("modelVersion") or ""), raw=data)

    def complete(self, request: ChatRequest) -> ChatResponse:
        url = f"{self.base_url}/models/{_model_path(request.model)}:generateContent"
        payload = self.encode_request(request)

        n_parts = len(payload["contents"][0]["parts"])
        logger.debug("Sending %d parts to Gemini model=%s", n_parts, request.model)

        data = self._post_json(url, payload, headers={"x-goog-api-key": self._api_key})
        response = self.parse_response(data)
        logger.debug("Gemini response received, length=%d", len(response.text))
        return response
