"""Adapter interface for LLM providers.

Every adapter speaks the same contract (ChatRequest -> ChatResponse) and keeps
all backend-specific translation inside encode_request/parse_response.
Network calls use a per-adapter requests session and run in a worker thread,
so chat_complete() is a coroutine that suspends at the I/O boundary. abort()
interrupts whatever that session has in flight; the interrupted call raises
CanceledError.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from ..config import ProviderConfiguration
from ..errors import CanceledError, ProviderError, ProviderErrorKind
from ..logging_util import get_logger
from ..types import ChatRequest, ChatResponse
from .transport import AbortableSession

logger = get_logger(__name__)

class BaseChatAdapter(ABC):
    name = "base"

    def __init__(self, timeout: int = 60):
        self.timeout = timeout
        self._ready = False
        self._aborts = 0
        self.session = AbortableSession()

    @abstractmethod
    def initialize(self, config: ProviderConfiguration) -> bool:
        """Prepare the adapter. Returns False (never raises) when it cannot serve requests."""

    def is_initialized(self) -> bool:
        return self._ready

    def abort(self) -> int:
        """Interrupt requests in flight on this adapter. Returns how many were cut off."""
        self._aborts += 1
        interrupted = self.session.abort()
        if interrupted:
            logger.info("%s: aborted %d in-flight request(s)", self.name, interrupted)
        return interrupted

    def close(self) -> None:
        self.session.close()

    async def chat_complete(self, request: ChatRequest) -> ChatResponse:
        if not self.is_initialized():
            raise ProviderError(f"{self.name} adapter not initialized", kind=ProviderErrorKind.NOT_INITIALIZED, provider=self.name)
        return await asyncio.to_thread(self.complete, request)

    @abstractmethod
    def complete(self, request: ChatRequest) -> ChatResponse:
        """Blocking request/response round-trip."""

    @abstractmethod
    def encode_request(self, request: ChatRequest) -> Dict[str, Any]:
        """ChatRequest -> backend payload."""

    @abstractmethod
    def decode_request(self, payload: Dict[str, Any]) -> ChatRequest:
        """Backend payload -> ChatRequest (inverse of encode_request)."""

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        """Backend response body -> ChatResponse."""

    def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        hdrs = {"Content-Type": "application/json"}
        hdrs.update(headers or {})

        aborts = self._aborts
        try:
            r = self.session.post(url, headers=hdrs, json=payload, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            if self._aborts != aborts:
                raise CanceledError(f"{self.name} request aborted")
            if isinstance(e, requests.Timeout):
                raise ProviderError(f"request timed out: {e}", kind=ProviderErrorKind.TIMEOUT, provider=self.name)
            raise ProviderError(f"request failed: {e}", kind=ProviderErrorKind.TRANSIENT, provider=self.name)

        if not 200 <= r.status_code < 300:
            raise ProviderError.from_status(r.status_code, r.text, provider=self.name)

        try:
            data = r.json()
        except ValueError:
            raise ProviderError(f"non-JSON response: {r.text[:200]}", kind=ProviderErrorKind.BAD_RESPONSE, status_code=r.status_code, provider=self.name)

        if not isinstance(data, dict):
            raise ProviderError("response body is not a JSON object", kind=ProviderErrorKind.BAD_RESPONSE, status_code=r.status_code, provider=self.name)
        return data
