from __future__ import annotations

from enum import Enum
from typing import Optional


class SnapSolveError(Exception):
    pass


class ConfigurationError(SnapSolveError):
    pass


class InvalidRequestError(SnapSolveError, ValueError):
    pass


class ProviderErrorKind(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    MODEL_NOT_FOUND = "model_not_found"
    BAD_REQUEST = "bad_request"
    BAD_RESPONSE = "bad_response"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"


_INVALID_KEY_HINTS = ("api_key_invalid", "invalid api key", "incorrect api key", "api key not valid")
_QUOTA_HINTS = ("resource_exhausted", "insufficient_quota", "quota")


class ProviderError(SnapSolveError):
    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.TRANSIENT,
        status_code: Optional[int] = None,
        provider: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.provider = provider

    @classmethod
    def from_status(cls, status_code: int, body: str, provider: str = "") -> "ProviderError":
        text = (body or "")[:800]
        lowered = text.lower()

        if status_code in (401, 403) or any(h in lowered for h in _INVALID_KEY_HINTS):
            kind = ProviderErrorKind.INVALID_CREDENTIAL
        elif status_code == 429 or any(h in lowered for h in _QUOTA_HINTS):
            kind = ProviderErrorKind.RATE_LIMITED
        elif status_code == 404:
            kind = ProviderErrorKind.MODEL_NOT_FOUND
        elif 400 <= status_code < 500:
            kind = ProviderErrorKind.BAD_REQUEST
        else:
            kind = ProviderErrorKind.TRANSIENT

        return cls(f"http {status_code}: {text}", kind=kind, status_code=status_code, provider=provider)

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, status_code={self.status_code!r}, provider={self.provider!r})"


class ParseError(SnapSolveError):
    pass


class StageError(SnapSolveError):
    pass


class ExtractionError(StageError):
    pass


class SolutionError(StageError):
    pass


class DebugError(StageError):
    pass


class CanceledError(SnapSolveError):
    pass


class InvalidTransitionError(SnapSolveError):
    pass
