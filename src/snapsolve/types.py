"""Shared types and lightweight data containers.

We avoid heavy frameworks here. The goal is:
- one backend-agnostic chat contract that every adapter translates to/from
- a closed content model (TextPart | ImagePart), checked when a message is built
- plain result records for the extraction, solution and debug stages
"""
from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .errors import InvalidRequestError

Provider = Literal["openai", "gemini", "ollama"]
PROVIDERS: Tuple[str, ...] = ("openai", "gemini", "ollama")

Stage = Literal["extraction", "solution", "debugging"]
STAGES: Tuple[str, ...] = ("extraction", "solution", "debugging")

Role = Literal["system", "user"]
ROLES: Tuple[str, ...] = ("system", "user")

DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.2

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class TextPart:
    text: str

    def __post_init__(self):
        if not isinstance(self.text, str):
            raise InvalidRequestError(f"TextPart.text must be str, got {type(self.text).__name__}")


@dataclass(frozen=True)
class ImagePart:
    """Inline image, base64 encoded (no data: prefix)."""

    data: str
    mime_type: str = "image/png"

    def __post_init__(self):
        if not isinstance(self.data, str) or not self.data:
            raise InvalidRequestError("ImagePart.data must be a non-empty base64 string")
        if not str(self.mime_type).startswith("image/"):
            raise InvalidRequestError(f"unsupported image mime type: {self.mime_type}")
        try:
            base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidRequestError(f"ImagePart.data is not valid base64: {e}")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @classmethod
    def from_data_url(cls, url: str) -> "ImagePart":
        m = _DATA_URL_RE.match(url or "")
        if not m:
            raise InvalidRequestError("image url is not a base64 data: url")
        return cls(data=m.group("data"), mime_type=m.group("mime"))


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: Union[str, Tuple[ContentPart, ...]]

    def __post_init__(self):
        if self.role not in ROLES:
            raise InvalidRequestError(f"unsupported role: {self.role!r}")

        if isinstance(self.content, str):
            return
        if not isinstance(self.content, (list, tuple)):
            raise InvalidRequestError(f"message content must be str or a sequence of parts, got {type(self.content).__name__}")

        parts = tuple(self.content)
        for p in parts:
            if not isinstance(p, (TextPart, ImagePart)):
                raise InvalidRequestError(f"unsupported content part: {type(p).__name__}")
        object.__setattr__(self, "content", parts)

    @property
    def parts(self) -> Tuple[ContentPart, ...]:
        if isinstance(self.content, str):
            return (TextPart(self.content),)
        return self.content

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def images(self) -> List[ImagePart]:
        return [p for p in self.parts if isinstance(p, ImagePart)]


@dataclass(frozen=True)
class ChatRequest:
    messages: Tuple[ChatMessage, ...]
    model: str
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE

    def __post_init__(self):
        msgs = tuple(self.messages or ())
        if not msgs:
            raise InvalidRequestError("a chat request needs at least one message")
        for m in msgs:
            if not isinstance(m, ChatMessage):
                raise InvalidRequestError(f"unsupported message: {type(m).__name__}")
        object.__setattr__(self, "messages", msgs)

        if not isinstance(self.model, str) or not self.model.strip():
            raise InvalidRequestError("model is required")
        if int(self.max_tokens) <= 0:
            raise InvalidRequestError("max_tokens must be positive")


@dataclass(frozen=True)
class ChatResponse:
    text: str
    model: str = ""
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v
    return json.dumps(v, ensure_ascii=False)


@dataclass
class ProblemInfo:
    problem_statement: str
    constraints: List[str] = field(default_factory=list)
    example_input: str = ""
    example_output: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProblemInfo":
        raw_constraints = data.get("constraints")
        if raw_constraints is None:
            constraints: List[str] = []
        elif isinstance(raw_constraints, (list, tuple)):
            constraints = [_as_text(c) for c in raw_constraints]
        else:
            text = _as_text(raw_constraints).strip()
            constraints = [text] if text else []

        return cls(
            problem_statement=_as_text(data.get("problem_statement")),
            constraints=constraints,
            example_input=_as_text(data.get("example_input")),
            example_output=_as_text(data.get("example_output")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SolutionResult:
    code: str
    thoughts: List[str]
    time_complexity: str
    space_complexity: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CodeMarker(str, Enum):
    """Reserved values of DebugResult.code that are not model output."""

    NO_CODE_CHANGES_NEEDED = "__NO_CODE_CHANGES_NEEDED__"
    ANALYSIS_ONLY = "__ANALYSIS_ONLY__"


class DebugStatus(str, Enum):
    HAS_CHANGES = "HAS_CHANGES"
    NO_CHANGES = "NO_CHANGES"


@dataclass
class DebugResult:
    code: Union[str, CodeMarker]
    debug_analysis: str
    thoughts: List[str]
    status: DebugStatus

    @property
    def has_changes(self) -> bool:
        return self.status is DebugStatus.HAS_CHANGES

    @property
    def is_marker(self) -> bool:
        return isinstance(self.code, CodeMarker)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value if isinstance(self.code, CodeMarker) else self.code,
            "debug_analysis": self.debug_analysis,
            "thoughts": list(self.thoughts),
            "time_complexity": "N/A - Debug mode",
            "space_complexity": "N/A - Debug mode",
            "status": self.status.value,
        }


class ProcessingEvent(str, Enum):
    INITIAL_START = "initial-start"
    PROBLEM_EXTRACTED = "problem-extracted"
    SOLUTION_SUCCESS = "solution-success"
    INITIAL_SOLUTION_ERROR = "solution-error"
    API_KEY_INVALID = "api-key-invalid"
    NO_SCREENSHOTS = "processing-no-screenshots"
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"


class FailureKind(str, Enum):
    INVALID_CREDENTIAL = "invalid-credential"
    RATE_LIMITED = "rate-limited"
    ERROR = "error"
    CANCELED = "canceled"


@dataclass(frozen=True)
class ProgressUpdate:
    message: str
    progress: int


@dataclass(frozen=True)
class PipelineEvent:
    type: ProcessingEvent
    payload: Any = None
    failure: Optional[FailureKind] = None
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.type not in (
            ProcessingEvent.INITIAL_START,
            ProcessingEvent.PROBLEM_EXTRACTED,
            ProcessingEvent.DEBUG_START,
        )


@dataclass(frozen=True)
class PipelineResult:
    ok: bool
    data: Any = None
    failure: Optional[FailureKind] = None
    message: str = ""

    @property
    def canceled(self) -> bool:
        return self.failure is FailureKind.CANCELED


def user_message(text: str, images: Sequence[str] = (), mime_type: str = "image/png") -> ChatMessage:
    """Text part followed by one image part per base64 screenshot."""
    parts: List[ContentPart] = [TextPart(text)]
    parts.extend(ImagePart(data=img, mime_type=mime_type) for img in images)
    return ChatMessage(role="user", content=tuple(parts))
