"""Solution stage output -> SolutionResult.

The solution prompt asks for free-form markdown (code, thoughts, two complexity
lines), so this parser never fails: each field has a fallback and the result
always carries code, at least one thought and notation-bearing complexities.
"""
from __future__ import annotations

import re
from typing import List, Optional

from ..logging_util import get_logger
from ..types import SolutionResult

logger = get_logger(__name__)

DEFAULT_THOUGHTS = ["Solution approach based on efficiency and readability"]

DEFAULT_TIME_COMPLEXITY = (
    "O(n) - Linear time complexity because we only iterate through the array once. "
    "Each element is processed exactly one time, and the hashmap lookups are O(1) operations."
)
DEFAULT_SPACE_COMPLEXITY = (
    "O(n) - Linear space complexity because we store elements in the hashmap. "
    "In the worst case, we might need to store all elements before finding the solution pair."
)

_CODE_RE = re.compile(r"```(?:[\w+#.-]*[ \t]*\n)?(.*?)```", re.DOTALL)

_THOUGHTS_RE = re.compile(
    r"(?:Thoughts|Key Insights|Reasoning|Approach)\s*(?:\*\*|__)?\s*:"
    r"(.*?)"
    r"(?=(?:Time complexity|Space complexity|Code)\s*(?:\*\*|__)?\s*:|```|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d+\.)\s*(.*)$", re.MULTILINE)

_HEADING_LINE_RE = re.compile(
    r"^\s*(?:[#*_]+\s*|\d+\.\s*)*"
    r"(?:Time complexity|Space complexity|Code|Thoughts|Your Thoughts|Key Insights|Reasoning|Approach)\b",
    re.IGNORECASE,
)
_BIG_O_RE = re.compile(r"O\([^)]+\)", re.IGNORECASE)

def _is_noise(item: str) -> bool:
    return not re.sub(r"[*_#\s]", "", item)

def extract_code(text: str) -> str:
    m = _CODE_RE.search(text)
    return m.group(1).strip() if m else text.strip()

def extract_thoughts(text: str) -> List[str]:
    m = _THOUGHTS_RE.search(text)
    if not m:
        return list(DEFAULT_THOUGHTS)

    span = m.group(1)
    items = [i.strip() for i in _ITEM_RE.findall(span)]
    items = [i for i in items if i and not _is_noise(i)]
    if not items:
        items = [line.strip() for line in span.splitlines()]
        items = [i for i in items if i and not _is_noise(i)]
    return items or list(DEFAULT_THOUGHTS)

def _section_after(text: str, heading: str) -> Optional[str]:
    """Text after `heading`, up to a blank line or the next heading line."""
    m = re.search(
        rf"^[ \t>*_#\d.-]*{heading}\s*(?:\*\*|__)?\s*:?\s*(?:\*\*|__)?",
        text,
        flags=re.IGNORECASE | re.MULTILINE,
    )
    if not m:
        return None

    lines: List[str] = []
    for line in text[m.end():].splitlines():
        if not line.strip():
            if lines:
                break
            continue
        if lines and (_HEADING_LINE_RE.match(line) or line.lstrip().startswith("```")):
            break
        lines.append(line.strip())

    value = " ".join(lines).strip().strip("*_").strip()
    return value or None

def normalize_complexity(value: str, kind: str) -> str:
    """Guarantee "O(...) - explanation" shape."""
    value = value.strip()
    m = _BIG_O_RE.search(value)
    if not m:
        return f"O(n) - {value}"

    if "-" in value or "because" in value.lower():
        return value

    notation = m.group(0)
    rest = (value[: m.start()] + value[m.end():]).strip(" ,.:;")
    if not rest:
        rest = f"{kind} complexity of the approach above."
    return f"{notation} - {rest}"

def extract_complexity(text: str, kind: str) -> str:
    default = DEFAULT_TIME_COMPLEXITY if kind == "Time" else DEFAULT_SPACE_COMPLEXITY
    value = _section_after(text, f"{kind} complexity")
    if value is None:
        logger.debug("no %s complexity heading, using default", kind.lower())
        return default
    return normalize_complexity(value, kind)

def parse_solution(text: str) -> SolutionResult:
    text = text or ""
    # headings inside code comments must not count
    prose = _CODE_RE.sub("\n", text)
    return SolutionResult(
        code=extract_code(text),
        thoughts=extract_thoughts(prose),
        time_complexity=extract_complexity(prose, "Time"),
        space_complexity=extract_complexity(prose, "Space"),
    )
