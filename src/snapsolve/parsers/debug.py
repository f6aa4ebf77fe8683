"""Debug stage output -> DebugResult.

Pipeline: clean_markdown() -> section strategies -> sentinel classification.

Strategies, in order:
1. markers       "----- SECTION -----" delimiters, split positionally
2. keywords      "Issues identified:" style headings, one regex per section
3. unstructured  the whole text becomes the explanation

Everything here is a pure function of the response text, so parsing the same
text twice gives the same status and the same sentinel.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Union

from ..logging_util import get_logger
from ..types import CodeMarker, DebugResult, DebugStatus
from .strategies import ParseOutcome, run_strategies

logger = get_logger(__name__)

ISSUES_MARKER = "----- ISSUES IDENTIFIED -----"

DEFAULT_ISSUES = "No specific issues identified in the visible code"
DEFAULT_EXPLANATION = "No additional explanation provided"
DEFAULT_KEY_POINTS = "• Review the suggested changes carefully\n• Test the solution after making changes"
DEFAULT_THOUGHTS = ["Review the analysis to improve your solution"]

_FENCE_RE = re.compile(r"```(?:[\w+#.-]*[ \t]*\n)?(.*?)\n?```", re.DOTALL)
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?!\s)([^*\n]+?)(?<!\s)\*(?![*\w])")
_LINK_RE = re.compile(r"\[(.*?)\]\((.*?)\)")
_HEADING_RE = re.compile(r"^#+\s+(.*?):?[ \t]*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^[ \t]*[-*][ \t]+", re.MULTILINE)
_MARKER_SPLIT_RE = re.compile(r"-----.*?-----")
_THOUGHT_RE = re.compile(r"^[ \t]*•[ \t]*(.*?)[ \t]*$", re.MULTILINE)

_ISSUES = r"(?:Issues identified|Problems found)"
_CODE = r"(?:Code changes|Code improvements|Suggested changes|Fixes)"
_EXPLANATION = r"(?:Explanation|Reasoning|Analysis)"
_KEY_POINTS = r"(?:Key points|Summary|Takeaways)"
_ANY_HEADING = rf"\b(?:{_ISSUES}|{_CODE}|{_EXPLANATION}|{_KEY_POINTS})\s*:"

_PROSE_HINTS = ("should be", "recommend", "would change", "here's")

def _clean_prose(text: str) -> str:
    text = _BOLD_RE.sub(r"\1", text)
    text = _ITALIC_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1 (\2)", text)
    text = _HEADING_RE.sub(r"\1:", text)
    return _BULLET_RE.sub("• ", text)

def clean_markdown(text: str) -> str:
    """Plain text; fenced code is unwrapped verbatim, styling outside it is removed."""
    pieces = _FENCE_RE.split(text or "")
    # even indexes are prose, odd indexes are fence bodies
    return "".join(p if i % 2 else _clean_prose(p) for i, p in enumerate(pieces))

def clean_prose_only(text: str) -> str:
    """Like clean_markdown(), but fenced code is dropped instead of unwrapped."""
    return _clean_prose(_FENCE_RE.sub("\n", text or ""))

@dataclass(frozen=True)
class DebugSections:
    issues: str = ""
    code_changes: str = ""
    explanation: str = ""
    key_points: str = ""

def split_by_markers(text: str) -> ParseOutcome:
    if ISSUES_MARKER not in text:
        return ParseOutcome.failure("no section markers")

    parts = _MARKER_SPLIT_RE.split(text)
    if len(parts) < 4:
        return ParseOutcome.failure(f"expected at least 3 marked sections, got {len(parts) - 1}")

    return ParseOutcome.success(DebugSections(
        issues=parts[1].strip(),
        code_changes=parts[2].strip(),
        explanation=parts[3].strip(),
        key_points=parts[4].strip() if len(parts) >= 5 else "",
    ))

def _keyword_section(text: str, heading: str) -> str:
    m = re.search(rf"\b{heading}\s*:(.*?)(?={_ANY_HEADING}|\Z)", text, flags=re.IGNORECASE | re.DOTALL)
    return m.group(1).strip() if m else ""

def split_by_keywords(text: str) -> ParseOutcome:
    sections = DebugSections(
        issues=_keyword_section(text, _ISSUES),
        code_changes=_keyword_section(text, _CODE),
        explanation=_keyword_section(text, _EXPLANATION),
        key_points=_keyword_section(text, _KEY_POINTS),
    )
    if sections == DebugSections():
        return ParseOutcome.failure("no section headings")
    return ParseOutcome.success(sections)

def unstructured(text: str) -> ParseOutcome:
    return ParseOutcome.success(DebugSections(explanation=text.strip()))

STRATEGIES = (
    ("markers", split_by_markers),
    ("keywords", split_by_keywords),
    ("unstructured", unstructured),
)

def no_issues_found(sections: DebugSections) -> bool:
    issues = sections.issues.lower()
    return (
        not issues.strip()
        or "no issues" in issues
        or "code looks correct" in issues
        or "not found" in issues
        or "no code changes" in sections.code_changes.lower()
    )

def _is_prose(line: str) -> bool:
    low = line.lower()
    return not line.strip() or low.lstrip().startswith("•") or any(h in low for h in _PROSE_HINTS)

def select_code(sections: DebugSections, no_issues: bool) -> Union[str, CodeMarker]:
    if no_issues:
        return CodeMarker.NO_CODE_CHANGES_NEEDED

    changes = sections.code_changes
    if not changes or "no code changes" in changes.lower():
        return CodeMarker.ANALYSIS_ONLY

    code = "\n".join(line for line in changes.splitlines() if not _is_prose(line))
    return code if code.strip() else CodeMarker.ANALYSIS_ONLY

def format_analysis(sections: DebugSections) -> str:
    return (
        "ISSUES IDENTIFIED:\n" + (sections.issues or DEFAULT_ISSUES) + "\n\n"
        "EXPLANATION:\n" + (sections.explanation or DEFAULT_EXPLANATION) + "\n\n"
        "KEY POINTS:\n" + (sections.key_points or DEFAULT_KEY_POINTS)
    )

def extract_thoughts(cleaned: str) -> List[str]:
    thoughts = [t for t in _THOUGHT_RE.findall(cleaned) if len(t) >= 5]
    return thoughts[:5] or list(DEFAULT_THOUGHTS)

def parse_debug_response(text: str) -> DebugResult:
    cleaned = clean_markdown(text)
    outcome = run_strategies(cleaned, STRATEGIES)
    sections: DebugSections = outcome.value
    logger.debug("debug sections via %s", outcome.strategy)

    no_issues = no_issues_found(sections)
    return DebugResult(
        code=select_code(sections, no_issues),
        debug_analysis=format_analysis(sections),
        thoughts=extract_thoughts(clean_prose_only(text)),
        status=DebugStatus.NO_CHANGES if no_issues else DebugStatus.HAS_CHANGES,
    )
