"""Problem extraction output -> ProblemInfo.

Strategies, in order:
1. json          fenced/loose JSON object, or an array of candidate objects;
                 a parsed problem_statement is final, even when empty
2. regex         field-by-field regexes over JSON-looking text
3. problem-line  first "problem ...: <statement>" line of free text
"""
from __future__ import annotations

import json
import re
from typing import Any, List, Mapping, Optional, Sequence

from ..coerce import coerce_json_text
from ..logging_util import get_logger
from ..types import ProblemInfo
from .strategies import ParseOutcome, run_strategies

logger = get_logger(__name__)

def is_complete(candidate: Mapping[str, Any]) -> bool:
    """Non-empty statement AND (non-empty constraints OR both examples)."""
    if not candidate.get("problem_statement"):
        return False
    if candidate.get("constraints"):
        return True
    return bool(candidate.get("example_input")) and bool(candidate.get("example_output"))

def select_candidate(candidates: Sequence[Any]) -> Optional[Any]:
    """First complete candidate in response order, else the first element."""
    for c in candidates:
        if isinstance(c, Mapping) and is_complete(c):
            return c
    return candidates[0] if candidates else None

def parse_json(text: str) -> ParseOutcome:
    obj, err = coerce_json_text(text)
    if obj is None:
        return ParseOutcome.failure(err or "not JSON")

    if isinstance(obj, list):
        candidates = [c for c in obj if isinstance(c, Mapping)]
        if not candidates:
            return ParseOutcome.failure("JSON array holds no objects")
        logger.info("Received %d problem interpretations, selecting most complete one", len(candidates))
        obj = select_candidate(candidates)

    if "problem_statement" not in obj:
        return ParseOutcome.failure("JSON has no problem_statement")

    info = ProblemInfo.from_mapping(obj)
    if not info.problem_statement.strip():
        return ParseOutcome.failure("problem_statement is empty", terminal=True)
    return ParseOutcome.success(info)

def _string_field(text: str, name: str) -> str:
    m = re.search(rf'"{name}"\s*:\s*"((?:[^"\\]|\\.)*)"', text, flags=re.DOTALL)
    if not m:
        return ""
    raw = m.group(1)
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw

def _constraints_field(text: str) -> List[str]:
    m = re.search(r'"constraints"\s*:\s*\[(.*?)\]', text, flags=re.DOTALL)
    if not m:
        return []
    body = m.group(1)
    try:
        items = json.loads(f"[{body}]")
        return [c if isinstance(c, str) else json.dumps(c) for c in items]
    except ValueError:
        pass
    out = [s.strip().replace('"', "") for s in body.split(",")]
    return [s for s in out if s]

def parse_regex(text: str) -> ParseOutcome:
    statement = _string_field(text, "problem_statement")
    if not statement.strip():
        return ParseOutcome.failure("no problem_statement field")

    info = ProblemInfo(
        problem_statement=statement,
        constraints=_constraints_field(text),
        example_input=_string_field(text, "example_input"),
        example_output=_string_field(text, "example_output"),
    )
    logger.info("Extracted problem info via regex")
    return ParseOutcome.success(info)

def parse_problem_line(text: str) -> ParseOutcome:
    for line in (text or "").splitlines():
        if "problem" not in line.lower() or ":" not in line:
            continue
        if line.lstrip().startswith(("{", "[", "\"")):
            # a JSON fragment, not prose
            continue
        statement = line.split(":", 1)[1].strip().strip('",').strip()
        if statement:
            logger.info("Created minimal problem object from a problem line")
            return ParseOutcome.success(ProblemInfo(problem_statement=statement))
    return ParseOutcome.failure("no 'problem:' line")

STRATEGIES = (
    ("json", parse_json),
    ("regex", parse_regex),
    ("problem-line", parse_problem_line),
)

def parse_problem_info(text: str) -> ParseOutcome:
    return run_strategies(text or "", STRATEGIES)
