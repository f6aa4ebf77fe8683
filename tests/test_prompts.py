import asyncio

import pytest

from snapsolve import stages
from snapsolve.errors import DebugError, ExtractionError, SolutionError
from snapsolve.prompts import (
    EXTRACTION_SYSTEM,
    EXTRACTION_SYSTEM_STRICT,
    EXTRACTION_USER_STRICT_SUFFIX,
    build_debug_request,
    build_extraction_request,
    build_solution_request,
)
from snapsolve.types import CodeMarker, ImagePart, ProblemInfo

from conftest import PNG_B64, FakeAdapter

PROBLEM = ProblemInfo("Two Sum", [], "[2,7,11,15], 9", "[0,1]")

def test_extraction_request_shape():
    req = build_extraction_request([PNG_B64, PNG_B64], "java", "gpt-4o")
    system, user = req.messages
    assert system.role == "system" and system.content == EXTRACTION_SYSTEM
    assert "java" in user.text
    assert EXTRACTION_USER_STRICT_SUFFIX not in user.text
    assert len(user.images) == 2
    assert req.max_tokens == 4000 and req.temperature == 0.2

def test_strict_extraction_wording():
    req = build_extraction_request([PNG_B64], "python", "llava", strict=True)
    assert req.messages[0].content == EXTRACTION_SYSTEM_STRICT
    assert req.messages[1].text.endswith(EXTRACTION_USER_STRICT_SUFFIX)

def test_solution_request_fills_placeholders():
    text = build_solution_request(PROBLEM, "go", "gpt-4o").messages[1].text
    assert "PROBLEM STATEMENT:\nTwo Sum" in text
    assert "No specific constraints provided." in text
    assert "LANGUAGE: go" in text

def test_debug_request_carries_images():
    req = build_debug_request(PROBLEM, [PNG_B64], "python", "gpt-4o")
    assert '"Two Sum"' in req.messages[1].text
    assert "----- ISSUES IDENTIFIED -----" in req.messages[0].content
    assert all(isinstance(p, ImagePart) for p in req.messages[1].parts[1:])

def test_extract_uses_strict_prompt_and_default_model_for_ollama():
    adapter = FakeAdapter(['{"problem_statement": "Two Sum"}'], name="ollama")
    info = asyncio.run(stages.extract([PNG_B64], "python", adapter))
    assert info.problem_statement == "Two Sum"
    assert adapter.requests[0].messages[0].content == EXTRACTION_SYSTEM_STRICT
    assert adapter.requests[0].model == "llama3.2-vision:11b"

def test_extract_parse_failure():
    adapter = FakeAdapter(["I cannot read this image."])
    with pytest.raises(ExtractionError):
        asyncio.run(stages.extract([PNG_B64], "python", adapter, "gpt-4o"))

def test_extract_needs_images():
    with pytest.raises(ExtractionError):
        asyncio.run(stages.extract([], "python", FakeAdapter()))

def test_solve_and_debug_preconditions():
    with pytest.raises(SolutionError):
        asyncio.run(stages.solve(None, "python", FakeAdapter()))
    with pytest.raises(DebugError):
        asyncio.run(stages.debug(None, [PNG_B64], "python", FakeAdapter()))
    with pytest.raises(SolutionError):
        asyncio.run(stages.solve(PROBLEM, "python", FakeAdapter(["   "])))

def test_debug_stage_end_to_end():
    reply = "----- ISSUES IDENTIFIED -----\nNo issues found\n----- CODE CHANGES -----\nNo code changes required.\n----- EXPLANATION -----\nFine.\n"
    adapter = FakeAdapter([reply], name="gemini")
    result = asyncio.run(stages.debug(PROBLEM, [PNG_B64], "python", adapter))
    assert result.code is CodeMarker.NO_CODE_CHANGES_NEEDED
    assert adapter.requests[0].model == "gemini-2.0-flash"
