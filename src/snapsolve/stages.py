"""Extraction, solution and debug stages.

Each stage: build request -> adapter.chat_complete -> parse.
Provider errors propagate unchanged; precondition and parse failures become
the stage's own error type so the pipeline can tell them apart.
"""
from __future__ import annotations

from typing import Optional, Sequence

from . import registry
from .adapters.base import BaseChatAdapter
from .errors import DebugError, ExtractionError, ParseError, SolutionError
from .logging_util import get_logger, preview
from .parsers.debug import parse_debug_response
from .parsers.problem import parse_problem_info
from .parsers.solution import parse_solution
from .prompts import build_debug_request, build_extraction_request, build_solution_request
from .types import DebugResult, ProblemInfo, SolutionResult

logger = get_logger(__name__)

STRICT_EXTRACTION_PROVIDERS = ("ollama",)

def _model(adapter: BaseChatAdapter, stage: str, model: Optional[str]) -> str:
    return (model or "").strip() or registry.default_model(adapter.name, stage)

async def extract(
    images: Sequence[str],
    language: str,
    adapter: BaseChatAdapter,
    model: Optional[str] = None,
) -> ProblemInfo:
    if not images:
        raise ExtractionError("No screenshots to extract a problem from")

    request = build_extraction_request(
        images,
        language,
        _model(adapter, "extraction", model),
        strict=adapter.name in STRICT_EXTRACTION_PROVIDERS,
    )
    response = await adapter.chat_complete(request)
    logger.debug("raw extraction response: %s", preview(response.text))

    outcome = parse_problem_info(response.text)
    try:
        problem = outcome.unwrap()
    except ParseError as e:
        logger.error("Failed to parse problem info: %s", e)
        raise ExtractionError("Failed to parse problem information. Please try again or use clearer screenshots.") from e

    logger.info("problem info parsed via %s strategy", outcome.strategy)
    return problem

async def solve(
    problem: Optional[ProblemInfo],
    language: str,
    adapter: BaseChatAdapter,
    model: Optional[str] = None,
) -> SolutionResult:
    if problem is None:
        raise SolutionError("No problem info available")

    request = build_solution_request(problem, language, _model(adapter, "solution", model))
    response = await adapter.chat_complete(request)
    if not response.text.strip():
        raise SolutionError("Failed to generate solution")

    logger.debug("raw solution response: %s", preview(response.text))
    return parse_solution(response.text)

async def debug(
    problem: Optional[ProblemInfo],
    images: Sequence[str],
    language: str,
    adapter: BaseChatAdapter,
    model: Optional[str] = None,
) -> DebugResult:
    if problem is None:
        raise DebugError("No problem info available")

    request = build_debug_request(problem, images, language, _model(adapter, "debugging", model))
    response = await adapter.chat_complete(request)
    if not response.text.strip():
        raise DebugError("Failed to process debug request")

    logger.debug("raw debug response: %s", preview(response.text))
    return parse_debug_response(response.text)
