"""Prompt assembly for the three stages.

Rules:
- One system message, one user message per request.
- Screenshots ride along as image parts of the user message, in queue order.
- The local-inference backend gets stricter extraction wording: small local
  models like to return several candidate objects or wrap JSON in prose.
"""
from __future__ import annotations

from typing import Sequence

from .types import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ChatMessage,
    ChatRequest,
    ProblemInfo,
    user_message,
)

EXTRACTION_SYSTEM = (
    "You are a coding challenge interpreter. Analyze the screenshot of the coding problem and extract all "
    "relevant information. Return the information in JSON format with these fields: problem_statement, "
    "constraints, example_input, example_output. Just return the structured JSON without any other text."
)
EXTRACTION_SYSTEM_STRICT = (
    "You are a coding challenge interpreter. Your task is to analyze screenshots of a coding problem and "
    "extract ALL the information. Return ONLY a SINGLE JSON object with these fields: problem_statement, "
    "constraints (as array), example_input, example_output. Do not include multiple possibilities or "
    "variations. ONLY return a valid JSON object."
)
EXTRACTION_USER = (
    "Extract the coding problem details from these screenshots. Return in JSON format. "
    "Preferred coding language we gonna use for this problem is {language}."
)
EXTRACTION_USER_STRICT_SUFFIX = " IMPORTANT: Return ONLY a single valid JSON object, not an array of possibilities."

SOLUTION_SYSTEM = (
    "You are an expert coding interview assistant. Provide clear, optimal solutions with detailed explanations."
)
SOLUTION_USER = """
Generate a detailed solution for the following coding problem:

PROBLEM STATEMENT:
{statement}

CONSTRAINTS:
{constraints}

EXAMPLE INPUT:
{example_input}

EXAMPLE OUTPUT:
{example_output}

LANGUAGE: {language}

I need the response in the following format:
1. Code: A clean, optimized implementation in {language}
2. Your Thoughts: A list of key insights and reasoning behind your approach
3. Time complexity: O(X) with a detailed explanation (at least 2 sentences)
4. Space complexity: O(X) with a detailed explanation (at least 2 sentences)

For complexity explanations, please be thorough. For example: "Time complexity: O(n) because we iterate through the array only once. This is optimal as we need to examine each element at least once to find the solution." or "Space complexity: O(n) because in the worst case, we store all elements in the hashmap. The additional space scales linearly with the input size."

Your solution should be efficient, well-commented, and handle edge cases.
"""

DEBUG_SYSTEM = """You are a coding interview assistant helping debug solutions.

IMPORTANT: ONLY analyze code visible in the screenshots. Don't assume code not shown.

Format your response EXACTLY in these sections:

----- ISSUES IDENTIFIED -----
• List actual issues you see in the code (not theoretical issues)
• If no issues are found, explicitly state "No issues found in the visible code"

----- CODE CHANGES -----
This section MUST ONLY contain runnable code that should be changed.
If no changes are needed, write ONLY: "No code changes required."
DO NOT include explanations or comments in this section - ONLY code.

----- EXPLANATION -----
Explain why the changes are needed based on the visible code.
If no changes are needed, explain why the code is already correct.

----- KEY POINTS -----
• Summary of most important takeaways

The CODE CHANGES section must ONLY contain actual code that can be directly pasted into an editor."""

DEBUG_USER = """I'm solving this coding problem: "{statement}" in {language}.

I need help debugging ONLY the code visible in these screenshots:
1. Don't make assumptions about code you can't see
2. If my code already looks correct, just say so
3. Be specific about line numbers when possible
4. In the CODE CHANGES section, ONLY include actual code that should be changed
5. NEVER invent code that isn't in the screenshots

Please follow the format exactly and focus on REAL problems, not theoretical ones."""

def _request(system: str, user: ChatMessage, model: str) -> ChatRequest:
    return ChatRequest(
        messages=(ChatMessage(role="system", content=system), user),
        model=model,
        max_tokens=DEFAULT_MAX_TOKENS,
        temperature=DEFAULT_TEMPERATURE,
    )

def build_extraction_request(images: Sequence[str], language: str, model: str, strict: bool = False) -> ChatRequest:
    text = EXTRACTION_USER.format(language=language)
    if strict:
        text += EXTRACTION_USER_STRICT_SUFFIX
    system = EXTRACTION_SYSTEM_STRICT if strict else EXTRACTION_SYSTEM
    return _request(system, user_message(text, images), model)

def build_solution_request(problem: ProblemInfo, language: str, model: str) -> ChatRequest:
    text = SOLUTION_USER.format(
        statement=problem.problem_statement,
        constraints="\n".join(problem.constraints) or "No specific constraints provided.",
        example_input=problem.example_input or "No example input provided.",
        example_output=problem.example_output or "No example output provided.",
        language=language,
    )
    return _request(SOLUTION_SYSTEM, ChatMessage(role="user", content=text), model)

def build_debug_request(problem: ProblemInfo, images: Sequence[str], language: str, model: str) -> ChatRequest:
    text = DEBUG_USER.format(statement=problem.problem_statement, language=language)
    return _request(DEBUG_SYSTEM, user_message(text, images), model)
