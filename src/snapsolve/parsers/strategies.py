"""Ordered parse strategies.

Each strategy is a total function: text in, ParseOutcome out, never raising.
run_strategies() tries them in order and returns the first success, so the
fallback policy of every stage is just a list that can be tested item by item.
A terminal failure stops the list: the text was understood and rejected, so
looser strategies must not reinterpret it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence, Tuple

from ..errors import ParseError
from ..logging_util import get_logger

logger = get_logger(__name__)

@dataclass(frozen=True)
class ParseOutcome:
    value: Any = None
    error: str = ""
    strategy: str = ""
    terminal: bool = False

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.error

    @classmethod
    def success(cls, value: Any, strategy: str = "") -> "ParseOutcome":
        return cls(value=value, strategy=strategy)

    @classmethod
    def failure(cls, error: str, strategy: str = "", terminal: bool = False) -> "ParseOutcome":
        return cls(error=error or "no match", strategy=strategy, terminal=terminal)

    def unwrap(self) -> Any:
        if not self.ok:
            raise ParseError(self.error or "no match")
        return self.value

Strategy = Callable[[str], ParseOutcome]

def run_strategies(text: str, strategies: Sequence[Tuple[str, Strategy]]) -> ParseOutcome:
    errors = []
    for name, strategy in strategies:
        outcome = strategy(text)
        if outcome.ok:
            logger.debug("parse strategy %s matched", name)
            return ParseOutcome.success(outcome.value, strategy=name)
        logger.debug("parse strategy %s failed: %s", name, outcome.error)
        errors.append(f"{name}: {outcome.error}")
        if outcome.terminal:
            break
    return ParseOutcome.failure("; ".join(errors) or "no strategies")
