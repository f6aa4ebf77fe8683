"""Application state: the current problem, its solution, and the phase.

idle -> extracting -> solved -> debugging -> solved
extracting -> idle, solved -> idle, debugging -> idle
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError
from .logging_util import get_logger
from .types import ProblemInfo, SolutionResult

logger = get_logger(__name__)

class Phase(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    SOLVED = "solved"
    DEBUGGING = "debugging"

TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.IDLE: frozenset({Phase.EXTRACTING}),
    Phase.EXTRACTING: frozenset({Phase.SOLVED, Phase.IDLE}),
    Phase.SOLVED: frozenset({Phase.DEBUGGING, Phase.IDLE}),
    Phase.DEBUGGING: frozenset({Phase.SOLVED, Phase.IDLE}),
}

@dataclass
class AppState:
    phase: Phase = Phase.IDLE
    problem_info: Optional[ProblemInfo] = None
    solution: Optional[SolutionResult] = None
    has_debugged: bool = False

    def can_transition(self, target: Phase) -> bool:
        return target in TRANSITIONS[self.phase]

    def transition(self, target: Phase) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(f"cannot go from {self.phase.value} to {target.value}")
        logger.debug("state %s -> %s", self.phase.value, target.value)
        self.phase = target

    def reset(self) -> None:
        self.phase = Phase.IDLE
        self.problem_info = None
        self.solution = None
        self.has_debugged = False
