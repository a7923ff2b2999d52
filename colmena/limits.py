"""Parallelism and evaluation limits."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum

import psutil

# RAM reserved for the system, in MB.
EVAL_RESERVE_MB = 1024
# Estimated RAM needed to evaluate one host, in MB.
EVAL_PER_HOST_MB = 512

_FALLBACK_LIMIT = 10
_NUMBER = re.compile(r"\+?[0-9]+")


class LimitKind(Enum):
    HEURISTIC = "heuristic"
    MANUAL = "manual"
    NONE = "none"


@dataclass(frozen=True)
class EvaluationNodeLimit:
    """Limit on the number of nodes in each evaluation process."""

    kind: LimitKind = LimitKind.HEURISTIC
    value: int = 0

    def __str__(self) -> str:
        if self.kind is LimitKind.HEURISTIC:
            return "auto"
        if self.kind is LimitKind.NONE:
            return "0"
        return str(self.value)

    def get_limit(self) -> int | None:
        """Maximum number of hosts per evaluation, or None for no limit."""
        if self.kind is LimitKind.MANUAL:
            return self.value
        if self.kind is LimitKind.NONE:
            return None
        try:
            available = psutil.virtual_memory().available
        except Exception:
            return _FALLBACK_LIMIT
        mb = available // (1024 * 1024)
        if mb >= EVAL_RESERVE_MB:
            mb -= EVAL_RESERVE_MB
        nodes = mb // EVAL_PER_HOST_MB
        return nodes if nodes > 0 else 1


def parse_evaluation_node_limit(value: str) -> EvaluationNodeLimit:
    """Parse "auto", "0" (no limit) or a positive number."""
    if value == "auto":
        return EvaluationNodeLimit()
    if not _NUMBER.fullmatch(value):
        raise ValueError("The value must be a valid number or `auto`")
    number = int(value)
    if number == 0:
        return EvaluationNodeLimit(LimitKind.NONE)
    return EvaluationNodeLimit(LimitKind.MANUAL, number)


@dataclass
class ParallelismLimit:
    """Semaphores bounding concurrent evaluation and apply work."""

    evaluation_limit: int = 1
    apply_limit: int = 10
    evaluation: asyncio.Semaphore = field(init=False, repr=False)
    apply: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.evaluation = asyncio.Semaphore(self.evaluation_limit)
        self.apply = asyncio.Semaphore(self.apply_limit)

    def set_apply_limit(self, limit: int) -> None:
        self.apply_limit = limit
        self.apply = asyncio.Semaphore(limit)