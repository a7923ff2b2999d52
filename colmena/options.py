"""Deployment options."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EvaluatorType(str, Enum):
    """Which evaluator to use."""

    CHUNKED = "chunked"
    STREAMING = "streaming"

    def __str__(self) -> str:
        return self.value


def parse_evaluator_type(value: str) -> EvaluatorType:
    try:
        return EvaluatorType(value)
    except ValueError:
        names = ", ".join(e.value for e in EvaluatorType)
        raise ValueError(f"Not one of [{names}].") from None


@dataclass
class Options:
    """Options for a deployment."""

    substituters_push: bool = True
    gzip: bool = True
    upload_keys: bool = True
    reboot: bool = False
    create_gc_roots: bool = False
    force_build_on_target: bool | None = None
    force_replace_unknown_profiles: bool = False
    evaluator: EvaluatorType = EvaluatorType.CHUNKED