"""Nix expressions and serialisation of data into them."""

from __future__ import annotations

import json
from typing import Any, Protocol, Union, runtime_checkable


@runtime_checkable
class NixExpression(Protocol):
    """Something that renders to a full Nix expression."""

    def expression(self) -> str: ...

    def requires_flakes(self) -> bool: ...


ExpressionLike = Union[str, NixExpression]


def nix_quote(s: str) -> str:
    """Turn a string into a quoted Nix string expression."""
    inner = s.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{inner}"'


class SerializedNixExpression:
    """Arbitrary JSON-serialisable data as a Nix expression."""

    def __init__(self, data: Any) -> None:
        encoded = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        self._quoted = nix_quote(encoded)

    def expression(self) -> str:
        return f"(builtins.fromJSON {self._quoted})"

    def requires_flakes(self) -> bool:
        return False


def expression_text(expression: ExpressionLike) -> str:
    """The Nix source of an expression; plain strings are taken as-is."""
    if isinstance(expression, str):
        return expression
    return expression.expression()


def requires_flakes(expression: ExpressionLike) -> bool:
    """Whether evaluating the expression needs flakes enabled."""
    if isinstance(expression, str):
        return False
    return expression.requires_flakes()