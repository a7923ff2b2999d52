"""Evaluation of attribute sets of derivations with nix-eval-jobs.

nix-eval-jobs evaluates attributes in parallel and prints one JSON line
per attribute as soon as it finishes. The binary can be pinned by setting
the ``NIX_EVAL_JOBS`` environment variable.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Union

from .errors import BadOutput, ColmenaError, IoError, UnknownError, from_returncode
from .expression import ExpressionLike, expression_text, requires_flakes
from .job import JobHandle, null_job_handle

# The pinned nix-eval-jobs binary, if any.
NIX_EVAL_JOBS: str | None = os.environ.get("NIX_EVAL_JOBS") or None

_DEFAULT_BINARY = "nix-eval-jobs"
_DEFAULT_WORKERS = 10
_NO_VARIANT = "data did not match any variant of untagged enum EvalLine"


@dataclass(frozen=True)
class AttributeOutput:
    """The evaluation output of one attribute."""

    attribute: str
    drv_path: str


@dataclass(frozen=True)
class AttributeEvalError:
    """An evaluation error that concerns a single attribute."""

    attribute: str
    error: str


EvalItem = Union[AttributeOutput, AttributeEvalError]


def parse_eval_line(line: Union[str, bytes]) -> EvalItem:
    """Parse one line of nix-eval-jobs output.

    Returns an AttributeOutput or an AttributeEvalError. A global error
    line raises UnknownError; anything unparseable raises BadOutput.
    """
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    try:
        data = json.loads(text.strip())
    except ValueError as error:
        raise BadOutput(str(error)) from None

    if not isinstance(data, dict):
        raise BadOutput(_NO_VARIANT)

    attribute = data.get("attr")
    drv_path = data.get("drvPath")
    error = data.get("error")

    if isinstance(attribute, str) and isinstance(drv_path, str):
        # Attribute names with dots come surrounded by quotes.
        return AttributeOutput(attribute.strip('"'), drv_path)
    if isinstance(attribute, str) and isinstance(error, str):
        return AttributeEvalError(attribute, error)
    if isinstance(error, str):
        raise UnknownError(error)
    raise BadOutput(_NO_VARIANT)


def get_pinned_nix_eval_jobs() -> str | None:
    """The pinned nix-eval-jobs executable, if one was configured."""
    return NIX_EVAL_JOBS


def _flag_args(flags: Any) -> list[str]:
    if flags is None:
        return []
    if isinstance(flags, (str, bytes)):
        raise TypeError("flags must be a sequence of arguments, not a string")
    to_args = getattr(flags, "to_args", None)
    if callable(to_args):
        return [str(arg) for arg in to_args()]
    return [str(arg) for arg in flags]


def _default_executable() -> Path:
    return Path(NIX_EVAL_JOBS or _DEFAULT_BINARY)


@dataclass
class NixEvalJobs:
    """An evaluator backed by nix-eval-jobs."""

    executable: Path = field(default_factory=_default_executable)
    job: JobHandle = field(default_factory=null_job_handle)
    workers: int = _DEFAULT_WORKERS

    def set_eval_limit(self, limit: int) -> None:
        """Set the number of attributes evaluated at the same time."""
        self.workers = limit

    def set_job(self, job: JobHandle) -> None:
        """Use this job handle to report the evaluator's stderr."""
        self.job = job

    def build_command(self, expression: ExpressionLike, flags: Iterable[str] | Any = None) -> list[str]:
        """The command line that evaluates ``expression``."""
        command = [
            os.fspath(self.executable),
            "--workers",
            str(self.workers),
            "--expr",
            expression_text(expression),
        ]
        command.extend(_flag_args(flags))
        if requires_flakes(expression):
            command.extend(["--extra-experimental-features", "flakes"])
        return command

    async def evaluate(
        self, expression: ExpressionLike, flags: Iterable[str] | Any = None
    ) -> AsyncIterator[EvalItem]:
        """Evaluate an attribute set, yielding results as they come in.

        Attribute-level failures are yielded as AttributeEvalError; global
        failures raise a ColmenaError and end the evaluation.
        """
        command = self.build_command(expression, flags)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            raise IoError(error) from error

        stderr_task = asyncio.ensure_future(_capture_stderr(process.stderr, self.job))
        try:
            assert process.stdout is not None
            while True:
                try:
                    line = await process.stdout.readline()
                except OSError as error:
                    raise IoError(error) from error

                if not line:
                    returncode = await process.wait()
                    if returncode != 0:
                        raise from_returncode(returncode)
                    return

                yield parse_eval_line(line)
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            with contextlib.suppress(ColmenaError, OSError):
                await stderr_task


async def _capture_stderr(stream: asyncio.StreamReader | None, job: JobHandle) -> None:
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            return
        job.stderr(line.decode("utf-8", errors="replace").rstrip("\r\n"))