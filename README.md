# colmena

Asyncio building blocks for deploying NixOS configurations to many hosts.

## Modules

- `colmena.goal` – the `Goal` enum (`build`, `push`, `switch`, `boot`,
  `test`, `dry-activate`, `keys`). `parse_goal` reads a goal name and raises
  `ValueError` for anything else. Methods such as `activation_goal()`,
  `success_str()`, `should_switch_profile()`, `requires_activation()`,
  `persists_after_reboot()` and `requires_target_host()` describe each goal.
- `colmena.limits` – `EvaluationNodeLimit` and `parse_evaluation_node_limit`
  (`"auto"`, `"0"` for no limit, or a positive number). `get_limit()` for
  `"auto"` estimates a limit from available memory with `psutil`
  (1024 MB reserved, 512 MB per host, at least 1, 10 if memory cannot be
  read). `ParallelismLimit` holds `asyncio.Semaphore`s for evaluation
  (default 1) and apply (default 10) concurrency; `set_apply_limit` replaces
  the apply semaphore.
- `colmena.options` – the deployment `Options` dataclass and
  `EvaluatorType` (`chunked` or `streaming`), read by
  `parse_evaluator_type`.
- `colmena.expression` – `nix_quote` turns a string into a quoted Nix string
  (escaping `\`, `"` and `${`); `SerializedNixExpression` embeds JSON data via
  `builtins.fromJSON`. `expression_text` and `requires_flakes` accept either
  a plain string or any object with `expression()` and `requires_flakes()`.
- `colmena.job_model` – `JobState`, `JobType`, `Event`, `JobMetadata`,
  `JobStats` and `describe_node_list`, which produces texts like
  `"alpha, beta, and 5 other nodes"`.
- `colmena.job` – `JobMonitor`, `JobHandle` and `MetaJobHandle`. Jobs report
  state changes and output lines over a queue; the monitor keeps per-job state,
  passes `ProgressMessage`s to an optional callable, and when the meta job
  ends logs the last 20 events of each failed job. `create_monitor()` returns
  a monitor without progress output and its meta handle; `null_job_handle()`
  returns a handle connected to no monitor.
- `colmena.flake` – `Flake.from_dir` and `Flake.from_uri` resolve a flake with
  `nix flake metadata --json`; `lock_flake_quiet` runs `nix flake lock`.
  `parse_flake_metadata` parses the JSON and raises `BadOutput` on invalid
  input.
- `colmena.evaluator` – `NixEvalJobs.evaluate` runs `nix-eval-jobs` and
  yields `AttributeOutput` or `AttributeEvalError` items as lines arrive;
  global errors raise a `ColmenaError`. `parse_eval_line` parses a single
  output line, and `build_command` shows the command line used.
- `colmena.errors` – the `ColmenaError` exception hierarchy, with
  `from_returncode` (negative codes become `ChildKilled`) and `unknown`.

## Installing

```
pip install .
```

The flake and evaluator helpers start `nix` and `nix-eval-jobs`, which must
be on `PATH`. To use a fixed `nix-eval-jobs` binary, set the `NIX_EVAL_JOBS`
environment variable before importing `colmena.evaluator`.

## Example

```python
import asyncio

from colmena.goal import parse_goal
from colmena.job import create_monitor
from colmena.job_model import JobType


async def main():
    goal = parse_goal("switch")
    print(goal.success_str())  # Activation successful

    monitor, meta = create_monitor()

    async def work(job):
        child = job.create_job(JobType.EVALUATE, ["alpha"])

        async def evaluate(handle):
            handle.stdout("evaluating...")

        await child.run(evaluate)

    await asyncio.gather(meta.run(work), monitor.run_until_completion())
    print(monitor.job_stats())  # 1 succeeded


asyncio.run(main())
```

## What this package does not do

There is no command-line program. The package does not read a hive or
flake configuration of nodes, connect to hosts, copy closures, upload keys,
activate or reboot machines, or run a whole deployment; it supplies the
pieces such a tool is built from. The job monitor does not draw spinners or
terminal output itself: it hands progress messages to a callable you supply.

## Running the tests

```
pip install .[test]
pytest
```