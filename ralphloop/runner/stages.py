"""
Stage execution for one cycle.

A stage is a callable taking the RunContext. It returns normally when it
passed, raises StageBlocked when there is nothing for it to do, and raises
StageError when it failed. run_stage times it and records the outcome in
ctx.stages for result-iteration-N.json.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ralphloop.runner.context import RunContext

# Exit code for exceptions a stage did not anticipate
EXIT_STAGE_CRASHED = 9


class StageResult(Enum):
    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"


@dataclass
class StageError(Exception):
    """A stage failed."""
    stage: str
    message: str
    exit_code: int

    def __str__(self):
        return f"[{self.stage}] {self.message}"


@dataclass
class StageBlocked(Exception):
    """Nothing for the stage to do (e.g. no pending entries)."""
    stage: str
    reason: str


def run_stage(ctx: RunContext, stage_name: str, stage_fn: Callable[[RunContext], None]) -> StageResult:
    """
    Run one stage and record its outcome.

    StageError is recorded and re-raised. Any other exception is recorded and
    re-raised as StageError with EXIT_STAGE_CRASHED.
    """
    ctx.log(f"Starting stage: {stage_name}")
    start = time.monotonic()

    def finish(status: str, notes: str = "") -> float:
        elapsed = time.monotonic() - start
        ctx.record_stage(stage_name, status, elapsed, notes)
        return elapsed

    try:
        stage_fn(ctx)
    except StageBlocked as e:
        finish(StageResult.BLOCKED.value, e.reason)
        ctx.log(f"Stage {stage_name} blocked: {e.reason}")
        return StageResult.BLOCKED
    except StageError as e:
        finish(StageResult.FAILED.value, e.message)
        ctx.log(f"Stage {stage_name} failed: {e.message}")
        raise
    except Exception as e:
        finish(StageResult.FAILED.value, f"{type(e).__name__}: {e}")
        ctx.log(f"Stage {stage_name} crashed: {type(e).__name__}: {e}")
        raise StageError(stage_name, f"{type(e).__name__}: {e}", EXIT_STAGE_CRASHED) from e

    elapsed = finish(StageResult.PASSED.value)
    ctx.log(f"Stage {stage_name} passed ({elapsed:.2f}s)")
    return StageResult.PASSED
