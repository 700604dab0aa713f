"""
Run loop: drive select/produce/verify/commit cycles until done or capped.

Every cycle walks the same CycleFSM; a cycle counts toward MAX_ITERATIONS
only once it has selected an item.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ralphloop.agents.base import ContentProducer
from ralphloop.lib.config import LoopConfig
from ralphloop.lib.constants import EXIT_DESYNC, EXIT_OK
from ralphloop.lib.ledger import MalformedLedgerError, MarkResult, ProgressLedger
from ralphloop.lib.session_log import SessionLog
from ralphloop.lib.workitems import WorkItemStore
from ralphloop.runner.context import RunContext, new_run_id
from ralphloop.runner.fsm import CycleFSM
from ralphloop.runner.impl.stages import (
    stage_commit,
    stage_load_detail,
    stage_produce,
    stage_select,
    stage_verify,
)
from ralphloop.runner.stages import EXIT_STAGE_CRASHED, StageError, StageResult, run_stage

logger = logging.getLogger(__name__)


@dataclass
class LoopReport:
    """Outcome of one invocation."""
    status: str  # all_complete | cap_reached | promise | failed | desync | error
    exit_code: int
    cycles: int
    produced: list[str] = field(default_factory=list)
    completed: int = 0
    pending: int = 0
    failed_item: Optional[str] = None
    failed_stage: Optional[str] = None
    message: str = ""


def _fail_cycle(ctx: RunContext, fsm: CycleFSM, error: StageError,
                attempts: dict[str, int], max_attempts: int) -> tuple[str, int, str]:
    """Recoverable produce/verify failure: item stays pending."""
    attempts[ctx.item_id] = attempts.get(ctx.item_id, 0) + 1
    used = attempts[ctx.item_id]
    logger.warning(f"Iteration {ctx.iteration} failed for {ctx.item_id}: {error.message}")

    promised = ctx.produce_result is not None and ctx.produce_result.contains(ctx.config.completion_promise)
    if used < max_attempts and not promised:
        ctx.log(f"Attempt {used}/{max_attempts} failed; will retry")
        fsm.retry()
    else:
        ctx.log(f"Attempt {used}/{max_attempts} failed; stopping")
        fsm.give_up()

    ctx.write_result("failed", error.stage, error.message)
    return "failed", EXIT_OK, error.stage


def run_once(ctx: RunContext, fsm: CycleFSM, attempts: dict[str, int] | None = None,
             max_attempts: int = 1) -> tuple[str, int, str | None]:
    """
    Run a single cycle, starting from fsm state select_next.

    Flow:
    1. SELECT: first pending ledger entry (blocked when none remain)
    2. LOAD_DETAIL: store lookup; a miss is a desync and ends the run
    3. PRODUCE, VERIFY: agent call and artifact check; failures leave the item pending
    4. COMMIT: mark completed, then append the completion log record

    Returns: (status, exit_code, failed_stage)
    """
    if attempts is None:
        attempts = {}

    try:
        result = run_stage(ctx, "select", stage_select)
    except StageError as e:
        fsm.abort()
        ctx.write_result("failed", e.stage, e.message)
        return "failed", e.exit_code, e.stage

    if result == StageResult.BLOCKED:
        fsm.no_pending()
        ctx.write_result("all_complete")
        return "all_complete", EXIT_OK, None
    fsm.item_selected()

    try:
        run_stage(ctx, "load_detail", stage_load_detail)
    except StageError as e:
        if e.exit_code == EXIT_DESYNC:
            fsm.desync()
            ctx.write_result("desync", e.stage, e.message)
            return "desync", e.exit_code, e.stage
        fsm.abort()
        ctx.write_result("failed", e.stage, e.message)
        return "failed", e.exit_code, e.stage
    fsm.detail_loaded()

    try:
        run_stage(ctx, "produce", stage_produce)
    except StageError as e:
        if e.exit_code == EXIT_STAGE_CRASHED:
            # Harness faults end the run; only artifact failures are retried
            fsm.abort()
            ctx.write_result("failed", e.stage, e.message)
            return "failed", e.exit_code, e.stage
        return _fail_cycle(ctx, fsm, e, attempts, max_attempts)
    fsm.produced()

    try:
        run_stage(ctx, "verify", stage_verify)
    except StageError as e:
        return _fail_cycle(ctx, fsm, e, attempts, max_attempts)
    fsm.verified()

    try:
        run_stage(ctx, "commit", stage_commit)
    except StageError as e:
        fsm.abort()
        ctx.write_result("failed", e.stage, e.message)
        return "failed", e.exit_code, e.stage

    if ctx.produce_result.contains(ctx.config.completion_promise):
        ctx.log("Agent signalled completion")
        fsm.finish()
    else:
        fsm.committed()

    ctx.write_result("completed")
    return "completed", EXIT_OK, None


class RunLoop:
    """Bounded loop over run_once."""

    def __init__(self, config: LoopConfig, producer: ContentProducer, run_id: str | None = None,
                 verbose: bool = False, session_log: SessionLog | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.producer = producer
        self.run_id = run_id or new_run_id()
        self.verbose = verbose
        self.session_log = session_log or SessionLog(config.logs_file)
        self.sleep = sleep
        self.ledger: ProgressLedger | None = None

    def preflight(self) -> ProgressLedger:
        """
        Load both inputs once before any cycle runs.

        Raises:
            FileNotFoundError: requirements or progress file missing
            MalformedStoreError: requirements unparsable or with duplicate ids
            MalformedLedgerError: progress file unparsable
        """
        store = WorkItemStore.load(self.config.requirements_file)
        self.ledger = ProgressLedger.open(self.config.progress_file)
        completed, pending = self.ledger.counts()
        logger.info(f"Loaded {len(store)} work items; ledger has {completed} completed, {pending} pending")
        return self.ledger

    def run(self) -> LoopReport:
        ledger = self.ledger or self.preflight()
        fsm = CycleFSM()
        attempts: dict[str, int] = {}
        report = LoopReport(status="", exit_code=EXIT_OK, cycles=0)

        self.session_log.start(self.run_id, self.config.max_iterations)

        while not fsm.terminated:
            if report.cycles >= self.config.max_iterations:
                fsm.cap_reached()
                report.status = "cap_reached"
                report.message = f"Reached max iterations ({self.config.max_iterations})"
                break

            iteration = report.cycles + 1
            print(f"\n{'='*60}")
            print(f"=== Iteration {iteration} of {self.config.max_iterations} ===")
            print(f"{'='*60}")

            ctx = RunContext.create(self.config, self.run_id, iteration, ledger, self.producer,
                                    verbose=self.verbose)
            status, exit_code, failed_stage = run_once(ctx, fsm, attempts, self.config.max_attempts)

            if ctx.item_id:
                report.cycles += 1
                self._log_iteration(ctx)

            if status == "all_complete":
                report.status = "all_complete"
                report.message = "All work items are complete"
                print(report.message)
                break

            if status == "completed":
                print(f"Completed: {ctx.item_id} -> {ctx.artifact_path}")
                if ctx.mark_result is MarkResult.COMPLETED:
                    report.produced.append(ctx.item_id)
                if fsm.terminated:
                    report.status = "promise"
                    report.message = "Agent reported that no work remains"
            elif status == "failed" and exit_code == EXIT_OK:
                reason = ctx.stages.get(failed_stage, {}).get("notes", "")
                print(f"WARNING: {ctx.item_id} not completed ({failed_stage}): {reason}")
                if fsm.terminated:
                    promised = ctx.produce_result is not None and \
                        ctx.produce_result.contains(self.config.completion_promise)
                    report.status = "promise" if promised else "failed"
                    report.failed_item = ctx.item_id
                    report.failed_stage = failed_stage
                    report.message = reason
            else:
                # desync, or an unrecoverable error in any stage
                report.status = "desync" if status == "desync" else "error"
                report.exit_code = exit_code
                report.failed_item = ctx.item_id
                report.failed_stage = failed_stage
                report.message = ctx.stages.get(failed_stage, {}).get("notes", "")
                print(f"ERROR: {report.message}")
                break

            more = not fsm.terminated and report.cycles < self.config.max_iterations
            if more and self.config.iteration_delay > 0:
                self.sleep(self.config.iteration_delay)

        self._finish(ledger, report)
        return report

    def _log_iteration(self, ctx: RunContext) -> None:
        result = ctx.produce_result
        self.session_log.iteration_start(ctx.iteration, ctx.item_id, ctx.files_before)
        self.session_log.iteration_output(
            ctx.iteration,
            result.stdout if result else "",
            ctx.files_created,
            1 if ctx.mark_result is MarkResult.COMPLETED else 0,
            result.exit_code if result else None,
        )

    def _finish(self, ledger: ProgressLedger, report: LoopReport) -> None:
        try:
            ledger.reload()
        except (OSError, MalformedLedgerError) as e:
            logger.warning(f"Could not re-read {ledger.path} for the final counts: {e}")
        report.completed, report.pending = ledger.counts()

        titles = {
            "all_complete": "All Features Complete",
            "promise": "Agent Reported Completion",
            "cap_reached": "Max Iterations Reached",
        }
        title = titles.get(report.status, f"Stopped ({report.status})")
        self.session_log.finish(title, report.cycles, report.completed, report.pending)
        logger.info(f"Run {self.run_id} finished: {report.status} after {report.cycles} cycle(s)")
