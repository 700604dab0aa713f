"""
ralph-loop run - check preconditions, then drive the bounded loop.
"""

import logging
from contextlib import nullcontext
from pathlib import Path

from ralphloop.agents import CliAgent
from ralphloop.lib.agents_config import check_binary_available, get_stage_binary, load_agents_config
from ralphloop.lib.config import ConfigError, LoopConfig, load_config
from ralphloop.lib.constants import EXIT_LOCKED, EXIT_PRECONDITION
from ralphloop.lib.ledger import MalformedLedgerError
from ralphloop.lib.locking import LockTimeout, run_lock
from ralphloop.lib.workitems import MalformedStoreError
from ralphloop.runner.loop import LoopReport, RunLoop

logger = logging.getLogger(__name__)


def build_producer(config: LoopConfig) -> CliAgent | None:
    """CliAgent for the configured command, or None if its binary is missing."""
    agents_config = load_agents_config(config.root, config.agent_command)
    binary = get_stage_binary(agents_config, "produce")
    if not binary or not check_binary_available(binary):
        print(f"ERROR: Agent binary '{binary}' not found in PATH")
        print("  Install it, or set AGENT_COMMAND in ralph.env / agents.yaml")
        return None

    return CliAgent(
        agents_config,
        cwd=config.root,
        timeout=config.agent_timeout,
        completion_promise=config.completion_promise,
    )


def print_summary(report: LoopReport, config: LoopConfig) -> None:
    print(f"\n{'='*60}")
    print(f"Result: {report.status}")
    print(f"Cycles run: {report.cycles}")
    if report.produced:
        print(f"Produced: {', '.join(report.produced)}")
    print(f"Completed: {report.completed}  Pending: {report.pending}")
    if report.failed_item:
        print(f"\nStopped at: {report.failed_item} ({report.failed_stage})")
        if report.message:
            print(f"  {report.message}")
    print(f"Iteration logs: {config.iteration_log_dir}")


def cmd_run(args) -> int:
    """Execute the run loop."""
    root = Path(args.root or ".")

    try:
        config = load_config(root)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return EXIT_PRECONDITION

    missing = config.check_inputs()
    if missing:
        for path in missing:
            print(f"ERROR: Required file not found: {path}")
        return EXIT_PRECONDITION

    producer = build_producer(config)
    if producer is None:
        return EXIT_PRECONDITION

    loop = RunLoop(config, producer, verbose=args.verbose)
    try:
        loop.preflight()
    except (FileNotFoundError, MalformedStoreError, MalformedLedgerError) as e:
        print(f"ERROR: {e}")
        return EXIT_PRECONDITION

    print(f"Run ID: {loop.run_id}")
    print(f"Max iterations: {config.max_iterations}")

    try:
        with run_lock(config.root) if config.run_lock else nullcontext():
            report = loop.run()
    except LockTimeout:
        print("ERROR: Another ralph-loop run holds the lock for this project")
        return EXIT_LOCKED

    print_summary(report, config)
    return report.exit_code
