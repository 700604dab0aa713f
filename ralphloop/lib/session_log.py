"""
Session log (logs.md).

Human-readable record of each invocation: which item each iteration
targeted, what the agent printed, and how the session ended. Nothing reads
it back. Every write is best-effort: a failure is logged and ignored.
"""

import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class SessionLog:
    def __init__(self, path: Path):
        self.path = path

    def _append(self, *lines: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write session log {self.path}: {e}")

    def start(self, run_id: str, max_iterations: int) -> None:
        self._append(
            f"# Content Generation Session {run_id}",
            "",
            f"Started at: {datetime.now().isoformat(timespec='seconds')}",
            f"Max iterations: {max_iterations}",
            "---",
            "",
        )

    def iteration_start(self, iteration: int, item_id: str, files_before: int) -> None:
        self._append(
            f"## Iteration {iteration} - {datetime.now().isoformat(timespec='seconds')}",
            f"Target Feature: {item_id}",
            f"Files before: {files_before}",
            "",
        )

    def iteration_output(self, iteration: int, output: str, files_created: int,
                         completed: int, exit_code: int | None) -> None:
        self._append(
            f"### Iteration {iteration} Output",
            output.rstrip(),
            "",
            f"Files created this iteration: {files_created}",
            f"Features marked complete: {completed}",
            f"Exit code: {exit_code}",
            "---",
            "",
        )

    def finish(self, title: str, iterations: int, completed: int, pending: int) -> None:
        self._append(
            f"## {title}",
            "",
            f"Total iterations: {iterations}",
            f"Features completed: {completed}",
            f"Features pending: {pending}",
            f"Finished at: {datetime.now().isoformat(timespec='seconds')}",
            "",
        )
