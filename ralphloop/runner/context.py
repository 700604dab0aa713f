"""
Per-cycle state.

One RunContext is created for each cycle. Every cycle of an invocation writes
into the same iteration-logs/<run_id>/ directory: a shared run.log plus one
result-iteration-N.json per cycle.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from ralphloop.agents.base import ContentProducer, ProduceResult
from ralphloop.lib.config import LoopConfig
from ralphloop.lib.ledger import MarkResult, ProgressLedger
from ralphloop.lib.validate import validate_before_write
from ralphloop.lib.workitems import WorkItem, WorkItemStore

RESULT_VERSION = 1


def new_run_id() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


@dataclass
class RunContext:
    run_id: str
    run_dir: Path
    iteration: int
    config: LoopConfig
    ledger: ProgressLedger
    producer: ContentProducer
    store: Optional[WorkItemStore] = None
    verbose: bool = False

    # Filled in by the stages as the cycle proceeds
    item_id: Optional[str] = None
    item: Optional[WorkItem] = None
    files_before: int = 0
    files_created: int = 0
    produce_result: Optional[ProduceResult] = None
    mark_result: Optional[MarkResult] = None

    start_time: datetime = field(default_factory=datetime.now)
    stages: dict = field(default_factory=dict)

    @classmethod
    def create(cls, config: LoopConfig, run_id: str, iteration: int,
               ledger: ProgressLedger, producer: ContentProducer,
               store: WorkItemStore | None = None, verbose: bool = False) -> 'RunContext':
        run_dir = config.iteration_log_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return cls(run_id, run_dir, iteration, config, ledger, producer, store=store, verbose=verbose)

    @property
    def artifact_path(self) -> Path:
        return self.config.artifact_path(self.item_id)

    @property
    def run_log(self) -> Path:
        return self.run_dir / "run.log"

    def log(self, message: str):
        stamp = datetime.now().isoformat(timespec="seconds")
        with self.run_log.open("a", encoding="utf-8") as f:
            f.write(f"[{stamp}] [iteration {self.iteration}] {message}\n")

    def record_stage(self, stage: str, status: str, duration: float, notes: str = ""):
        self.stages[stage] = {"status": status, "duration_seconds": duration, "notes": notes}

    def _result_document(self, status: str, failed_stage: str | None, reason: str | None) -> dict:
        ended = datetime.now()
        produced = self.item_id is not None and self.artifact_path.exists()
        agent_exit = self.produce_result.exit_code if self.produce_result else None

        document = {
            "version": RESULT_VERSION,
            "run_id": self.run_id,
            "iteration": self.iteration,
            "item_id": self.item_id,
            "status": status,
            "artifact": str(self.artifact_path) if produced else None,
            "files_created": self.files_created,
            "agent_exit_code": agent_exit,
            "timestamps": {
                "started": self.start_time.isoformat(),
                "ended": ended.isoformat(),
                "duration_seconds": (ended - self.start_time).total_seconds(),
            },
            "stages": self.stages,
        }
        if failed_stage:
            document["failed_stage"] = failed_stage
        if reason:
            document["reason"] = reason
        return document

    def write_result(self, status: str, failed_stage: str = None, reason: str = None) -> Path:
        """Validate and write result-iteration-N.json for this cycle."""
        document = self._result_document(status, failed_stage, reason)
        path = self.run_dir / f"result-iteration-{self.iteration}.json"
        validate_before_write(document, "result", path)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path
