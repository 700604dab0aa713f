"""
Content producer interface.

The loop only depends on this protocol, so the CLI agent can be swapped for
a deterministic stub in tests.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ralphloop.lib.workitems import WorkItem


@dataclass
class ProduceContext:
    """What the producer needs besides the work item itself."""
    artifact_path: Path  # where the single artifact must be written
    log_context: str = ""  # trailing ledger lines, for style continuity
    iteration: int = 1
    log_dir: Optional[Path] = None  # prompt/output logs go here when set
    verbose: bool = False


@dataclass
class ProduceResult:
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    artifact: Optional[Path] = None  # expected artifact, if it exists after the call

    def contains(self, sentinel: str) -> bool:
        return bool(sentinel) and sentinel in self.stdout


class ContentProducer(Protocol):
    def produce(self, item: WorkItem, context: ProduceContext) -> ProduceResult:
        ...
