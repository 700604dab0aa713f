"""Shared fixtures: a throwaway project directory and a scripted producer."""

import json
from pathlib import Path

import pytest

from ralphloop.agents.base import ProduceContext, ProduceResult
from ralphloop.lib.config import load_config
from ralphloop.lib.workitems import WorkItem


def write_requirements(root: Path, ids, name="requirements.json"):
    features = [
        {"id": item_id, "category": "Java Fundamentals", "description": f"Topic {item_id}"}
        for item_id in ids
    ]
    path = root / name
    path.write_text(json.dumps({"features": features}, indent=2))
    return path


def write_progress(root: Path, entries, log_lines=(), name="progress.md"):
    """entries: list of (id, done)."""
    lines = ["# Progress", "", "## Sprint 1"]
    for item_id, done in entries:
        lines.append(f"- [{'x' if done else ' '}] {item_id}: Topic {item_id}")
    if log_lines:
        lines += ["", "## Detailed Completion Log"] + list(log_lines)
    path = root / name
    path.write_text("\n".join(lines) + "\n")
    return path


class StubProducer:
    """Deterministic ContentProducer.

    behaviour maps item id -> "ok" (write artifact), "missing" (write nothing),
    "empty" (write an empty file), "timeout", "extra" (artifact plus a stray
    file), "promise" (print the completion promise, write nothing).
    Unlisted ids default to "ok".
    """

    def __init__(self, behaviour=None, promise="<promise>COMPLETE</promise>"):
        self.behaviour = behaviour or {}
        self.promise = promise
        self.calls: list[str] = []
        self.contexts: list[ProduceContext] = []

    def produce(self, item: WorkItem, context: ProduceContext) -> ProduceResult:
        self.calls.append(item.id)
        self.contexts.append(context)
        mode = self.behaviour.get(item.id, "ok")
        if isinstance(mode, list):
            mode = mode.pop(0) if len(mode) > 1 else mode[0]

        stdout = f"Generated {item.id}\n"
        if mode in ("ok", "extra", "ok+promise"):
            context.artifact_path.write_text(f"# {item.description}\n\nContent for {item.id}\n")
        if mode == "extra":
            (context.artifact_path.parent / f"{item.id}-notes.md").write_text("stray\n")
        if mode == "empty":
            context.artifact_path.write_text("")
        if mode in ("promise", "ok+promise"):
            stdout += self.promise + "\n"
        if mode == "timeout":
            context.artifact_path.write_text("# partial")
            return ProduceResult(success=False, exit_code=-1, stdout="", stderr="Timed out", timed_out=True)

        return ProduceResult(
            success=True,
            exit_code=0,
            stdout=stdout,
            stderr="",
            artifact=context.artifact_path if context.artifact_path.exists() else None,
        )


@pytest.fixture
def project(tmp_path):
    """Project root with three pending items a, b, c."""
    write_requirements(tmp_path, ["a", "b", "c"])
    write_progress(tmp_path, [("a", False), ("b", False), ("c", False)])
    return tmp_path


@pytest.fixture
def make_config():
    def _make(root: Path, **overrides):
        environ = {"RALPH_ITERATION_DELAY": "0"}
        environ.update({f"RALPH_{k.upper()}": str(v) for k, v in overrides.items()})
        return load_config(root, environ=environ)
    return _make
