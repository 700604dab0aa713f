"""
Stage implementations.

Each stage function takes a RunContext and raises StageError/StageBlocked on failure.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path

from ralphloop import git
from ralphloop.agents.base import ProduceContext
from ralphloop.lib.constants import EXIT_DESYNC, EXIT_LOCKED, EXIT_PRECONDITION
from ralphloop.lib.ledger import LogRecord, MalformedLedgerError, MarkResult
from ralphloop.lib.locking import LockTimeout
from ralphloop.lib.workitems import MalformedStoreError, UnknownIdError, WorkItemStore
from ralphloop.runner.context import RunContext
from ralphloop.runner.stages import StageBlocked, StageError

logger = logging.getLogger(__name__)

# Verification failures are recoverable: the item stays pending
EXIT_ITERATION_FAILED = 1


def count_files(directory: Path) -> int:
    if not directory.is_dir():
        return 0
    return sum(1 for _ in directory.iterdir())


def quarantine(ctx: RunContext, path: Path, label: str) -> Path:
    """Move a stale or partial artifact out of the content directory."""
    stamp = datetime.now().strftime("%H%M%S")
    dest = ctx.run_dir / f"{label}-iteration-{ctx.iteration}-{stamp}-{path.name}"
    shutil.move(str(path), str(dest))
    ctx.log(f"Moved {label} artifact {path} -> {dest}")
    return dest


def stage_select(ctx: RunContext):
    """Select the first pending ledger entry."""
    try:
        # The agent may have rewritten progress.md in another encoding
        ctx.ledger.sanitize()
    except (FileNotFoundError, MalformedLedgerError) as e:
        raise StageError("select", str(e), EXIT_PRECONDITION)
    except LockTimeout as e:
        raise StageError("select", str(e), EXIT_LOCKED)

    next_id = ctx.ledger.next_pending()
    if next_id is None:
        ctx.log("All ledger entries complete")
        raise StageBlocked("select", "all_complete")

    ctx.item_id = next_id
    ctx.log(f"Selected: {next_id}")


def stage_load_detail(ctx: RunContext):
    """Look the selected id up in the work item store."""
    if ctx.store is None:
        try:
            ctx.store = WorkItemStore.load(ctx.config.requirements_file)
        except (FileNotFoundError, MalformedStoreError) as e:
            raise StageError("load_detail", str(e), EXIT_PRECONDITION)

    try:
        ctx.item = ctx.store.get(ctx.item_id)
    except UnknownIdError:
        raise StageError(
            "load_detail",
            f"'{ctx.item_id}' is in {ctx.config.progress_file.name} but not in "
            f"{ctx.config.requirements_file.name}; fix the data, then rerun",
            EXIT_DESYNC,
        )

    ctx.log(f"Loaded {ctx.item.id} [{ctx.item.category}]: {ctx.item.description}")


def stage_produce(ctx: RunContext):
    """Run the content producer for the selected item."""
    content_dir = ctx.config.content_dir
    content_dir.mkdir(parents=True, exist_ok=True)

    artifact = ctx.artifact_path
    if artifact.exists():
        # Left behind by an interrupted cycle; never trust it
        logger.warning(f"Found unverified artifact {artifact.name} from an earlier cycle; moving it aside")
        quarantine(ctx, artifact, "orphan")

    ctx.files_before = count_files(content_dir)

    produce_context = ProduceContext(
        artifact_path=artifact,
        log_context=ctx.ledger.recent_log(ctx.config.log_context_lines),
        iteration=ctx.iteration,
        log_dir=ctx.run_dir,
        verbose=ctx.verbose,
    )
    ctx.produce_result = ctx.producer.produce(ctx.item, produce_context)
    ctx.log(f"Agent finished: exit={ctx.produce_result.exit_code} timed_out={ctx.produce_result.timed_out}")


def stage_verify(ctx: RunContext):
    """Check that exactly the expected artifact appeared."""
    result = ctx.produce_result
    artifact = ctx.artifact_path
    ctx.files_created = count_files(ctx.config.content_dir) - ctx.files_before

    if result is None:
        raise StageError("verify", "Producer returned no result", EXIT_ITERATION_FAILED)

    if result.timed_out:
        if artifact.exists():
            quarantine(ctx, artifact, "partial")
        raise StageError("verify", f"Agent timed out: {result.stderr}", EXIT_ITERATION_FAILED)

    if not artifact.exists():
        detail = f" (agent exit code {result.exit_code})" if not result.success else ""
        raise StageError("verify", f"Expected artifact {artifact.name} was not created{detail}",
                         EXIT_ITERATION_FAILED)

    if artifact.stat().st_size == 0:
        quarantine(ctx, artifact, "empty")
        raise StageError("verify", f"Artifact {artifact.name} is empty", EXIT_ITERATION_FAILED)

    if not result.success:
        logger.warning(f"Agent exited with {result.exit_code} but {artifact.name} exists; accepting it")

    if ctx.files_created > 1:
        logger.warning(f"Agent created {ctx.files_created} files for {ctx.item_id}; expected 1")

    ctx.log(f"Verified {artifact}")


def stage_commit(ctx: RunContext):
    """Durably mark the item complete, then append the completion log record."""
    try:
        ctx.mark_result = ctx.ledger.mark_completed(ctx.item_id)
    except UnknownIdError as e:
        raise StageError("commit", f"{e} (ledger edited during the cycle?)", EXIT_DESYNC)

    if ctx.mark_result is MarkResult.ALREADY_COMPLETED:
        logger.warning(f"{ctx.item_id} was already marked complete; not logging it again")
        return

    summary = f"{ctx.item.description} -> {ctx.artifact_path.name} (iteration {ctx.iteration}, run {ctx.run_id})"
    ctx.ledger.append_log_record(LogRecord(item_id=ctx.item_id, summary=summary))

    if ctx.config.auto_commit:
        commit_artifact(ctx)


def commit_artifact(ctx: RunContext) -> bool:
    """Commit the artifact and ledger. Failures are warnings."""
    root = ctx.config.root
    if not git.is_repo(root):
        logger.warning(f"AUTO_COMMIT is on but {root} is not a git repository")
        return False

    files = [str(ctx.artifact_path), str(ctx.config.progress_file)]
    staged = git.stage_files(root, files)
    if not staged.success:
        logger.warning(f"git add failed: {staged.stderr.strip()}")
        return False

    if not git.has_staged_changes(root):
        ctx.log("Nothing to commit")
        return False

    message = f"Content: {ctx.item_id} - {ctx.item.description}"
    result = git.commit(root, message)
    if not result.success:
        logger.warning(f"git commit failed: {result.stderr.strip()}")
        return False

    sha = git.get_head_sha(root) or "unknown"
    ctx.log(f"Committed: {sha[:8]} - {message}")
    return True
