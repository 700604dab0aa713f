"""Git commit operations."""

from pathlib import Path

from ralphloop.git.runner import run_git, GitResult


def is_repo(worktree: Path) -> bool:
    """True if worktree is inside a git work tree."""
    result = run_git(["rev-parse", "--is-inside-work-tree"], worktree)
    return result.success and result.stdout.strip() == "true"


def stage_files(worktree: Path, files: list[str]) -> GitResult:
    """Stage specific files."""
    return run_git(["add", "--"] + files, worktree)


def has_staged_changes(worktree: Path) -> bool:
    """True if the index differs from HEAD."""
    result = run_git(["diff", "--cached", "--quiet"], worktree)
    return result.returncode == 1


def commit(worktree: Path, message: str) -> GitResult:
    """Create a commit with the given message."""
    return run_git(["commit", "-m", message], worktree)


def get_head_sha(worktree: Path) -> str | None:
    result = run_git(["rev-parse", "HEAD"], worktree)
    return result.stdout.strip() if result.success else None
