"""Git helpers for AUTO_COMMIT. Nothing here raises on git failures."""

from ralphloop.git.runner import GitResult, run_git
from ralphloop.git.commit import (
    is_repo,
    stage_files,
    has_staged_changes,
    commit,
    get_head_sha,
)

__all__ = [
    "GitResult",
    "run_git",
    "is_repo",
    "stage_files",
    "has_staged_changes",
    "commit",
    "get_head_sha",
]
