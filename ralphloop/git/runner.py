"""Non-interactive git invocation for the auto-commit step."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30

# The loop runs unattended; git must fail instead of prompting
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return not self.timed_out and self.returncode == 0


def run_git(args: list[str], cwd: Path, timeout: int = GIT_TIMEOUT) -> GitResult:
    """Run `git -C cwd <args>`; never raises for git-level failures."""
    cmd = ["git", "-C", str(cwd), *args]
    logger.debug(f"git {' '.join(args)}")

    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, **_GIT_ENV},
        )
    except subprocess.TimeoutExpired:
        return GitResult(-1, "", f"git {args[0]} timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(127, "", "git not found in PATH")

    return GitResult(proc.returncode, proc.stdout, proc.stderr)
