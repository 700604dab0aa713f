"""
Configuration loader for the loop.

Values come from, in increasing priority:
  1. built-in defaults
  2. ralph.env in the project root (KEY=value, parsed by envparse)
  3. process environment variables prefixed with RALPH_
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from . import envparse
from .constants import ARTIFACT_SUFFIX, COMPLETION_PROMISE

logger = logging.getLogger(__name__)

ENV_FILE_NAME = "ralph.env"
ENV_PREFIX = "RALPH_"

DEFAULTS = {
    "MAX_ITERATIONS": "1",
    "REQUIREMENTS_FILE": "requirements.json",
    "PROGRESS_FILE": "progress.md",
    "LOGS_FILE": "logs.md",
    "CONTENT_DIR": "sdet-learning-content",
    "ITERATION_LOG_DIR": "iteration-logs",
    "COMPLETION_PROMISE": COMPLETION_PROMISE,
    "AGENT_COMMAND": "gemini --yolo",
    "AGENT_TIMEOUT": "1800",
    "MAX_ATTEMPTS": "1",
    "ITERATION_DELAY": "3",
    "LOG_CONTEXT_LINES": "5",
    "AUTO_COMMIT": "false",
    "RUN_LOCK": "false",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """Configuration value is missing or invalid."""
    pass


@dataclass
class LoopConfig:
    """Loop settings, resolved against the project root."""
    root: Path
    max_iterations: int
    requirements_file: Path
    progress_file: Path
    logs_file: Path
    content_dir: Path
    iteration_log_dir: Path
    completion_promise: str
    agent_command: str
    agent_timeout: int  # seconds, 0 disables the timeout
    max_attempts: int  # per item within one invocation
    iteration_delay: float
    log_context_lines: int
    auto_commit: bool
    run_lock: bool

    def artifact_path(self, item_id: str) -> Path:
        """Where the artifact for item_id is expected to appear."""
        return self.content_dir / f"{item_id}{ARTIFACT_SUFFIX}"

    def check_inputs(self) -> list[str]:
        """Return a list of missing required input files (empty if all present)."""
        missing = []
        for path in (self.requirements_file, self.progress_file):
            if not path.is_file():
                missing.append(str(path))
        return missing


def _parse_int(key: str, value: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{value}'") from None
    if number < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {number}")
    return number


def _parse_float(key: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{value}'") from None
    if number < 0:
        raise ConfigError(f"{key} must be >= 0, got {number}")
    return number


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{key} must be true/false, got '{value}'")


def _resolve(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def collect_settings(root: Path, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Merge defaults, ralph.env and RALPH_* environment variables."""
    if environ is None:
        environ = os.environ

    settings = dict(DEFAULTS)

    env_file = root / ENV_FILE_NAME
    if env_file.exists():
        try:
            file_values = envparse.load_env(str(env_file))
        except ValueError as e:
            raise ConfigError(f"{env_file}: {e}") from None
        for key in file_values:
            if key not in DEFAULTS:
                logger.warning(f"Ignoring unknown setting {key} in {env_file}")
        settings.update({k: v for k, v in file_values.items() if k in DEFAULTS})

    for key in DEFAULTS:
        env_value = environ.get(ENV_PREFIX + key)
        if env_value is not None:
            settings[key] = env_value

    return settings


def load_config(root: Path, environ: Mapping[str, str] | None = None) -> LoopConfig:
    """Load LoopConfig for the project rooted at root."""
    root = root.resolve()
    s = collect_settings(root, environ)

    if not s["AGENT_COMMAND"].strip():
        raise ConfigError("AGENT_COMMAND must not be empty")

    return LoopConfig(
        root=root,
        max_iterations=_parse_int("MAX_ITERATIONS", s["MAX_ITERATIONS"], minimum=1),
        requirements_file=_resolve(root, s["REQUIREMENTS_FILE"]),
        progress_file=_resolve(root, s["PROGRESS_FILE"]),
        logs_file=_resolve(root, s["LOGS_FILE"]),
        content_dir=_resolve(root, s["CONTENT_DIR"]),
        iteration_log_dir=_resolve(root, s["ITERATION_LOG_DIR"]),
        completion_promise=s["COMPLETION_PROMISE"],
        agent_command=s["AGENT_COMMAND"],
        agent_timeout=_parse_int("AGENT_TIMEOUT", s["AGENT_TIMEOUT"]),
        max_attempts=_parse_int("MAX_ATTEMPTS", s["MAX_ATTEMPTS"], minimum=1),
        iteration_delay=_parse_float("ITERATION_DELAY", s["ITERATION_DELAY"]),
        log_context_lines=_parse_int("LOG_CONTEXT_LINES", s["LOG_CONTEXT_LINES"]),
        auto_commit=_parse_bool("AUTO_COMMIT", s["AUTO_COMMIT"]),
        run_lock=_parse_bool("RUN_LOCK", s["RUN_LOCK"]),
    )
