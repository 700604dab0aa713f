"""
Which command line produces content.

The produce command is, in increasing precedence: the built-in default,
AGENT_COMMAND from the loop config, then `stages.produce` in agents.yaml at
the project root.

A command is a template. `{item_id}` and `{content_dir}` are filled in
(shell-quoted) before splitting. When `{prompt}` appears the prompt becomes
that argument verbatim; otherwise it is written to the agent's stdin, which
is the default since prompts can exceed argument length limits.

    stages:
      produce: claude --print --permission-mode acceptEdits
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

AGENTS_FILE_NAME = "agents.yaml"

DEFAULT_STAGE_COMMANDS = {
    "produce": "gemini --yolo",
}

_TEMPLATE_VAR = re.compile(r'\{(\w+)\}')
_PROMPT_SLOT = "__RALPH_PROMPT__"


@dataclass
class AgentsConfig:
    """Command template per agent stage."""
    stages: dict[str, str] = field(default_factory=lambda: DEFAULT_STAGE_COMMANDS.copy())

    def template(self, stage: str) -> str:
        try:
            return self.stages[stage]
        except KeyError:
            raise ValueError(f"Unknown stage: {stage}") from None


def _read_stage_overrides(config_path: Path) -> dict[str, str]:
    """Usable stage commands from agents.yaml; problems are logged and skipped."""
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("stages"), dict):
        logger.warning(f"Ignoring {config_path}: expected a 'stages' mapping")
        return {}

    overrides = {}
    for stage, command in data["stages"].items():
        if isinstance(command, str) and command.strip():
            overrides[stage] = command
        else:
            logger.warning(f"Ignoring stage '{stage}' in {config_path}: command must be a non-empty string")
    return overrides


def load_agents_config(project_dir: Optional[Path], default_command: str | None = None) -> AgentsConfig:
    stages = dict(DEFAULT_STAGE_COMMANDS)
    if default_command:
        stages["produce"] = default_command

    if project_dir is not None and (project_dir / AGENTS_FILE_NAME).is_file():
        stages.update(_read_stage_overrides(project_dir / AGENTS_FILE_NAME))

    return AgentsConfig(stages=stages)


@dataclass
class StageCommand:
    """An argv ready for subprocess, and how the prompt reaches the agent."""
    cmd: list[str]
    prompt_via_stdin: bool

    def get_stdin_input(self, prompt: str) -> str | None:
        return prompt if self.prompt_via_stdin else None


def get_stage_command(
    config: AgentsConfig,
    stage: str,
    context: dict[str, str] | None = None,
) -> StageCommand:
    """
    Expand a stage's command template into an argv.

    Raises:
        ValueError: If the stage has no command.

    Example:
        >>> config = AgentsConfig(stages={"produce": "agent -p {prompt}"})
        >>> get_stage_command(config, "produce", {"prompt": "do stuff"}).cmd
        ['agent', '-p', 'do stuff']
    """
    template = config.template(stage)
    values = context or {}
    unresolved = []

    def fill(match: re.Match) -> str:
        name = match.group(1)
        if name not in values:
            unresolved.append(name)
            return match.group(0)
        # The prompt is swapped in after splitting so its quotes survive
        if name == "prompt":
            return _PROMPT_SLOT
        return shlex.quote(str(values[name]))

    expanded = _TEMPLATE_VAR.sub(fill, template)
    if unresolved:
        logger.error(f"Stage '{stage}' has unsubstituted variables: {unresolved}. Template: {template}")

    argv = [values["prompt"] if arg == _PROMPT_SLOT else arg for arg in shlex.split(expanded)]
    return StageCommand(cmd=argv, prompt_via_stdin="{prompt}" not in template)


def get_stage_binary(config: AgentsConfig, stage: str) -> str:
    """First word of the stage's command, or '' for an empty command."""
    words = shlex.split(config.template(stage))
    return words[0] if words else ""


def check_binary_available(binary: str) -> bool:
    return shutil.which(binary) is not None
