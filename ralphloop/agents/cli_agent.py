"""
CLI agent integration.

Shells out to a generative agent CLI (gemini by default) to write one
markdown artifact per work item.
"""

import logging
import subprocess
from pathlib import Path

from ralphloop.agents.base import ProduceContext, ProduceResult
from ralphloop.lib.agents_config import AgentsConfig, get_stage_command
from ralphloop.lib.prompts import render_prompt
from ralphloop.lib.workitems import WorkItem

logger = logging.getLogger(__name__)


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class CliAgent:
    def __init__(self, agents_config: AgentsConfig, cwd: Path, timeout: int = 1800,
                 completion_promise: str = ""):
        self.agents_config = agents_config
        self.cwd = cwd
        self.timeout = timeout
        self.completion_promise = completion_promise

    def build_prompt(self, item: WorkItem, context: ProduceContext) -> str:
        artifact_path = context.artifact_path
        try:
            artifact_path = artifact_path.relative_to(self.cwd)
        except ValueError:
            pass

        return render_prompt(
            "content",
            item_id=item.id,
            item_json=item.to_prompt_json(),
            artifact_path=artifact_path,
            log_context=context.log_context or "(empty)",
            completion_promise=self.completion_promise,
        )

    def produce(self, item: WorkItem, context: ProduceContext) -> ProduceResult:
        """
        Run the agent for one work item.

        The prompt goes via stdin unless the command template has {prompt}.
        Success here only means the process exited 0; the caller verifies the
        artifact.
        """
        prompt = self.build_prompt(item, context)

        prompt_file = output_file = None
        if context.log_dir:
            context.log_dir.mkdir(parents=True, exist_ok=True)
            prompt_file = context.log_dir / f"prompt-iteration-{context.iteration}.txt"
            output_file = context.log_dir / f"output-iteration-{context.iteration}.log"
            prompt_file.write_text(prompt, encoding="utf-8")

        stage_cmd = get_stage_command(self.agents_config, "produce", {
            "prompt": prompt,
            "item_id": item.id,
            "content_dir": str(context.artifact_path.parent),
        })
        cmd = stage_cmd.cmd
        timeout = self.timeout or None

        logger.info(f"Invoking agent for {item.id}: {cmd[0]}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.cwd),
                input=stage_cmd.get_stdin_input(prompt),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            produce_result = ProduceResult(
                success=False,
                exit_code=-1,
                stdout=_as_text(e.stdout),
                stderr=f"Timed out after {self.timeout}s. Retry or increase AGENT_TIMEOUT.",
                timed_out=True,
            )
        except FileNotFoundError:
            produce_result = ProduceResult(
                success=False,
                exit_code=127,
                stdout="",
                stderr=f"Agent binary not found: {cmd[0]}",
            )
        else:
            produce_result = ProduceResult(
                success=result.returncode == 0,
                exit_code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        if output_file:
            # Only the command head is logged; the prompt is in prompt_file
            shown = cmd if stage_cmd.prompt_via_stdin else [a if a != prompt else "<prompt>" for a in cmd]
            output_file.write_text(
                f"=== COMMAND ===\n{' '.join(shown)}\n\n"
                f"=== EXIT CODE ===\n{produce_result.exit_code}\n\n"
                f"=== STDOUT ===\n{produce_result.stdout}\n\n"
                f"=== STDERR ===\n{produce_result.stderr}\n",
                encoding="utf-8",
            )

        if context.verbose:
            print(produce_result.stdout, end="" if produce_result.stdout.endswith("\n") else "\n")

        if context.artifact_path.exists():
            produce_result.artifact = context.artifact_path

        return produce_result
