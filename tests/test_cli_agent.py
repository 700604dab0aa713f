"""Tests for ralphloop.agents.cli_agent module."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from ralphloop.agents import CliAgent, ProduceContext
from ralphloop.lib.agents_config import AgentsConfig
from ralphloop.lib.workitems import WorkItem

ITEM = WorkItem(id="SDET-1.1-001", category="Java", description="OOP pillars",
                raw={"id": "SDET-1.1-001", "category": "Java", "description": "OOP pillars"})


@pytest.fixture
def context(tmp_path):
    content_dir = tmp_path / "sdet-learning-content"
    content_dir.mkdir()
    return ProduceContext(
        artifact_path=content_dir / "SDET-1.1-001.md",
        log_context="- [x] SDET-0.0-001: earlier",
        iteration=2,
        log_dir=tmp_path / "iteration-logs" / "run1",
    )


def make_agent(tmp_path, command="gemini --yolo", timeout=60):
    return CliAgent(AgentsConfig(stages={"produce": command}), cwd=tmp_path,
                    timeout=timeout, completion_promise="<promise>COMPLETE</promise>")


class TestBuildPrompt:
    """Tests for CliAgent.build_prompt."""

    def test_artifact_path_relative_to_cwd(self, tmp_path, context):
        prompt = make_agent(tmp_path).build_prompt(ITEM, context)
        assert "'sdet-learning-content/SDET-1.1-001.md'" in prompt
        assert str(tmp_path) not in prompt

    def test_includes_item_json_and_context(self, tmp_path, context):
        prompt = make_agent(tmp_path).build_prompt(ITEM, context)
        assert '"description": "OOP pillars"' in prompt
        assert "- [x] SDET-0.0-001: earlier" in prompt

    def test_empty_log_context(self, tmp_path, context):
        context.log_context = ""
        prompt = make_agent(tmp_path).build_prompt(ITEM, context)
        assert "(empty)" in prompt


class TestProduce:
    """Tests for CliAgent.produce."""

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_prompt_sent_on_stdin(self, mock_run, tmp_path, context):
        mock_run.return_value = MagicMock(returncode=0, stdout="done\n", stderr="")
        result = make_agent(tmp_path).produce(ITEM, context)

        assert result.success
        args, kwargs = mock_run.call_args
        assert args[0] == ["gemini", "--yolo"]
        assert "SDET-1.1-001" in kwargs["input"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 60

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_prompt_as_argument(self, mock_run, tmp_path, context):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        make_agent(tmp_path, command="agent -p {prompt}").produce(ITEM, context)

        args, kwargs = mock_run.call_args
        assert args[0][:2] == ["agent", "-p"]
        assert "SDET-1.1-001" in args[0][2]
        assert kwargs["input"] is None

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_writes_prompt_and_output_logs(self, mock_run, tmp_path, context):
        mock_run.return_value = MagicMock(returncode=3, stdout="agent says hi", stderr="oops")
        result = make_agent(tmp_path).produce(ITEM, context)

        assert not result.success
        assert result.exit_code == 3
        prompt_file = context.log_dir / "prompt-iteration-2.txt"
        output_file = context.log_dir / "output-iteration-2.log"
        assert "SDET-1.1-001" in prompt_file.read_text()
        output = output_file.read_text()
        assert "=== COMMAND ===\ngemini --yolo" in output
        assert "=== EXIT CODE ===\n3" in output
        assert "=== STDOUT ===\nagent says hi" in output
        assert "=== STDERR ===\noops" in output

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_artifact_reported_when_written(self, mock_run, tmp_path, context):
        def write_artifact(*args, **kwargs):
            context.artifact_path.write_text("# OOP\n")
            return MagicMock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = write_artifact
        result = make_agent(tmp_path).produce(ITEM, context)
        assert result.artifact == context.artifact_path

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_timeout(self, mock_run, tmp_path, context):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="gemini", timeout=60, output=b"partial")
        result = make_agent(tmp_path).produce(ITEM, context)

        assert result.timed_out
        assert not result.success
        assert result.exit_code == -1
        assert result.stdout == "partial"
        assert "AGENT_TIMEOUT" in result.stderr

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_zero_timeout_disables(self, mock_run, tmp_path, context):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        make_agent(tmp_path, timeout=0).produce(ITEM, context)
        assert mock_run.call_args.kwargs["timeout"] is None

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_missing_binary(self, mock_run, tmp_path, context):
        mock_run.side_effect = FileNotFoundError()
        result = make_agent(tmp_path).produce(ITEM, context)
        assert result.exit_code == 127
        assert "not found" in result.stderr

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_verbose_prints_output(self, mock_run, tmp_path, context, capsys):
        mock_run.return_value = MagicMock(returncode=0, stdout="streamed", stderr="")
        context.verbose = True
        make_agent(tmp_path).produce(ITEM, context)
        assert "streamed" in capsys.readouterr().out

    @patch("ralphloop.agents.cli_agent.subprocess.run")
    def test_completion_promise_detected(self, mock_run, tmp_path, context):
        mock_run.return_value = MagicMock(returncode=0, stdout="<promise>COMPLETE</promise>\n", stderr="")
        result = make_agent(tmp_path).produce(ITEM, context)
        assert result.contains("<promise>COMPLETE</promise>")
        assert not result.contains("")
