"""Tests for ralphloop.lib.envparse module."""

import pytest

from ralphloop.lib.envparse import parse_env, load_env


class TestParseEnv:
    """Tests for parse_env function."""

    def test_simple_pairs(self):
        result = parse_env("MAX_ITERATIONS=5\nCONTENT_DIR=out\n")
        assert result == {"MAX_ITERATIONS": "5", "CONTENT_DIR": "out"}

    def test_skips_blank_lines_and_comments(self):
        result = parse_env("# settings\n\nMAX_ITERATIONS=2\n")
        assert result == {"MAX_ITERATIONS": "2"}

    def test_strips_quotes(self):
        result = parse_env('AGENT_COMMAND="gemini --yolo"\nLOGS_FILE=\'logs.md\'\n')
        assert result["AGENT_COMMAND"] == "gemini --yolo"
        assert result["LOGS_FILE"] == "logs.md"

    def test_export_prefix(self):
        assert parse_env("export MAX_ITERATIONS=3") == {"MAX_ITERATIONS": "3"}

    def test_trailing_comment_on_unquoted_value(self):
        assert parse_env("MAX_ITERATIONS=3  # per run") == {"MAX_ITERATIONS": "3"}

    def test_hash_kept_inside_quotes(self):
        assert parse_env('COMPLETION_PROMISE="done #1"') == {"COMPLETION_PROMISE": "done #1"}

    def test_missing_equals_raises(self):
        with pytest.raises(ValueError, match="Line 1"):
            parse_env("MAX_ITERATIONS")

    def test_invalid_key_raises(self):
        with pytest.raises(ValueError, match="Invalid key"):
            parse_env("max_iterations=3")

    @pytest.mark.parametrize("value", [
        "`whoami`",
        "$(whoami)",
        "${HOME}",
        "a; rm -rf /",
        "a && b",
        "a || b",
    ])
    def test_forbidden_patterns_rejected(self, value):
        with pytest.raises(ValueError, match="Forbidden pattern"):
            parse_env(f"AGENT_COMMAND={value}")


class TestLoadEnv:
    """Tests for load_env function."""

    def test_reads_file(self, tmp_path):
        env_file = tmp_path / "ralph.env"
        env_file.write_text("MAX_ITERATIONS=4\n")
        assert load_env(str(env_file)) == {"MAX_ITERATIONS": "4"}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env(str(tmp_path / "nope.env"))
