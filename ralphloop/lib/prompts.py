"""
Agent prompt templates.

Templates live in ralphloop/prompts/<name>.md and are filled in with
str.format(), so a literal brace is written {{ or }}. HTML comments are notes
for maintainers and are removed before the agent sees the text.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = ["PromptError", "load_prompt", "render_prompt", "clear_cache", "PROMPTS_DIR"]

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_MAINTAINER_NOTE = re.compile(r'<!--.*?-->\s*', re.DOTALL)


class PromptError(Exception):
    """A template is missing or could not be filled in."""


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    """Return the template text for `name` with maintainer notes removed."""
    template_file = PROMPTS_DIR / f"{name}.md"
    if not template_file.is_file():
        raise PromptError(f"Prompt template '{name}' not found in {PROMPTS_DIR}")

    logger.debug(f"Loading prompt template {template_file}")
    text = template_file.read_text(encoding="utf-8")
    return _MAINTAINER_NOTE.sub('', text).lstrip()


def render_prompt(name: str, **variables) -> str:
    """
    Fill in a template.

    Raises:
        PromptError: If the template is missing or references a variable
            that was not supplied
    """
    template = load_prompt(name)
    try:
        return template.format(**variables)
    except KeyError as e:
        supplied = ", ".join(sorted(variables)) or "none"
        raise PromptError(f"Prompt '{name}' needs variable {e}; supplied: {supplied}") from e


def clear_cache():
    load_prompt.cache_clear()
