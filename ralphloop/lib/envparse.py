"""
ralph.env reader.

ralph.env uses shell KEY=value syntax so it can be sourced by hand, but it is
never executed. Values that would do something under a shell (substitution,
expansion, chaining) are rejected rather than silently kept as literals.
"""

import re
from pathlib import Path

# Matches any construct a shell would act on inside a value
_SHELL_CONSTRUCT = re.compile(r'`|\$\(|\$\{|;|&&|\|\|')

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')

_QUOTES = ('"', "'")


def _unquote(raw: str) -> tuple[str, bool]:
    if len(raw) >= 2 and raw[0] in _QUOTES and raw[-1] == raw[0]:
        return raw[1:-1], True
    return raw, False


def _parse_assignment(line: str, lineno: int) -> tuple[str, str]:
    line = line.removeprefix('export ').lstrip()

    key, sep, raw = line.partition('=')
    if not sep:
        raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")

    key = key.strip()
    if not KEY_PATTERN.match(key):
        raise ValueError(f"Line {lineno}: Invalid key '{key}'")

    value, quoted = _unquote(raw.strip())
    if not quoted:
        value = value.split(' #', 1)[0].rstrip()

    if _SHELL_CONSTRUCT.search(value):
        raise ValueError(f"Line {lineno}: Forbidden pattern in value for '{key}'")

    return key, value


def parse_env(text: str) -> dict[str, str]:
    """
    Parse ralph.env content into a dict. Later assignments win.

    Raises:
        ValueError: on a malformed line or a value containing shell syntax
    """
    settings = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if line and not line.startswith('#'):
            key, value = _parse_assignment(line, lineno)
            settings[key] = value
    return settings


def load_env(filepath: Path | str) -> dict[str, str]:
    """Read and parse an env file. Raises FileNotFoundError or ValueError."""
    path = Path(filepath)
    if not path.is_file():
        raise FileNotFoundError(f"Env file not found: {path}")
    return parse_env(path.read_text(encoding="utf-8"))
