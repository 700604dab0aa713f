"""
JSON Schema checks for the documents the loop reads and writes.

requirements.json is checked when the store loads. Each
result-iteration-N.json is checked before it touches disk.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


class ValidationError(Exception):
    """A document did not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        location = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{location}")


@lru_cache(maxsize=None)
def _validator(schema_name: str):
    schema_file = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_file.is_file():
        raise ValidationError(schema_name, f"Schema file not found: {schema_file}")
    schema = json.loads(schema_file.read_text(encoding="utf-8"))
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate(data: Any, schema_name: str) -> None:
    """
    Check data against schemas/<schema_name>.schema.json.

    Reports the most relevant violation when there are several.

    Raises:
        ValidationError: If the data does not match
    """
    error = jsonschema.exceptions.best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    where = ".".join(str(part) for part in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, where)


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Like validate(), but names the file that would have been written."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"Refusing to write invalid data to {filepath}: {e}") from None
