"""
JSON Schema checks for the two documents issueflow does not write by hand:
the agent's reply (coming in) and result.json (going out).

Schemas live in issueflow/schemas/<name>.schema.json and are compiled once.
"""

import json
from functools import lru_cache
from pathlib import Path

import jsonschema
from jsonschema.exceptions import best_match

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class ValidationError(Exception):
    """Data did not match its schema, or the schema itself is missing."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{where}")


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.protocols.Validator:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.is_file():
        raise ValidationError(schema_name, f"Schema not found: {schema_path.name}")
    schema = json.loads(schema_path.read_text())
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate(data: dict, schema_name: str) -> None:
    """
    Check data against a bundled schema ("agent_result" or "result").

    When several constraints fail, the most relevant one is reported.

    Raises:
        ValidationError: data does not match, or the schema does not exist
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, path)


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Like validate(), but names the file that would have received the data."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name, f"Refusing to write {filepath.name}: {e}", e.path
        ) from None
