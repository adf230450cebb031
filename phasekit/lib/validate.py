"""
Schema validation for phasekit.

Every document is checked against JSON Schema at the persistence boundary,
both on load and before write. Violations fail hard with the offending field
path.
"""

import json
from pathlib import Path
from typing import Any, Optional

import jsonschema


class SchemaViolation(Exception):
    """Data does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: Optional[str] = None):
        self.schema_name = schema_name
        self.message = message
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# Cache loaded schemas
_schema_cache: dict[str, dict] = {}

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


def load_schema(schema_name: str) -> dict:
    """Load a bundled schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaViolation(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def _format_path(prefix: Optional[str], parts) -> str:
    segments = [prefix] if prefix else []
    segments.extend(str(p) for p in parts)
    return ".".join(segments) if segments else "(root)"


def validate_against(data: Any, schema: dict, schema_name: str, path_prefix: Optional[str] = None) -> None:
    """
    Validate data against an in-memory schema.

    Args:
        data: Value to validate
        schema: JSON Schema dict
        schema_name: Name used in error messages
        path_prefix: Dotted location of data inside its document, if nested

    Raises:
        SchemaViolation: If validation fails
    """
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = _format_path(path_prefix, e.absolute_path)
        raise SchemaViolation(schema_name, e.message, path) from None


def validate(data: dict, schema_name: str) -> None:
    """
    Validate data against a bundled schema.

    Args:
        data: Dictionary to validate
        schema_name: Schema name (e.g., "project")

    Raises:
        SchemaViolation: If validation fails
    """
    validate_against(data, load_schema(schema_name), schema_name)


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """
    Validate data before writing it. Never writes invalid data.

    Raises:
        SchemaViolation: If data doesn't match schema
    """
    try:
        validate(data, schema_name)
    except SchemaViolation as e:
        raise SchemaViolation(
            schema_name,
            f"Refusing to write invalid data to {filepath}: {e.message}",
            e.path,
        ) from None
