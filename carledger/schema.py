"""JSON Schema validation for ledger records.

Validators are built once per schema file and cached. Errors are reported as
``"<json path>: <message>"`` strings so callers can surface the first one.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator

from carledger.core import SCHEMAS_DIR, load_json

CAR_SCHEMA = SCHEMAS_DIR / "car.schema.json"


@lru_cache(maxsize=8)
def schema_validator(schema_path: Path = CAR_SCHEMA) -> Draft202012Validator:
    """Create (and cache) a validator for a schema file."""
    schema = load_json(schema_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_against_schema(obj: Any, schema_path: Path = CAR_SCHEMA) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(schema_path)
    return [
        f"{error.json_path}: {error.message}"
        for error in validator.iter_errors(obj)
    ]
