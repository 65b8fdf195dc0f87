"""
JSON Schema validation for decrypted form payloads.

All errors are collected rather than failing on the first one; callers that
need a single user-facing message pick it by field.
"""

from typing import Any

import jsonschema


def invalid_fields(data: dict[str, Any], schema: dict[str, Any]) -> set[str]:
    """Names of top-level properties that failed validation."""
    validator = jsonschema.Draft7Validator(schema)
    fields = set()
    for error in validator.iter_errors(data):
        if error.path:
            fields.add(str(error.path[0]))
        elif error.validator == "required":
            # "'cvv' is a required property"
            fields.update(name for name in schema.get("required", []) if name not in data)
    return fields
