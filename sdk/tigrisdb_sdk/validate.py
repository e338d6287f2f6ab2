"""
Schema validation for TigrisDB SDK.

Schema documents are checked locally so malformed input is rejected
before any call reaches the server.

Invariants:
    - Validation errors are deterministic
    - Error messages include context for fixing
    - Misspelled top-level keys suggest the closest valid key
"""

from __future__ import annotations

import json
from difflib import get_close_matches
from typing import Any, Dict, List, Tuple

from .errors import ValidationError

KNOWN_SCHEMA_KEYS = (
    "name",
    "title",
    "description",
    "type",
    "properties",
    "required",
    "primary_key",
    "$defs",
    "definitions",
    "additionalProperties",
    "$schema",
    "$id",
    "$comment",
)


def parse_schema(content: str) -> Dict[str, Any]:
    """Parse schema content as a JSON object.

    Raises:
        ValidationError: If the content is not a JSON object
    """
    try:
        document = json.loads(content)
    except (TypeError, ValueError) as e:
        raise ValidationError("Failed to parse schema", errors=[str(e)], cause=e) from e
    if not isinstance(document, dict):
        raise ValidationError(
            "Failed to parse schema",
            errors=[f"Schema must be a JSON object, got {type(document).__name__}"],
        )
    return document


def validate_schema(document: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a parsed schema document.

    Args:
        document: Parsed schema

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []

    for key in document:
        if key in KNOWN_SCHEMA_KEYS:
            continue
        suggestions = get_close_matches(key, KNOWN_SCHEMA_KEYS, n=3)
        if suggestions:
            errors.append(f"Unknown schema key '{key}'. Did you mean: {suggestions}?")
        else:
            errors.append(f"Unknown schema key '{key}'")

    name = document.get("name")
    if name is None:
        errors.append("Schema 'name' is required")
    elif not isinstance(name, str) or not name.strip():
        errors.append("Schema 'name' must be a non-empty string")

    properties = document.get("properties")
    if properties is None:
        errors.append("Schema 'properties' is required")
    elif not isinstance(properties, dict):
        errors.append(f"Schema 'properties' must be an object, got {type(properties).__name__}")

    primary_key = document.get("primary_key")
    if primary_key is not None:
        if not isinstance(primary_key, list) or not all(isinstance(k, str) for k in primary_key):
            errors.append("Schema 'primary_key' must be a list of field names")
        elif isinstance(properties, dict):
            for key in primary_key:
                if key not in properties:
                    errors.append(f"Primary key field '{key}' is not a property")

    return len(errors) == 0, errors


def validate_or_raise(content: str) -> Dict[str, Any]:
    """Parse and validate schema content.

    Returns:
        The parsed schema document

    Raises:
        ValidationError: If the schema is malformed
    """
    document = parse_schema(content)
    is_valid, errors = validate_schema(document)
    if not is_valid:
        raise ValidationError(f"Invalid schema: {'; '.join(errors)}", errors=errors)
    return document
