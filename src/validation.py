"""
Schema Validation - JSON schema validation of desired specs.

Adapters declare a JSON schema for the spec of their resource kind. Specs are
checked against it before any provider call, so malformed declarations fail
fast with a non-retryable error instead of a provider round trip.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, SchemaError

logger = logging.getLogger(__name__)


def validate_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a schema is a valid JSON Schema (Draft 7).

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a resource spec against a JSON schema.

    Args:
        spec: The desired spec of a managed resource
        schema: The JSON schema of the resource kind

    Returns:
        Tuple of (is_valid, error_message). All violations are reported,
        separated by '; ', each prefixed with its dotted path.
    """
    validator = Draft7Validator(schema)
    errors = sorted(
        validator.iter_errors(spec), key=lambda e: [str(p) for p in e.absolute_path]
    )

    if not errors:
        return True, None

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        error_messages.append(f"{path}: {error.message}")

    return False, "; ".join(error_messages)
