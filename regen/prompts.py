"""
Prompt builders for the model-backed recovery layers.
"""
import json
from typing import Any, Dict, List, Optional

from regen.validator import OutputSchema, describe_value


def _schema_block(schema: Optional[OutputSchema], fragment: Optional[Dict[str, Any]] = None) -> str:
    if schema is None and fragment is None:
        return "Respond with a single valid JSON object or array.\n"
    schema_json = json.dumps(fragment if fragment is not None else schema.json_schema(), indent=2)
    return (
        "You MUST respond with valid JSON strictly conforming to this schema:\n"
        f"```json\n{schema_json}\n```\n"
    )


def critique_prompt(
    original_prompt: str,
    previous_output: str,
    error: str,
    schema: Optional[OutputSchema] = None,
    earlier_errors: Optional[List[str]] = None,
) -> str:
    """Layer 2: the prior output verbatim plus every diagnostic gathered so far."""
    history = ""
    if earlier_errors:
        lines = "\n".join(f"- {e}" for e in earlier_errors)
        history = f"\nEarlier attempts also failed with:\n{lines}\n"

    return (
        "Your previous response to the task below could not be used.\n\n"
        f"## Original task\n{original_prompt}\n\n"
        f"## Your previous response\n{previous_output}\n\n"
        f"## Problem\n{error}\n"
        f"{history}\n"
        "Revise the response so it fixes the problem. Keep everything that was correct.\n"
        f"{_schema_block(schema)}"
        "Return only the JSON, without commentary or code fences."
    )


def partial_fields_prompt(
    original_prompt: str,
    schema: OutputSchema,
    fields: List[str],
    valid_fields: Dict[str, Any],
    reasons: str = "",
) -> str:
    """Layer 3: ask only for `fields`; the valid part is context and must not change."""
    context = describe_value(valid_fields) if valid_fields else "{}"
    problems = f"\nThese fields were rejected: {reasons}\n" if reasons else ""
    return (
        "Part of a structured response is already correct. Produce ONLY the missing or invalid fields.\n\n"
        f"## Original task\n{original_prompt}\n\n"
        f"## Fields already accepted (do not change or repeat them)\n{context}\n\n"
        f"## Fields to produce\n{', '.join(fields)}\n"
        f"{problems}\n"
        f"{_schema_block(schema, schema.field_schema(fields))}"
        "Return a JSON object containing exactly these fields."
    )


def escalation_prompt(
    original_prompt: str,
    last_error: Optional[str] = None,
    schema: Optional[OutputSchema] = None,
) -> str:
    """Layer 4: fresh generation on a stronger model, with the last diagnostic as a hint."""
    hint = f"\nA previous attempt failed with: {last_error}\nAvoid that mistake.\n" if last_error else ""
    return f"{original_prompt}\n{hint}\n{_schema_block(schema)}"


def emergency_prompt(original_prompt: str, schema: Optional[OutputSchema] = None) -> str:
    return f"{original_prompt}\n\n{_schema_block(schema)}Return only the JSON."
