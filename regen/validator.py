"""
Schema Validator with field-level (partial) validation.

Coercion rules are owned by OutputSchema:
- strict=False: pydantic lax mode. "3" -> 3, "true" -> True, 3 -> 3.0.
- strict=True: no coercion; types must match exactly.
"""
import copy
import json
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple, Type

from pydantic import BaseModel, Field, ValidationError

from regen.types import FieldStatus, FieldValidation, FieldValidationReport

ROOT_KEY = "__root__"


class OutputSchema:
    """
    A validatable schema: a pydantic model plus its coercion policy.
    Field keys are input keys (the alias when one is declared).
    """

    def __init__(self, model: Type[BaseModel], strict: bool = False):
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            raise TypeError("OutputSchema requires a pydantic BaseModel subclass")
        self.model = model
        self.strict = strict

    @property
    def name(self) -> str:
        return self.model.__name__

    @property
    def coercion(self) -> str:
        return "none" if self.strict else "lax"

    @property
    def field_keys(self) -> List[str]:
        return [info.alias or name for name, info in self.model.model_fields.items()]

    @property
    def property_keys(self) -> FrozenSet[str]:
        """Every object key the schema declares, nested models included."""
        keys = set(self.field_keys)
        stack: List[Any] = [self.json_schema()]
        while stack:
            node = stack.pop()
            if isinstance(node, list):
                stack.extend(node)
            elif isinstance(node, dict):
                properties = node.get("properties")
                if isinstance(properties, dict):
                    keys.update(properties)
                stack.extend(node.values())
        return frozenset(keys)

    def json_schema(self) -> Dict[str, Any]:
        return self.model.model_json_schema()

    def field_schema(self, keys: Iterable[str]) -> Dict[str, Any]:
        """JSON schema restricted to `keys` (for field-scoped prompts)."""
        full = self.json_schema()
        wanted = list(keys)
        properties = full.get("properties", {})
        fragment: Dict[str, Any] = {
            "type": "object",
            "properties": {k: properties[k] for k in wanted if k in properties},
            "required": [k for k in full.get("required", []) if k in wanted],
        }
        if "$defs" in full:
            fragment["$defs"] = full["$defs"]
        return fragment

    def __repr__(self) -> str:
        return f"OutputSchema({self.name}, coercion={self.coercion})"


class ValidationReport(BaseModel):
    valid: bool
    fields: FieldValidationReport
    data: Any = Field(default=None, description="Validated model instance when valid")
    errors: List[str] = Field(default_factory=list)

    def summary(self, limit: int = 5) -> str:
        return "; ".join(self.errors[:limit]) or "schema validation failed"


def _format_error(err: Dict[str, Any]) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ())) or ROOT_KEY
    return f"{loc}: {err.get('msg', 'invalid')}"


class SchemaValidator:
    """
    validate() never raises for bad values; it reports.
    """

    def validate(self, value: Any, schema: OutputSchema) -> ValidationReport:
        keys = schema.field_keys

        if not isinstance(value, dict):
            reason = f"expected an object, got {type(value).__name__}"
            fields = {k: FieldValidation(status=FieldStatus.INVALID, reason=reason) for k in keys}
            return ValidationReport(
                valid=False,
                fields=FieldValidationReport(fields=fields),
                errors=[f"{ROOT_KEY}: {reason}"],
            )

        try:
            # None defers to the model's own config
            instance = schema.model.model_validate(value, strict=True if schema.strict else None)
        except ValidationError as e:
            return self._report_from_errors(e.errors(), keys)

        fields = {k: FieldValidation(status=FieldStatus.VALID) for k in keys}
        return ValidationReport(valid=True, fields=FieldValidationReport(fields=fields), data=instance)

    def _report_from_errors(self, errors: List[Dict[str, Any]], keys: List[str]) -> ValidationReport:
        by_field: Dict[str, List[Dict[str, Any]]] = {}
        messages = []
        for err in errors:
            messages.append(_format_error(err))
            loc = err.get("loc", ())
            head = str(loc[0]) if loc else None
            if head in keys:
                by_field.setdefault(head, []).append(err)
            # no field location (model validators, forbidden extras): object-level only

        fields: Dict[str, FieldValidation] = {}
        for key in keys:
            field_errors = by_field.get(key)
            if not field_errors:
                fields[key] = FieldValidation(status=FieldStatus.VALID)
                continue
            top_level_missing = any(e.get("type") == "missing" and len(e.get("loc", ())) == 1 for e in field_errors)
            fields[key] = FieldValidation(
                status=FieldStatus.MISSING if top_level_missing else FieldStatus.INVALID,
                reason="; ".join(_format_error(e) for e in field_errors[:3]),
            )

        return ValidationReport(valid=False, fields=FieldValidationReport(fields=fields), errors=messages)


def partition(value: Any, report: FieldValidationReport) -> Tuple[Dict[str, Any], List[str]]:
    """
    Split an object into (valid fields present in it, keys to regenerate).
    """
    source = value if isinstance(value, dict) else {}
    valid = {k: source[k] for k in report.valid_fields if k in source}
    return valid, report.to_regenerate


def merge_fields(valid_fields: Dict[str, Any], regenerated_fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pure merge. Regenerated values fill invalid/missing slots; valid fields
    are never overwritten, even when the regenerated payload repeats them.
    """
    merged = copy.deepcopy(valid_fields)
    for key, val in regenerated_fields.items():
        if key not in merged:
            merged[key] = copy.deepcopy(val)
    return merged


def describe_value(value: Any, max_len: int = 4000) -> str:
    """Trace-safe JSON rendering for prompts."""
    try:
        text = json.dumps(value, ensure_ascii=False, indent=2, default=str)
    except (TypeError, ValueError):
        text = str(value)
    return text[:max_len]


def ordered_like(keys: Iterable[str], reference: List[str]) -> List[str]:
    wanted = set(keys)
    return [k for k in reference if k in wanted]
