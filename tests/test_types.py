"""Result contracts and the layer enum."""
import pytest
from pydantic import ValidationError

from regen.errors import LayerExhausted, ParseError, SchemaValidationError, TransportError
from regen.types import (
    FailureKind,
    FieldStatus,
    FieldValidation,
    FieldValidationReport,
    RegenerationLayer,
    RegenerationMetadata,
    RegenerationResult,
)


class TestLayerEnum:

    def test_global_order(self):
        assert [layer.value for layer in RegenerationLayer.ordered()] == [
            "auto-repair", "critique-revise", "partial-regen", "model-escalation", "emergency",
        ]

    def test_only_auto_repair_is_local(self):
        assert [layer for layer in RegenerationLayer if not layer.requires_model] == [RegenerationLayer.AUTO_REPAIR]


class TestResult:

    def test_success_cannot_carry_error(self):
        with pytest.raises(ValidationError):
            RegenerationResult(success=True, data={}, error="x", metadata=RegenerationMetadata())

    def test_failure_requires_error_and_no_data(self):
        with pytest.raises(ValidationError):
            RegenerationResult(success=False, metadata=RegenerationMetadata())
        with pytest.raises(ValidationError):
            RegenerationResult(success=False, data={"a": 1}, error="x", metadata=RegenerationMetadata())

    def test_constructors(self):
        ok = RegenerationResult.succeeded({"a": 1}, RegenerationMetadata(layer_used="auto-repair"))
        assert ok.success and ok.error is None
        failed = RegenerationResult.failed("boom", RegenerationMetadata())
        assert not failed.success and failed.metadata.layer_used == "failed"


class TestFieldReport:

    def test_describe_lists_failing_fields(self):
        report = FieldValidationReport(fields={
            "a": FieldValidation(status=FieldStatus.VALID),
            "b": FieldValidation(status=FieldStatus.MISSING, reason="b: Field required"),
        })
        assert report.to_regenerate == ["b"]
        assert report.describe() == "b (missing): b: Field required"


class TestErrors:

    def test_kinds(self):
        assert ParseError("x").kind == FailureKind.PARSE_ERROR
        assert SchemaValidationError("x", FieldValidationReport()).kind == FailureKind.SCHEMA_VALIDATION
        assert TransportError("x", model="m").kind == FailureKind.TRANSPORT_ERROR
        exc = LayerExhausted(RegenerationLayer.EMERGENCY, "spent", attempts=2)
        assert exc.layer == RegenerationLayer.EMERGENCY
        assert exc.attempts == 2
