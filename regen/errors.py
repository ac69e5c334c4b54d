"""
Error taxonomy for the regeneration pipeline.

Every RecoveryError is a per-attempt failure: layers catch them and move on.
Anything else escaping a layer is a programming error and propagates.
"""
from typing import Optional

from regen.types import FailureKind, FieldValidationReport, RegenerationLayer


class RegenerationConfigError(ValueError):
    """Raised when a Regenerator cannot be built from its collaborators."""
    pass


class RecoveryError(Exception):
    kind: FailureKind = FailureKind.PARSE_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ParseError(RecoveryError):
    """Text is not structurally parseable even after repair."""
    kind = FailureKind.PARSE_ERROR


class SchemaValidationError(RecoveryError):
    kind = FailureKind.SCHEMA_VALIDATION

    def __init__(self, message: str, report: FieldValidationReport):
        super().__init__(message)
        self.report = report


class QualityRejected(RecoveryError):
    """Schema-valid candidate rejected by the caller's quality gate."""
    kind = FailureKind.QUALITY_REJECTED


class TransportError(RecoveryError):
    """
    The model-invocation collaborator failed (timeout, network, auth, rate limit).
    Infrastructure trouble, not bad content.
    """
    kind = FailureKind.TRANSPORT_ERROR

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class LayerExhausted(RecoveryError):
    """Internal signal: a layer spent its budget (or could not help at all)."""
    kind = FailureKind.LAYER_EXHAUSTED

    def __init__(
        self,
        layer: RegenerationLayer,
        message: str,
        attempts: int = 0,
        last_kind: Optional[FailureKind] = None,
    ):
        super().__init__(message)
        self.layer = layer
        self.attempts = attempts
        self.last_kind = last_kind
