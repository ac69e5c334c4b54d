"""
Core data contracts for the regeneration pipeline.
Closed layer enum, state machine, failure kinds and result models.
"""
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Enums ---

class RegenerationLayer(str, Enum):
    """
    Recovery strategies. Declaration order IS the global execution order.
    """
    AUTO_REPAIR = "auto-repair"
    CRITIQUE_REVISE = "critique-revise"
    PARTIAL_REGEN = "partial-regen"
    MODEL_ESCALATION = "model-escalation"
    EMERGENCY = "emergency"

    @classmethod
    def ordered(cls) -> List["RegenerationLayer"]:
        return list(cls)

    @property
    def rank(self) -> int:
        return RegenerationLayer.ordered().index(self)

    @property
    def requires_model(self) -> bool:
        return self is not RegenerationLayer.AUTO_REPAIR


LAYER_FAILED = "failed"
LAYER_WARNING_FALLBACK = "warning_fallback"


class RegenerationState(str, Enum):
    """Orchestrator FSM."""
    NOT_STARTED = "NOT_STARTED"
    TRYING = "TRYING"
    SUCCESS = "SUCCESS"
    EXHAUSTED = "EXHAUSTED"


class FailureKind(str, Enum):
    """
    Classification of a failed attempt or of the terminal outcome.
    """
    PARSE_ERROR = "PARSE_ERROR"
    SCHEMA_VALIDATION = "SCHEMA_VALIDATION"
    QUALITY_REJECTED = "QUALITY_REJECTED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    LAYER_EXHAUSTED = "LAYER_EXHAUSTED"
    ALL_LAYERS_EXHAUSTED = "ALL_LAYERS_EXHAUSTED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    CANCELLED = "CANCELLED"


class FieldStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    MISSING = "missing"


# --- Field level validation ---

class FieldValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: FieldStatus
    reason: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.status == FieldStatus.VALID


class FieldValidationReport(BaseModel):
    """
    Per-field breakdown produced by the Schema Validator.
    Keys are the schema's input keys; each appears exactly once.
    """
    model_config = ConfigDict(frozen=True)

    fields: Dict[str, FieldValidation] = Field(default_factory=dict)

    def _with_status(self, status: FieldStatus) -> List[str]:
        return [key for key, item in self.fields.items() if item.status == status]

    @property
    def valid_fields(self) -> List[str]:
        return self._with_status(FieldStatus.VALID)

    @property
    def invalid_fields(self) -> List[str]:
        return self._with_status(FieldStatus.INVALID)

    @property
    def missing_fields(self) -> List[str]:
        return self._with_status(FieldStatus.MISSING)

    @property
    def to_regenerate(self) -> List[str]:
        return [key for key, item in self.fields.items() if not item.valid]

    def describe(self, limit: int = 10) -> str:
        """Human-readable summary of the failing fields."""
        parts = []
        for key in self.to_regenerate[:limit]:
            item = self.fields[key]
            parts.append(f"{key} ({item.status.value}): {item.reason or 'invalid'}")
        return "; ".join(parts)


# --- Call input ---

class RegenerationInput(BaseModel):
    """Immutable per call."""
    model_config = ConfigDict(frozen=True)

    raw_output: str
    original_prompt: str
    parse_error: Optional[str] = None


# --- Provenance ---

class AttemptRecord(BaseModel):
    """One bounded attempt inside one layer."""
    layer: RegenerationLayer
    attempt: int
    model: Optional[str] = None
    success: bool = False
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0
    timestamp: float = Field(default_factory=time.time)


class RegenerationMetadata(BaseModel):
    layer_used: str = LAYER_FAILED
    token_cost: int = 0
    cost_usd: float = 0.0
    retry_count: int = 0
    quality_passed: Optional[bool] = None
    models_used: List[str] = Field(default_factory=list)
    successful_fields: List[str] = Field(default_factory=list)
    regenerated_fields: List[str] = Field(default_factory=list)

    layers_tried: List[RegenerationLayer] = Field(default_factory=list)
    attempts: List[AttemptRecord] = Field(default_factory=list)
    state: RegenerationState = RegenerationState.NOT_STARTED
    failure_kind: Optional[FailureKind] = None
    validated: bool = False
    duration_ms: float = 0.0


class RegenerationResult(BaseModel):
    """
    Terminal, fully populated outcome of one regenerate() call.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: RegenerationMetadata

    @model_validator(mode="after")
    def _check_terminal(self) -> "RegenerationResult":
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success:
            if self.data is not None:
                raise ValueError("failed result cannot carry data")
            if not self.error:
                raise ValueError("failed result requires an error message")
        return self

    @classmethod
    def succeeded(cls, data: Any, metadata: RegenerationMetadata) -> "RegenerationResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failed(cls, error: str, metadata: RegenerationMetadata) -> "RegenerationResult":
        return cls(success=False, error=error, metadata=metadata)
