"""
RecoveryLayer interface and the call-scoped RecoveryContext.

A context is created per regenerate() call and is the only mutable state a
layer touches: attempt log, token ledger, models used and the best-known
parsed object so far.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from regen.config import RegenerationConfig
from regen.errors import LayerExhausted, QualityRejected, RecoveryError, SchemaValidationError, TransportError
from regen.llm import ModelClient, ModelResponse, TokenUsage
from regen.logger import get_logger
from regen.quality import run_quality_gate
from regen.repair import StructuralRepairer
from regen.types import (
    LAYER_FAILED,
    AttemptRecord,
    FailureKind,
    FieldValidationReport,
    RegenerationInput,
    RegenerationLayer,
    RegenerationMetadata,
    RegenerationState,
)
from regen.validator import SchemaValidator

logger = get_logger(__name__)


class LayerOutcome(BaseModel):
    """An accepted candidate."""
    value: Any = None
    data: Any = None
    validated: bool = False
    successful_fields: List[str] = Field(default_factory=list)
    regenerated_fields: List[str] = Field(default_factory=list)


class RecoveryContext:
    def __init__(
        self,
        input: RegenerationInput,
        config: RegenerationConfig,
        repairer: StructuralRepairer,
        validator: SchemaValidator,
        client: Optional[ModelClient] = None,
    ):
        self.input = input
        self.config = config
        self.repairer = repairer
        self.validator = validator
        self.client = client

        self.state = RegenerationState.NOT_STARTED
        self.current_layer: Optional[RegenerationLayer] = None
        self.layers_tried: List[RegenerationLayer] = []
        self.attempts: List[AttemptRecord] = []
        self.models_used: List[str] = []
        self.usage = TokenUsage()
        self.cost_usd = 0.0

        self.last_output: str = input.raw_output
        self.last_error: Optional[str] = input.parse_error
        self.last_kind: Optional[FailureKind] = None
        self.last_parsed: Any = None
        self.last_report: Optional[FieldValidationReport] = None
        self.quality_passed: Optional[bool] = None

    def enter(self, layer: RegenerationLayer):
        self.state = RegenerationState.TRYING
        self.current_layer = layer
        self.layers_tried.append(layer)

    # --- Model calls ---

    async def invoke(self, prompt: str, model: str) -> ModelResponse:
        """One bounded model call. Usage is booked before the response is judged."""
        if self.client is None:
            raise TransportError("no model client configured", model=model)
        if model not in self.models_used:
            self.models_used.append(model)

        call = self.client.invoke(prompt, model, self.config.invocation)
        try:
            if self.config.call_timeout:
                response = await asyncio.wait_for(call, timeout=self.config.call_timeout)
            else:
                response = await call
        except asyncio.TimeoutError as e:
            raise TransportError(f"model call timed out after {self.config.call_timeout}s", model=model) from e

        self.usage = TokenUsage(
            prompt_tokens=self.usage.prompt_tokens + response.usage.prompt_tokens,
            completion_tokens=self.usage.completion_tokens + response.usage.completion_tokens,
        )
        if self.config.model_ref is not None:
            self.cost_usd += self.config.model_ref.estimate_cost(model, response.usage)
        self.last_output = response.text
        return response

    async def try_model(self, layer: RegenerationLayer, attempt: int, model: str, prompt: str) -> Optional[LayerOutcome]:
        """invoke + evaluate as one attempt. Returns None when the attempt failed."""
        response = None
        try:
            response = await self.invoke(prompt, model)
            outcome = await self.evaluate(response.text)
        except RecoveryError as e:
            self.record_attempt(layer, attempt, model=model, response=response, error=e)
            return None
        self.record_attempt(layer, attempt, model=model, response=response)
        return outcome

    # --- Candidate acceptance ---

    async def evaluate(self, text: str, validate: bool = True) -> LayerOutcome:
        value = self.repairer.repair(text)
        self.last_parsed = value
        return await self.accept(value, validate=validate)

    async def accept(self, value: Any, validate: bool = True) -> LayerOutcome:
        """Schema validation then the quality gate, on the whole value."""
        schema = self.config.output_schema
        data = value
        validated = schema is None

        if schema is not None and validate:
            report = self.validator.validate(value, schema)
            self.last_report = report.fields
            if not report.valid:
                raise SchemaValidationError(report.summary(), report.fields)
            data = report.data
            validated = True

        verdict = await run_quality_gate(self.config.quality_validator, data, self.input)
        if verdict is not None:
            self.quality_passed = verdict
            if not verdict:
                raise QualityRejected("candidate rejected by quality validator")

        return LayerOutcome(value=value, data=data, validated=validated)

    # --- Bookkeeping ---

    def record_attempt(
        self,
        layer: RegenerationLayer,
        attempt: int,
        model: Optional[str] = None,
        response: Optional[ModelResponse] = None,
        error: Optional[RecoveryError] = None,
    ) -> AttemptRecord:
        record = AttemptRecord(
            layer=layer,
            attempt=attempt,
            model=model,
            success=error is None,
            failure_kind=error.kind if error else None,
            error=error.message if error else None,
            prompt_tokens=response.usage.prompt_tokens if response else 0,
            completion_tokens=response.usage.completion_tokens if response else 0,
            latency_ms=response.latency_ms if response else 0.0,
        )
        self.attempts.append(record)

        if error is not None:
            self.last_error = error.message
            self.last_kind = error.kind
            logger.info(
                "regeneration_attempt_failed",
                layer=layer.value,
                attempt=attempt,
                model=model,
                failure_kind=error.kind.value,
                error=error.message[:300],
            )
        return record

    def exhausted(self, layer: RegenerationLayer, attempts: int, reason: Optional[str] = None) -> LayerExhausted:
        return LayerExhausted(
            layer,
            reason or f"{layer.value} exhausted: {self.last_error or 'no accepted candidate'}",
            attempts=attempts,
            last_kind=self.last_kind,
        )

    def metadata(
        self,
        state: RegenerationState,
        layer_used: str = LAYER_FAILED,
        failure_kind: Optional[FailureKind] = None,
        validated: bool = False,
        duration_ms: float = 0.0,
        outcome: Optional[LayerOutcome] = None,
    ) -> RegenerationMetadata:
        return RegenerationMetadata(
            layer_used=layer_used,
            token_cost=self.usage.total_tokens,
            cost_usd=round(self.cost_usd, 6),
            retry_count=len(self.attempts),
            quality_passed=self.quality_passed,
            models_used=list(self.models_used),
            successful_fields=list(outcome.successful_fields) if outcome else [],
            regenerated_fields=list(outcome.regenerated_fields) if outcome else [],
            layers_tried=list(self.layers_tried),
            attempts=list(self.attempts),
            state=state,
            failure_kind=failure_kind,
            validated=validated,
            duration_ms=duration_ms,
        )


class RecoveryLayer(ABC):
    """
    One recovery strategy. attempt() returns an accepted candidate or raises
    LayerExhausted; per-attempt RecoveryErrors never escape it.
    """
    layer: RegenerationLayer

    @abstractmethod
    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.layer.value})"
