"""
Regeneration configuration.
All cross-field rules are checked once, at construction.
"""
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from regen.llm import InvocationParams, ModelPricing, TokenUsage
from regen.types import RegenerationLayer
from regen.validator import OutputSchema


class ModelRef(BaseModel):
    """
    Identifies the primary model, the Layer 4 escalation chain
    (least to most capable) and the Layer 5 backstop.
    """
    model_config = ConfigDict(frozen=True)

    primary: str
    escalation_chain: List[str] = Field(default_factory=list)
    emergency_model: Optional[str] = None
    pricing: Dict[str, ModelPricing] = Field(default_factory=dict)

    @field_validator("escalation_chain")
    @classmethod
    def _no_blank_models(cls, v: List[str]) -> List[str]:
        if any(not name.strip() for name in v):
            raise ValueError("escalation_chain contains a blank model name")
        return v

    @classmethod
    def from_tiers(
        cls,
        fast: str,
        mid: Optional[str] = None,
        heavy: Optional[str] = None,
        emergency_model: Optional[str] = None,
        pricing: Optional[Dict[str, ModelPricing]] = None,
    ) -> "ModelRef":
        """fast is the primary model; mid then heavy form the escalation chain."""
        chain: List[str] = []
        for name in (mid, heavy):
            if name and name != fast and name not in chain:
                chain.append(name)
        return cls(
            primary=fast,
            escalation_chain=chain,
            emergency_model=emergency_model,
            pricing=pricing or {},
        )

    def estimate_cost(self, model: str, usage: TokenUsage) -> float:
        price = self.pricing.get(model)
        return price.estimate(usage) if price else 0.0


class RegenerationTags(BaseModel):
    """Opaque correlation strings for telemetry."""
    model_config = ConfigDict(frozen=True)

    stage: str = "other"
    course_id: Optional[str] = None
    phase_id: Optional[str] = None


QualityValidatorFn = Callable[..., Any]
StructureNormalizerFn = Callable[[Any], Any]


class RegenerationConfig(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    enabled_layers: List[RegenerationLayer]
    max_retries: int = Field(default=1, ge=0)
    output_schema: Optional[OutputSchema] = None
    quality_validator: Optional[QualityValidatorFn] = None
    model_ref: Optional[ModelRef] = None
    metrics_tracking: bool = False
    tags: RegenerationTags = Field(default_factory=RegenerationTags)

    invocation: InvocationParams = Field(default_factory=InvocationParams)
    call_timeout: Optional[float] = Field(default=None, gt=0)

    # Layer 1 behaviour
    rename_table: Dict[str, str] = Field(default_factory=dict)
    normalize_case: bool = True
    structure_normalizer: Optional[StructureNormalizerFn] = None
    validate_schema_in_layer1: bool = True

    allow_warning_fallback: bool = False

    @field_validator("output_schema", mode="before")
    @classmethod
    def _wrap_schema(cls, v: Any) -> Any:
        if v is None or isinstance(v, OutputSchema):
            return v
        if isinstance(v, type) and issubclass(v, BaseModel):
            return OutputSchema(v)
        raise ValueError("output_schema must be a pydantic model class or an OutputSchema")

    @field_validator("enabled_layers")
    @classmethod
    def _check_layer_order(cls, v: List[RegenerationLayer]) -> List[RegenerationLayer]:
        if not v:
            raise ValueError("enabled_layers must name at least one layer")
        if len(set(v)) != len(v):
            raise ValueError("enabled_layers contains duplicates")
        ranks = [layer.rank for layer in v]
        if ranks != sorted(ranks):
            expected = [layer.value for layer in RegenerationLayer.ordered() if layer in v]
            raise ValueError(f"enabled_layers must follow the global order: {expected}")
        return v

    @model_validator(mode="after")
    def _check_requirements(self) -> "RegenerationConfig":
        enabled = set(self.enabled_layers)

        if RegenerationLayer.PARTIAL_REGEN in enabled and self.output_schema is None:
            raise ValueError("partial-regen requires output_schema")

        if any(layer.requires_model for layer in enabled) and self.model_ref is None:
            raise ValueError("layers 2-5 require model_ref")

        if RegenerationLayer.MODEL_ESCALATION in enabled and not self.model_ref.escalation_chain:
            raise ValueError("model-escalation requires a non-empty model_ref.escalation_chain")

        if RegenerationLayer.EMERGENCY in enabled and not self.model_ref.emergency_model:
            raise ValueError("emergency requires model_ref.emergency_model")

        return self

    @property
    def attempt_budget(self) -> int:
        """Attempts per model-backed layer. max_retries=0 still allows one attempt."""
        return max(1, self.max_retries)

    def is_enabled(self, layer: RegenerationLayer) -> bool:
        return layer in self.enabled_layers
