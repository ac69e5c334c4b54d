from regen.config import ModelRef, RegenerationConfig, RegenerationTags
from regen.engine import Regenerator
from regen.errors import (
    LayerExhausted,
    ParseError,
    QualityRejected,
    RecoveryError,
    RegenerationConfigError,
    SchemaValidationError,
    TransportError,
)
from regen.llm import InvocationParams, ModelClient, ModelPricing, ModelResponse, OpenAIModelClient, TokenUsage
from regen.logger import configure_logger, get_logger
from regen.quality import completeness_validator
from regen.repair import StructuralRepairer
from regen.settings import RegenerationSettings, load_settings
from regen.telemetry import InMemoryMetricsSink, LoggingMetricsSink, MetricsSink, RegenerationEvent
from regen.types import (
    FailureKind,
    FieldStatus,
    RegenerationInput,
    RegenerationLayer,
    RegenerationMetadata,
    RegenerationResult,
    RegenerationState,
)
from regen.validator import OutputSchema, SchemaValidator, merge_fields

__version__ = "0.1.0"
