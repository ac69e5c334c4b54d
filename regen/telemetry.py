"""
Metrics Sink for the regeneration pipeline.
One RegenerationEvent per terminal result.
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from regen.logger import get_logger
from regen.types import LAYER_FAILED, LAYER_WARNING_FALLBACK, RegenerationLayer

logger = get_logger(__name__)


class RegenerationEvent(BaseModel):
    stage: str = "other"
    course_id: Optional[str] = None
    phase_id: Optional[str] = None
    layer_used: str = LAYER_FAILED
    success: bool = False
    token_cost: int = 0
    cost_usd: float = 0.0
    retry_count: int = 0
    quality_passed: Optional[bool] = None
    fields_regenerated: List[str] = Field(default_factory=list)
    models_used: List[str] = Field(default_factory=list)
    failure_kind: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: float = Field(default_factory=time.time)


class MetricsSink(ABC):
    """
    Fire-and-forget. The orchestrator logs and ignores sink exceptions.
    """

    @abstractmethod
    def record(self, event: RegenerationEvent) -> None:
        pass


class LoggingMetricsSink(MetricsSink):
    def record(self, event: RegenerationEvent) -> None:
        logger.info("regeneration_metrics", **event.model_dump(exclude={"timestamp"}))


class InMemoryMetricsSink(MetricsSink):
    """
    Aggregates events per layer; get_snapshot() mirrors the kernel-style counters.
    """

    def __init__(self):
        self.events: List[RegenerationEvent] = []
        self.metrics: Dict[str, Any] = {
            "total": 0,
            "success_count": 0,
            "failure_count": 0,
            "token_cost": 0,
            "cost_usd": 0.0,
            "retry_count": 0,
            "duration_ms": [],
            "by_layer": {name: 0 for name in self._outcomes()},
        }

    @staticmethod
    def _outcomes() -> List[str]:
        return [layer.value for layer in RegenerationLayer.ordered()] + [LAYER_WARNING_FALLBACK, LAYER_FAILED]

    def record(self, event: RegenerationEvent) -> None:
        self.events.append(event)
        self.metrics["total"] += 1
        self.metrics["success_count" if event.success else "failure_count"] += 1
        self.metrics["token_cost"] += event.token_cost
        self.metrics["cost_usd"] += event.cost_usd
        self.metrics["retry_count"] += event.retry_count
        self.metrics["duration_ms"].append(event.duration_ms)
        by_layer = self.metrics["by_layer"]
        by_layer[event.layer_used] = by_layer.get(event.layer_used, 0) + 1

    def success_rate(self) -> float:
        total = self.metrics["total"]
        return self.metrics["success_count"] / total if total else 0.0

    def get_snapshot(self) -> Dict[str, Any]:
        snapshot = self.metrics.copy()
        snapshot["by_layer"] = dict(self.metrics["by_layer"])
        snapshot["duration_ms"] = list(self.metrics["duration_ms"])
        return snapshot
