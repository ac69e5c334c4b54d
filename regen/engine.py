"""
Regenerator: the orchestrator state machine.

NOT_STARTED -> TRYING(layer) -> SUCCESS | EXHAUSTED

Layers run in global order; a layer that spends its budget hands over to the
next one. "Could not repair" is a failed result, never an exception.
"""
import asyncio
import time
from typing import Optional, Tuple

from regen.config import RegenerationConfig
from regen.errors import LayerExhausted, RegenerationConfigError
from regen.layers import LayerOutcome, RecoveryContext, build_layers
from regen.llm import ModelClient
from regen.logger import get_logger
from regen.repair import StructuralRepairer
from regen.telemetry import LoggingMetricsSink, MetricsSink, RegenerationEvent
from regen.types import (
    LAYER_WARNING_FALLBACK,
    FailureKind,
    RegenerationInput,
    RegenerationLayer,
    RegenerationResult,
    RegenerationState,
)
from regen.validator import SchemaValidator

logger = get_logger(__name__)


class Regenerator:
    """
    Built once per configuration and reused. Holds no per-call state, so
    concurrent regenerate() calls are independent.
    """

    def __init__(
        self,
        config: RegenerationConfig,
        client: Optional[ModelClient] = None,
        metrics_sink: Optional[MetricsSink] = None,
        repairer: Optional[StructuralRepairer] = None,
        validator: Optional[SchemaValidator] = None,
    ):
        needs_model = [layer.value for layer in config.enabled_layers if layer.requires_model]
        if needs_model and client is None:
            raise RegenerationConfigError(f"layers {needs_model} require a ModelClient")

        self.config = config
        self.client = client
        self.repairer = repairer or StructuralRepairer(
            rename_table=config.rename_table,
            normalize_case=config.normalize_case,
            structure_normalizer=config.structure_normalizer,
            known_keys=config.output_schema.property_keys if config.output_schema else None,
        )
        self.validator = validator or SchemaValidator()
        self.metrics_sink = metrics_sink
        if config.metrics_tracking and self.metrics_sink is None:
            self.metrics_sink = LoggingMetricsSink()
        self.layers = build_layers(config.enabled_layers)

    async def regenerate(
        self,
        input: RegenerationInput,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RegenerationResult:
        """
        Runs the cascade. On `timeout` or when `cancel_event` is set the
        in-flight model call is aborted and an EXHAUSTED result is returned.
        """
        started = time.monotonic()
        ctx = RecoveryContext(input, self.config, self.repairer, self.validator, self.client)
        tags = self.config.tags
        log = logger.bind(stage=tags.stage, course_id=tags.course_id, phase_id=tags.phase_id)
        log.debug("regeneration_started", layers=[layer.value for layer in self.config.enabled_layers])

        run = asyncio.ensure_future(self._run(ctx, log))
        waiters = {run}
        stop = None
        if cancel_event is not None:
            stop = asyncio.ensure_future(cancel_event.wait())
            waiters.add(stop)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abort(run)
            raise
        finally:
            if stop is not None:
                stop.cancel()

        if run in done:
            result = self._finish(ctx, run.result(), started, log)
        else:
            await self._abort(run)
            cancelled = cancel_event is not None and cancel_event.is_set()
            kind = FailureKind.CANCELLED if cancelled else FailureKind.DEADLINE_EXCEEDED
            log.warning("regeneration_aborted", failure_kind=kind.value, attempts=len(ctx.attempts))
            result = RegenerationResult.failed(
                f"Regeneration aborted ({kind.value}) after {len(ctx.attempts)} attempts",
                ctx.metadata(
                    RegenerationState.EXHAUSTED,
                    failure_kind=kind,
                    duration_ms=self._elapsed(started),
                ),
            )

        self._emit(result)
        return result

    async def _run(self, ctx: RecoveryContext, log) -> Optional[Tuple[RegenerationLayer, LayerOutcome]]:
        for layer in self.layers:
            ctx.enter(layer.layer)
            log.debug("regeneration_layer_started", layer=layer.layer.value)
            try:
                outcome = await layer.attempt(ctx)
            except LayerExhausted as e:
                log.info(
                    "regeneration_layer_exhausted",
                    layer=layer.layer.value,
                    attempts=e.attempts,
                    reason=e.message[:300],
                )
                continue
            return layer.layer, outcome
        return None

    @staticmethod
    async def _abort(run: asyncio.Future):
        if run.done():
            return
        run.cancel()
        try:
            await run
        except asyncio.CancelledError:
            pass

    def _finish(self, ctx: RecoveryContext, won, started: float, log) -> RegenerationResult:
        duration = self._elapsed(started)

        if won is not None:
            layer, outcome = won
            ctx.state = RegenerationState.SUCCESS
            log.info(
                "regeneration_succeeded",
                layer=layer.value,
                attempts=len(ctx.attempts),
                token_cost=ctx.usage.total_tokens,
                models=ctx.models_used,
            )
            return RegenerationResult.succeeded(
                outcome.data,
                ctx.metadata(
                    RegenerationState.SUCCESS,
                    layer_used=layer.value,
                    validated=outcome.validated,
                    duration_ms=duration,
                    outcome=outcome,
                ),
            )

        if self.config.allow_warning_fallback and ctx.last_parsed is not None:
            ctx.state = RegenerationState.SUCCESS
            log.warning(
                "regeneration_warning_fallback",
                attempts=len(ctx.attempts),
                last_error=ctx.last_error,
            )
            return RegenerationResult.succeeded(
                ctx.last_parsed,
                ctx.metadata(
                    RegenerationState.SUCCESS,
                    layer_used=LAYER_WARNING_FALLBACK,
                    duration_ms=duration,
                ),
            )

        ctx.state = RegenerationState.EXHAUSTED
        log.warning("regeneration_exhausted", attempts=len(ctx.attempts), last_error=ctx.last_error)
        return RegenerationResult.failed(
            f"All regeneration layers exhausted after {len(ctx.attempts)} attempts. "
            f"Last error: {ctx.last_error or 'unknown'}",
            ctx.metadata(
                RegenerationState.EXHAUSTED,
                failure_kind=FailureKind.ALL_LAYERS_EXHAUSTED,
                duration_ms=duration,
            ),
        )

    def _emit(self, result: RegenerationResult):
        if not self.config.metrics_tracking or self.metrics_sink is None:
            return
        meta = result.metadata
        tags = self.config.tags
        event = RegenerationEvent(
            stage=tags.stage,
            course_id=tags.course_id,
            phase_id=tags.phase_id,
            layer_used=meta.layer_used,
            success=result.success,
            token_cost=meta.token_cost,
            cost_usd=meta.cost_usd,
            retry_count=meta.retry_count,
            quality_passed=meta.quality_passed,
            fields_regenerated=meta.regenerated_fields,
            models_used=meta.models_used,
            failure_kind=meta.failure_kind.value if meta.failure_kind else None,
            duration_ms=meta.duration_ms,
        )
        try:
            self.metrics_sink.record(event)
        except Exception as e:
            logger.warning("metrics_sink_failed", error=str(e), error_class=type(e).__name__)

    @staticmethod
    def _elapsed(started: float) -> float:
        return round((time.monotonic() - started) * 1000, 2)
