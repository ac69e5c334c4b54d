"""
Layer 3: regenerate only the invalid or missing fields and merge them into
the last-known-good object. Valid fields are never touched.
"""
from typing import Any, Dict, List

from regen.errors import QualityRejected, RecoveryError, SchemaValidationError
from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.prompts import partial_fields_prompt
from regen.types import RegenerationLayer
from regen.validator import merge_fields, ordered_like, partition


def _pick(value: Any, keys: List[str]) -> Dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {k: value[k] for k in keys if k in value}


class PartialRegenLayer(RecoveryLayer):
    layer = RegenerationLayer.PARTIAL_REGEN

    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        schema = ctx.config.output_schema
        model = ctx.config.model_ref.primary
        budget = ctx.config.attempt_budget

        base = ctx.last_parsed if isinstance(ctx.last_parsed, dict) else {}
        report = ctx.validator.validate(base, schema).fields
        valid, todo = partition(base, report)
        if not todo:
            raise ctx.exhausted(
                self.layer, attempts=0, reason="partial-regen: no field-level errors to regenerate"
            )

        requested = set(todo)

        for n in range(1, budget + 1):
            prompt = partial_fields_prompt(ctx.input.original_prompt, schema, todo, valid, report.describe())
            response = None
            try:
                response = await ctx.invoke(prompt, model)
                regenerated = _pick(ctx.repairer.repair(response.text), todo)
                merged = merge_fields(valid, regenerated)
                ctx.last_parsed = merged
                outcome = await ctx.accept(merged)
            except SchemaValidationError as e:
                ctx.record_attempt(self.layer, n, model=model, response=response, error=e)
                valid, remaining = partition(merged, e.report)
                if not remaining or len(remaining) >= len(todo):
                    raise ctx.exhausted(self.layer, attempts=n)
                report, todo = e.report, remaining
                requested.update(todo)
                continue
            except QualityRejected as e:
                # quality applies to the whole object; no field to target
                ctx.record_attempt(self.layer, n, model=model, response=response, error=e)
                raise ctx.exhausted(self.layer, attempts=n)
            except RecoveryError as e:
                ctx.record_attempt(self.layer, n, model=model, response=response, error=e)
                continue

            ctx.record_attempt(self.layer, n, model=model, response=response)
            outcome.regenerated_fields = ordered_like(requested, schema.field_keys)
            outcome.successful_fields = [k for k in schema.field_keys if k not in requested]
            return outcome

        raise ctx.exhausted(self.layer, attempts=budget)
