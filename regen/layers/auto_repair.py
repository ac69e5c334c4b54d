"""
Layer 1: local structural repair. No model call, zero cost, one attempt.
"""
from regen.errors import RecoveryError
from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.types import RegenerationLayer


class AutoRepairLayer(RecoveryLayer):
    layer = RegenerationLayer.AUTO_REPAIR

    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        try:
            outcome = await ctx.evaluate(ctx.input.raw_output, validate=ctx.config.validate_schema_in_layer1)
        except RecoveryError as e:
            ctx.record_attempt(self.layer, 1, error=e)
            raise ctx.exhausted(self.layer, attempts=1)
        ctx.record_attempt(self.layer, 1)
        return outcome
