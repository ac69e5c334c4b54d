"""
Layer 5: the designated backstop model, original prompt only.
"""
from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.prompts import emergency_prompt
from regen.types import RegenerationLayer


class EmergencyLayer(RecoveryLayer):
    layer = RegenerationLayer.EMERGENCY

    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        model = ctx.config.model_ref.emergency_model
        budget = ctx.config.attempt_budget
        prompt = emergency_prompt(ctx.input.original_prompt, ctx.config.output_schema)

        for n in range(1, budget + 1):
            outcome = await ctx.try_model(self.layer, n, model, prompt)
            if outcome is not None:
                return outcome

        raise ctx.exhausted(self.layer, attempts=budget)
