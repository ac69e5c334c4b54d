"""
Layer 2: show the primary model its own output and the diagnostic, ask for a revision.
"""
from typing import List

from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.prompts import critique_prompt
from regen.types import RegenerationLayer

DEFAULT_DIAGNOSTIC = "The response is not valid JSON."


class CritiqueReviseLayer(RecoveryLayer):
    layer = RegenerationLayer.CRITIQUE_REVISE

    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        model = ctx.config.model_ref.primary
        budget = ctx.config.attempt_budget
        earlier: List[str] = []

        for n in range(1, budget + 1):
            prompt = critique_prompt(
                ctx.input.original_prompt,
                ctx.last_output,
                ctx.last_error or DEFAULT_DIAGNOSTIC,
                schema=ctx.config.output_schema,
                earlier_errors=earlier[:-1],
            )
            outcome = await ctx.try_model(self.layer, n, model, prompt)
            if outcome is not None:
                return outcome
            earlier.append(ctx.last_error)

        raise ctx.exhausted(self.layer, attempts=budget)
