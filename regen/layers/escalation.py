"""
Layer 4: walk the escalation chain, least to most capable.
"""
from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.prompts import escalation_prompt
from regen.types import RegenerationLayer


class ModelEscalationLayer(RecoveryLayer):
    """Each hop is one attempt; the chain is walked at most attempt_budget times."""
    layer = RegenerationLayer.MODEL_ESCALATION

    async def attempt(self, ctx: RecoveryContext) -> LayerOutcome:
        chain = ctx.config.model_ref.escalation_chain
        n = 0
        for _ in range(ctx.config.attempt_budget):
            for model in chain:
                n += 1
                prompt = escalation_prompt(ctx.input.original_prompt, ctx.last_error, ctx.config.output_schema)
                outcome = await ctx.try_model(self.layer, n, model, prompt)
                if outcome is not None:
                    return outcome

        raise ctx.exhausted(self.layer, attempts=n)
