"""
Shared fixtures for the regeneration tests.
Provides a scripted model client and config factories.
"""
import pytest

from regen.config import ModelRef, RegenerationConfig
from regen.types import RegenerationInput, RegenerationLayer
from tests.fakes.fake_model import ScriptedModelClient

ALL_LAYERS = RegenerationLayer.ordered()


def make_model_ref(primary="fast-model", chain=("mid-model", "heavy-model"), emergency="backstop-model", **kwargs):
    """Factory for ModelRef with a two-hop escalation chain."""
    return ModelRef(primary=primary, escalation_chain=list(chain), emergency_model=emergency, **kwargs)


def make_config(layers=None, schema=None, model_ref=None, **kwargs):
    """Factory for RegenerationConfig. Adds a ModelRef when a model layer is enabled."""
    layers = list(layers if layers is not None else [RegenerationLayer.AUTO_REPAIR])
    if model_ref is None and any(layer.requires_model for layer in layers):
        model_ref = make_model_ref()
    return RegenerationConfig(enabled_layers=layers, output_schema=schema, model_ref=model_ref, **kwargs)


def make_input(raw_output, prompt="Generate a lesson plan as JSON.", parse_error=None):
    return RegenerationInput(raw_output=raw_output, original_prompt=prompt, parse_error=parse_error)


@pytest.fixture
def unusable_client():
    """Model stub that never produces anything parseable."""
    return ScriptedModelClient(["I'm sorry, I cannot help with that."])
