from typing import Dict, List, Type

from regen.layers.auto_repair import AutoRepairLayer
from regen.layers.base import LayerOutcome, RecoveryContext, RecoveryLayer
from regen.layers.critique_revise import CritiqueReviseLayer
from regen.layers.emergency import EmergencyLayer
from regen.layers.escalation import ModelEscalationLayer
from regen.layers.partial_regen import PartialRegenLayer
from regen.types import RegenerationLayer

LAYER_REGISTRY: Dict[RegenerationLayer, Type[RecoveryLayer]] = {
    RegenerationLayer.AUTO_REPAIR: AutoRepairLayer,
    RegenerationLayer.CRITIQUE_REVISE: CritiqueReviseLayer,
    RegenerationLayer.PARTIAL_REGEN: PartialRegenLayer,
    RegenerationLayer.MODEL_ESCALATION: ModelEscalationLayer,
    RegenerationLayer.EMERGENCY: EmergencyLayer,
}


def build_layers(enabled: List[RegenerationLayer]) -> List[RecoveryLayer]:
    return [LAYER_REGISTRY[layer]() for layer in enabled]


__all__ = [
    "AutoRepairLayer",
    "CritiqueReviseLayer",
    "EmergencyLayer",
    "LAYER_REGISTRY",
    "LayerOutcome",
    "ModelEscalationLayer",
    "PartialRegenLayer",
    "RecoveryContext",
    "RecoveryLayer",
    "build_layers",
]
