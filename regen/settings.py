"""
Environment driven defaults (.env supported).
"""
import os
from enum import Enum
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from regen.config import ModelRef
from regen.llm import InvocationParams, ModelPricing, OpenAIModelClient
from regen.logger import configure_logger


class ModelTier(str, Enum):
    FAST = "fast"      # primary: critique-revise, partial-regen
    MID = "mid"        # first escalation hop
    HEAVY = "heavy"    # last escalation hop


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


class RegenerationSettings(BaseModel):
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: Optional[str] = None
    fast_model: str = "openai/gpt-4o-mini"
    mid_model: Optional[str] = None
    heavy_model: Optional[str] = None
    emergency_model: Optional[str] = None
    max_retries: int = Field(default=1, ge=0)
    call_timeout: Optional[float] = Field(default=None, gt=0)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    json_logs: bool = False

    def tiers(self) -> Dict[ModelTier, Optional[str]]:
        return {
            ModelTier.FAST: self.fast_model,
            ModelTier.MID: self.mid_model,
            ModelTier.HEAVY: self.heavy_model,
        }

    def model_ref(self, pricing: Optional[Dict[str, ModelPricing]] = None) -> ModelRef:
        return ModelRef.from_tiers(
            fast=self.fast_model,
            mid=self.mid_model,
            heavy=self.heavy_model,
            emergency_model=self.emergency_model,
            pricing=pricing,
        )

    def invocation(self) -> InvocationParams:
        return InvocationParams(temperature=self.temperature, max_tokens=self.max_tokens)

    def build_client(self, **kwargs) -> OpenAIModelClient:
        return OpenAIModelClient(base_url=self.base_url, api_key=self.api_key, **kwargs)

    def configure_logging(self, **kwargs):
        configure_logger(json_logs=self.json_logs, **kwargs)


def load_settings(env_file: Optional[str] = None) -> RegenerationSettings:
    """
    Reads LLM_* / REGEN_* variables, after loading `env_file` (or ./.env).
    Already exported variables win over the file.
    """
    load_dotenv(env_file)

    values = {
        "base_url": _optional("LLM_BASE_URL"),
        "api_key": _optional("LLM_API_KEY"),
        "fast_model": _optional("REGEN_FAST_MODEL"),
        "mid_model": _optional("REGEN_MID_MODEL"),
        "heavy_model": _optional("REGEN_HEAVY_MODEL"),
        "emergency_model": _optional("REGEN_EMERGENCY_MODEL"),
        "max_retries": _optional("REGEN_MAX_RETRIES"),
        "call_timeout": _optional("REGEN_CALL_TIMEOUT"),
        "temperature": _optional("REGEN_TEMPERATURE"),
        "max_tokens": _optional("REGEN_MAX_TOKENS"),
        "json_logs": os.getenv("LOG_FORMAT", "console").lower() == "json",
    }
    return RegenerationSettings(**{k: v for k, v in values.items() if v is not None})
