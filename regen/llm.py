"""
Model invocation collaborator.
The pipeline only depends on ModelClient; OpenAIModelClient is the production transport.
"""
import asyncio
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import BaseModel, ConfigDict, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from regen.errors import TransportError
from regen.logger import get_logger

logger = get_logger(__name__)

RETRYABLE_ERRORS = (APITimeoutError, APIConnectionError, RateLimitError, InternalServerError)


class InvocationParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ModelResponse(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None
    latency_ms: float = 0.0


class ModelPricing(BaseModel):
    """USD per 1K tokens."""
    model_config = ConfigDict(frozen=True)

    prompt_per_1k: float = Field(default=0.0, ge=0.0)
    completion_per_1k: float = Field(default=0.0, ge=0.0)

    def estimate(self, usage: TokenUsage) -> float:
        return (
            usage.prompt_tokens / 1000.0 * self.prompt_per_1k
            + usage.completion_tokens / 1000.0 * self.completion_per_1k
        )


class ModelClient(ABC):
    """
    invoke() must raise TransportError for infrastructure failures
    (timeout, rate limit, network, auth) and return normally whenever
    the model produced a response, however unusable.
    """

    @abstractmethod
    async def invoke(self, prompt: str, model: str, params: Optional[InvocationParams] = None) -> ModelResponse:
        pass


class OpenAIModelClient(ModelClient):
    """
    OpenAI-compatible chat completion transport (OpenAI, OpenRouter, DeepSeek, Ollama).
    Transient errors are retried by tenacity before surfacing as TransportError.
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        wait: Any = None,
        system_prompt: Optional[str] = None,
        client: Any = None,
    ):
        self.api_key = api_key or os.getenv("LLM_API_KEY")
        self.client = client or AsyncOpenAI(
            base_url=base_url or os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
            api_key=self.api_key,
            timeout=timeout,
        )
        self.max_attempts = max_attempts
        self.wait = wait or wait_exponential(multiplier=1, min=2, max=10)
        self.system_prompt = system_prompt or (
            "You produce structured data. Respond with a single valid JSON value "
            "and no text outside it."
        )

    async def invoke(self, prompt: str, model: str, params: Optional[InvocationParams] = None) -> ModelResponse:
        params = params or InvocationParams()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                stop=stop_after_attempt(self.max_attempts),
                wait=self.wait,
                reraise=True,
            ):
                with attempt:
                    return await self._complete(prompt, model, params)
        except RETRYABLE_ERRORS as e:
            logger.warning("llm_transport_failed", model=model, error=str(e), error_class=type(e).__name__)
            raise TransportError(f"{type(e).__name__}: {e}", model=model) from e
        except APIStatusError as e:
            # auth, bad request, not found: not retried
            logger.warning("llm_request_rejected", model=model, status=e.status_code)
            raise TransportError(f"HTTP {e.status_code}: {e.message}", model=model) from e
        except APIError as e:
            # malformed or unexpected provider response
            logger.warning("llm_response_invalid", model=model, error=str(e), error_class=type(e).__name__)
            raise TransportError(f"{type(e).__name__}: {e}", model=model) from e

    async def _complete(self, prompt: str, model: str, params: InvocationParams) -> ModelResponse:
        start_t = asyncio.get_running_loop().time()
        kwargs = {
            "model": model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": params.temperature,
        }
        if params.max_tokens:
            kwargs["max_tokens"] = params.max_tokens

        response = await self.client.chat.completions.create(**kwargs)
        latency = (asyncio.get_running_loop().time() - start_t) * 1000

        if not response or not getattr(response, "choices", None):
            # empty body: unusable content, not a transport failure
            return ModelResponse(text="", model=model, latency_ms=latency)

        usage = TokenUsage(
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        return ModelResponse(
            text=response.choices[0].message.content or "",
            usage=usage,
            model=getattr(response, "model", None) or model,
            latency_ms=latency,
        )
