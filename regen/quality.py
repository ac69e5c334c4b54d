"""
Quality gate: caller-supplied semantic acceptance, applied to whole candidates.
"""
import inspect
from typing import Any, Callable, Optional

from pydantic import BaseModel

from regen.logger import get_logger
from regen.types import RegenerationInput

logger = get_logger(__name__)


async def run_quality_gate(
    validator: Optional[Callable[..., Any]],
    data: Any,
    input: RegenerationInput,
) -> Optional[bool]:
    """
    Returns None when no validator is configured, otherwise whether the
    candidate passed. Sync and async validators are both accepted.
    A validator that raises rejects the candidate.
    """
    if validator is None:
        return None
    try:
        verdict = validator(data, input)
        if inspect.isawaitable(verdict):
            verdict = await verdict
    except Exception as e:
        logger.warning("quality_validator_raised", error=str(e), error_class=type(e).__name__)
        return False
    return bool(verdict)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict, tuple, set)):
        return len(value.strip() if isinstance(value, str) else value) == 0
    return False


def completeness_validator(threshold: float = 1.0, fields: Optional[list] = None) -> Callable[[Any, RegenerationInput], bool]:
    """
    Passes when at least `threshold` of the checked top-level fields are non-blank.
    Checks `fields` when given, otherwise every key of the candidate.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError("threshold must be between 0 and 1")

    def _check(data: Any, input: RegenerationInput) -> bool:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        if not isinstance(data, dict):
            return not _is_blank(data)
        keys = fields if fields is not None else list(data.keys())
        if not keys:
            return False
        filled = sum(1 for k in keys if not _is_blank(data.get(k)))
        return filled / len(keys) >= threshold

    return _check
