"""
Structural Repairer (Layer 1 engine).

Deterministic, non-semantic fixes for near-valid JSON emitted by a model:
prose and code-fence stripping, doubled escapes, unbalanced brackets and
quotes, trailing commas, comments, and key-name normalization.
No network I/O.
"""
import json
import re
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

import json_repair

from regen.errors import ParseError
from regen.logger import get_logger

logger = get_logger(__name__)

_INVISIBLE = dict.fromkeys(map(ord, "\ufeff\u200b\u200c\u200d\u2060"), None)
_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)\s*(?:```|\Z)")
_DOUBLED_ESCAPE_RE = re.compile(r'\\(["\\])')
_CAMEL_KEY_RE = re.compile(r"[A-Za-z][A-Za-z0-9]*")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

_OPENERS = {"{": "}", "[": "]"}


def to_snake_case(key: str) -> str:
    """courseTitle -> course_title, HTTPServer -> http_server. Other keys untouched."""
    if not _CAMEL_KEY_RE.fullmatch(key) or key.islower():
        return key
    return _CAMEL_BOUNDARY_RE.sub("_", key).lower()


def scan_payload(text: str) -> Optional[str]:
    """
    Bracket counting from the first '{' or '['. Brackets inside strings are
    ignored. An unterminated payload is returned up to the end of the text.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)

    stack = []
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        char = text[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _OPENERS:
            stack.append(_OPENERS[char])
        elif char in ("}", "]") and stack:
            stack.pop()
            if not stack:
                return text[start:i + 1]
    return text[start:]


def _looks_double_escaped(payload: str) -> bool:
    first_quote = payload.find('"')
    return first_quote > 0 and payload[first_quote - 1] == "\\"


class StructuralRepairer:
    """
    repair() = parse() + normalize(). Raises ParseError when no object or
    array can be recovered. Keys in `preserve_keys` are exempt from case
    normalization. With `known_keys` (every key a schema declares) a key is
    only renamed onto a known key; anything else, dict entries included, is
    data and stays as it is.
    """

    def __init__(
        self,
        rename_table: Optional[Dict[str, str]] = None,
        normalize_case: bool = True,
        structure_normalizer: Optional[Callable[[Any], Any]] = None,
        preserve_keys: Optional[Iterable[str]] = None,
        known_keys: Optional[Iterable[str]] = None,
    ):
        self.rename_table = dict(rename_table or {})
        self.preserve_keys = frozenset(preserve_keys or ())
        self.known_keys = frozenset(known_keys) if known_keys is not None else None
        self.normalize_case = normalize_case
        self.structure_normalizer = structure_normalizer

    def repair(self, raw: str) -> Any:
        return self.normalize(self.parse(raw))

    # --- Parsing ---

    def parse(self, raw: str) -> Any:
        if raw is None:
            raise ParseError("no output to parse")
        text = raw.translate(_INVISIBLE).strip()
        if not text:
            raise ParseError("output is empty")

        candidates = list(dict.fromkeys(self._candidates(text)))
        # strict pass over every candidate before any repair
        for loader in (self._load_strict, self._load_repaired):
            for candidate in candidates:
                value = loader(candidate)
                if isinstance(value, (dict, list)):
                    return value

        raise ParseError(f"no structured payload could be recovered from: {text[:120]!r}")

    def _candidates(self, text: str) -> Iterator[str]:
        yield text

        fenced = _FENCE_RE.search(text)
        if fenced:
            inner = fenced.group(1).strip()
            if inner:
                yield inner
                text = inner

        payload = scan_payload(text)
        if payload is None:
            return
        if _looks_double_escaped(payload):
            yield _DOUBLED_ESCAPE_RE.sub(r"\1", payload)
        yield payload

    @staticmethod
    def _load_strict(candidate: str) -> Any:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            return None
        if isinstance(value, str):
            # JSON string that itself carries a JSON document
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return None
        return value

    @staticmethod
    def _load_repaired(candidate: str) -> Any:
        if candidate[:1] not in _OPENERS:
            return None
        try:
            return json_repair.repair_json(candidate, return_objects=True)
        except Exception as e:
            # json_repair can raise on pathological input
            logger.debug("json_repair_failed", error=str(e))
            return None

    # --- Key normalization ---

    def normalize(self, value: Any) -> Any:
        value = self._normalize_keys(value)
        if self.structure_normalizer is None:
            return value
        try:
            return self.structure_normalizer(value)
        except Exception as e:
            logger.warning("structure_normalizer_failed", error=str(e), error_class=type(e).__name__)
            return value

    def _normalize_keys(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self._normalize_keys(item) for item in value]
        if not isinstance(value, dict):
            return value

        result: Dict[str, Any] = {}
        for key, item in value.items():
            target = self._rename(key)
            if target != key and (target in value or target in result):
                target = key
            result[target] = self._normalize_keys(item)
        return result

    def _rename(self, key: Any) -> Any:
        if not isinstance(key, str):
            return key
        if key in self.rename_table:
            return self.rename_table[key]
        if not self.normalize_case or key in self.preserve_keys:
            return key
        if self.known_keys is None:
            return to_snake_case(key)
        if key in self.known_keys:
            return key
        snake = to_snake_case(key)
        return snake if snake in self.known_keys else key
