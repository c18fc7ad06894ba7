# exam_prep/core/parsing.py
"""
Parsing of language-model output.

Both generation paths go through parse_json_array(). The parser reports
success or failure through GenerationResult and never raises; the caller
decides whether a failure means "no items" or a hard error.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^\s*```(?:json)?[ \t]*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```\s*$")


@dataclass
class GenerationResult:
    ok: bool
    items: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, items: List[Any]) -> 'GenerationResult':
        return cls(ok=True, items=items)

    @classmethod
    def failure(cls, error: str) -> 'GenerationResult':
        return cls(ok=False, error=error)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence wrapping around model output"""
    if not text:
        return ""
    text = _OPENING_FENCE.sub("", text, count=1)
    return _CLOSING_FENCE.sub("", text, count=1).strip()


def parse_json_array(text: Optional[str]) -> GenerationResult:
    """Parse model output that should contain a JSON array"""
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        return GenerationResult.failure("empty model response")

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        # Models sometimes add prose around the array
        start, end = cleaned.find("["), cleaned.rfind("]")
        if start == -1 or end <= start:
            return GenerationResult.failure(f"invalid JSON: {e}")
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as inner:
            return GenerationResult.failure(f"invalid JSON: {inner}")

    if isinstance(parsed, dict):
        lists = [value for value in parsed.values() if isinstance(value, list)]
        if len(lists) == 1:
            parsed = lists[0]

    if not isinstance(parsed, list):
        return GenerationResult.failure(f"expected a JSON array, got {type(parsed).__name__}")

    return GenerationResult.success(parsed)


def only_objects(items: List[Any]) -> List[Dict[str, Any]]:
    """Keep the dict entries of a parsed array"""
    objects = [item for item in items if isinstance(item, dict)]
    if len(objects) != len(items):
        logger.warning(f"Dropped {len(items) - len(objects)} non-object items from model output")
    return objects
