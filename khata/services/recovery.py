"""
Response recovery: turn a free-text model reply into structured data.

The model is asked for a bare JSON array but does not always comply; it
may wrap the array in prose, in a fenced code block, or in an object.
Recovery tries an ordered list of strategies, each a pure function
``text -> Optional[Any]``, and stops at the first one that parses.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from khata.models.schemas import RecoveryResult


# keys under which the model sometimes nests the row array
WRAPPER_KEYS = ("extractedMarks", "extracted_marks", "marks", "students", "data", "rows")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

_MISSING = object()


def _loads(candidate: Optional[str]) -> Any:
    if not candidate:
        return _MISSING
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return _MISSING


def find_balanced(text: str, open_char: str, close_char: str, start: int = 0) -> Optional[str]:
    """
    Return the first balanced ``open_char ... close_char`` substring at or
    after ``start``. Brackets inside JSON string literals are ignored.
    """
    begin = text.find(open_char, start)
    if begin == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[begin:i + 1]
    return None


def _holds_no_rows(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and not any(isinstance(item, dict) for item in value)


def _first_parseable_balanced(text: str, open_char: str, close_char: str) -> Any:
    # a stray bracket in prose ("see [note]", "see [1]") must not hide the real payload
    start = 0
    while True:
        candidate = find_balanced(text, open_char, close_char, start)
        if candidate is None:
            return _MISSING
        parsed = _loads(candidate)
        if parsed is not _MISSING and not _holds_no_rows(parsed):
            return parsed
        start = text.find(open_char, start) + 1


def parse_direct(text: str) -> Any:
    return _loads(text.strip())


def parse_balanced_array(text: str) -> Any:
    return _first_parseable_balanced(text, "[", "]")


def parse_balanced_object(text: str) -> Any:
    return _first_parseable_balanced(text, "{", "}")


def parse_code_fence(text: str) -> Any:
    for match in _FENCE_RE.finditer(text):
        parsed = _loads(match.group(1).strip())
        if parsed is not _MISSING:
            return parsed
    return _MISSING


def parse_outer_span(text: str) -> Any:
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    end = max(text.rfind("}"), text.rfind("]"))
    if not starts or end <= min(starts):
        return _MISSING
    return _loads(text[min(starts):end + 1])


RECOVERY_STRATEGIES: Tuple[Tuple[str, Callable[[str], Any]], ...] = (
    ("direct", parse_direct),
    ("balanced_array", parse_balanced_array),
    ("balanced_object", parse_balanced_object),
    ("code_fence", parse_code_fence),
    ("outer_span", parse_outer_span),
)


def recover_json(text: Optional[str]) -> RecoveryResult:
    """Try every strategy in order. Never raises; the raw text is always kept."""
    raw_text = text if isinstance(text, str) else ""
    if not raw_text.strip():
        return RecoveryResult(success=False, error="Empty or invalid input", raw_text=raw_text)

    for name, strategy in RECOVERY_STRATEGIES:
        parsed = strategy(raw_text)
        if parsed is not _MISSING:
            if name != "direct":
                logger.debug(f"Recovered model reply with strategy '{name}'")
            return RecoveryResult(success=True, data=parsed, strategy=name, raw_text=raw_text)

    logger.warning(f"Could not recover JSON from model reply: {raw_text[:300]!r}")
    return RecoveryResult(
        success=False,
        error="Could not extract valid JSON from response",
        raw_text=raw_text,
    )


def coerce_rows(data: Any) -> Optional[List[Dict[str, Any]]]:
    """
    Shape recovered data into a list of row dicts. Returns None when the
    value has no recognisable row structure at all.
    """
    if isinstance(data, list):
        return [row for row in data if isinstance(row, dict)]

    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                return [row for row in data[key] if isinstance(row, dict)]
        if "name" in data or "rollNumber" in data or "roll_number" in data:
            return [data]

    return None
