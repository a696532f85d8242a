import json
import re
from typing import Any


class _Unparsable:
    """Marker returned when no JSON value can be recovered from a response."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNPARSABLE"


UNPARSABLE = _Unparsable()

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_decoder = json.JSONDecoder()


def _strip_code_fences(s: str) -> str:
    s = s.strip()
    # remove ```json ... ``` or ``` ... ```
    if s.startswith("```"):
        s = re.sub(r"^```[a-zA-Z0-9]*\s*", "", s)
        s = re.sub(r"\s*```$", "", s)
    return s.strip()


def _first_json_value(candidate: str) -> Any:
    """
    Try every '{' / '[' position in order and decode the value starting there.
    raw_decode stops at the end of the value, so trailing prose is ignored.
    """
    pos = 0
    while True:
        starts = [i for i in (candidate.find("{", pos), candidate.find("[", pos)) if i != -1]
        if not starts:
            return UNPARSABLE
        start = min(starts)
        try:
            value, _ = _decoder.raw_decode(candidate, start)
            return value
        except (ValueError, RecursionError):
            pos = start + 1


def parse_json_payload(text: Any) -> Any:
    """
    Extract the first JSON object/array from a model response and parse it.
    A fenced ```json block wins when it holds valid JSON; otherwise the whole
    text is scanned. Returns UNPARSABLE instead of raising.
    """
    if not isinstance(text, str) or not text.strip():
        return UNPARSABLE

    for block in _FENCE_RE.findall(text):
        value = _first_json_value(block.strip())
        if value is not UNPARSABLE:
            return value

    candidate = _strip_code_fences(text)
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        pass
    return _first_json_value(candidate)


def is_unparsable(value: Any) -> bool:
    return value is UNPARSABLE
