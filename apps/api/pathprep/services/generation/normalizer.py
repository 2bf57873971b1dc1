"""Repair raw model completions into text a JSON parser accepts.

Every step is a pure ``str -> str`` transform that is safe to apply to its
own output. ``normalize_response_text`` never raises: if a step blows up
the whole response is treated as "no usable content" and ``"{}"`` is
returned.
"""

import json
import logging
import re
from typing import Callable


logger = logging.getLogger(__name__)

EMPTY_OBJECT = "{}"

_CONTROL_CHARS = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]")

_WEEK_RANGE_VALUE = re.compile(
    r'("(?:weekNumber|weekNum|week|weeks)"\s*:\s*)(\d+\s*-\s*\d+)(?=\s*[,}\]\n]|\s*$)'
)

_ADJACENT_OBJECTS = re.compile(r"\}\s*\{")
_SINGLE_QUOTED_KEY = re.compile(r"([{,]\s*)'([^'\"\n]+)'\s*:")
_SINGLE_QUOTED_VALUE = re.compile(r"(:\s*)'([^'\"\n]*)'(?=\s*[,}\]])")


def _trim(text: str) -> str:
    return text.strip()


def strip_code_fence(text: str) -> str:
    raw = text.strip()
    if not raw.startswith("```"):
        return raw
    first_newline = raw.find("\n")
    if first_newline < 0:
        return raw.strip("`").strip()
    body = raw[first_newline + 1 :]
    closing = body.rfind("```")
    if closing >= 0:
        body = body[:closing]
    return body.strip()


def strip_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def _quoted_week_range(match: re.Match) -> str:
    week_range = re.sub(r"\s+", "", match.group(2))
    return f'{match.group(1)}"{week_range}"'


def quote_week_ranges(text: str) -> str:
    # "weekNumber": 6-7 는 JSON 숫자 토큰이 아니므로 문자열로 감싼다.
    return _WEEK_RANGE_VALUE.sub(_quoted_week_range, text)


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def repair_structure(text: str) -> str:
    if _parses(text):
        return text
    repaired = _ADJACENT_OBJECTS.sub("},{", text)
    repaired = _SINGLE_QUOTED_KEY.sub(r'\1"\2":', repaired)
    repaired = _SINGLE_QUOTED_VALUE.sub(r'\1"\2"', repaired)
    return repaired


def slice_outermost_json(text: str) -> str:
    starts = [index for index in (text.find("{"), text.find("[")) if index >= 0]
    if not starts:
        return EMPTY_OBJECT
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end <= start:
        return text[start:]
    return text[start : end + 1]


NORMALIZATION_STEPS: tuple[tuple[str, Callable[[str], str]], ...] = (
    ("trim", _trim),
    ("strip_code_fence", strip_code_fence),
    ("strip_control_chars", strip_control_chars),
    ("quote_week_ranges", quote_week_ranges),
    ("repair_structure", repair_structure),
    ("slice_outermost_json", slice_outermost_json),
)


def normalize_response_text(raw: str | None) -> str:
    if raw is None:
        return EMPTY_OBJECT
    text = str(raw)
    if not text.strip():
        return EMPTY_OBJECT

    for name, step in NORMALIZATION_STEPS:
        try:
            text = step(text)
        except Exception as exc:
            logger.warning("normalization step %s failed: %s", name, exc)
            return EMPTY_OBJECT
        if not text:
            return EMPTY_OBJECT

    if not _parses(text):
        logger.warning("response still unparseable after repair: %.200s", text)
        return EMPTY_OBJECT

    logger.debug("normalized response: %.200s", text)
    return text
