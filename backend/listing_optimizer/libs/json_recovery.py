"""Tolerant decoding of JSON list columns.

List-valued fields are stored as JSON text. Rows written by older clients can
carry zero-width characters or truncated text, so reads go through an ordered
list of strategies and fall back to a default instead of raising.
"""

import json
import logging
import re
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_ZERO_WIDTH = re.compile(r"[\u200B-\u200D\uFEFF]")
_BRACKETED = re.compile(r"\[.*\]", re.DOTALL)


def _parse_direct(text: str) -> Any:
    return json.loads(text)


def _parse_stripped(text: str) -> Any:
    return json.loads(_ZERO_WIDTH.sub("", text).strip())


def _parse_bracketed(text: str) -> Any:
    match = _BRACKETED.search(_ZERO_WIDTH.sub("", text))
    if not match:
        raise ValueError("no bracketed array in text")
    return json.loads(match.group(0))


STRATEGIES: List[Tuple[str, Callable[[str], Any]]] = [
    ("direct", _parse_direct),
    ("strip_invisible", _parse_stripped),
    ("extract_array", _parse_bracketed),
]


def safe_json_list(value: Any, fallback: Optional[list] = None) -> list:
    """Decode a stored list column, returning ``fallback`` (default ``[]``) on failure."""
    if fallback is None:
        fallback = []
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None:
        return list(fallback)
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    text = str(value)
    if not text.strip():
        return list(fallback)

    for name, strategy in STRATEGIES:
        try:
            parsed = strategy(text)
        except (ValueError, TypeError) as e:
            logger.debug("List decode strategy %s failed: %s", name, e)
            continue
        if isinstance(parsed, list):
            if name != "direct":
                logger.info("Recovered stored list with strategy %s", name)
            return parsed
        logger.debug("List decode strategy %s produced %s, not a list", name, type(parsed).__name__)

    logger.warning("Could not decode stored list, using fallback: %r", text[:100])
    return list(fallback)
