"""ASIN normalization and region lookup."""

import re
from enum import Enum
from typing import Any, Optional

from listing_optimizer.libs.errors import InvalidIdentifierError, InvalidRegionError


class Region(str, Enum):
    US = "US"
    IN = "IN"
    UK = "UK"
    CA = "CA"


AMAZON_DOMAINS: dict[Region, str] = {
    Region.US: "https://www.amazon.com/dp/",
    Region.IN: "https://www.amazon.in/dp/",
    Region.UK: "https://www.amazon.co.uk/dp/",
    Region.CA: "https://www.amazon.ca/dp/",
}

DEFAULT_REGION = Region.IN

# Zero-width space/non-joiner/joiner, LRM/RLM, embedding and override marks,
# word joiner and BOM.
_INVISIBLE_CHARS = re.compile(r"[\u200B-\u200F\u202A-\u202E\u2060\uFEFF]")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$")


def normalize_asin(value: Any) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    text = _INVISIBLE_CHARS.sub("", text)
    text = _NON_ALNUM.sub("", text)
    return text.strip().upper()


def is_valid_asin(value: Any) -> bool:
    return bool(_ASIN_PATTERN.match(normalize_asin(value)))


def validate_asin(value: Any) -> str:
    """Return the normalized ASIN or raise InvalidIdentifierError."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidIdentifierError("ASIN is required")
    asin = normalize_asin(value)
    if not _ASIN_PATTERN.match(asin):
        raise InvalidIdentifierError("Invalid ASIN format. Must be 10 alphanumeric characters.")
    return asin


def parse_region(value: Optional[str]) -> Region:
    if value is None:
        return DEFAULT_REGION
    code = str(value).strip().upper()
    try:
        return Region(code)
    except ValueError:
        allowed = ", ".join(r.value for r in Region)
        raise InvalidRegionError(f"Unknown region '{value}'. Expected one of: {allowed}") from None


def product_url(asin: str, region: Region) -> str:
    return f"{AMAZON_DOMAINS[region]}{asin}"
