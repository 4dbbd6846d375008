"""
Normalizer
Locale-tolerant number parsing and contact syntax checks for roster cells.
All functions are pure and never raise.
"""
import math
import re
from datetime import date, datetime, time
from typing import Any, Optional, Union

_DECIMAL_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INTEGER_PREFIX = re.compile(r"^\s*[+-]?\d+")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_PHONE_PATTERN = re.compile(r"^\+\d{8,16}$")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_decimal(raw: Any) -> Union[int, float]:
    """
    Parse a user-entered decimal, accepting a comma as separator.

    Numbers pass through untouched. For strings the first comma becomes a dot
    and the leading numeric part is parsed, so "50,5" gives 50.5 and
    "52.5 mp" gives 52.5. Anything else gives NaN.
    """
    if _is_number(raw):
        return raw
    if not isinstance(raw, str) or not raw:
        return math.nan

    match = _DECIMAL_PREFIX.match(raw.replace(",", ".", 1))
    if not match:
        return math.nan
    return float(match.group(0))


def parse_integer(raw: Any) -> Optional[int]:
    """Parse the leading integer of a cell; None when there is none."""
    if _is_number(raw):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        return int(raw)
    if not isinstance(raw, str):
        return None

    match = _INTEGER_PREFIX.match(raw)
    return int(match.group(0)) if match else None


def is_valid_number(value: Any) -> bool:
    """True for finite ints/floats (NaN from normalize_decimal is not)."""
    return _is_number(value) and math.isfinite(value)


def validate_email_syntax(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return bool(_EMAIL_PATTERN.match(value.strip()))


def validate_phone_syntax(value: Any) -> bool:
    """Phone must carry a country prefix: '+' and 8-16 digits."""
    if not isinstance(value, str) or not value:
        return False
    cleaned = _PHONE_SEPARATORS.sub("", value)
    return bool(_PHONE_PATTERN.match(cleaned))


def cell_to_text(value: Any) -> str:
    """Display text for a cell value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value).strip()


def is_blank(value: Any) -> bool:
    return cell_to_text(value) == ""
