"""
Quantity Normalization

Turns the free-text QTY cell returned by the extraction model into a typed
measurement (unit + numeric value).

Supported formats (first match wins):
- Feet and inches:   43'-4"   5' 6"   '6"
- Feet only:         12'      12.5'
- Inches only:       18"
- Meters:            3.5m     12 M
- Plain number:      7        2.5

Anything else degrades to an unknown unit with no value. Normalization never
raises.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class QtyUnit(str, Enum):
    """Units a quantity can be expressed in."""
    METERS = "m"
    FEET = "ft"
    INCHES = "in"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Qty:
    """A normalized quantity. `raw` is always the untouched input text."""
    raw: str
    unit: QtyUnit = QtyUnit.UNKNOWN
    value: Optional[float] = None

    @property
    def is_parsed(self) -> bool:
        return self.value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"raw": self.raw, "unit": self.unit.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Qty":
        return cls(
            raw=data.get("raw", ""),
            unit=QtyUnit(data.get("unit", QtyUnit.UNKNOWN.value)),
            value=data.get("value"),
        )


# Typographic primes the model sometimes emits instead of ASCII marks
_PRIME_TRANSLATION = str.maketrans({
    "′": "'",   # ′
    "’": "'",   # ’
    "´": "'",   # ´
    "″": '"',   # ″
    "”": '"',   # ”
    "“": '"',   # “
})

_NUMBER = r"\d+(?:\.\d+)?"

# <feet>'[-]<inches>"  -- both marks required, either number optional
FEET_INCHES_PATTERN = re.compile(
    rf"(?P<feet>{_NUMBER})?\s*'\s*-?\s*(?P<inches>{_NUMBER})?\s*\""
)

# Leading numeric prefix, the same reading parseFloat gives
NUMERIC_PREFIX_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

PLAIN_NUMBER_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_numeric_prefix(text: str) -> Optional[float]:
    """
    Parse the leading number of a string.

    Examples:
        "43 approx" → 43.0
        "3.5m"      → 3.5
        "abc"       → None
    """
    match = NUMERIC_PREFIX_PATTERN.match(text)
    if not match:
        return None
    try:
        return _finite_or_none(float(match.group()))
    except ValueError:
        return None


def _parse_feet_inches(text: str) -> Optional[float]:
    match = FEET_INCHES_PATTERN.search(text)
    if not match:
        return None

    feet, inches = match.group("feet"), match.group("inches")
    if feet is None and inches is None:
        return None

    return float(feet or 0) + float(inches or 0) / 12


def normalize_qty(raw: Any) -> Qty:
    """
    Normalize a raw quantity string into a Qty.

    Args:
        raw: Text from the QTY column. Numbers are accepted and stringified;
             None is treated as an empty string.

    Returns:
        Qty with unit and value, or unit=unknown/value=None when the text
        cannot be interpreted.
    """
    if raw is None:
        raw = ""
    elif not isinstance(raw, str):
        raw = str(raw)

    if not raw.strip():
        return Qty(raw=raw)

    text = raw.translate(_PRIME_TRANSLATION)
    unit = QtyUnit.UNKNOWN
    value = None

    try:
        compound = _parse_feet_inches(text)
        if compound is not None:
            value, unit = compound, QtyUnit.FEET
        elif "'" in text:
            value, unit = parse_numeric_prefix(text.replace("'", "")), QtyUnit.FEET
        elif '"' in text:
            value, unit = parse_numeric_prefix(text.replace('"', "")), QtyUnit.INCHES
        elif "m" in text.lower():
            value, unit = parse_numeric_prefix(text), QtyUnit.METERS
        elif PLAIN_NUMBER_PATTERN.match(text):
            value = float(text)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Could not parse QTY {raw!r}: {e}")
        value = None

    value = _finite_or_none(value)
    if value is None:
        unit = QtyUnit.UNKNOWN

    return Qty(raw=raw, unit=unit, value=value)
