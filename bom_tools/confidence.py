"""
Business-Rule Confidence Scoring

The extraction model only reports an OCR-quality estimate per row. This layer
lowers that score for rows that are semantically incomplete (no usable item
number, no parsable quantity, ...) so the review queue surfaces rows that are
likely extraction errors, not just visually ambiguous ones.
"""

import logging
import re
from typing import Any, Optional

from .quantity import Qty

logger = logging.getLogger(__name__)


# =============================================================================
# THRESHOLDS
# =============================================================================

# Rows scoring below this are flagged for human review
REVIEW_THRESHOLD = 0.90

# Used when the model omits ocrConfidence or returns something non-numeric
DEFAULT_OCR_CONFIDENCE = 0.85

MIN_CONFIDENCE = 0.10
MAX_CONFIDENCE = 1.00

PENALTY_INVALID_ITEM = 0.20
PENALTY_MISSING_QTY = 0.20
PENALTY_SHORT_DESCRIPTION = 0.10
PENALTY_MISSING_SIZE = 0.05

MIN_DESCRIPTION_LENGTH = 3

# Scores are rounded so 0.95 - 0.05 lands on 0.90, not 0.8999999999999999
SCORE_PRECISION = 4

_LEADING_INTEGER = re.compile(r"^\s*[+-]?\d")


def has_integer_label(label: Optional[str]) -> bool:
    """True when the label starts with an integer ("12", " 3", "12A")."""
    return bool(label) and bool(_LEADING_INTEGER.match(label))


def coerce_base_confidence(value: Any, default: float = DEFAULT_OCR_CONFIDENCE) -> float:
    """Return the model's OCR confidence, or `default` when it is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value != value:  # NaN
        return default
    return float(value)


def clamp_confidence(score: float) -> float:
    return round(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, score)), SCORE_PRECISION)


def apply_business_confidence(
    base_confidence: float,
    item: str,
    qty: Qty,
    description: str,
    size_nd: str,
) -> float:
    """
    Adjust a base confidence score using business rules.

    Penalties are cumulative:
        item label empty or not an integer   -0.20
        quantity value missing               -0.20
        description shorter than 3 chars     -0.10
        size / nominal diameter empty        -0.05

    Args:
        base_confidence: OCR confidence reported by the model (0-1)
        item: Item label text
        qty: Normalized quantity
        description: Item description text
        size_nd: Size / nominal diameter text

    Returns:
        Score clamped to [0.10, 1.00]
    """
    score = base_confidence

    if not has_integer_label(item):
        score -= PENALTY_INVALID_ITEM
    if qty.value is None:
        score -= PENALTY_MISSING_QTY
    if not description or len(description) < MIN_DESCRIPTION_LENGTH:
        score -= PENALTY_SHORT_DESCRIPTION
    if not size_nd:
        score -= PENALTY_MISSING_SIZE

    return clamp_confidence(score)


def needs_review(confidence: float, threshold: float = REVIEW_THRESHOLD) -> bool:
    """A row needs review when its score is strictly below the threshold."""
    return confidence < threshold
