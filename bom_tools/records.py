"""
BOM Record Assembly

Converts the extraction model's per-document JSON into BomRecord objects:
one record per drawing, each holding normalized and scored BomItems.

Expected model output (every field may be missing):

    {
      "drawings": [
        {
          "Supplier": "KENT",
          "DrawingNo": "KNT-1001-01",
          "IssuedApprovedDate": "2024-03-01",
          "BOM": [
            {"ITEM": "1", "QTY": "43'-4\"", "SIZE_ND": "DN50",
             "DESCRIPTION": "PIPE, SMLS, A106-B", "Page": 1, "ocrConfidence": 0.97}
          ]
        }
      ]
    }
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .confidence import (
    DEFAULT_OCR_CONFIDENCE,
    REVIEW_THRESHOLD,
    apply_business_confidence,
    coerce_base_confidence,
    needs_review,
)
from .quantity import Qty, normalize_qty

logger = logging.getLogger(__name__)


class Supplier(str, Enum):
    """Drawing suppliers recognised in title blocks."""
    KENT = "KENT"
    TENG = "TENG"
    TECSAR = "TECSAR"
    WORLEY = "WORLEY"
    UNKNOWN = "Unknown"


# Export column order
EXPORT_COLUMNS = [
    "Source File",
    "Supplier",
    "Drawing No",
    "Item",
    "Qty (Raw)",
    "Qty (Unit)",
    "Qty (Value)",
    "Size/ND",
    "Description",
    "Page",
    "Needs Review",
    "Confidence",
]


@dataclass
class BomItem:
    """A single normalized BOM row."""
    id: str
    item: str
    qty: Qty
    size_nd: str
    description: str
    page: int
    confidence: float
    needs_review: bool
    ocr_confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item": self.item,
            "qty": self.qty.to_dict(),
            "size_nd": self.size_nd,
            "description": self.description,
            "page": self.page,
            "confidence": self.confidence,
            "needs_review": self.needs_review,
            "ocr_confidence": self.ocr_confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BomItem":
        return cls(
            id=data["id"],
            item=data.get("item", ""),
            qty=Qty.from_dict(data.get("qty") or {}),
            size_nd=data.get("size_nd", ""),
            description=data.get("description", ""),
            page=data.get("page", 0),
            confidence=data["confidence"],
            needs_review=data["needs_review"],
            ocr_confidence=data.get("ocr_confidence", data["confidence"]),
        )


@dataclass
class BomRecord:
    """All BOM rows found for one drawing inside a source file."""
    source_file: str
    supplier: Supplier
    drawing_no: str
    bom: List[BomItem] = field(default_factory=list)
    issued_approved_date: Optional[str] = None

    @property
    def items_needing_review(self) -> List[BomItem]:
        return [item for item in self.bom if item.needs_review]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_file": self.source_file,
            "supplier": self.supplier.value,
            "drawing_no": self.drawing_no,
            "issued_approved_date": self.issued_approved_date,
            "bom": [item.to_dict() for item in self.bom],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BomRecord":
        return cls(
            source_file=data["source_file"],
            supplier=Supplier(data.get("supplier", Supplier.UNKNOWN.value)),
            drawing_no=data["drawing_no"],
            bom=[BomItem.from_dict(item) for item in data.get("bom", [])],
            issued_approved_date=data.get("issued_approved_date"),
        )


# =============================================================================
# FIELD COERCION
# =============================================================================

def _text(value: Any) -> str:
    """Model fields may arrive as numbers or null; text is kept as returned."""
    if value is None:
        return ""
    return str(value)


def _page(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def resolve_supplier(value: Any) -> Supplier:
    """
    Map free supplier text onto the known suppliers.

    Examples:
        "KENT"            → Supplier.KENT
        "Worley Parsons"  → Supplier.WORLEY
        "ACME"            → Supplier.UNKNOWN
    """
    text = _text(value).strip().upper()
    if not text:
        return Supplier.UNKNOWN

    for supplier in Supplier:
        if supplier is Supplier.UNKNOWN:
            continue
        if re.search(rf"\b{supplier.value}\b", text):
            return supplier

    logger.debug(f"Unrecognised supplier {value!r}, using Unknown")
    return Supplier.UNKNOWN


def make_item_id(source_file: str, drawing_index: int, item_index: int) -> str:
    """Deterministic row id, unique within a run."""
    return f"{source_file}-drawing-{drawing_index}-item-{item_index}"


def placeholder_drawing_no(drawing_index: int) -> str:
    return f"N/A (Drawing {drawing_index + 1})"


# =============================================================================
# ASSEMBLY
# =============================================================================

def build_item(
    raw_row: Dict[str, Any],
    item_id: str,
    review_threshold: float = REVIEW_THRESHOLD,
    default_confidence: float = DEFAULT_OCR_CONFIDENCE,
) -> BomItem:
    """Normalize and score one raw model row."""
    item = _text(raw_row.get("ITEM"))
    size_nd = _text(raw_row.get("SIZE_ND"))
    description = _text(raw_row.get("DESCRIPTION"))
    qty = normalize_qty(raw_row.get("QTY"))

    base_confidence = coerce_base_confidence(raw_row.get("ocrConfidence"), default_confidence)
    confidence = apply_business_confidence(base_confidence, item, qty, description, size_nd)

    return BomItem(
        id=item_id,
        item=item,
        qty=qty,
        size_nd=size_nd,
        description=description,
        page=_page(raw_row.get("Page")),
        confidence=confidence,
        needs_review=needs_review(confidence, review_threshold),
        ocr_confidence=base_confidence,
    )


def assemble_records(
    source_file: str,
    response: Any,
    review_threshold: float = REVIEW_THRESHOLD,
    default_confidence: float = DEFAULT_OCR_CONFIDENCE,
) -> List[BomRecord]:
    """
    Build BomRecords for one source document.

    Args:
        source_file: File name the response was extracted from
        response: Parsed JSON returned by the extraction model
        review_threshold: Score below which rows are flagged
        default_confidence: Base score for rows without ocrConfidence

    Returns:
        One BomRecord per drawing, in the order the model reported them.
        A response without a 'drawings' list yields an empty list.
    """
    drawings = response.get("drawings") if isinstance(response, dict) else None
    if not isinstance(drawings, list):
        logger.warning(f"Model response for {source_file} did not contain a 'drawings' array")
        return []

    records = []
    for drawing_index, drawing in enumerate(drawings):
        if not isinstance(drawing, dict):
            logger.warning(f"{source_file}: skipping malformed drawing #{drawing_index + 1}")
            continue

        rows = drawing.get("BOM")
        if not isinstance(rows, list):
            rows = []

        items = []
        for item_index, row in enumerate(rows):
            if not isinstance(row, dict):
                logger.warning(
                    f"{source_file}: skipping malformed row {item_index} in drawing #{drawing_index + 1}"
                )
                continue
            item_id = make_item_id(source_file, drawing_index, item_index)
            items.append(build_item(row, item_id, review_threshold, default_confidence))

        issued = drawing.get("IssuedApprovedDate")
        records.append(BomRecord(
            source_file=source_file,
            supplier=resolve_supplier(drawing.get("Supplier")),
            drawing_no=_text(drawing.get("DrawingNo")) or placeholder_drawing_no(drawing_index),
            bom=items,
            issued_approved_date=_text(issued) or None,
        ))

    logger.info(
        f"{source_file}: assembled {len(records)} drawings, "
        f"{sum(len(r.bom) for r in records)} BOM rows"
    )
    return records


def assemble_batch(
    responses: Iterable[Tuple[str, Any]],
    review_threshold: float = REVIEW_THRESHOLD,
    default_confidence: float = DEFAULT_OCR_CONFIDENCE,
) -> List[BomRecord]:
    """Assemble (source_file, response) pairs and concatenate in input order."""
    records = []
    for source_file, response in responses:
        records.extend(assemble_records(source_file, response, review_threshold, default_confidence))
    return records


def flatten_records(records: Iterable[BomRecord]) -> List[Dict[str, Any]]:
    """Flatten records to spreadsheet rows (one per BOM item)."""
    rows = []
    for record in records:
        for item in record.bom:
            rows.append({
                "Source File": record.source_file,
                "Supplier": record.supplier.value,
                "Drawing No": record.drawing_no,
                "Item": item.item,
                "Qty (Raw)": item.qty.raw,
                "Qty (Unit)": item.qty.unit.value,
                "Qty (Value)": item.qty.value,
                "Size/ND": item.size_nd,
                "Description": item.description,
                "Page": item.page,
                "Needs Review": "Yes" if item.needs_review else "No",
                "Confidence": f"{item.confidence * 100:.1f}%",
            })
    return rows
