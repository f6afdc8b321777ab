"""
Session Metrics
Aggregate figures for the dashboard: volume, average confidence, review load
and supplier mix for the records currently held in a session.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .records import BomRecord


@dataclass
class SessionMetrics:
    files_processed: int = 0
    files_failed: int = 0
    drawings_found: int = 0
    bom_rows: int = 0
    average_confidence: float = 0.0
    rows_needing_review: int = 0
    review_rate: float = 0.0
    top_supplier: Optional[str] = None
    rows_by_supplier: Dict[str, int] = field(default_factory=dict)
    rows_by_unit: Dict[str, int] = field(default_factory=dict)
    total_processing_seconds: float = 0.0
    average_processing_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_processed": self.files_processed,
            "files_failed": self.files_failed,
            "drawings_found": self.drawings_found,
            "bom_rows": self.bom_rows,
            "average_confidence": round(self.average_confidence, 4),
            "rows_needing_review": self.rows_needing_review,
            "review_rate": round(self.review_rate, 4),
            "top_supplier": self.top_supplier,
            "rows_by_supplier": dict(self.rows_by_supplier),
            "rows_by_unit": dict(self.rows_by_unit),
            "total_processing_seconds": round(self.total_processing_seconds, 2),
            "average_processing_seconds": round(self.average_processing_seconds, 2),
        }


def compute_session_metrics(
    records: List[BomRecord],
    file_results: Optional[List[Any]] = None
) -> SessionMetrics:
    """
    Compute metrics for a set of records.

    Args:
        records: Assembled BOM records
        file_results: Optional FileExtractionResult list for file counts and
                      timing. Without it, files are counted from the records.

    Returns:
        SessionMetrics (all zeros for empty input)
    """
    items = [item for record in records for item in record.bom]

    supplier_counts = Counter()
    for record in records:
        supplier_counts[record.supplier.value] += len(record.bom)
    unit_counts = Counter(item.qty.unit.value for item in items)

    # Unknown never wins top supplier while a named supplier has rows
    named = [(s, n) for s, n in supplier_counts.most_common() if s != "Unknown" and n > 0]
    if named:
        top_supplier = named[0][0]
    elif supplier_counts:
        top_supplier = supplier_counts.most_common(1)[0][0]
    else:
        top_supplier = None

    if file_results is not None:
        processed = [r for r in file_results if not getattr(r, "cancelled", False)]
        files_processed = sum(1 for r in processed if r.success)
        files_failed = len(processed) - files_processed
        total_seconds = sum(r.duration_seconds for r in processed)
        average_seconds = total_seconds / len(processed) if processed else 0.0
    else:
        files_processed = len({record.source_file for record in records})
        files_failed = 0
        total_seconds = 0.0
        average_seconds = 0.0

    review_count = sum(1 for item in items if item.needs_review)

    return SessionMetrics(
        files_processed=files_processed,
        files_failed=files_failed,
        drawings_found=len(records),
        bom_rows=len(items),
        average_confidence=sum(item.confidence for item in items) / len(items) if items else 0.0,
        rows_needing_review=review_count,
        review_rate=review_count / len(items) if items else 0.0,
        top_supplier=top_supplier,
        rows_by_supplier=dict(supplier_counts),
        rows_by_unit=dict(unit_counts),
        total_processing_seconds=total_seconds,
        average_processing_seconds=average_seconds,
    )


def format_metrics(metrics: SessionMetrics) -> str:
    """Render metrics as the dashboard's card list."""
    lines = [
        f"  Files Processed:      {metrics.files_processed}",
        f"  Files Failed:         {metrics.files_failed}",
        f"  Drawings Found:       {metrics.drawings_found}",
        f"  BOM Rows Extracted:   {metrics.bom_rows:,}",
        f"  Average Confidence:   {metrics.average_confidence * 100:.1f}%",
        f"  Rows Needing Review:  {metrics.rows_needing_review} ({metrics.review_rate * 100:.1f}%)",
        f"  Avg. Processing Time: {metrics.average_processing_seconds:.0f}s",
        f"  Top Supplier:         {metrics.top_supplier or '-'}",
    ]
    return "\n".join(lines)
