# BOM extraction tools
from .quantity import Qty, QtyUnit, normalize_qty
from .confidence import REVIEW_THRESHOLD, apply_business_confidence, needs_review
from .records import (
    BomItem,
    BomRecord,
    Supplier,
    assemble_records,
    assemble_batch,
    flatten_records,
)
from .extraction_providers import ExtractionProvider, ExtractionResult, get_provider
from .batch_extractor import (
    BatchExtractor,
    BatchExtractionResult,
    CancellationToken,
    ExtractionCancelledError,
    ExtractionFailedError,
    FileExtractionResult,
    extract_bom_records,
)
from .export import export_to_excel, export_to_csv, export_to_json, export_records
from .metrics import SessionMetrics, compute_session_metrics
from .session import ExtractionSession, ExtractionStatus, FileStatus, AppView

__all__ = [
    "Qty",
    "QtyUnit",
    "normalize_qty",
    "REVIEW_THRESHOLD",
    "apply_business_confidence",
    "needs_review",
    "BomItem",
    "BomRecord",
    "Supplier",
    "assemble_records",
    "assemble_batch",
    "flatten_records",
    "ExtractionProvider",
    "ExtractionResult",
    "get_provider",
    "BatchExtractor",
    "BatchExtractionResult",
    "CancellationToken",
    "ExtractionCancelledError",
    "ExtractionFailedError",
    "FileExtractionResult",
    "extract_bom_records",
    "export_to_excel",
    "export_to_csv",
    "export_to_json",
    "export_records",
    "SessionMetrics",
    "compute_session_metrics",
    "ExtractionSession",
    "ExtractionStatus",
    "FileStatus",
    "AppView",
]
