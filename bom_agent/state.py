"""
Workflow State Schema for the BOM Extraction Agent
Defines the state that flows through the LangGraph workflow.
"""

from typing import TypedDict, List, Optional, Dict, Any
from datetime import datetime


class FileResult(TypedDict):
    """Result from extracting a single PDF file."""
    filename: str
    filepath: str
    success: bool
    drawings_found: int
    items_found: int
    tokens_used: int
    duration_seconds: float
    cancelled: bool
    errors: List[str]


class ExtractionState(TypedDict):
    """
    State schema for the BOM extraction workflow.

    This state is passed between nodes in the LangGraph workflow.
    Everything in it is plain data so it can be checkpointed; the provider
    and cancellation token are bound into the nodes instead.
    """

    # ========================
    # Input Configuration
    # ========================
    input_paths: List[str]             # PDF files and/or folders
    output_path: str                   # Output directory for exports
    export_formats: List[str]          # xlsx / csv / json
    strict: bool                       # Fail the batch if any file fails
    review_threshold: float            # Rows below this score need review
    default_confidence: float          # Base score for rows without ocrConfidence

    # ========================
    # Progress Tracking
    # ========================
    files_pending: List[str]           # PDFs queued for extraction
    files_completed: List[str]         # Successfully extracted filenames
    files_failed: List[FileResult]     # Failed or cancelled files with error info
    file_results: List[FileResult]     # Every file, in input order

    # ========================
    # Extraction Data
    # ========================
    responses: List[Dict[str, Any]]    # [{"source_file": ..., "response": {...}}] per successful file
    records: Optional[List[Dict]]      # Assembled BomRecords (as dicts)
    export_paths: List[str]            # Written export files

    # ========================
    # Error Handling
    # ========================
    last_error: Optional[str]          # Most recent error message
    batch_failed: bool                 # True when the batch was aborted

    # ========================
    # Batch Summary
    # ========================
    total_drawings: int
    total_items: int
    total_tokens: int
    master_summary: Optional[Dict]     # Final batch summary data

    # ========================
    # Timing
    # ========================
    start_time: Optional[str]          # ISO timestamp when run started
    end_time: Optional[str]            # ISO timestamp when run completed


def create_initial_state(
    input_paths: List[str],
    output_path: str,
    export_formats: Optional[List[str]] = None,
    strict: bool = False,
    review_threshold: float = 0.90,
    default_confidence: float = 0.85
) -> ExtractionState:
    """
    Create initial state for a new workflow run.

    Args:
        input_paths: PDF files or folders to process
        output_path: Directory for exports
        export_formats: Export formats (default: xlsx)
        strict: Abort the whole batch when any file fails
        review_threshold: Score below which rows need review
        default_confidence: Base score for rows without ocrConfidence

    Returns:
        Initialized ExtractionState
    """
    return ExtractionState(
        # Input
        input_paths=list(input_paths),
        output_path=output_path,
        export_formats=list(export_formats or ["xlsx"]),
        strict=strict,
        review_threshold=review_threshold,
        default_confidence=default_confidence,

        # Progress
        files_pending=[],
        files_completed=[],
        files_failed=[],
        file_results=[],

        # Extraction data
        responses=[],
        records=None,
        export_paths=[],

        # Error handling
        last_error=None,
        batch_failed=False,

        # Batch summary
        total_drawings=0,
        total_items=0,
        total_tokens=0,
        master_summary=None,

        # Timing
        start_time=datetime.now().isoformat(),
        end_time=None,
    )
