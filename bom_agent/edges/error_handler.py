"""
Error Handling Edges
Conditional routing for empty inputs, failed files and cancelled batches.
"""

import logging
from typing import Literal

from bom_tools.batch_extractor import GENERIC_FAILURE_MESSAGE

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def route_after_scan(state: ExtractionState) -> Literal["extract", "summary"]:
    """
    Route after the input scan.

    Nothing to extract goes straight to the summary so the run still
    reports what happened.
    """
    if state.get("files_pending"):
        return "extract"

    logger.warning(f"Nothing to extract: {state.get('last_error')}")
    return "summary"


def route_after_extraction(state: ExtractionState) -> Literal["assemble", "abort"]:
    """
    Route after batch extraction.

    Decision logic:
    - Any file cancelled: abort, no partial results are published
    - Strict mode and any file failed: abort the whole batch
    - Otherwise: assemble records from the files that succeeded

    Args:
        state: Current workflow state

    Returns:
        Next node: "assemble" or "abort"
    """
    file_results = state.get("file_results", [])
    cancelled = [r for r in file_results if r.get("cancelled")]
    failed = [r for r in file_results if not r.get("success") and not r.get("cancelled")]

    if cancelled:
        logger.warning(f"Batch cancelled, {len(cancelled)} files not processed")
        return "abort"

    if failed and state.get("strict", False):
        logger.error(f"Strict mode: {len(failed)} files failed, aborting batch")
        return "abort"

    return "assemble"


def mark_batch_failed(state: ExtractionState) -> dict:
    """
    Discard all records and mark the batch as failed.

    Called when routing to "abort".

    Args:
        state: Current workflow state

    Returns:
        State updates clearing results and setting the error
    """
    file_results = state.get("file_results", [])
    if any(r.get("cancelled") for r in file_results):
        message = "Extraction cancelled."
    else:
        message = GENERIC_FAILURE_MESSAGE

    logger.warning(f"Batch failed: {message}")

    return {
        "batch_failed": True,
        "responses": [],
        "records": [],
        "export_paths": [],
        "total_drawings": 0,
        "total_items": 0,
        "last_error": message
    }
