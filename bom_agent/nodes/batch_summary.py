"""
Node 4: Batch Summary Generation
Aggregates results across all files and writes batch_summary.json.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

from bom_tools.batch_extractor import FileExtractionResult
from bom_tools.metrics import compute_session_metrics
from bom_tools.records import BomRecord

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def file_result_from_state(entry: Dict[str, Any]) -> FileExtractionResult:
    errors = entry.get("errors") or []
    return FileExtractionResult(
        filename=entry.get("filename", ""),
        filepath=entry.get("filepath", ""),
        success=entry.get("success", False),
        drawings_found=entry.get("drawings_found", 0),
        items_found=entry.get("items_found", 0),
        tokens_used=entry.get("tokens_used", 0),
        duration_seconds=entry.get("duration_seconds", 0.0),
        cancelled=entry.get("cancelled", False),
        error=errors[0] if errors else None,
    )


def batch_summary_node(state: ExtractionState) -> Dict[str, Any]:
    """
    Generate master summary for the batch.

    Steps:
    1. Rebuild records and per-file results from state
    2. Compute session metrics
    3. Write batch_summary.json to the output directory

    Args:
        state: Current workflow state

    Returns:
        State updates with master_summary, end_time
    """
    output_path = state.get("output_path", "")
    start_time = state.get("start_time")
    records = [BomRecord.from_dict(r) for r in state.get("records") or []]
    file_results = [file_result_from_state(r) for r in state.get("file_results", [])]

    end_time = datetime.now()
    start_dt = datetime.fromisoformat(start_time) if start_time else end_time
    processing_time = (end_time - start_dt).total_seconds()

    metrics = compute_session_metrics(records, file_results)

    summary_data = {
        "run_datetime": start_time or end_time.isoformat(),
        "input_paths": state.get("input_paths", []),
        "output_folder": output_path,
        "batch_failed": state.get("batch_failed", False),
        "statistics": {
            **metrics.to_dict(),
            "total_tokens": state.get("total_tokens", 0),
            "processing_time_seconds": round(processing_time, 2)
        },
        "files_completed": state.get("files_completed", []),
        "files_failed": state.get("files_failed", []),
        "export_paths": state.get("export_paths", []),
        "last_error": state.get("last_error")
    }

    logger.info(
        f"Batch summary: {metrics.files_processed} succeeded, {metrics.files_failed} failed, "
        f"{metrics.bom_rows} rows, {metrics.rows_needing_review} need review"
    )

    if not output_path:
        return {"master_summary": summary_data, "end_time": end_time.isoformat()}

    try:
        output_dir = Path(output_path)
        output_dir.mkdir(parents=True, exist_ok=True)
        json_path = output_dir / "batch_summary.json"
        with open(json_path, 'w', encoding='utf-8') as f:
            json.dump(summary_data, f, indent=2)

        logger.info(f"Batch summary saved: {json_path}")
        return {
            "master_summary": summary_data,
            "end_time": end_time.isoformat()
        }

    except OSError as e:
        logger.error(f"Batch summary failed: {e}")
        return {
            "master_summary": summary_data,
            "end_time": end_time.isoformat(),
            "last_error": f"Batch summary generation failed: {str(e)}"
        }
