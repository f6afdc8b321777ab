"""
Node 3: Report Generation
Exports the assembled records to the requested spreadsheet formats.
"""

import logging
from typing import Dict, Any

from bom_tools.export import export_records
from bom_tools.records import BomRecord

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def generate_report_node(state: ExtractionState) -> Dict[str, Any]:
    """
    Write exports for all records.

    Args:
        state: Current workflow state

    Returns:
        State updates with export_paths, or last_error
    """
    output_path = state.get("output_path", "")
    formats = state.get("export_formats") or ["xlsx"]
    records = [BomRecord.from_dict(r) for r in state.get("records") or []]

    if not output_path:
        logger.error("No output path specified")
        return {"last_error": "No output path specified"}

    if not any(record.bom for record in records):
        logger.warning("No BOM rows extracted, skipping export")
        return {"export_paths": [], "last_error": state.get("last_error") or "No BOM rows extracted"}

    try:
        paths = export_records(records, output_path, formats)
    except (ValueError, OSError) as e:
        logger.error(f"Report generation failed: {e}")
        return {"last_error": f"Report generation failed: {str(e)}"}

    for path in paths:
        logger.info(f"Report saved: {path}")

    return {"export_paths": paths}
