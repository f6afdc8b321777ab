"""
Node 2: Record Assembly
Normalizes quantities, scores confidence and groups rows per drawing.
"""

import logging
from typing import Dict, Any

from bom_tools.records import assemble_batch

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def assemble_records_node(state: ExtractionState) -> Dict[str, Any]:
    """
    Build BomRecords from the stored model responses.

    Pure transformation: re-running it on the same responses gives the same
    records.

    Args:
        state: Current workflow state

    Returns:
        State updates with records (as dicts) and totals
    """
    responses = state.get("responses", [])
    threshold = state.get("review_threshold", 0.90)
    default_confidence = state.get("default_confidence", 0.85)

    records = assemble_batch(
        ((entry["source_file"], entry["response"]) for entry in responses),
        review_threshold=threshold,
        default_confidence=default_confidence
    )

    total_items = sum(len(record.bom) for record in records)
    needing_review = sum(len(record.items_needing_review) for record in records)
    logger.info(f"Assembled {len(records)} drawings, {total_items} rows ({needing_review} need review)")

    return {
        "records": [record.to_dict() for record in records],
        "total_drawings": len(records),
        "total_items": total_items
    }
