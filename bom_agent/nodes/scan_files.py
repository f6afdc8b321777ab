"""
Node 0: Input Scan
Resolves the input paths into the list of PDFs to extract.
"""

import logging
from typing import Dict, Any

from bom_tools.pdf_utils import dedupe_by_name, find_pdfs

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def scan_files_node(state: ExtractionState) -> Dict[str, Any]:
    """
    Scan input paths and identify all PDFs to process.

    Files and folders may be mixed; folders contribute every PDF they
    contain, sorted by name. Repeated file names are queued once.

    Args:
        state: Current workflow state

    Returns:
        State updates with files_pending, or last_error
    """
    input_paths = state.get("input_paths", [])

    if not input_paths:
        return {
            "last_error": "No input path specified",
            "files_pending": []
        }

    found = []
    for input_path in input_paths:
        pdfs = find_pdfs(input_path)
        if not pdfs:
            logger.warning(f"No PDF files found at: {input_path}")
        found.extend(pdfs)

    files = dedupe_by_name(found)

    if not files:
        return {
            "last_error": f"No PDF files found in: {', '.join(input_paths)}",
            "files_pending": []
        }

    logger.info(f"Found {len(files)} PDF files to extract")
    return {
        "files_pending": files,
        "last_error": None
    }
