"""
Node 1: BOM Extraction
Sends every queued PDF to the extraction model concurrently and collects
the raw JSON responses.
"""

import logging
from typing import Dict, Any, Optional

from bom_tools.batch_extractor import BatchExtractor, CancellationToken

from ..state import ExtractionState

logger = logging.getLogger(__name__)


def extract_bom_node(
    state: ExtractionState,
    extractor: BatchExtractor,
    token: Optional[CancellationToken] = None
) -> Dict[str, Any]:
    """
    Run the batch extraction.

    The extractor and token are bound with functools.partial when the graph
    is built, so the state itself stays serializable.

    Args:
        state: Current workflow state
        extractor: Configured BatchExtractor (assemble=False)
        token: Optional cancellation token

    Returns:
        State updates with file_results, responses, completed/failed lists
    """
    files = state.get("files_pending", [])

    if not files:
        return {"last_error": "No files to extract"}

    batch = extractor.extract_batch(files, token=token)

    file_results = [result.to_dict() for result in batch.files]
    responses = [
        {"source_file": result.filename, "response": result.response}
        for result in batch.succeeded
    ]
    failed = [result.to_dict() for result in batch.files if not result.success]

    last_error = None
    if failed:
        last_error = f"{len(failed)} of {len(batch.files)} files failed: " + "; ".join(
            f"{f['filename']}: {f['errors'][0] if f['errors'] else 'unknown error'}" for f in failed
        )
        logger.warning(last_error)

    return {
        "file_results": file_results,
        "responses": responses,
        "files_completed": [result.filename for result in batch.succeeded],
        "files_failed": failed,
        "files_pending": [],
        "total_tokens": batch.total_tokens,
        "last_error": last_error
    }
