"""
LangGraph Workflow Definition
Wires together nodes and edges for the BOM extraction agent.
"""

import logging
from functools import partial
from typing import Dict, Any, List, Optional, Iterator, Tuple

from langgraph.graph import StateGraph, END
from langgraph.checkpoint.memory import MemorySaver

from bom_tools.batch_extractor import BatchExtractor, CancellationToken
from bom_tools.pdf_utils import MAX_INLINE_SIZE_MB
from bom_tools.confidence import DEFAULT_OCR_CONFIDENCE, REVIEW_THRESHOLD
from bom_tools.extraction_providers import ExtractionProvider

from .state import ExtractionState, create_initial_state
from .nodes import (
    scan_files_node,
    extract_bom_node,
    assemble_records_node,
    generate_report_node,
    batch_summary_node,
)
from .edges import (
    route_after_scan,
    route_after_extraction,
    mark_batch_failed,
)

logger = logging.getLogger(__name__)

# The graph is linear apart from two branches, so this is generous
RECURSION_LIMIT = 25


def create_extraction_graph(
    provider: ExtractionProvider,
    token: Optional[CancellationToken] = None,
    max_workers: int = 4,
    max_file_size_mb: float = MAX_INLINE_SIZE_MB,
    checkpointer: Optional[MemorySaver] = None
) -> StateGraph:
    """
    Create the LangGraph workflow for BOM extraction.

    Graph structure:
    ```
    START (scan_files)
        │
        ▼
    [route_after_scan] ── summary ──────────┐
        │ extract                           │
        ▼                                   │
    extract_bom                             │
        │                                   │
        ▼                                   │
    [route_after_extraction]                │
        │ assemble        │ abort           │
        ▼                 ▼                 │
    assemble_records   mark_failed          │
        │                 │                 │
        ▼                 │                 │
    generate_report       │                 │
        │                 │                 │
        ▼                 ▼                 │
    batch_summary ◄───────┴─────────────────┘
        │
        ▼
       END
    ```

    Args:
        provider: Extraction provider bound into the extract node
        token: Optional cancellation token shared with the caller
        max_workers: Concurrent extraction requests
        max_file_size_mb: Largest PDF sent to the model
        checkpointer: Optional checkpointer for state persistence

    Returns:
        Compiled StateGraph
    """
    extractor = BatchExtractor(
        provider,
        max_workers=max_workers,
        max_file_size_mb=max_file_size_mb,
        assemble=False
    )

    workflow = StateGraph(ExtractionState)

    # ========================
    # Add Nodes
    # ========================

    workflow.add_node("scan_files", scan_files_node)
    workflow.add_node("extract_bom", partial(extract_bom_node, extractor=extractor, token=token))
    workflow.add_node("assemble_records", assemble_records_node)
    workflow.add_node("mark_failed", mark_batch_failed)
    workflow.add_node("generate_report", generate_report_node)
    workflow.add_node("batch_summary", batch_summary_node)

    # ========================
    # Add Edges
    # ========================

    workflow.set_entry_point("scan_files")

    workflow.add_conditional_edges(
        "scan_files",
        route_after_scan,
        {
            "extract": "extract_bom",
            "summary": "batch_summary"
        }
    )

    workflow.add_conditional_edges(
        "extract_bom",
        route_after_extraction,
        {
            "assemble": "assemble_records",
            "abort": "mark_failed"
        }
    )

    workflow.add_edge("assemble_records", "generate_report")
    workflow.add_edge("generate_report", "batch_summary")
    workflow.add_edge("mark_failed", "batch_summary")
    workflow.add_edge("batch_summary", END)

    if checkpointer:
        return workflow.compile(checkpointer=checkpointer)
    return workflow.compile()


def _run_config(enable_checkpoints: bool, thread_id: str) -> Dict[str, Any]:
    if enable_checkpoints:
        return {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": RECURSION_LIMIT
        }
    return {"recursion_limit": RECURSION_LIMIT}


def run_extraction_workflow(
    input_paths: List[str],
    output_path: str,
    provider: ExtractionProvider,
    export_formats: Optional[List[str]] = None,
    strict: bool = False,
    max_workers: int = 4,
    max_file_size_mb: float = MAX_INLINE_SIZE_MB,
    review_threshold: float = REVIEW_THRESHOLD,
    default_confidence: float = DEFAULT_OCR_CONFIDENCE,
    token: Optional[CancellationToken] = None,
    enable_checkpoints: bool = True
) -> Dict[str, Any]:
    """
    Run the complete extraction workflow.

    Args:
        input_paths: PDF files and/or folders
        output_path: Directory for exports and batch_summary.json
        provider: Extraction provider
        export_formats: Any of xlsx, csv, json (default: xlsx)
        strict: Abort the whole batch if any file fails
        max_workers: Concurrent extraction requests
        max_file_size_mb: Largest PDF sent to the model
        review_threshold: Score below which rows are flagged
        default_confidence: Base score for rows without ocrConfidence
        token: Optional cancellation token
        enable_checkpoints: Enable state persistence

    Returns:
        Final workflow state with results
    """
    checkpointer = MemorySaver() if enable_checkpoints else None
    graph = create_extraction_graph(
        provider,
        token=token,
        max_workers=max_workers,
        max_file_size_mb=max_file_size_mb,
        checkpointer=checkpointer
    )

    initial_state = create_initial_state(
        input_paths=input_paths,
        output_path=output_path,
        export_formats=export_formats,
        strict=strict,
        review_threshold=review_threshold,
        default_confidence=default_confidence
    )

    logger.info(f"Starting extraction workflow: {', '.join(input_paths)} -> {output_path}")

    try:
        final_state = graph.invoke(initial_state, _run_config(enable_checkpoints, "bom-extract-1"))
        logger.info("Workflow completed successfully")
        return final_state
    except Exception as e:
        logger.error(f"Workflow failed: {e}")
        raise


def stream_extraction_workflow(
    input_paths: List[str],
    output_path: str,
    provider: ExtractionProvider,
    export_formats: Optional[List[str]] = None,
    strict: bool = False,
    max_workers: int = 4,
    max_file_size_mb: float = MAX_INLINE_SIZE_MB,
    review_threshold: float = REVIEW_THRESHOLD,
    default_confidence: float = DEFAULT_OCR_CONFIDENCE,
    token: Optional[CancellationToken] = None,
    enable_checkpoints: bool = True
) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """
    Stream the extraction workflow, yielding progress updates after each node.

    Takes the same arguments as run_extraction_workflow.

    Yields:
        Tuple of (node_name, state_update_dict) after each node executes
    """
    checkpointer = MemorySaver() if enable_checkpoints else None
    graph = create_extraction_graph(
        provider,
        token=token,
        max_workers=max_workers,
        max_file_size_mb=max_file_size_mb,
        checkpointer=checkpointer
    )

    initial_state = create_initial_state(
        input_paths=input_paths,
        output_path=output_path,
        export_formats=export_formats,
        strict=strict,
        review_threshold=review_threshold,
        default_confidence=default_confidence
    )

    logger.info(f"Starting extraction workflow (streaming): {', '.join(input_paths)} -> {output_path}")

    try:
        for update in graph.stream(
            initial_state,
            _run_config(enable_checkpoints, "bom-extract-stream-1"),
            stream_mode="updates"
        ):
            if update:
                node_name = list(update.keys())[0]
                node_output = update[node_name]
                yield (node_name, node_output)

        logger.info("Workflow streaming completed successfully")

    except Exception as e:
        logger.error(f"Workflow streaming failed: {e}")
        raise


def get_workflow_visualization() -> str:
    """
    Get ASCII visualization of the workflow graph.

    Returns:
        ASCII art representation of the graph
    """
    return """
    BOM Extraction Workflow
    =======================

                    ┌─────────────┐
                    │ scan_files  │
                    │   (START)   │
                    └──────┬──────┘
                           │
                ┌──────────┴──────────┐
            extract             no files
                │                     │
                ▼                     │
        ┌───────────────┐             │
        │  extract_bom  │             │
        │ (concurrent)  │             │
        └───────┬───────┘             │
                │                     │
        ┌───────┴────────┐            │
    assemble          abort           │
        │        (strict/cancel)      │
        ▼                ▼            │
  ┌────────────┐   ┌───────────┐      │
  │  assemble  │   │   mark    │      │
  │  records   │   │  failed   │      │
  └─────┬──────┘   └─────┬─────┘      │
        │                │            │
        ▼                │            │
  ┌────────────┐         │            │
  │  generate  │         │            │
  │   report   │         │            │
  └─────┬──────┘         │            │
        │                │            │
        ▼                ▼            │
      ┌─────────────────────┐         │
      │    batch_summary    │◄────────┘
      └──────────┬──────────┘
                 │
                 ▼
              ┌─────┐
              │ END │
              └─────┘
    """
