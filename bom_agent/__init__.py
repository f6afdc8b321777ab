# BOM Extraction Agent
from .graph import (
    create_extraction_graph,
    run_extraction_workflow,
    stream_extraction_workflow,
    get_workflow_visualization,
)
from .state import ExtractionState, create_initial_state

__all__ = [
    "create_extraction_graph",
    "run_extraction_workflow",
    "stream_extraction_workflow",
    "get_workflow_visualization",
    "ExtractionState",
    "create_initial_state",
]
