# Workflow nodes
from .scan_files import scan_files_node
from .extract_bom import extract_bom_node
from .assemble_records import assemble_records_node
from .generate_report import generate_report_node
from .batch_summary import batch_summary_node

__all__ = [
    "scan_files_node",
    "extract_bom_node",
    "assemble_records_node",
    "generate_report_node",
    "batch_summary_node",
]
