"""
PDF Input Helpers
Validation and loading of uploaded drawing PDFs before they are sent to the
extraction model.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

from pypdf import PdfReader

logger = logging.getLogger(__name__)


# Inline request payloads are capped by the hosted models
MAX_INLINE_SIZE_MB = 20

PDF_MAGIC = b"%PDF"


class InvalidPDFError(ValueError):
    """Raised when a file cannot be sent for extraction."""


def get_file_size_mb(filepath: str) -> float:
    """Get file size in megabytes."""
    return os.path.getsize(filepath) / (1024 * 1024)


def get_page_count(filepath: str) -> int:
    """
    Get page count of a PDF file.

    Returns 0 when the file cannot be read; page count is informational only.
    """
    try:
        reader = PdfReader(str(filepath))
        return len(reader.pages)
    except Exception as e:
        logger.warning(f"Could not read page count for {filepath}: {e}")
        return 0


def validate_pdf(filepath: str, max_size_mb: float = MAX_INLINE_SIZE_MB) -> Path:
    """
    Check that a file exists, looks like a PDF and is small enough to send.

    Raises:
        InvalidPDFError: describing the first problem found
    """
    path = Path(filepath)

    if not path.exists():
        raise InvalidPDFError(f"File not found: {path}")

    if path.suffix.lower() != ".pdf":
        raise InvalidPDFError(f"Not a PDF file: {path.name}")

    with open(path, "rb") as f:
        header = f.read(1024)
    if PDF_MAGIC not in header:
        raise InvalidPDFError(f"File does not have a PDF header: {path.name}")

    size_mb = get_file_size_mb(str(path))
    if size_mb > max_size_mb:
        raise InvalidPDFError(
            f"{path.name} is {size_mb:.1f} MB, above the {max_size_mb} MB request limit"
        )

    return path


def read_pdf_bytes(filepath: str, max_size_mb: float = MAX_INLINE_SIZE_MB) -> bytes:
    """Validate and read a PDF for inline upload."""
    path = validate_pdf(filepath, max_size_mb)
    data = path.read_bytes()
    logger.debug(f"Loaded {path.name}: {len(data):,} bytes, {get_page_count(str(path))} pages")
    return data


def find_pdfs(input_path: str) -> List[str]:
    """
    List PDFs at a path: the file itself, or every PDF in a folder sorted by name.
    """
    path = Path(input_path)

    if path.is_file():
        return [str(path)] if path.suffix.lower() == ".pdf" else []

    if path.is_dir():
        pdf_files = [p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"]
        pdf_files.sort(key=lambda p: p.name.lower())
        return [str(p) for p in pdf_files]

    return []


def dedupe_by_name(paths: List[str], existing: Optional[List[str]] = None) -> List[str]:
    """
    Drop paths whose file name is already queued (or repeated in `paths`).
    """
    seen = {Path(p).name for p in (existing or [])}
    unique = []
    for p in paths:
        name = Path(p).name
        if name in seen:
            logger.info(f"Skipping duplicate file name: {name}")
            continue
        seen.add(name)
        unique.append(p)
    return unique
