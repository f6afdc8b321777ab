#!/usr/bin/env python3
"""
Batch BOM Extraction

Fans out one extraction request per PDF on a thread pool and fans the
results back in, in input order. Requests are I/O bound (hosted model), so
threads rather than processes.

Failure handling:
- Default: per-file partial success. A failed file is reported and the
  other files' records are unaffected.
- strict: any failed file fails the whole batch (ExtractionFailedError).

Cancellation is honoured at the per-file request boundary: files that have
not started when the token is set are reported as cancelled; requests
already in flight run to completion.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .confidence import DEFAULT_OCR_CONFIDENCE, REVIEW_THRESHOLD
from .extraction_providers import ExtractionProvider
from .pdf_utils import InvalidPDFError, MAX_INLINE_SIZE_MB, read_pdf_bytes
from .records import BomRecord, assemble_records

logger = logging.getLogger(__name__)


GENERIC_FAILURE_MESSAGE = (
    "Failed to extract data from one or more documents. "
    "The model may have had trouble parsing the file."
)


class ExtractionFailedError(RuntimeError):
    """Raised when a batch is run in strict mode and any file fails."""

    def __init__(self, message: str = GENERIC_FAILURE_MESSAGE, failures: Optional[List["FileExtractionResult"]] = None):
        super().__init__(message)
        self.failures = failures or []


class ExtractionCancelledError(RuntimeError):
    """Raised when a batch was cancelled before every file was processed."""


class CancellationToken:
    """Thread-safe cancel flag checked before each file's request."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class FileExtractionResult:
    """Outcome of extracting one PDF."""
    filename: str
    filepath: str
    success: bool
    records: List[BomRecord] = field(default_factory=list)
    response: Dict[str, Any] = field(default_factory=dict)
    drawings_found: int = 0
    items_found: int = 0
    tokens_used: int = 0
    duration_seconds: float = 0.0
    cancelled: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "filepath": self.filepath,
            "success": self.success,
            "drawings_found": self.drawings_found,
            "items_found": self.items_found,
            "tokens_used": self.tokens_used,
            "duration_seconds": round(self.duration_seconds, 2),
            "cancelled": self.cancelled,
            "errors": [self.error] if self.error else [],
        }


@dataclass
class BatchExtractionResult:
    """Results for every file in a batch, in input order."""
    files: List[FileExtractionResult]

    @property
    def records(self) -> List[BomRecord]:
        records = []
        for result in self.files:
            if result.success:
                records.extend(result.records)
        return records

    @property
    def succeeded(self) -> List[FileExtractionResult]:
        return [r for r in self.files if r.success]

    @property
    def failed(self) -> List[FileExtractionResult]:
        return [r for r in self.files if not r.success and not r.cancelled]

    @property
    def cancelled(self) -> List[FileExtractionResult]:
        return [r for r in self.files if r.cancelled]

    @property
    def total_tokens(self) -> int:
        return sum(r.tokens_used for r in self.files)

    def raise_for_failures(self):
        """Apply the all-or-nothing rule."""
        if self.cancelled:
            raise ExtractionCancelledError(
                f"Extraction cancelled: {len(self.cancelled)} of {len(self.files)} files not processed"
            )
        if self.failed:
            raise ExtractionFailedError(failures=self.failed)


class BatchExtractor:
    """
    Runs extraction for a batch of PDFs concurrently.

    The provider is injected so tests can use fixed fixtures instead of live
    model calls.
    """

    def __init__(
        self,
        provider: ExtractionProvider,
        max_workers: int = 4,
        review_threshold: float = REVIEW_THRESHOLD,
        default_confidence: float = DEFAULT_OCR_CONFIDENCE,
        max_file_size_mb: float = MAX_INLINE_SIZE_MB,
        assemble: bool = True
    ):
        """
        Args:
            provider: Extraction provider
            max_workers: Concurrent requests
            review_threshold: Score below which rows are flagged
            default_confidence: Base score for rows without ocrConfidence
            max_file_size_mb: Largest PDF sent inline
            assemble: Build BomRecords per file; when False only the raw
                      model response is kept
        """
        self.provider = provider
        self.max_workers = max(1, max_workers)
        self.review_threshold = review_threshold
        self.default_confidence = default_confidence
        self.max_file_size_mb = max_file_size_mb
        self.assemble = assemble

    def extract_file(self, filepath: str, token: Optional[CancellationToken] = None) -> FileExtractionResult:
        """
        Extract and assemble records for a single PDF. Never raises.
        """
        path = Path(filepath)
        filename = path.name

        if token is not None and token.cancelled:
            logger.info(f"Skipping {filename}: batch cancelled")
            return FileExtractionResult(
                filename=filename,
                filepath=str(path),
                success=False,
                cancelled=True,
                error="Cancelled before processing"
            )

        start = time.monotonic()
        try:
            pdf_bytes = read_pdf_bytes(str(path), self.max_file_size_mb)
        except (InvalidPDFError, OSError) as e:
            logger.error(f"Cannot send {filename}: {e}")
            return FileExtractionResult(
                filename=filename,
                filepath=str(path),
                success=False,
                duration_seconds=time.monotonic() - start,
                error=str(e)
            )

        logger.info(f"Extracting BOM from {filename} with {self.provider.PROVIDER_NAME}/{self.provider.model}")
        result = self.provider.extract_from_pdf(pdf_bytes, filename)
        duration = time.monotonic() - start

        if not result.success:
            return FileExtractionResult(
                filename=filename,
                filepath=str(path),
                success=False,
                tokens_used=result.tokens_used,
                duration_seconds=duration,
                error=result.error or "Extraction failed"
            )

        if self.assemble:
            records = assemble_records(filename, result.data, self.review_threshold, self.default_confidence)
            drawings_found = len(records)
            items_found = sum(len(r.bom) for r in records)
        else:
            records = []
            drawings_found = len(result.drawings)
            items_found = sum(
                len(d.get("BOM") or []) for d in result.drawings
                if isinstance(d, dict) and isinstance(d.get("BOM") or [], list)
            )
        logger.info(f"{filename}: {drawings_found} drawings, {items_found} rows in {duration:.1f}s")

        return FileExtractionResult(
            filename=filename,
            filepath=str(path),
            success=True,
            records=records,
            response=result.data,
            drawings_found=drawings_found,
            items_found=items_found,
            tokens_used=result.tokens_used,
            duration_seconds=duration
        )

    def extract_batch(
        self,
        filepaths: List[str],
        token: Optional[CancellationToken] = None,
        progress_callback: Optional[Callable[[FileExtractionResult], None]] = None
    ) -> BatchExtractionResult:
        """
        Extract every file concurrently and collect results in input order.

        Args:
            filepaths: PDFs to process
            token: Optional cancellation token
            progress_callback: Called with each file's result as it completes

        Returns:
            BatchExtractionResult (never raises; see raise_for_failures)
        """
        if not filepaths:
            return BatchExtractionResult(files=[])

        workers = min(self.max_workers, len(filepaths))
        logger.info(f"Extracting {len(filepaths)} files with {workers} workers")

        def _run(filepath: str) -> FileExtractionResult:
            result = self.extract_file(filepath, token)
            if progress_callback is not None:
                try:
                    progress_callback(result)
                except Exception as e:
                    logger.warning(f"Progress callback failed: {e}")
            return result

        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_run, filepaths))

        batch = BatchExtractionResult(files=results)
        logger.info(
            f"Batch complete: {len(batch.succeeded)} succeeded, "
            f"{len(batch.failed)} failed, {len(batch.cancelled)} cancelled"
        )
        return batch


def extract_bom_records(
    filepaths: List[str],
    provider: ExtractionProvider,
    strict: bool = True,
    max_workers: int = 4,
    token: Optional[CancellationToken] = None,
    review_threshold: float = REVIEW_THRESHOLD
) -> List[BomRecord]:
    """
    Extract BomRecords for a batch of PDFs.

    Args:
        filepaths: PDFs to process
        provider: Extraction provider
        strict: Fail the whole batch if any file fails
        max_workers: Concurrent requests
        token: Optional cancellation token
        review_threshold: Score below which rows are flagged

    Returns:
        Records from all successful files, concatenated in input order

    Raises:
        ExtractionFailedError: strict mode and at least one file failed
        ExtractionCancelledError: the token was cancelled before all files ran
    """
    extractor = BatchExtractor(provider, max_workers=max_workers, review_threshold=review_threshold)
    batch = extractor.extract_batch(filepaths, token=token)

    if strict:
        batch.raise_for_failures()
    elif batch.cancelled:
        raise ExtractionCancelledError(
            f"Extraction cancelled: {len(batch.cancelled)} of {len(batch.files)} files not processed"
        )
    else:
        for failure in batch.failed:
            logger.warning(f"Skipped {failure.filename}: {failure.error}")

    return batch.records
