"""
Extraction Session State

Explicit application state for one user session: the upload queue, the
current extraction status, the extracted records (editable in place) and
the active view. Front-ends read and mutate this object instead of keeping
their own ambient state.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .batch_extractor import (
    BatchExtractor,
    BatchExtractionResult,
    CancellationToken,
    ExtractionCancelledError,
    ExtractionFailedError,
    FileExtractionResult,
)
from .confidence import REVIEW_THRESHOLD, apply_business_confidence, needs_review
from .export import export_records
from .extraction_providers import ExtractionProvider
from .metrics import SessionMetrics, compute_session_metrics
from .quantity import normalize_qty
from .records import BomItem, BomRecord

logger = logging.getLogger(__name__)


class FileStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ExtractionStatus(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    REVIEW = "review"
    DONE = "done"
    ERROR = "error"


class AppView(str, Enum):
    EXTRACTOR = "extractor"
    DASHBOARD = "dashboard"


@dataclass
class FileEntry:
    """A queued upload."""
    path: str
    name: str
    status: FileStatus = FileStatus.PENDING
    progress: int = 0
    error: Optional[str] = None


# Fields a reviewer may change on a row
EDITABLE_FIELDS = {"item", "qty", "size_nd", "description", "page"}


@dataclass
class ExtractionSession:
    """
    State of one extraction session.

    Adding or removing files, clearing, and starting an extraction all
    discard previous results, matching the upload screen's behaviour.
    """
    files: List[FileEntry] = field(default_factory=list)
    status: ExtractionStatus = ExtractionStatus.IDLE
    records: List[BomRecord] = field(default_factory=list)
    error: Optional[str] = None
    view: AppView = AppView.EXTRACTOR
    last_batch: Optional[BatchExtractionResult] = None
    review_threshold: float = REVIEW_THRESHOLD
    _token: Optional[CancellationToken] = field(default=None, repr=False)

    # ========================
    # Upload queue
    # ========================

    def add_files(self, paths: List[str]) -> List[FileEntry]:
        """
        Queue files, ignoring names already queued.

        Returns:
            The newly added entries
        """
        known = {entry.name for entry in self.files}
        added = []
        for path in paths:
            name = Path(path).name
            if name in known:
                logger.info(f"Skipping duplicate file: {name}")
                continue
            known.add(name)
            added.append(FileEntry(path=str(Path(path)), name=name))

        self.files.extend(added)
        self._reset_results()
        return added

    def remove_file(self, name: str) -> bool:
        before = len(self.files)
        self.files = [entry for entry in self.files if entry.name != name]
        return len(self.files) != before

    def clear_all(self):
        self.files = []
        self._reset_results()

    @property
    def can_extract(self) -> bool:
        return bool(self.files) and self.status != ExtractionStatus.EXTRACTING

    def _reset_results(self):
        self.records = []
        self.status = ExtractionStatus.IDLE
        self.error = None
        self.last_batch = None

    # ========================
    # Extraction
    # ========================

    def start_extraction(
        self,
        provider: ExtractionProvider,
        max_workers: int = 4,
        strict: bool = True
    ) -> List[BomRecord]:
        """
        Run extraction for every queued file.

        In strict mode any failed file puts the session in the error state
        with no records; otherwise successful files' records are kept and
        failures are recorded on their FileEntry.

        Returns:
            Records now held by the session (empty on error)
        """
        if not self.can_extract:
            logger.warning("Extraction requested with no files or while already extracting")
            return self.records

        self.status = ExtractionStatus.EXTRACTING
        self.error = None
        self.records = []
        self._token = CancellationToken()

        entries = {str(Path(entry.path)): entry for entry in self.files}
        for entry in self.files:
            entry.status = FileStatus.PROCESSING
            entry.progress = 0
            entry.error = None

        def _on_file_done(result: FileExtractionResult):
            entry = entries.get(result.filepath)
            if entry is None:
                return
            entry.status = FileStatus.SUCCESS if result.success else FileStatus.ERROR
            entry.progress = 100
            entry.error = result.error

        extractor = BatchExtractor(provider, max_workers=max_workers, review_threshold=self.review_threshold)
        batch = extractor.extract_batch([entry.path for entry in self.files], self._token, _on_file_done)
        self.last_batch = batch
        self._token = None

        try:
            if strict:
                batch.raise_for_failures()
            elif batch.cancelled:
                raise ExtractionCancelledError(f"Extraction cancelled: {len(batch.cancelled)} files not processed")
        except (ExtractionFailedError, ExtractionCancelledError) as e:
            logger.error(f"Extraction failed: {e}")
            self.status = ExtractionStatus.ERROR
            self.error = str(e)
            return self.records

        self.records = batch.records
        self.status = ExtractionStatus.REVIEW
        return self.records

    def cancel(self):
        """Stop files that have not started yet."""
        if self._token is not None:
            self._token.cancel()

    # ========================
    # Review / editing
    # ========================

    def find_item(self, item_id: str) -> Optional[BomItem]:
        for record in self.records:
            for item in record.bom:
                if item.id == item_id:
                    return item
        return None

    def edit_item(self, item_id: str, **changes) -> BomItem:
        """
        Update a row in place.

        Accepted fields: item, qty (raw text), size_nd, description, page.
        The quantity is re-normalized and the row re-scored from its
        stored OCR confidence.

        Raises:
            KeyError: Unknown item id
            ValueError: Unknown field
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit field(s): {sorted(unknown)}")

        for record in self.records:
            for index, item in enumerate(record.bom):
                if item.id != item_id:
                    continue

                qty = normalize_qty(changes["qty"]) if "qty" in changes else item.qty
                updated = replace(
                    item,
                    item=str(changes.get("item", item.item)).strip(),
                    qty=qty,
                    size_nd=str(changes.get("size_nd", item.size_nd)).strip(),
                    description=str(changes.get("description", item.description)).strip(),
                    page=int(changes.get("page", item.page)),
                )
                confidence = apply_business_confidence(
                    item.ocr_confidence, updated.item, updated.qty, updated.description, updated.size_nd
                )
                updated = replace(
                    updated,
                    confidence=confidence,
                    needs_review=needs_review(confidence, self.review_threshold),
                )
                record.bom[index] = updated
                logger.debug(f"Edited {item_id}: {changes}")
                return updated

        raise KeyError(f"No BOM item with id {item_id!r}")

    def mark_done(self):
        if self.status == ExtractionStatus.REVIEW:
            self.status = ExtractionStatus.DONE

    def export(self, output_dir: str, formats: Optional[List[str]] = None) -> List[str]:
        """Export current records; marks the review as done."""
        paths = export_records(self.records, output_dir, formats or ["xlsx"])
        self.mark_done()
        return paths

    # ========================
    # Dashboard / navigation
    # ========================

    def metrics(self) -> SessionMetrics:
        file_results = self.last_batch.files if self.last_batch else None
        return compute_session_metrics(self.records, file_results)

    def set_view(self, view: AppView):
        self.view = AppView(view)

    def file_statuses(self) -> Dict[str, FileStatus]:
        return {entry.name: entry.status for entry in self.files}

    def reset(self):
        """Return to a fresh session (what signing out does)."""
        self.cancel()
        self.files = []
        self._reset_results()
        self.view = AppView.EXTRACTOR
