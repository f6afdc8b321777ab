"""
Shared fixtures: a scripted extraction provider and throwaway PDF files.
"""

import json
import sys
import threading
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bom_tools.extraction_providers import ExtractionProvider


# A minimal body that passes the %PDF header check
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def make_response(drawing_no="KNT-1001-01", supplier="KENT", rows=None):
    """One-drawing model response."""
    if rows is None:
        rows = [
            {"ITEM": "1", "QTY": "43'-4\"", "SIZE_ND": "DN50",
             "DESCRIPTION": "PIPE, SMLS, A106-B", "Page": 1, "ocrConfidence": 0.97},
            {"ITEM": "2", "QTY": "4", "SIZE_ND": "DN50",
             "DESCRIPTION": "ELBOW 90 LR", "Page": 1, "ocrConfidence": 0.92},
        ]
    return {
        "drawings": [
            {"Supplier": supplier, "DrawingNo": drawing_no, "IssuedApprovedDate": "2024-03-01", "BOM": rows}
        ]
    }


class FakeProvider(ExtractionProvider):
    """
    Provider returning canned answers keyed by file name.

    A value may be a dict (sent back as JSON), a str (sent back verbatim) or
    an Exception instance (raised from the request).
    """

    PROVIDER_NAME = "fake"
    DEFAULT_MODEL = "fake-model"

    def __init__(self, responses=None, default=None, tokens=100, on_request=None):
        super().__init__(api_key="test-key")
        self.responses = responses or {}
        self.default = default if default is not None else make_response()
        self.tokens = tokens
        self.on_request = on_request
        self.calls = []
        self._lock = threading.Lock()

    def _request(self, pdf_bytes, filename, prompt):
        with self._lock:
            self.calls.append(filename)
        if self.on_request is not None:
            self.on_request(filename)

        answer = self.responses.get(filename, self.default)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, str):
            return answer, self.tokens
        return json.dumps(answer), self.tokens

    def test_connection(self):
        return True, "Connection successful!"


@pytest.fixture
def make_pdf(tmp_path):
    """Write a small PDF into tmp_path and return its path as a string."""
    def _make(name="drawing.pdf", folder=None, content=PDF_BYTES):
        directory = Path(folder) if folder else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(content)
        return str(path)
    return _make


@pytest.fixture
def fake_provider():
    return FakeProvider()
