"""
Tests for Batch Extraction

Tests concurrency ordering, per-file failure handling, strict mode and
cancellation, all against a scripted provider.
"""

import json
from types import SimpleNamespace

import pytest

from bom_tools.batch_extractor import (
    GENERIC_FAILURE_MESSAGE,
    BatchExtractor,
    CancellationToken,
    ExtractionCancelledError,
    ExtractionFailedError,
    extract_bom_records,
)
from bom_tools.extraction_providers import (
    BOM_RESPONSE_SCHEMA,
    ExtractionResult,
    GeminiProvider,
    OpenAIProvider,
)

from conftest import FakeProvider, make_response


class TestProviderParsing:
    """extract_from_pdf turns raw model text into an ExtractionResult."""

    def test_json_object(self):
        result = FakeProvider().extract_from_pdf(b"%PDF", "a.pdf")
        assert result.success
        assert result.tokens_used == 100
        assert len(result.drawings) == 1

    def test_fenced_json(self):
        provider = FakeProvider(default='```json\n{"drawings": []}\n```')
        result = provider.extract_from_pdf(b"%PDF", "a.pdf")
        assert result.success
        assert result.drawings == []

    def test_bare_list_is_drawings(self):
        provider = FakeProvider(default='[{"DrawingNo": "D-1", "BOM": []}]')
        result = provider.extract_from_pdf(b"%PDF", "a.pdf")
        assert result.success
        assert result.drawings[0]["DrawingNo"] == "D-1"

    def test_invalid_json_is_a_failure(self):
        result = FakeProvider(default="I could not find a table").extract_from_pdf(b"%PDF", "a.pdf")
        assert not result.success
        assert result.error == "Model response was not valid JSON"
        assert result.raw_response == "I could not find a table"

    def test_request_error_is_returned_not_raised(self):
        provider = FakeProvider(default=RuntimeError("boom"))
        result = provider.extract_from_pdf(b"%PDF", "a.pdf")
        assert not result.success
        assert result.error == "boom"
        assert provider.calls == ["a.pdf"]

    def test_drawings_property_ignores_bad_shape(self):
        assert ExtractionResult(success=True, data={"drawings": "x"}).drawings == []


class TestProviderRequests:
    """Real providers send the response schema with each request."""

    def test_gemini_sends_response_schema(self, monkeypatch):
        import google.generativeai as genai

        captured = {}

        class RecordingModel:
            def __init__(self, model_name):
                captured["model"] = model_name

            def generate_content(self, contents, generation_config=None, request_options=None):
                captured["generation_config"] = generation_config
                return SimpleNamespace(
                    text=json.dumps(make_response()),
                    usage_metadata=SimpleNamespace(total_token_count=42),
                )

        monkeypatch.setattr(genai, "configure", lambda **kwargs: None)
        monkeypatch.setattr(genai, "GenerativeModel", RecordingModel)

        result = GeminiProvider(api_key="test-key").extract_from_pdf(b"%PDF", "a.pdf")

        assert result.success
        assert result.tokens_used == 42
        config = captured["generation_config"]
        assert config.response_mime_type == "application/json"
        assert config.response_schema is BOM_RESPONSE_SCHEMA

    def test_openai_sends_response_schema(self, monkeypatch):
        import openai

        captured = {}

        def create(**kwargs):
            captured.update(kwargs)
            message = SimpleNamespace(content=json.dumps(make_response()))
            return SimpleNamespace(
                choices=[SimpleNamespace(message=message)],
                usage=SimpleNamespace(total_tokens=7),
            )

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        monkeypatch.setattr(openai, "OpenAI", lambda **kwargs: client)

        result = OpenAIProvider(api_key="test-key").extract_from_pdf(b"%PDF", "a.pdf")

        assert result.success
        response_format = captured["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["schema"] is BOM_RESPONSE_SCHEMA


class TestExtractFile:
    """Single-file extraction never raises."""

    def test_success(self, make_pdf):
        path = make_pdf("iso.pdf")
        result = BatchExtractor(FakeProvider()).extract_file(path)

        assert result.success
        assert result.filename == "iso.pdf"
        assert result.drawings_found == 1
        assert result.items_found == 2
        assert result.records[0].bom[0].id == "iso.pdf-drawing-0-item-0"
        assert result.tokens_used == 100

    def test_without_assembly_keeps_raw_response(self, make_pdf):
        path = make_pdf("iso.pdf")
        result = BatchExtractor(FakeProvider(), assemble=False).extract_file(path)

        assert result.success
        assert result.records == []
        assert result.response == make_response()
        assert result.items_found == 2

    def test_invalid_pdf_is_not_sent(self, make_pdf):
        provider = FakeProvider()
        path = make_pdf("fake.pdf", content=b"just text")
        result = BatchExtractor(provider).extract_file(path)

        assert not result.success
        assert "PDF header" in result.error
        assert provider.calls == []

    def test_missing_file(self, tmp_path):
        result = BatchExtractor(FakeProvider()).extract_file(str(tmp_path / "gone.pdf"))
        assert not result.success
        assert "not found" in result.error

    def test_oversized_file(self, make_pdf):
        path = make_pdf("big.pdf")
        result = BatchExtractor(FakeProvider(), max_file_size_mb=0).extract_file(path)
        assert not result.success
        assert "request limit" in result.error

    def test_provider_failure(self, make_pdf):
        path = make_pdf("bad.pdf")
        result = BatchExtractor(FakeProvider(default="garbage")).extract_file(path)
        assert not result.success
        assert result.records == []
        assert result.to_dict()["errors"] == ["Model response was not valid JSON"]


class TestExtractBatch:
    """Fan-out on a thread pool, fan-in in input order."""

    def test_results_follow_input_order(self, make_pdf):
        names = [f"file{i}.pdf" for i in range(6)]
        paths = [make_pdf(name) for name in names]
        responses = {name: make_response(drawing_no=name) for name in names}

        batch = BatchExtractor(FakeProvider(responses=responses), max_workers=3).extract_batch(paths)

        assert [r.filename for r in batch.files] == names
        assert [r.drawing_no for r in batch.records] == names
        assert batch.total_tokens == 600

    def test_partial_failure_keeps_other_files(self, make_pdf):
        good = make_pdf("good.pdf")
        bad = make_pdf("bad.pdf")
        provider = FakeProvider(responses={"bad.pdf": RuntimeError("timeout")})

        batch = BatchExtractor(provider).extract_batch([good, bad])

        assert [r.filename for r in batch.succeeded] == ["good.pdf"]
        assert [r.filename for r in batch.failed] == ["bad.pdf"]
        assert {r.source_file for r in batch.records} == {"good.pdf"}

    def test_empty_batch(self):
        batch = BatchExtractor(FakeProvider()).extract_batch([])
        assert batch.files == []
        assert batch.records == []

    def test_progress_callback(self, make_pdf):
        paths = [make_pdf("a.pdf"), make_pdf("b.pdf")]
        seen = []
        BatchExtractor(FakeProvider()).extract_batch(paths, progress_callback=lambda r: seen.append(r.filename))
        assert sorted(seen) == ["a.pdf", "b.pdf"]

    def test_failing_callback_does_not_break_batch(self, make_pdf):
        def explode(result):
            raise RuntimeError("ui gone")

        batch = BatchExtractor(FakeProvider()).extract_batch([make_pdf("a.pdf")], progress_callback=explode)
        assert batch.succeeded


class TestCancellation:
    """Files not yet started when the token is set are skipped."""

    def test_cancelled_before_start(self, make_pdf):
        provider = FakeProvider()
        token = CancellationToken()
        token.cancel()

        batch = BatchExtractor(provider).extract_batch([make_pdf("a.pdf"), make_pdf("b.pdf")], token)

        assert provider.calls == []
        assert len(batch.cancelled) == 2
        assert batch.failed == []
        with pytest.raises(ExtractionCancelledError):
            batch.raise_for_failures()

    def test_cancel_mid_batch(self, make_pdf):
        token = CancellationToken()
        provider = FakeProvider(on_request=lambda filename: token.cancel())
        paths = [make_pdf(f"f{i}.pdf") for i in range(3)]

        batch = BatchExtractor(provider, max_workers=1).extract_batch(paths, token)

        # The in-flight request completes; the rest never start
        assert provider.calls == ["f0.pdf"]
        assert [r.filename for r in batch.succeeded] == ["f0.pdf"]
        assert [r.filename for r in batch.cancelled] == ["f1.pdf", "f2.pdf"]

    def test_token_flag(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled


class TestExtractBomRecords:
    """Strict (all-or-nothing) and partial batch policies."""

    def test_strict_fails_whole_batch(self, make_pdf):
        provider = FakeProvider(responses={"bad.pdf": RuntimeError("boom")})

        with pytest.raises(ExtractionFailedError) as exc_info:
            extract_bom_records([make_pdf("good.pdf"), make_pdf("bad.pdf")], provider, strict=True)

        assert str(exc_info.value) == GENERIC_FAILURE_MESSAGE
        assert [f.filename for f in exc_info.value.failures] == ["bad.pdf"]

    def test_partial_returns_successful_records(self, make_pdf):
        provider = FakeProvider(responses={"bad.pdf": RuntimeError("boom")})

        records = extract_bom_records([make_pdf("good.pdf"), make_pdf("bad.pdf")], provider, strict=False)

        assert [r.source_file for r in records] == ["good.pdf"]

    def test_cancellation_raises_in_partial_mode(self, make_pdf):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ExtractionCancelledError):
            extract_bom_records([make_pdf("a.pdf")], FakeProvider(), strict=False, token=token)

    def test_records_concatenate_across_files(self, make_pdf):
        paths = [make_pdf("a.pdf"), make_pdf("b.pdf")]
        records = extract_bom_records(paths, FakeProvider())
        assert [r.source_file for r in records] == ["a.pdf", "b.pdf"]
        assert sum(len(r.bom) for r in records) == 4
