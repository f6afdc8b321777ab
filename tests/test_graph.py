"""
Tests for the LangGraph extraction workflow

Runs the full graph end to end with a scripted provider.
"""

import json
from pathlib import Path

import pytest

from bom_agent import (
    create_initial_state,
    get_workflow_visualization,
    run_extraction_workflow,
    stream_extraction_workflow,
)
from bom_agent.edges import mark_batch_failed, route_after_extraction, route_after_scan
from bom_agent.nodes import scan_files_node
from bom_tools.batch_extractor import GENERIC_FAILURE_MESSAGE, CancellationToken

from conftest import FakeProvider


class TestScanFiles:
    def test_mixed_files_and_folders(self, make_pdf, tmp_path):
        folder = tmp_path / "drawings"
        make_pdf("B.pdf", folder=folder)
        make_pdf("a.pdf", folder=folder)
        (folder / "notes.txt").write_text("not a pdf")
        single = make_pdf("single.pdf")

        update = scan_files_node(create_initial_state([str(folder), single], str(tmp_path / "out")))

        assert [Path(p).name for p in update["files_pending"]] == ["a.pdf", "B.pdf", "single.pdf"]
        assert update["last_error"] is None

    def test_duplicate_names_are_queued_once(self, make_pdf, tmp_path):
        first = make_pdf("same.pdf")
        second = make_pdf("same.pdf", folder=tmp_path / "copy")

        update = scan_files_node(create_initial_state([first, second], str(tmp_path)))
        assert update["files_pending"] == [first]

    def test_nothing_found(self, tmp_path):
        update = scan_files_node(create_initial_state([str(tmp_path)], str(tmp_path)))
        assert update["files_pending"] == []
        assert "No PDF files found" in update["last_error"]


class TestRouting:
    def test_route_after_scan(self):
        assert route_after_scan({"files_pending": ["a.pdf"]}) == "extract"
        assert route_after_scan({"files_pending": []}) == "summary"

    def test_partial_failure_assembles(self):
        state = {"strict": False, "file_results": [
            {"success": True, "cancelled": False},
            {"success": False, "cancelled": False},
        ]}
        assert route_after_extraction(state) == "assemble"

    def test_strict_failure_aborts(self):
        state = {"strict": True, "file_results": [
            {"success": True, "cancelled": False},
            {"success": False, "cancelled": False},
        ]}
        assert route_after_extraction(state) == "abort"

    def test_cancellation_aborts(self):
        state = {"strict": False, "file_results": [{"success": False, "cancelled": True}]}
        assert route_after_extraction(state) == "abort"

    def test_mark_batch_failed(self):
        update = mark_batch_failed({"file_results": [{"success": False, "cancelled": False}]})
        assert update["batch_failed"] is True
        assert update["records"] == []
        assert update["last_error"] == GENERIC_FAILURE_MESSAGE


class TestRunWorkflow:
    def test_end_to_end(self, make_pdf, tmp_path):
        paths = [make_pdf("a.pdf"), make_pdf("b.pdf")]
        output = tmp_path / "out"

        result = run_extraction_workflow(paths, str(output), FakeProvider(), export_formats=["csv", "json"])

        assert result["batch_failed"] is False
        assert result["files_completed"] == ["a.pdf", "b.pdf"]
        assert result["total_drawings"] == 2
        assert result["total_items"] == 4
        assert result["total_tokens"] == 200
        assert [r["source_file"] for r in result["records"]] == ["a.pdf", "b.pdf"]
        assert len(result["export_paths"]) == 2
        assert all(Path(p).exists() for p in result["export_paths"])

        summary = json.loads((output / "batch_summary.json").read_text())
        assert summary["statistics"]["bom_rows"] == 4
        assert summary["statistics"]["files_processed"] == 2
        assert summary["batch_failed"] is False

    def test_partial_success(self, make_pdf, tmp_path):
        paths = [make_pdf("good.pdf"), make_pdf("bad.pdf")]
        provider = FakeProvider(responses={"bad.pdf": "not json"})

        result = run_extraction_workflow(paths, str(tmp_path / "out"), provider, export_formats=["json"])

        assert result["batch_failed"] is False
        assert result["files_completed"] == ["good.pdf"]
        assert [f["filename"] for f in result["files_failed"]] == ["bad.pdf"]
        assert {r["source_file"] for r in result["records"]} == {"good.pdf"}
        assert result["export_paths"]

    def test_strict_mode_discards_all(self, make_pdf, tmp_path):
        paths = [make_pdf("good.pdf"), make_pdf("bad.pdf")]
        provider = FakeProvider(responses={"bad.pdf": RuntimeError("boom")})

        result = run_extraction_workflow(paths, str(tmp_path / "out"), provider, strict=True,
                                         enable_checkpoints=False)

        assert result["batch_failed"] is True
        assert result["records"] == []
        assert result["export_paths"] == []
        assert result["last_error"] == GENERIC_FAILURE_MESSAGE
        assert (tmp_path / "out" / "batch_summary.json").exists()

    def test_cancelled_run(self, make_pdf, tmp_path):
        token = CancellationToken()
        token.cancel()
        provider = FakeProvider()

        result = run_extraction_workflow([make_pdf("a.pdf")], str(tmp_path / "out"), provider, token=token)

        assert provider.calls == []
        assert result["batch_failed"] is True
        assert result["last_error"] == "Extraction cancelled."

    def test_no_pdfs(self, tmp_path):
        result = run_extraction_workflow([str(tmp_path)], str(tmp_path / "out"), FakeProvider())

        assert result["records"] is None
        assert "No PDF files found" in result["last_error"]
        assert result["master_summary"]["statistics"]["bom_rows"] == 0

    def test_review_threshold_flows_through(self, make_pdf, tmp_path):
        result = run_extraction_workflow([make_pdf("a.pdf")], str(tmp_path / "out"), FakeProvider(),
                                         export_formats=["json"], review_threshold=0.95)

        flags = [item["needs_review"] for item in result["records"][0]["bom"]]
        assert flags == [False, True]

    def test_file_size_limit_flows_through(self, make_pdf, tmp_path):
        provider = FakeProvider()

        result = run_extraction_workflow([make_pdf("a.pdf")], str(tmp_path / "out"), provider,
                                         max_file_size_mb=0.00001)

        assert provider.calls == []
        assert result["files_completed"] == []
        assert "request limit" in result["files_failed"][0]["errors"][0]


class TestStreamWorkflow:
    def test_node_order(self, make_pdf, tmp_path):
        nodes = [name for name, _ in stream_extraction_workflow(
            [make_pdf("a.pdf")], str(tmp_path / "out"), FakeProvider(), export_formats=["json"]
        )]
        assert nodes == ["scan_files", "extract_bom", "assemble_records", "generate_report", "batch_summary"]

    def test_strict_failure_path(self, make_pdf, tmp_path):
        provider = FakeProvider(default=RuntimeError("boom"))
        nodes = [name for name, _ in stream_extraction_workflow(
            [make_pdf("a.pdf")], str(tmp_path / "out"), provider, strict=True
        )]
        assert nodes == ["scan_files", "extract_bom", "mark_failed", "batch_summary"]


def test_visualization_mentions_every_node():
    text = get_workflow_visualization()
    for node in ["scan_files", "extract_bom", "assemble", "generate", "batch_summary"]:
        assert node in text
