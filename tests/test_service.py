"""
Integration Tests
=================
Text extraction, the extractor facade, CLI and HTTP service, run against
small PDFs rendered with PyMuPDF.
"""

from __future__ import annotations

import asyncio
import io
import json
import time
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from question_parser.cli import cli
from question_parser.exceptions import (
    ExtractionError,
    PDFParseError,
    ResourceNotFoundError,
)
from question_parser.extractor import (
    ExtractorConfig,
    QuestionExtractor,
    extract_questions,
    extract_questions_async,
)
from question_parser.models import ExtractionStrategy
from question_parser.server import create_app, jobs
from question_parser.text_extractor import TextExtractor


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT EXTRACTION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestTextExtractor:
    """Test PDF → text conversion."""

    def test_page_markers(self, exam_pdf):
        text = TextExtractor().extract(exam_pdf)

        assert text.startswith("===PAGE_1===\n")
        assert "\n===PAGE_2===\n" in text
        assert text.index("boiling point") < text.index("===PAGE_2===")
        assert text.index("largest planet") > text.index("===PAGE_2===")

    def test_default_mode_joins_lines_of_a_page(self, make_pdf):
        pdf = make_pdf([["First line of text", "Second line of text"]])
        text = TextExtractor().extract(pdf)
        page_text = text.split("===PAGE_1===\n", 1)[1]
        assert "\n" not in page_text

    def test_preserve_line_breaks(self, make_pdf):
        pdf = make_pdf([["First line of text", "Second line of text"]])
        text = TextExtractor(preserve_line_breaks=True).extract(pdf)
        page_text = text.split("===PAGE_1===\n", 1)[1]
        assert len(page_text.splitlines()) == 2

    def test_page_count(self, exam_pdf):
        assert TextExtractor().get_page_count(exam_pdf) == 2

    def test_missing_file(self, tmp_path):
        missing = str(tmp_path / "missing.pdf")
        with pytest.raises(ResourceNotFoundError) as exc_info:
            TextExtractor().extract(missing)
        assert isinstance(exc_info.value, FileNotFoundError)
        assert missing in str(exc_info.value)

    def test_directory_is_not_a_pdf(self, tmp_path):
        with pytest.raises(ResourceNotFoundError):
            TextExtractor().extract(str(tmp_path))

    @pytest.mark.parametrize("url", [
        "http://example.com/paper.pdf",
        "https://example.com/paper.pdf",
    ])
    def test_remote_urls_rejected(self, url):
        with patch("question_parser.text_extractor.fitz.open") as fitz_open:
            with pytest.raises(ResourceNotFoundError):
                TextExtractor().extract(url)
            fitz_open.assert_not_called()

    def test_corrupt_pdf(self, broken_pdf):
        with pytest.raises(PDFParseError) as exc_info:
            TextExtractor().extract(broken_pdf)
        assert isinstance(exc_info.value, ExtractionError)
        assert isinstance(exc_info.value, RuntimeError)

    def test_library_error_is_chained(self, exam_pdf):
        with patch(
            "question_parser.text_extractor.fitz.open",
            side_effect=RuntimeError("broken xref table"),
        ):
            with pytest.raises(PDFParseError) as exc_info:
                TextExtractor().extract(exam_pdf)
        assert "broken xref table" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ═══════════════════════════════════════════════════════════════════════════════
# EXTRACTOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestQuestionExtractor:
    """Test the extraction facade end to end."""

    def test_one_question_per_page(self, exam_pdf):
        questions = QuestionExtractor().extract(exam_pdf)

        assert [q.question_number for q in questions] == [1, 2]
        assert [q.page_number for q in questions] == [1, 2]
        assert questions[0].question_text == (
            "What is the boiling point of water at sea level?"
        )
        assert questions[0].max_marks == 2
        assert questions[1].max_marks == 3
        assert "[3 marks]" not in questions[1].question_text

    def test_several_questions_per_page_need_line_breaks(self, make_pdf):
        pdf = make_pdf([[
            "1. Define the term acceleration.",
            "2. State the law of conservation of energy.",
        ]])

        joined = QuestionExtractor().extract(pdf)
        split = QuestionExtractor(ExtractorConfig(preserve_line_breaks=True)).extract(pdf)

        assert len(joined) == 1
        assert "conservation of energy" in joined[0].question_text
        assert [q.question_number for q in split] == [1, 2]

    def test_fallback_for_unnumbered_paper(self, make_pdf):
        pdf = make_pdf([[
            "Describe the main causes of the First World War",
            "Explain how the League of Nations was organised",
        ]])
        result = QuestionExtractor(ExtractorConfig(preserve_line_breaks=True)).extract_result(pdf)

        assert result.strategy == ExtractionStrategy.FALLBACK
        assert [q.question_number for q in result.questions] == [1, 2]
        assert all(q.max_marks == 2 for q in result.questions)

    def test_blank_pdf_is_a_valid_empty_result(self, make_pdf):
        pdf = make_pdf([[]])
        assert QuestionExtractor().extract(pdf) == []

    def test_extract_result_metadata(self, exam_pdf):
        result = QuestionExtractor().extract_result(exam_pdf)

        assert result.strategy == ExtractionStrategy.PATTERN
        assert result.document.source_pdf == "paper.pdf"
        assert result.document.total_pages == 2
        assert len(result.document.file_hash) == 64
        assert result.document.file_size_bytes == Path(exam_pdf).stat().st_size
        assert result.validation.total_questions == 2
        assert result.validation.sequence_complete is True

    def test_validation_can_be_skipped(self, exam_pdf):
        config = ExtractorConfig(include_validation=False)
        result = QuestionExtractor(config).extract_result(exam_pdf)
        assert result.validation.total_questions == 2
        assert result.validation.pages_with_questions == []

    def test_errors_propagate(self, tmp_path, broken_pdf):
        extractor = QuestionExtractor()
        with pytest.raises(ResourceNotFoundError):
            extractor.extract(str(tmp_path / "nope.pdf"))
        with pytest.raises(PDFParseError):
            extractor.extract(broken_pdf)

    def test_repeatable(self, exam_pdf):
        extractor = QuestionExtractor()
        assert extractor.extract(exam_pdf) == extractor.extract(exam_pdf)

    def test_module_helpers(self, exam_pdf):
        sync_questions = extract_questions(exam_pdf)
        async_questions = asyncio.run(extract_questions_async(exam_pdf))
        assert sync_questions == async_questions

    def test_log_file(self, exam_pdf, tmp_path):
        log_file = tmp_path / "logs" / "extract.log"
        QuestionExtractor(ExtractorConfig(log_file=str(log_file))).extract(exam_pdf)
        assert "Extracted 2 questions" in log_file.read_text(encoding="utf-8")


class TestAsyncExtraction:
    """Test the non-blocking entry points."""

    def test_extract_async_matches_sync(self, exam_pdf):
        extractor = QuestionExtractor()
        assert asyncio.run(extractor.extract_async(exam_pdf)) == extractor.extract(exam_pdf)

    def test_concurrent_calls_are_independent(self, make_pdf):
        first = make_pdf([["1. First paper asks about gravity."]], name="a.pdf")
        second = make_pdf([["5. Second paper starts at five instead."]], name="b.pdf")
        extractor = QuestionExtractor()

        async def run_all():
            return await asyncio.gather(
                extractor.extract_async(first),
                extractor.extract_async(second),
                extractor.extract_async(first),
            )

        a, b, a_again = asyncio.run(run_all())

        assert [q.question_number for q in a] == [1]
        assert [q.question_number for q in b] == [5]
        assert a == a_again

    def test_async_errors_propagate(self, broken_pdf):
        with pytest.raises(PDFParseError):
            asyncio.run(QuestionExtractor().extract_async(broken_pdf))

    def test_extract_result_async(self, exam_pdf):
        result = asyncio.run(QuestionExtractor().extract_result_async(exam_pdf))
        assert result.question_count == 2
        assert result.document.total_pages == 2


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCli:
    """Test the click command line."""

    def test_extract_json_output(self, exam_pdf):
        result = CliRunner().invoke(cli, ["extract", exam_pdf, "--json-output"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["strategy"] == "pattern"
        assert [q["question_number"] for q in data["questions"]] == [1, 2]

    def test_extract_table_and_saved_json(self, exam_pdf, tmp_path):
        out_file = tmp_path / "out" / "paper.json"
        result = CliRunner().invoke(
            cli, ["extract", exam_pdf, "--output", str(out_file), "--log-level", "ERROR"]
        )

        assert result.exit_code == 0, result.output
        assert "Validation Report" in result.output
        saved = json.loads(out_file.read_text(encoding="utf-8"))
        assert saved["question_count"] == 2

    def test_extract_corrupt_pdf(self, broken_pdf):
        result = CliRunner().invoke(cli, ["extract", broken_pdf, "--log-level", "ERROR"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_extract_missing_file(self, tmp_path):
        result = CliRunner().invoke(cli, ["extract", str(tmp_path / "nope.pdf")])
        assert result.exit_code == 2

    def test_validate_saved_result(self, exam_pdf, tmp_path):
        out_file = tmp_path / "paper.json"
        runner = CliRunner()
        runner.invoke(cli, ["extract", exam_pdf, "-o", str(out_file), "--json-output"])

        result = runner.invoke(cli, ["validate", str(out_file)])

        assert result.exit_code == 0, result.output
        assert "Validation Report" in result.output

    def test_validate_rejects_foreign_json(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"hello": "world"}), encoding="utf-8")
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 1

    def test_batch(self, make_pdf, tmp_path):
        make_pdf([["1. What is the boiling point of water?"]], name="one.pdf")
        make_pdf([["1. Name the largest planet we know."]], name="two.pdf")
        (tmp_path / "bad.pdf").write_bytes(b"garbage bytes")
        out_dir = tmp_path / "results"

        result = CliRunner().invoke(
            cli, ["batch", str(tmp_path), "-o", str(out_dir), "-j", "2"]
        )

        assert result.exit_code == 0, result.output
        assert "1 failures" in result.output
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "one_questions.json",
            "two_questions.json",
        ]

    def test_batch_empty_directory(self, tmp_path):
        result = CliRunner().invoke(cli, ["batch", str(tmp_path)])
        assert result.exit_code == 0
        assert "No PDF files found" in result.output

    def test_info(self, exam_pdf):
        result = CliRunner().invoke(cli, ["info", exam_pdf])
        assert result.exit_code == 0, result.output
        assert "PDF Information" in result.output

    def test_info_corrupt_pdf(self, broken_pdf):
        result = CliRunner().invoke(cli, ["info", broken_pdf])
        assert result.exit_code == 1
        assert "Failed to parse PDF" in result.output

    def test_info_holds_pdf_lock(self, exam_pdf):
        with patch("question_parser.text_extractor._fitz_lock") as lock:
            result = CliRunner().invoke(cli, ["info", exam_pdf])

        assert result.exit_code == 0, result.output
        lock.__enter__.assert_called_once()
        lock.__exit__.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP SERVICE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def client(tmp_path):
    app = create_app({"TESTING": True, "UPLOAD_DIR": str(tmp_path / "uploads")})
    with app.test_client() as client:
        yield client
    jobs.clear()


def _wait_for_job(client, job_id: str, timeout: float = 10) -> dict:
    status = None
    deadline = time.time() + timeout
    while time.time() < deadline:
        status = client.get(f"/api/status/{job_id}").get_json()
        if status["status"] in ("completed", "failed"):
            break
        time.sleep(0.05)
    return status


class TestServer:
    """Test the Flask microservice."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_info(self, client):
        data = client.get("/api/info").get_json()
        assert data["engine"] == "PyMuPDF"
        assert data["strategies"] == ["pattern", "fallback"]

    def test_sync_extract_by_path(self, client, exam_pdf):
        response = client.post("/api/extract/sync", json={"file_path": exam_pdf})

        assert response.status_code == 200
        data = response.get_json()
        assert data["question_count"] == 2
        assert data["questions"][1]["max_marks"] == 3

    def test_sync_extract_upload(self, client, exam_pdf):
        with open(exam_pdf, "rb") as f:
            payload = {"file": (io.BytesIO(f.read()), "paper.pdf")}

        response = client.post(
            "/api/extract/sync",
            data=payload,
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        assert response.get_json()["question_count"] == 2

    def test_sync_extract_upload_is_removed(self, client, exam_pdf, tmp_path):
        with open(exam_pdf, "rb") as f:
            content = f.read()

        for _ in range(3):
            response = client.post(
                "/api/extract/sync",
                data={"file": (io.BytesIO(content), "paper.pdf")},
                content_type="multipart/form-data",
            )
            assert response.status_code == 200

        assert list((tmp_path / "uploads").iterdir()) == []

    def test_sync_extract_failed_upload_is_removed(self, client, tmp_path):
        response = client.post(
            "/api/extract/sync",
            data={"file": (io.BytesIO(b"garbage bytes"), "paper.pdf")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 500
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_sync_extract_path_file_is_kept(self, client, exam_pdf):
        client.post("/api/extract/sync", json={"file_path": exam_pdf})
        assert Path(exam_pdf).is_file()

    def test_sync_extract_missing_file(self, client, tmp_path):
        response = client.post(
            "/api/extract/sync", json={"file_path": str(tmp_path / "nope.pdf")}
        )
        assert response.status_code == 404

    def test_sync_extract_corrupt_pdf(self, client, broken_pdf):
        response = client.post("/api/extract/sync", json={"file_path": broken_pdf})
        assert response.status_code == 500
        assert "Failed to parse PDF" in response.get_json()["error"]

    def test_bad_requests(self, client):
        assert client.post("/api/extract/sync").status_code == 400
        assert client.post("/api/extract/sync", json={}).status_code == 400

    def test_non_string_file_path(self, client):
        response = client.post("/api/extract/sync", json={"file_path": 123})
        assert response.status_code == 400
        assert response.get_json()["error"] == "file_path must be a string"

        response = client.post("/api/extract", json={"file_path": ["a.pdf"]})
        assert response.status_code == 400

    def test_background_job(self, client, exam_pdf):
        response = client.post("/api/extract", json={"file_path": exam_pdf})
        assert response.status_code == 202
        job_id = response.get_json()["job_id"]

        status = _wait_for_job(client, job_id)

        assert status["status"] == "completed"
        assert status["questions_count"] == 2

        result = client.get(f"/api/result/{job_id}")
        assert result.status_code == 200
        assert result.get_json()["strategy"] == "pattern"

    def test_background_upload_removed_and_job_deleted(self, client, exam_pdf, tmp_path):
        with open(exam_pdf, "rb") as f:
            payload = {"file": (io.BytesIO(f.read()), "paper.pdf")}

        response = client.post(
            "/api/extract", data=payload, content_type="multipart/form-data"
        )
        assert response.status_code == 202
        job_id = response.get_json()["job_id"]

        _wait_for_job(client, job_id)

        assert list((tmp_path / "uploads").iterdir()) == []

        response = client.delete(f"/api/jobs/{job_id}")
        assert response.status_code == 200
        assert job_id not in jobs
        assert client.get(f"/api/status/{job_id}").status_code == 404
        assert client.delete(f"/api/jobs/{job_id}").status_code == 404

    def test_delete_running_job_refused(self, client):
        jobs["running"] = {"id": "running", "status": "processing"}

        response = client.delete("/api/jobs/running")

        assert response.status_code == 409
        assert "running" in jobs

    def test_background_job_missing_file(self, client, tmp_path):
        response = client.post(
            "/api/extract", json={"file_path": str(tmp_path / "nope.pdf")}
        )
        assert response.status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/api/status/does-not-exist").status_code == 404
        assert client.get("/api/result/does-not-exist").status_code == 404


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
