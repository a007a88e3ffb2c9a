"""
HTTP Microservice
=================
Flask-based HTTP API for the question extractor.

The assessment service calls this instead of shelling out, which gives:
    - Health checks
    - Synchronous extraction for small papers
    - Background jobs with status polling for large ones

Endpoints:
    POST   /api/extract         → Start an extraction job
    POST   /api/extract/sync    → Extract and return the result immediately
    GET    /api/status/<id>     → Get job status
    GET    /api/result/<id>     → Get job result
    DELETE /api/jobs/<id>       → Drop a finished job from memory
    GET    /api/health          → Health check
    GET    /api/info            → Extractor version info
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.utils import secure_filename

from . import __version__
from .exceptions import PDFParseError, ResourceNotFoundError
from .extractor import ExtractorConfig, QuestionExtractor

logger = logging.getLogger(__name__)

_pkg_dir = Path(__file__).parent
_DEFAULT_UPLOAD_DIR = str(_pkg_dir.parent.absolute() / "uploads")

app = Flask(__name__)
CORS(app)

# ─── In-memory job store ──────────────────────────────────────────────────────

jobs: dict[str, dict] = {}
jobs_lock = threading.Lock()


def get_upload_dir() -> str:
    """Upload directory, overridable with QUESTION_PARSER_UPLOAD_DIR."""
    return os.environ.get("QUESTION_PARSER_UPLOAD_DIR", _DEFAULT_UPLOAD_DIR)


def create_app(config: Optional[dict] = None) -> Flask:
    """Create and configure the Flask app."""
    if config:
        app.config.update(config)

    app.config.setdefault("UPLOAD_DIR", get_upload_dir())
    app.config.setdefault("MAX_CONTENT_LENGTH", 100 * 1024 * 1024)  # 100MB

    Path(app.config["UPLOAD_DIR"]).mkdir(parents=True, exist_ok=True)

    return app


# ─── Request Helpers ──────────────────────────────────────────────────────────


class BadRequest(Exception):
    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def _resolve_pdf_path(job_id: str) -> tuple[str, bool]:
    """
    Resolve the PDF to extract from the current request.
    Returns the path and whether it is an upload owned by this request.

    Accepts either:
        - A file upload (multipart/form-data, field ``file``)
        - A JSON body with ``file_path`` pointing to an existing file
    """
    if "file" in request.files:
        file = request.files["file"]
        if not file.filename:
            raise BadRequest("No file selected")

        upload_dir = Path(app.config.get("UPLOAD_DIR", get_upload_dir()))
        upload_dir.mkdir(parents=True, exist_ok=True)
        pdf_path = str(upload_dir / f"{job_id}_{secure_filename(file.filename)}")
        file.save(pdf_path)
        return pdf_path, True

    if request.is_json:
        data = request.get_json(silent=True) or {}
        pdf_path = data.get("file_path")
        if not pdf_path:
            raise BadRequest("file_path is required")
        if not isinstance(pdf_path, str):
            raise BadRequest("file_path must be a string")
        return pdf_path, False

    raise BadRequest("Provide a file upload or JSON with file_path")


def _discard_upload(pdf_path: str):
    """Remove an uploaded PDF once its extraction has finished."""
    if os.path.exists(pdf_path):
        os.unlink(pdf_path)


def _config_from_request() -> ExtractorConfig:
    if request.content_type and "multipart" in request.content_type:
        params = request.form
    else:
        params = request.get_json(silent=True) or {}

    line_breaks = str(params.get("line_breaks", "false")).lower() in ("1", "true", "yes")

    return ExtractorConfig(
        preserve_line_breaks=line_breaks,
        log_level=params.get("log_level", "INFO"),
    )


# ─── Health Check ─────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    with jobs_lock:
        active = sum(1 for j in jobs.values()
                     if j["status"] in ("queued", "processing"))
        total = len(jobs)
    return jsonify({
        "status": "healthy",
        "service": "question-parser",
        "version": __version__,
        "active_jobs": active,
        "total_jobs": total,
    })


@app.route("/api/info", methods=["GET"])
def info():
    """Extractor version and capability info."""
    return jsonify({
        "version": __version__,
        "engine": "PyMuPDF",
        "strategies": ["pattern", "fallback"],
        "header_styles": ["numeric", "q_prefix", "question_word"],
        "supported_formats": ["pdf"],
    })


# ─── Extraction Endpoints ─────────────────────────────────────────────────────


@app.route("/api/extract/sync", methods=["POST"])
def extract_sync():
    """
    Extract synchronously and return the result immediately.

    For small PDFs or when the caller wants to wait.
    """
    job_id = str(uuid.uuid4())
    try:
        pdf_path, uploaded = _resolve_pdf_path(job_id)
        config = _config_from_request()
    except BadRequest as e:
        return jsonify({"error": e.message}), e.status

    try:
        result = QuestionExtractor(config).extract_result(pdf_path)
    except ResourceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PDFParseError as e:
        logger.error(f"Extraction failed for {pdf_path}: {e}")
        return jsonify({"error": str(e)}), 500
    finally:
        if uploaded:
            _discard_upload(pdf_path)

    return jsonify(result.model_dump(mode="json")), 200


@app.route("/api/extract", methods=["POST"])
def extract_job():
    """
    Start an extraction job in a background thread.

    Returns a job ID for status polling.
    """
    job_id = str(uuid.uuid4())
    try:
        pdf_path, uploaded = _resolve_pdf_path(job_id)
        config = _config_from_request()
    except BadRequest as e:
        return jsonify({"error": e.message}), e.status

    if not os.path.isfile(pdf_path):
        return jsonify({"error": f"File not found: {pdf_path}"}), 404

    with jobs_lock:
        jobs[job_id] = {
            "id": job_id,
            "status": "queued",
            "pdf_path": pdf_path,
            "filename": os.path.basename(pdf_path),
            "created_at": time.time(),
            "started_at": None,
            "completed_at": None,
            "result": None,
            "error": None,
        }

    thread = threading.Thread(
        target=_run_extract_job,
        args=(job_id, pdf_path, config, uploaded),
        daemon=True,
    )
    thread.start()

    return jsonify({
        "job_id": job_id,
        "status": "queued",
        "message": "Extraction job started",
    }), 202


def _run_extract_job(
    job_id: str,
    pdf_path: str,
    config: ExtractorConfig,
    uploaded: bool = False,
):
    """Background worker body for one extraction job."""
    with jobs_lock:
        jobs[job_id]["status"] = "processing"
        jobs[job_id]["started_at"] = time.time()

    try:
        result = QuestionExtractor(config).extract_result(pdf_path)
    except Exception as e:
        # No caller to propagate to; the job record carries the failure
        logger.exception(f"Job {job_id} failed: {e}")
        with jobs_lock:
            jobs[job_id]["status"] = "failed"
            jobs[job_id]["error"] = str(e)
            jobs[job_id]["completed_at"] = time.time()
        return
    finally:
        if uploaded:
            _discard_upload(pdf_path)

    with jobs_lock:
        jobs[job_id]["status"] = "completed"
        jobs[job_id]["result"] = result.model_dump(mode="json")
        jobs[job_id]["completed_at"] = time.time()

    logger.info(f"Job {job_id} completed: {result.question_count} questions")


# ─── Job Status ───────────────────────────────────────────────────────────────


@app.route("/api/status/<job_id>", methods=["GET"])
def get_status(job_id: str):
    """Get the status of an extraction job."""
    with jobs_lock:
        job = jobs.get(job_id)
        if job:
            job = dict(job)

    if not job:
        return jsonify({"error": "Job not found"}), 404

    duration = None
    if job["started_at"] and job["completed_at"]:
        duration = round(job["completed_at"] - job["started_at"], 2)

    questions_count = None
    if job["result"]:
        questions_count = job["result"].get("question_count")

    return jsonify({
        "job_id": job_id,
        "status": job["status"],
        "filename": job["filename"],
        "duration": duration,
        "questions_count": questions_count,
        "error": job["error"],
    })


@app.route("/api/result/<job_id>", methods=["GET"])
def get_result(job_id: str):
    """Get the result of a completed extraction job."""
    with jobs_lock:
        job = jobs.get(job_id)
        if job:
            job = dict(job)

    if not job:
        return jsonify({"error": "Job not found"}), 404

    if job["status"] == "failed":
        return jsonify({"error": job["error"], "status": "failed"}), 500

    if job["status"] != "completed":
        return jsonify({
            "error": "Job not completed yet",
            "status": job["status"],
        }), 409

    return jsonify(job["result"]), 200


@app.route("/api/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id: str):
    """Drop a finished job and its result from the in-memory store."""
    with jobs_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        if job["status"] in ("queued", "processing"):
            return jsonify({
                "error": "Job still running",
                "status": job["status"],
            }), 409
        del jobs[job_id]

    return jsonify({"success": True, "message": f"Job {job_id} removed"})


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
