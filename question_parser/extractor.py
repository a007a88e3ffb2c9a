"""
Question Extractor
==================
Orchestrates text extraction, segmentation and validation.

Usage:
    extractor = QuestionExtractor(config)
    questions = extractor.extract("path/to/paper.pdf")
    questions = await extractor.extract_async("path/to/paper.pdf")

Architecture:
    PDF → TextExtractor → page-delimited text → segment_questions
        (→ fallback_segment when nothing matched) → list[QuestionRecord]
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Optional

from . import __version__
from .models import (
    DocumentMetadata,
    ExtractionResult,
    ExtractionStrategy,
    QuestionRecord,
    ValidationReport,
)
from .segmenter import fallback_segment, segment_questions
from .text_extractor import TextExtractor
from .validator import ValidationEngine

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ExtractorConfig:
    """Configuration for the question extractor."""

    # Text extraction
    preserve_line_breaks: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Reporting
    include_validation: bool = True


class SegmentationOutcome(NamedTuple):
    strategy: ExtractionStrategy
    questions: list[QuestionRecord]


def segment_text(text: str) -> SegmentationOutcome:
    """
    Segment an extracted text blob.

    Exactly one strategy produces the result: the fallback only runs when
    pattern segmentation found nothing in the whole document.
    """
    questions = segment_questions(text)
    if questions:
        return SegmentationOutcome(ExtractionStrategy.PATTERN, questions)

    logger.warning("No question patterns found, using line-based parsing")
    return SegmentationOutcome(ExtractionStrategy.FALLBACK, fallback_segment(text))


class QuestionExtractor:
    """
    Main question extraction entry point.

    Every call owns its own accumulators; instances can be shared between
    threads and concurrent tasks.
    """

    def __init__(self, config: Optional[ExtractorConfig] = None):
        self.config = config or ExtractorConfig()
        self.text_extractor = TextExtractor(
            preserve_line_breaks=self.config.preserve_line_breaks,
        )
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("question_parser")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        if self.config.log_file:
            log_path = Path(self.config.log_file).resolve()
            already_attached = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path
                for h in package_logger.handlers
            )
            if not already_attached:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    # ─── Extraction ───────────────────────────────────────────────────────

    def extract(self, pdf_path: str) -> list[QuestionRecord]:
        """
        Extract the ordered question records of a local PDF.

        Raises:
            ResourceNotFoundError: If the PDF does not exist or is remote.
            PDFParseError: If PyMuPDF cannot read the PDF.
        """
        start_time = time.time()
        logger.info(f"Parsing questions directly from: {pdf_path}")

        text = self.text_extractor.extract(pdf_path)
        outcome = segment_text(text)

        self._log_outcome(outcome, time.time() - start_time)
        return outcome.questions

    async def extract_async(self, pdf_path: str) -> list[QuestionRecord]:
        """
        Non-blocking variant of :meth:`extract`.

        No timeout is applied; wrap in ``asyncio.wait_for`` for bounded latency.
        """
        start_time = time.time()
        logger.info(f"Parsing questions directly from: {pdf_path}")

        text = await self.text_extractor.extract_async(pdf_path)
        outcome = segment_text(text)

        self._log_outcome(outcome, time.time() - start_time)
        return outcome.questions

    def extract_result(self, pdf_path: str) -> ExtractionResult:
        """Extract questions plus document metadata and a validation report."""
        start_time = time.time()
        logger.info(f"Parsing questions directly from: {pdf_path}")

        text = self.text_extractor.extract(pdf_path)
        outcome = segment_text(text)
        self._log_outcome(outcome, time.time() - start_time)

        return self._build_result(pdf_path, outcome)

    async def extract_result_async(self, pdf_path: str) -> ExtractionResult:
        """Non-blocking variant of :meth:`extract_result`."""
        start_time = time.time()
        logger.info(f"Parsing questions directly from: {pdf_path}")

        text = await self.text_extractor.extract_async(pdf_path)
        outcome = segment_text(text)
        self._log_outcome(outcome, time.time() - start_time)

        # Metadata re-reads the file
        return await asyncio.to_thread(self._build_result, pdf_path, outcome)

    # ─── Result Assembly ──────────────────────────────────────────────────

    def _build_result(
        self, pdf_path: str, outcome: SegmentationOutcome
    ) -> ExtractionResult:
        if self.config.include_validation:
            validation = ValidationEngine().validate(
                outcome.questions, outcome.strategy
            )
        else:
            validation = ValidationReport(
                total_questions=len(outcome.questions),
                strategy=outcome.strategy,
            )

        return ExtractionResult(
            document=self._build_document_metadata(pdf_path),
            parser_version=__version__,
            strategy=outcome.strategy,
            questions=outcome.questions,
            validation=validation,
        )

    def _build_document_metadata(self, pdf_path: str) -> DocumentMetadata:
        """Build document metadata from file info."""
        return DocumentMetadata(
            source_pdf=os.path.basename(pdf_path),
            total_pages=self.text_extractor.get_page_count(pdf_path),
            file_hash=DocumentMetadata.compute_file_hash(pdf_path),
            file_size_bytes=os.path.getsize(pdf_path),
        )

    def _log_outcome(self, outcome: SegmentationOutcome, elapsed: float):
        logger.info(
            f"Extracted {len(outcome.questions)} questions directly from PDF "
            f"({outcome.strategy.value} strategy) in {elapsed:.2f}s"
        )


# ─── Module-level helpers ─────────────────────────────────────────────────────


def extract_questions(
    pdf_path: str, config: Optional[ExtractorConfig] = None
) -> list[QuestionRecord]:
    """Extract questions from a local PDF with a one-off extractor."""
    return QuestionExtractor(config).extract(pdf_path)


async def extract_questions_async(
    pdf_path: str, config: Optional[ExtractorConfig] = None
) -> list[QuestionRecord]:
    """Async counterpart of :func:`extract_questions`."""
    return await QuestionExtractor(config).extract_async(pdf_path)
