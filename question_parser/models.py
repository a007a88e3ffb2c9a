"""
Data Models
===========
Pydantic models for extracted exam questions.
All models are serializable to JSON for the assessment service.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ─── Enums ────────────────────────────────────────────────────────────────────


class ExtractionStrategy(str, Enum):
    """Which segmenter produced the final record sequence."""
    PATTERN = "pattern"
    FALLBACK = "fallback"


# ─── Question Models ──────────────────────────────────────────────────────────


class BoundingBox(BaseModel):
    """
    Estimated question region on the rendered page.
    Derived from a fixed layout assumption, never from glyph positions.
    """
    model_config = ConfigDict(frozen=True)

    x1: int
    y1: int
    x2: int
    y2: int

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x1, self.y1, self.x2, self.y2)


class QuestionRecord(BaseModel):
    """A single detected exam question."""
    model_config = ConfigDict(frozen=True)

    question_number: int = Field(ge=0)
    question_text: str = Field(max_length=500)
    max_marks: int = Field(default=2, ge=0)
    # Taken from the in-band page marker, which the PDF text itself can forge
    page_number: int = Field(ge=0)
    bbox: BoundingBox


# ─── Validation / Result Models ──────────────────────────────────────────────


class ValidationReport(BaseModel):
    """Post-extraction validation report."""
    total_questions: int = 0
    strategy: Optional[ExtractionStrategy] = None
    first_question_number: Optional[int] = None
    missing_question_numbers: list[int] = Field(default_factory=list)
    duplicate_question_numbers: list[int] = Field(default_factory=list)
    overlapping_questions: list[int] = Field(default_factory=list)
    pages_with_questions: list[int] = Field(default_factory=list)
    questions_with_default_marks: list[int] = Field(default_factory=list)
    truncated_questions: list[int] = Field(default_factory=list)
    total_marks: int = 0

    @computed_field
    @property
    def sequence_complete(self) -> bool:
        return (
            self.first_question_number == 1
            and not self.missing_question_numbers
            and not self.duplicate_question_numbers
        )


class DocumentMetadata(BaseModel):
    """Metadata about the source PDF."""
    source_pdf: str = ""
    total_pages: int = 0
    file_hash: str = ""
    file_size_bytes: int = 0

    @staticmethod
    def compute_file_hash(filepath: str) -> str:
        """Compute SHA-256 hash of source file."""
        sha256 = hashlib.sha256()
        with open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
        return sha256.hexdigest()


class ExtractionResult(BaseModel):
    """
    Complete output of one extraction run.
    This is the top-level JSON structure returned by the CLI and HTTP API.
    """
    document: DocumentMetadata
    parser_version: str = "1.0.0"
    extraction_timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    strategy: ExtractionStrategy
    questions: list[QuestionRecord] = Field(default_factory=list)
    validation: ValidationReport = Field(default_factory=ValidationReport)

    @computed_field
    @property
    def question_count(self) -> int:
        return len(self.questions)
