"""
Question Segmenter
==================
Turns the page-delimited text blob into Question Records.

Primary strategy: three header patterns (``1.``, ``Q1:``, ``Question 1``)
applied independently per page, their matches concatenated in pattern order.
A candidate survives only if its number continues the sequence of the last
accepted question, which keeps page numbers and stray numerals out.

Fallback strategy: when no candidate survives anywhere in the document,
every sufficiently long line becomes a question.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from .models import BoundingBox, QuestionRecord

logger = logging.getLogger(__name__)

# ─── Limits ───────────────────────────────────────────────────────────────────

MAX_QUESTION_LENGTH = 500
MIN_QUESTION_LENGTH = 10
DEFAULT_MAX_MARKS = 2

FALLBACK_MIN_LINE_LENGTH = 20
FALLBACK_MAX_QUESTIONS = 50
FALLBACK_LINES_PER_PAGE = 10

# Estimated layout: ~20 questions per page, 120px apart, full-width box
QUESTIONS_PER_PAGE = 20
BBOX_LEFT = 100
BBOX_RIGHT = 2700
BBOX_TOP = 200
BBOX_ROW_HEIGHT = 120
BBOX_HEIGHT = 100

# ─── Header Patterns ──────────────────────────────────────────────────────────

PAGE_SPLIT_PATTERN = re.compile(r"===PAGE_(\d+)===")


class HeaderStyle(str, Enum):
    """House styles for numbering questions on an exam paper."""
    NUMERIC = "numeric"
    Q_PREFIX = "q_prefix"
    QUESTION_WORD = "question_word"


# Body runs until the next header of the same style or the end of the page.
HEADER_PATTERNS: tuple[tuple[HeaderStyle, re.Pattern], ...] = (
    # "1.", "12 ."
    (
        HeaderStyle.NUMERIC,
        re.compile(
            r"(?:^|\n)\s*(\d+)\s*\.\s*([^\n]+(?:\n(?!\s*\d+\s*\.)[^\n]+)*)"
        ),
    ),
    # "Q1", "Q.1", "q 3:"
    (
        HeaderStyle.Q_PREFIX,
        re.compile(
            r"(?:^|\n)\s*Q\s*\.?\s*(\d+)\s*:?\s*"
            r"([^\n]+(?:\n(?!\s*Q\s*\.?\s*\d+)[^\n]+)*)",
            re.IGNORECASE,
        ),
    ),
    # "Question 1", "QUESTION 4:"
    (
        HeaderStyle.QUESTION_WORD,
        re.compile(
            r"(?:^|\n)\s*Question\s+(\d+)\s*:?\s*"
            r"([^\n]+(?:\n(?!\s*Question\s+\d+)[^\n]+)*)",
            re.IGNORECASE,
        ),
    ),
)

# "[5 marks]", "(3M)", "[10 pts]"
MARKS_PATTERN = re.compile(r"[\[(](\d+)\s*(?:marks?|M|pts?)[\])]", re.IGNORECASE)

WHITESPACE_PATTERN = re.compile(r"\s+")
SPACE_BEFORE_PUNCTUATION_PATTERN = re.compile(r"\s+([.,!?])")


@dataclass(frozen=True)
class HeaderMatch:
    """A raw header + body candidate before any filtering."""
    style: HeaderStyle
    number: int
    body: str
    page_number: int


# ─── Helpers ──────────────────────────────────────────────────────────────────


def split_pages(text: str) -> list[tuple[int, str]]:
    """Recover ``(page_number, page_text)`` pairs from the blob."""
    parts = PAGE_SPLIT_PATTERN.split(text)
    # parts = [preamble, num, text, num, text, ...]
    return [
        (int(parts[i]), parts[i + 1] if i + 1 < len(parts) else "")
        for i in range(1, len(parts), 2)
    ]


def find_headers(page_number: int, page_text: str) -> Iterator[HeaderMatch]:
    """Yield every header match on a page, pattern by pattern."""
    for style, pattern in HEADER_PATTERNS:
        for match in pattern.finditer(page_text):
            yield HeaderMatch(
                style=style,
                number=int(match.group(1)),
                body=match.group(2).strip(),
                page_number=page_number,
            )


def extract_marks(body: str) -> tuple[int, str]:
    """
    Pull a marks annotation out of a question body.

    Returns:
        ``(max_marks, body_without_annotation)``; marks default to 2.
    """
    marks_match = MARKS_PATTERN.search(body)
    if not marks_match:
        return DEFAULT_MAX_MARKS, body
    return (
        int(marks_match.group(1)),
        body.replace(marks_match.group(0), "", 1).strip(),
    )


def clean_question_text(text: str) -> str:
    """Collapse whitespace and drop spaces before punctuation."""
    text = WHITESPACE_PATTERN.sub(" ", text)
    text = SPACE_BEFORE_PUNCTUATION_PATTERN.sub(r"\1", text)
    return text.strip()


def estimate_bbox(question_number: int) -> BoundingBox:
    """Row position of a pattern-detected question on an assumed layout."""
    y1 = BBOX_TOP + ((question_number - 1) % QUESTIONS_PER_PAGE) * BBOX_ROW_HEIGHT
    return BoundingBox(x1=BBOX_LEFT, y1=y1, x2=BBOX_RIGHT, y2=y1 + BBOX_HEIGHT)


def estimate_fallback_bbox(index: int) -> BoundingBox:
    """Row position of a fallback line, assuming 10 lines per page."""
    y1 = BBOX_TOP + (index % FALLBACK_LINES_PER_PAGE) * BBOX_ROW_HEIGHT
    return BoundingBox(x1=BBOX_LEFT, y1=y1, x2=BBOX_RIGHT, y2=y1 + BBOX_ROW_HEIGHT)


# ─── Segmenters ───────────────────────────────────────────────────────────────


def segment_questions(text: str) -> list[QuestionRecord]:
    """
    Pattern-based segmentation of the whole document.

    The sequence check is global: after question ``n`` has been accepted on
    any page by any pattern, only ``n + 1`` is accepted next.
    """
    questions: list[QuestionRecord] = []
    last_accepted: Optional[int] = None

    for page_number, page_text in split_pages(text):
        accepted_on_page = 0

        for header in find_headers(page_number, page_text):
            if last_accepted is not None and header.number != last_accepted + 1:
                logger.debug(
                    f"Skipping out-of-sequence {header.style.value} header "
                    f"{header.number} on page {page_number} "
                    f"(expected {last_accepted + 1})"
                )
                continue

            max_marks, body = extract_marks(header.body)
            question_text = clean_question_text(body)

            if len(question_text) < MIN_QUESTION_LENGTH:
                logger.debug(
                    f"Skipping short candidate {header.number} on page "
                    f"{page_number}: {question_text!r}"
                )
                continue

            last_accepted = header.number
            accepted_on_page += 1

            questions.append(QuestionRecord(
                question_number=header.number,
                question_text=question_text[:MAX_QUESTION_LENGTH],
                max_marks=max_marks,
                page_number=page_number,
                bbox=estimate_bbox(header.number),
            ))

        logger.debug(f"Page {page_number}: {accepted_on_page} questions accepted")

    return questions


def fallback_segment(text: str) -> list[QuestionRecord]:
    """
    Line-based degraded mode.

    Page numbers are approximated as 10 lines per page and ignore the real
    page markers.
    """
    lines = [
        line for line in text.split("\n")
        if len(line.strip()) > FALLBACK_MIN_LINE_LENGTH
    ][:FALLBACK_MAX_QUESTIONS]

    return [
        QuestionRecord(
            question_number=index + 1,
            question_text=line.strip()[:MAX_QUESTION_LENGTH],
            max_marks=DEFAULT_MAX_MARKS,
            page_number=index // FALLBACK_LINES_PER_PAGE + 1,
            bbox=estimate_fallback_bbox(index),
        )
        for index, line in enumerate(lines)
    ]
