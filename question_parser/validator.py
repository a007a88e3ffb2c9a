"""
Validation Engine
=================
Post-extraction validation and reporting.

After extracting each PDF, generates a report:
    - Total Questions
    - Strategy used (pattern / fallback)
    - Missing Question Numbers (gaps in sequence)
    - Duplicate Question Numbers
    - Overlapping Questions (text also captured inside another record,
      typical when several header styles fire on the same lines)
    - Pages With Questions
    - Questions carrying the default marks value
    - Questions truncated to the length limit

Reports, never corrects: records are returned to the caller untouched.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .models import ExtractionStrategy, QuestionRecord, ValidationReport
from .segmenter import DEFAULT_MAX_MARKS, MAX_QUESTION_LENGTH

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Validates extracted questions and produces a report.
    """

    def validate(
        self,
        questions: list[QuestionRecord],
        strategy: Optional[ExtractionStrategy] = None,
    ) -> ValidationReport:
        """
        Run full validation on extracted questions.

        Args:
            questions: Records in emission order.
            strategy: Segmenter that produced the records.

        Returns:
            ValidationReport with all detected issues.
        """
        report = ValidationReport(strategy=strategy)

        if not questions:
            logger.warning("No questions to validate")
            return report

        report.total_questions = len(questions)
        report.first_question_number = questions[0].question_number

        numbers = [q.question_number for q in questions]
        number_counts = Counter(numbers)

        report.duplicate_question_numbers = sorted(
            num for num, count in number_counts.items() if count > 1
        )

        expected = set(range(min(numbers), max(numbers) + 1))
        report.missing_question_numbers = sorted(expected - set(numbers))

        report.overlapping_questions = self._find_overlaps(questions)

        report.pages_with_questions = sorted({q.page_number for q in questions})

        # An explicit "[2 marks]" is indistinguishable from the default
        report.questions_with_default_marks = [
            q.question_number
            for q in questions
            if q.max_marks == DEFAULT_MAX_MARKS
        ]

        report.truncated_questions = [
            q.question_number
            for q in questions
            if len(q.question_text) >= MAX_QUESTION_LENGTH
        ]

        report.total_marks = sum(q.max_marks for q in questions)

        self._log_summary(report)
        return report

    def _find_overlaps(self, questions: list[QuestionRecord]) -> list[int]:
        """Numbers of records whose text is contained in another record."""
        overlapping = []
        for i, q in enumerate(questions):
            if any(
                i != j and q.question_text in other.question_text
                for j, other in enumerate(questions)
            ):
                overlapping.append(q.question_number)
        return overlapping

    def _log_summary(self, report: ValidationReport):
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(f"Total Questions: {report.total_questions}")
        if report.strategy:
            logger.info(f"Strategy: {report.strategy.value}")
        logger.info(
            f"Missing Question Numbers: {len(report.missing_question_numbers)}"
        )
        logger.info(
            f"Duplicate Question Numbers: "
            f"{len(report.duplicate_question_numbers)}"
        )
        logger.info(
            f"Overlapping Questions: {len(report.overlapping_questions)}"
        )
        logger.info(f"Pages With Questions: {len(report.pages_with_questions)}")
        logger.info(
            f"Questions With Default Marks: "
            f"{len(report.questions_with_default_marks)}"
        )
        logger.info(f"Truncated Questions: {len(report.truncated_questions)}")
        logger.info(f"Total Marks: {report.total_marks}")
        logger.info("=" * 60)
