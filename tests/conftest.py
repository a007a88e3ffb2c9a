"""Shared fixtures: tiny exam papers rendered with PyMuPDF."""

from __future__ import annotations

import logging

import fitz
import pytest


def build_pdf(path, pages: list[list[str]]) -> str:
    """Write a PDF with one text line per entry, one list per page."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        y = 72
        for line in lines:
            page.insert_text((72, y), line, fontsize=11)
            y += 24
    doc.save(str(path))
    doc.close()
    return str(path)


@pytest.fixture
def make_pdf(tmp_path):
    def _make(pages: list[list[str]], name: str = "paper.pdf") -> str:
        return build_pdf(tmp_path / name, pages)
    return _make


@pytest.fixture
def exam_pdf(make_pdf):
    """Two pages, one question per page."""
    return make_pdf([
        ["1. What is the boiling point of water at sea level?"],
        ["2. Name the largest planet in the solar system. [3 marks]"],
    ])


@pytest.fixture
def broken_pdf(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is definitely not a PDF document")
    return str(path)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers bound to streams that die with each test."""
    yield
    package_logger = logging.getLogger("question_parser")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
