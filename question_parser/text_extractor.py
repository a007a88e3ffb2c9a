"""
Text Extractor
==============
Flattens a PDF into a single text blob using PyMuPDF (fitz).

Each page is introduced by an in-band marker line (``===PAGE_<n>===``) so that
page boundaries survive the conversion to one string. Text runs are the
PyMuPDF spans of the page, percent-decoded and followed by a single space;
every page ends with one newline.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from urllib.parse import unquote

import fitz  # PyMuPDF

from .exceptions import PDFParseError, ResourceNotFoundError

logger = logging.getLogger(__name__)

PAGE_MARKER = "===PAGE_{page}==="
REMOTE_PREFIXES = ("http://", "https://")

# PyMuPDF does not support concurrent use from several threads
_fitz_lock = threading.Lock()

# A page is a list of lines, a line is a list of text runs.
PageRuns = list[list[str]]


def is_remote_source(source: str) -> bool:
    return source.startswith(REMOTE_PREFIXES)


def assemble_text(
    pages: list[PageRuns],
    preserve_line_breaks: bool = False,
) -> str:
    """
    Join per-page text runs into the page-delimited blob.

    Args:
        pages: Text runs per page, in document order.
        preserve_line_breaks: Emit a newline after every PDF text line
            instead of only at the end of the page.

    Returns:
        The blob, stripped of leading/trailing whitespace.
    """
    parts: list[str] = []

    for page_num, lines in enumerate(pages, start=1):
        parts.append(f"\n{PAGE_MARKER.format(page=page_num)}\n")

        for line in lines:
            for run in line:
                if run:
                    parts.append(unquote(run) + " ")
            if preserve_line_breaks:
                parts.append("\n")

        parts.append("\n")

    return "".join(parts).strip()


class TextExtractor:
    """
    PDF → text conversion step.

    Holds no per-document state, so one instance can serve concurrent calls.
    The PyMuPDF work itself is serialized process-wide.
    """

    def __init__(self, preserve_line_breaks: bool = False):
        self.preserve_line_breaks = preserve_line_breaks

    def check_source(self, pdf_path: str):
        """Reject remote URLs and paths that are not local files."""
        if is_remote_source(pdf_path) or not os.path.isfile(pdf_path):
            raise ResourceNotFoundError(pdf_path)

    def get_page_count(self, pdf_path: str) -> int:
        """Get total number of pages in the PDF."""
        self.check_source(pdf_path)
        try:
            with _fitz_lock, fitz.open(pdf_path, filetype="pdf") as doc:
                return doc.page_count
        except (RuntimeError, ValueError) as e:
            raise PDFParseError(pdf_path, str(e)) from e

    def get_document_info(self, pdf_path: str) -> dict:
        """Page count and the non-empty document metadata fields."""
        self.check_source(pdf_path)
        try:
            with _fitz_lock, fitz.open(pdf_path, filetype="pdf") as doc:
                metadata = {k: v for k, v in (doc.metadata or {}).items() if v}
                return {"page_count": doc.page_count, "metadata": metadata}
        except (RuntimeError, ValueError) as e:
            raise PDFParseError(pdf_path, str(e)) from e

    def extract(self, pdf_path: str) -> str:
        """
        Extract the page-delimited text of a local PDF.

        Raises:
            ResourceNotFoundError: Path missing, not a file, or a remote URL.
            PDFParseError: PyMuPDF could not open or read the document.
        """
        self.check_source(pdf_path)

        logger.info(f"Extracting text from {pdf_path}")

        try:
            with _fitz_lock, fitz.open(pdf_path, filetype="pdf") as doc:
                pages = [self._page_runs(page) for page in doc]
        except (RuntimeError, ValueError) as e:
            # fitz.FileDataError / EmptyFileError derive from RuntimeError
            logger.error(f"PyMuPDF failed on {pdf_path}: {e}")
            raise PDFParseError(pdf_path, str(e)) from e

        logger.debug(f"Read {len(pages)} pages from {pdf_path}")

        return assemble_text(pages, self.preserve_line_breaks)

    async def extract_async(self, pdf_path: str) -> str:
        """Run :meth:`extract` in a worker thread and await its completion."""
        return await asyncio.to_thread(self.extract, pdf_path)

    def _page_runs(self, page: fitz.Page) -> PageRuns:
        """Collect span texts of a page grouped by PDF text line."""
        lines: PageRuns = []
        page_dict = page.get_text("dict")

        for block in page_dict.get("blocks", []):
            if block.get("type") != 0:  # Images carry no text
                continue
            for line in block.get("lines", []):
                lines.append([span.get("text", "") for span in line.get("spans", [])])

        return lines
