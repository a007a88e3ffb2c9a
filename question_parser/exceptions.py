"""
Extraction Errors
=================
Failures raised by the text extraction step. Segmentation never raises;
it returns an empty list in the worst case.
"""


class ExtractionError(Exception):
    """Base class for all extraction failures."""


class ResourceNotFoundError(ExtractionError, FileNotFoundError):
    """The PDF path does not exist locally, or a remote URL was given."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"PDF file not found: {source}")


class PDFParseError(ExtractionError, RuntimeError):
    """PyMuPDF could not read the document."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse PDF {source}: {reason}")
