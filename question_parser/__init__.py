"""
Exam Question Extractor
=======================
Heuristic extraction of numbered exam questions from PDF papers.

Architecture:
    - Text Extractor: Flattens PDF pages into a page-delimited text blob
    - Segmenter: Detects question headers and builds Question Records
    - Fallback Segmenter: Line-based degraded mode when no header matches
    - Validator: Reports numbering gaps and duplicates for review
    - CLI / HTTP service: Thin surfaces over the extractor

Version: 1.0.0
"""

__version__ = "1.0.0"
