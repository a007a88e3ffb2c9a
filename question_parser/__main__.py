"""
Module entry point for: python -m question_parser

    python -m question_parser extract <pdf_path> [options]
    python -m question_parser batch <directory> [options]
    python -m question_parser serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
