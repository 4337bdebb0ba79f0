"""
LeaseWise PDF Text Module
=========================
Extracts plain text from native (text-based) lease PDFs.

Pages are joined with a form feed so the segmenter can attribute page
numbers to clauses. Scanned PDFs without a text layer yield no text and
are rejected with TextExtractionError.
"""

import asyncio
import logging
from pathlib import Path

import pdfplumber

from core.segmenter import PAGE_BREAK

logger = logging.getLogger(__name__)


class TextExtractionError(Exception):
    """Raised when a document yields no usable text."""
    pass


def _extract_pages(file_path: Path) -> list[str]:
    pages = []
    with pdfplumber.open(str(file_path)) as pdf:
        for page in pdf.pages:
            pages.append(page.extract_text() or "")
    return pages


async def extract_pdf_text(file_path: str | Path) -> str:
    """
    Extract the text of every page, separated by page breaks.

    Args:
        file_path: Path to the PDF file

    Returns:
        Full document text

    Raises:
        TextExtractionError: If the file cannot be read or has no text layer
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise TextExtractionError(f"File not found: {file_path}")

    loop = asyncio.get_running_loop()
    try:
        pages = await loop.run_in_executor(None, _extract_pages, file_path)
    except Exception as e:
        raise TextExtractionError(f"Failed to read PDF {file_path.name}: {e}") from e

    text = ("\n" + PAGE_BREAK).join(pages)
    if not text.replace(PAGE_BREAK, "").strip():
        raise TextExtractionError(f"No text could be extracted from {file_path.name}")

    logger.info(f"Extracted {len(text)} chars from {len(pages)} pages of {file_path.name}")
    return text
