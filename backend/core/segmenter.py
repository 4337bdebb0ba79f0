"""
LeaseWise Clause Segmenter Module
=================================
Splits raw lease text into clause-sized chunks for indexing.

Segmentation works in three passes:
- Heading detection splits the document into sections
- Long sections are packed into chunks by paragraph, then by sentence
- Noise (short fragments, numeric tables, signature blocks) is filtered out

Page numbers are recovered from form-feed separators when the text came
from the PDF extractor.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 1200
MIN_DOCUMENT_CHARS = 100
MIN_SECTION_CHARS = 50
MIN_CHUNK_CHARS = 80
MIN_ALPHA_RATIO = 0.3
MAX_LABEL_CHARS = 80
PAGE_BREAK = "\f"

# Heading patterns for legal/lease documents
HEADING_PATTERNS = [
    # ARTICLE I, ARTICLE 1, ARTICLE ONE
    re.compile(r"^ARTICLE\s+([IVXLCDM]+|\d+|ONE|TWO|THREE|FOUR|FIVE|SIX|SEVEN|EIGHT|NINE|TEN)[.:\s]", re.IGNORECASE),
    # SECTION 1.1, Section 2.3.4
    re.compile(r"^SECTION\s+\d+(\.\d+)*[.:\s]", re.IGNORECASE),
    # 1.1 Title, 10.1.2 Title
    re.compile(r"^\d+\.\d+(\.\d+)*\s+[A-Z]"),
    # 1. TITLE
    re.compile(r"^\d+\.\s+[A-Z][A-Z\s]+"),
    # (a) Text, (iv) Text
    re.compile(r"^\([a-z]\)\s+[A-Z]"),
    re.compile(r"^\([ivx]+\)\s+[A-Z]", re.IGNORECASE),
    # EXHIBIT A, SCHEDULE 1
    re.compile(r"^EXHIBIT\s+[A-Z]", re.IGNORECASE),
    re.compile(r"^SCHEDULE\s+[\dA-Z]", re.IGNORECASE),
]

SIGNATURE_PATTERN = re.compile(r"^(IN WITNESS WHEREOF|SIGNATURES?|DATE:|WITNESS:)", re.IGNORECASE)
SENTENCE_BOUNDARY = re.compile(r"(?<=\.)\s+(?=[A-Z])|(?<=;)\s+")


@dataclass
class ClauseChunk:
    """A segment of raw lease text, before classification."""
    text: str
    section_label: str | None = None
    page_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "section_label": self.section_label,
            "page_number": self.page_number,
        }


@dataclass
class ChunkingStats:
    """Summary statistics for a segmentation run."""
    total_chunks: int
    avg_length: int
    min_length: int
    max_length: int
    with_section_label: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_chunks": self.total_chunks,
            "avg_length": self.avg_length,
            "min_length": self.min_length,
            "max_length": self.max_length,
            "with_section_label": self.with_section_label,
        }


@dataclass
class _Section:
    heading: str | None
    page_number: int | None
    lines: list[str]


def is_heading(line: str) -> bool:
    """Check if a line looks like a section heading."""
    trimmed = line.strip()
    if len(trimmed) < 3 or len(trimmed) > 150:
        return False
    return any(pattern.match(trimmed) for pattern in HEADING_PATTERNS)


def section_label(line: str) -> str:
    """Derive a display label from a heading line."""
    trimmed = line.strip()
    if len(trimmed) <= MAX_LABEL_CHARS:
        return trimmed
    return trimmed[:MAX_LABEL_CHARS - 3] + "..."


def split_sentences(text: str) -> list[str]:
    """Split on a period followed by a capital letter, or on semicolons."""
    return [s for s in SENTENCE_BOUNDARY.split(text) if s.strip()]


def _split_into_sections(raw_text: str) -> list[_Section]:
    track_pages = PAGE_BREAK in raw_text
    page = 1
    current = _Section(heading=None, page_number=page if track_pages else None, lines=[])
    sections: list[_Section] = []

    for raw_line in re.split(r"\r?\n", raw_text):
        # A line that opens with a form feed is the first line of the next page
        line = raw_line.replace(PAGE_BREAK, "")
        line_page = page + 1 if raw_line.startswith(PAGE_BREAK) else page
        page += raw_line.count(PAGE_BREAK)

        if is_heading(line):
            if current.lines:
                sections.append(current)
            current = _Section(
                heading=section_label(line),
                page_number=line_page if track_pages else None,
                lines=[line],
            )
        else:
            current.lines.append(line)

    if current.lines:
        sections.append(current)
    return sections


def _hard_wrap(text: str, max_chars: int) -> list[str]:
    """Break text at word boundaries so that no piece exceeds max_chars."""
    pieces: list[str] = []
    buffer = ""
    for word in text.split():
        while len(word) > max_chars:
            if buffer:
                pieces.append(buffer)
                buffer = ""
            pieces.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{buffer} {word}" if buffer else word
        if len(candidate) > max_chars:
            pieces.append(buffer)
            buffer = word
        else:
            buffer = candidate
    if buffer:
        pieces.append(buffer)
    return pieces


def _pack(units: list[str], separator: str, max_chars: int) -> list[str]:
    """Greedily pack units into pieces no longer than max_chars."""
    pieces: list[str] = []
    buffer = ""
    for unit in units:
        candidate = f"{buffer}{separator}{unit}" if buffer else unit
        if len(candidate) <= max_chars:
            buffer = candidate
            continue
        if buffer:
            pieces.append(buffer)
        if len(unit) <= max_chars:
            buffer = unit
        else:
            wrapped = _hard_wrap(unit, max_chars)
            pieces.extend(wrapped[:-1])
            buffer = wrapped[-1] if wrapped else ""
    if buffer:
        pieces.append(buffer)
    return pieces


def _split_section(section: _Section, max_chars: int) -> list[ClauseChunk]:
    content = re.sub(r"\n{3,}", "\n\n", "\n".join(section.lines)).strip()
    if len(content) < MIN_SECTION_CHARS:
        return []

    def make(text: str) -> ClauseChunk:
        return ClauseChunk(
            text=text.strip(),
            section_label=section.heading,
            page_number=section.page_number,
        )

    if len(content) <= max_chars:
        return [make(content)]

    texts: list[str] = []
    buffer = ""
    for paragraph in re.split(r"\n\n+", content):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
        if len(candidate) <= max_chars:
            buffer = candidate
            continue
        if buffer:
            texts.append(buffer)
        if len(paragraph) <= max_chars:
            buffer = paragraph
        else:
            # Oversized paragraph: fall back to sentence packing
            pieces = _pack(split_sentences(paragraph), " ", max_chars)
            texts.extend(pieces[:-1])
            buffer = pieces[-1] if pieces else ""
    if buffer:
        texts.append(buffer)

    return [make(text) for text in texts if text.strip()]


def _keep_chunk(chunk: ClauseChunk) -> bool:
    text = chunk.text
    if len(text) < MIN_CHUNK_CHARS:
        return False
    alpha = sum(1 for ch in text if ("a" <= ch <= "z") or ("A" <= ch <= "Z"))
    if alpha / max(len(text), 1) < MIN_ALPHA_RATIO:
        return False
    if SIGNATURE_PATTERN.match(text.strip()):
        return False
    return True


def segment_lease_text(raw_text: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[ClauseChunk]:
    """
    Split raw lease text into clause-sized chunks.

    Args:
        raw_text: Text extracted from the lease document
        max_chars: Upper bound on chunk length

    Returns:
        Ordered chunks, each between MIN_CHUNK_CHARS and max_chars long.
        Documents under MIN_DOCUMENT_CHARS produce no chunks.
    """
    if max_chars < MIN_CHUNK_CHARS:
        raise ValueError(f"max_chars must be at least {MIN_CHUNK_CHARS}")
    if not raw_text or len(raw_text) < MIN_DOCUMENT_CHARS:
        return []

    sections = _split_into_sections(raw_text)

    chunks: list[ClauseChunk] = []
    for section in sections:
        chunks.extend(_split_section(section, max_chars))

    kept = [chunk for chunk in chunks if _keep_chunk(chunk)]
    logger.debug(
        f"Segmented {len(raw_text)} chars into {len(sections)} sections, "
        f"{len(kept)} chunks ({len(chunks) - len(kept)} filtered)"
    )
    return kept


def chunking_stats(chunks: list[ClauseChunk]) -> ChunkingStats:
    """Get chunking statistics for logging and indexing summaries."""
    if not chunks:
        return ChunkingStats(0, 0, 0, 0, 0)
    lengths = [len(c.text) for c in chunks]
    return ChunkingStats(
        total_chunks=len(chunks),
        avg_length=round(sum(lengths) / len(lengths)),
        min_length=min(lengths),
        max_length=max(lengths),
        with_section_label=sum(1 for c in chunks if c.section_label),
    )
