"""
LeaseWise Document Pipeline
===========================
Generic document Q&A, separate from clause indexing.

Uploaded documents are split into overlapping fixed-size windows, embedded,
and stored as document chunks. Questions about one document, or about all
documents attached to a lease, are answered from the closest chunks. A lease
with no usable chunks is answered from its metadata alone.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import aiofiles

from core.config import get_settings
from core.embeddings import EmbeddingProvider
from core.llm import LLMError
from core.pdf_text import TextExtractionError, extract_pdf_text
from core.repository import (
    DocumentNotFoundError,
    LeaseNotFoundError,
    LeaseRecord,
    LeaseRepository,
)
from core.retrieval import AnswerGenerationError
from core.vector_search import ChunkSearchResult, VectorSearchEngine

logger = logging.getLogger(__name__)

MIN_DOCUMENT_CHUNK_CHARS = 50
SOURCE_SNIPPET_CHARS = 200


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    EXTRACTED = "EXTRACTED"
    FAILED = "FAILED"


class DocumentQAMode(str, Enum):
    RAG = "rag"
    NO_CHUNKS = "no_chunks"
    METADATA_ONLY = "metadata_only"


class TextGenerator(Protocol):
    async def generate(self, prompt: str, **kwargs: Any) -> str: ...


def chunk_text(text: str, max_chars: int = 3500, overlap: int = 350) -> list[str]:
    """
    Split text into overlapping windows for embedding.

    Whitespace is collapsed first. A window ends at the last sentence end in
    its final 30%, else at the last space in its final 20%, else at max_chars.
    Windows of 50 chars or fewer are dropped.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError("overlap must be in [0, max_chars)")

    cleaned = " ".join(text.split())
    chunks: list[str] = []
    start = 0
    while start < len(cleaned):
        end = min(start + max_chars, len(cleaned))
        window = cleaned[start:end]

        if end < len(cleaned):
            last_sentence = max(window.rfind(". "), window.rfind("? "), window.rfind("! "))
            if last_sentence > max_chars * 0.7:
                window = window[:last_sentence + 2]
            else:
                last_space = window.rfind(" ")
                if last_space > max_chars * 0.8:
                    window = window[:last_space]

        chunks.append(window.strip())
        if start + len(window) >= len(cleaned):
            break
        # Always advance, even when the overlap would swallow the window
        start = max(start + len(window) - overlap, start + 1)

    return [chunk for chunk in chunks if len(chunk) > MIN_DOCUMENT_CHUNK_CHARS]


async def read_document_text(file_path: str | Path) -> str:
    """Read a document's text: PDFs through pdfplumber, anything else as UTF-8."""
    file_path = Path(file_path)
    if file_path.suffix.lower() == ".pdf":
        return await extract_pdf_text(file_path)
    if not file_path.exists():
        raise TextExtractionError(f"File not found: {file_path}")
    async with aiofiles.open(file_path, "r", encoding="utf-8", errors="replace") as f:
        text = await f.read()
    if not text.strip():
        raise TextExtractionError(f"No text could be extracted from {file_path.name}")
    return text


@dataclass
class IngestionResult:
    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "status": self.status.value,
            "chunk_count": self.chunk_count,
            "error": self.error,
        }


class DocumentIngestor:
    """Extracts, chunks and embeds uploaded documents."""

    def __init__(self, repository: LeaseRepository, embedder: EmbeddingProvider):
        settings = get_settings()
        self.repository = repository
        self.embedder = embedder
        self.chunk_chars = settings.document_chunk_chars
        self.chunk_overlap = settings.document_chunk_overlap

    async def ingest(self, document_id: str) -> IngestionResult:
        """
        Ingest a stored document.

        Status ends as EXTRACTED with chunks, UPLOADED when there was no text
        to index, or FAILED when chunking or embedding broke.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = await self.repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document '{document_id}' not found")

        try:
            text = await read_document_text(document.file_path)
        except TextExtractionError as e:
            logger.warning(f"No text extracted for document {document_id}: {e}")
            await self.repository.update_document(document_id, DocumentStatus.UPLOADED.value)
            return IngestionResult(document_id, DocumentStatus.UPLOADED, error=str(e))

        chunks = chunk_text(text, self.chunk_chars, self.chunk_overlap)
        if not chunks:
            logger.warning(f"No chunks produced for document {document_id}")
            await self.repository.update_document(document_id, DocumentStatus.UPLOADED.value, text)
            return IngestionResult(document_id, DocumentStatus.UPLOADED)

        try:
            vectors = await self.embedder.embed_batch(chunks)
            count = await self.repository.replace_document_chunks(
                document_id, list(zip(chunks, vectors))
            )
        except Exception as e:
            logger.error(f"Error ingesting document {document_id}: {e}")
            await self.repository.update_document(document_id, DocumentStatus.FAILED.value, text)
            return IngestionResult(document_id, DocumentStatus.FAILED, error=str(e))

        await self.repository.update_document(document_id, DocumentStatus.EXTRACTED.value, text)
        logger.info(f"Ingested document {document_id}: {count} chunks")
        return IngestionResult(document_id, DocumentStatus.EXTRACTED, chunk_count=count)


@dataclass
class SourceChunk:
    document_id: str
    chunk_index: int
    snippet: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "snippet": self.snippet,
            "similarity": round(self.similarity, 2),
        }


@dataclass
class DocumentAnswer:
    answer: str
    mode: DocumentQAMode
    sources: list[SourceChunk] = field(default_factory=list)
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "mode": self.mode.value,
            "sources": [s.to_dict() for s in self.sources],
            "metadata": self.metadata,
        }


def lease_metadata(lease: LeaseRecord) -> dict[str, Any]:
    return {
        "tenant_name": lease.tenant_name,
        "property_name": lease.property_name or "N/A",
        "address": lease.property_address or "N/A",
        "suite": lease.suite,
        "square_feet": lease.square_feet,
        "base_rent": lease.base_rent,
        "lease_start": lease.lease_start.isoformat() if lease.lease_start else None,
        "lease_end": lease.lease_end.isoformat() if lease.lease_end else None,
    }


def _metadata_block(metadata: dict[str, Any]) -> str:
    base_rent = metadata.get("base_rent")
    return (
        "LEASE METADATA:\n"
        f"- Tenant: {metadata['tenant_name']}\n"
        f"- Property: {metadata['property_name']}\n"
        f"- Address: {metadata['address']}\n"
        f"- Suite: {metadata.get('suite') or 'N/A'}\n"
        f"- Square Feet: {metadata.get('square_feet') or 'N/A'}\n"
        f"- Base Rent: {f'${base_rent}/month' if base_rent else 'N/A'}\n"
        f"- Lease Start: {metadata.get('lease_start') or 'N/A'}\n"
        f"- Lease End: {metadata.get('lease_end') or 'N/A'}\n"
    )


def _excerpts(results: list[ChunkSearchResult]) -> str:
    return "\n".join(
        f"[Context {i + 1}]:\n{r.content}\n" for i, r in enumerate(results)
    )


DOCUMENT_PROMPT = """You are a commercial real estate document analyst. Answer the question using only the document excerpts below. If the excerpts do not contain the answer, say so rather than guessing.

DOCUMENT EXCERPTS:
{context}

USER QUESTION:
{question}

YOUR ANSWER:"""

LEASE_RAG_PROMPT = """You are a commercial real estate lease analyst. Answer questions about this lease accurately based on the provided context. If information is not present in the context, say you don't know rather than guessing.

{metadata}
LEASE DOCUMENT EXCERPTS:
{context}

USER QUESTION:
{question}

INSTRUCTIONS:
- Answer based on the lease metadata and document excerpts above
- Be specific and reference relevant details from the context
- If the answer is not in the provided context, clearly state that you don't have that information
- Keep your answer concise but complete

YOUR ANSWER:"""

METADATA_PROMPT = """You are a commercial real estate lease analyst. Answer the following question about a lease using ONLY the lease metadata provided below. If the information is not available in the metadata, clearly state that.

{metadata}
Note: No lease document text is available. Answer based only on the metadata above.

USER QUESTION:
{question}

YOUR ANSWER:"""


class DocumentQAService:
    """Question answering over generic document chunks."""

    def __init__(
        self,
        repository: LeaseRepository,
        search_engine: VectorSearchEngine,
        llm: TextGenerator,
    ):
        self.repository = repository
        self.search_engine = search_engine
        self.llm = llm
        self.top_k = get_settings().document_top_k

    async def _generate(self, prompt: str) -> str:
        try:
            return (await self.llm.generate(prompt, temperature=0.2, max_tokens=1000)).strip()
        except LLMError as e:
            raise AnswerGenerationError(f"Answer generation failed: {e}") from e

    @staticmethod
    def _sources(results: list[ChunkSearchResult]) -> list[SourceChunk]:
        return [
            SourceChunk(
                document_id=r.document_id,
                chunk_index=r.chunk_index,
                snippet=r.content[:SOURCE_SNIPPET_CHARS] + "...",
                similarity=r.similarity,
            )
            for r in results
        ]

    async def ask_document(self, document_id: str, question: str) -> DocumentAnswer:
        """
        Answer a question from one document's chunks.

        Raises:
            DocumentNotFoundError: If the document does not exist
            AnswerGenerationError: If the answer model fails
        """
        if await self.repository.get_document(document_id) is None:
            raise DocumentNotFoundError(f"Document '{document_id}' not found")

        results = await self.search_engine.search_document_chunks(
            question, document_id=document_id, top_k=self.top_k
        )
        if not results:
            return DocumentAnswer(
                answer="This document has not been processed yet or contains no extractable text.",
                mode=DocumentQAMode.NO_CHUNKS,
            )

        answer = await self._generate(
            DOCUMENT_PROMPT.format(context=_excerpts(results), question=question)
        )
        return DocumentAnswer(answer=answer, mode=DocumentQAMode.RAG, sources=self._sources(results))

    async def ask_lease(self, lease_id: str, question: str) -> DocumentAnswer:
        """
        Answer a question from a lease's document chunks, or from its
        metadata when no chunk is available or retrieval fails.

        Raises:
            LeaseNotFoundError: If the lease does not exist
            AnswerGenerationError: If the answer model fails
        """
        lease = await self.repository.get_lease(lease_id)
        if lease is None:
            raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
        metadata = lease_metadata(lease)

        try:
            results = await self.search_engine.search_document_chunks(
                question, lease_id=lease_id, top_k=self.top_k
            )
        except Exception as e:
            logger.error(f"Document retrieval failed for lease {lease_id}, using metadata: {e}")
            results = []

        if results:
            logger.info(f"Answering lease {lease_id} question from {len(results)} document chunks")
            answer = await self._generate(LEASE_RAG_PROMPT.format(
                metadata=_metadata_block(metadata),
                context=_excerpts(results),
                question=question,
            ))
            return DocumentAnswer(
                answer=answer,
                mode=DocumentQAMode.RAG,
                sources=self._sources(results),
                metadata=metadata,
            )

        logger.info(f"No document chunks for lease {lease_id}, answering from metadata")
        answer = await self._generate(
            METADATA_PROMPT.format(metadata=_metadata_block(metadata), question=question)
        )
        return DocumentAnswer(answer=answer, mode=DocumentQAMode.METADATA_ONLY, metadata=metadata)
