"""
LeaseWise Lease Indexer
=======================
Turns a lease's raw text into stored, searchable clauses.

Steps:
1. Segment the text into clause chunks
2. Classify every chunk (topic, responsible party), paced by the rate limiter
3. Embed all chunks in one batch, falling back to per-chunk embedding
4. Replace the lease's existing clauses with the new set

Classification and embedding finish before anything is deleted, so a
failed run leaves the previous clauses in place. Deleting and recreating
are still two separate writes: concurrent re-indexing of the same lease
is not safe.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core.classifier import ClauseClassification, ClauseClassifier
from core.config import get_settings
from core.embeddings import EmbeddingProvider
from core.pdf_text import extract_pdf_text
from core.repository import ClauseDraft, LeaseNotFoundError, LeaseRepository
from core.segmenter import ChunkingStats, ClauseChunk, chunking_stats, segment_lease_text

logger = logging.getLogger(__name__)

LOW_CHUNK_COUNT = 20
LOW_CLAUSE_COUNT = 10


@dataclass
class ChunkFailure:
    """A chunk that could not be indexed."""
    index: int
    stage: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "stage": self.stage, "error": self.error}


@dataclass
class IndexingSummary:
    """Outcome of indexing one lease."""
    lease_id: str
    chunk_count: int = 0
    clause_count: int = 0
    deleted_count: int = 0
    failures: list[ChunkFailure] = field(default_factory=list)
    topic_distribution: dict[str, int] = field(default_factory=dict)
    stats: ChunkingStats | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lease_id": self.lease_id,
            "chunk_count": self.chunk_count,
            "clause_count": self.clause_count,
            "deleted_count": self.deleted_count,
            "failures": [f.to_dict() for f in self.failures],
            "topic_distribution": self.topic_distribution,
            "stats": self.stats.to_dict() if self.stats else None,
            "warnings": self.warnings,
        }


class LeaseIndexer:
    """
    Segments, classifies, embeds and stores the clauses of one lease.

    Args:
        repository: Clause store
        classifier: Chunk classifier
        embedder: Embedding provider used for the whole corpus
    """

    def __init__(
        self,
        repository: LeaseRepository,
        classifier: ClauseClassifier,
        embedder: EmbeddingProvider,
    ):
        self.repository = repository
        self.classifier = classifier
        self.embedder = embedder
        self.max_chars = get_settings().chunk_max_chars

    async def _embed_chunks(
        self, chunks: list[ClauseChunk], failures: list[ChunkFailure]
    ) -> list[list[float] | None]:
        """Embed in one batch; on failure retry each chunk on its own."""
        texts = [chunk.text for chunk in chunks]
        try:
            vectors = await self.embedder.embed_batch(texts)
            if len(vectors) != len(texts):
                raise ValueError(f"expected {len(texts)} embeddings, got {len(vectors)}")
            return list(vectors)
        except Exception as e:
            logger.warning(f"Batch embedding failed, retrying per chunk: {e}")

        vectors: list[list[float] | None] = []
        for i, text in enumerate(texts):
            try:
                vectors.append(await self.embedder.embed(text))
            except Exception as e:
                logger.error(f"Embedding failed for chunk {i}: {e}")
                failures.append(ChunkFailure(index=i, stage="embed", error=str(e)))
                vectors.append(None)
        return vectors

    async def index_lease_text(
        self,
        lease_id: str,
        raw_text: str,
        max_chars: int | None = None,
    ) -> IndexingSummary:
        """
        Index a lease from its raw text, replacing any previous clauses.

        Raises:
            LeaseNotFoundError: If the lease does not exist
        """
        lease = await self.repository.get_lease(lease_id)
        if lease is None:
            raise LeaseNotFoundError(f"Lease '{lease_id}' not found")

        summary = IndexingSummary(lease_id=lease_id)
        logger.info(f"Indexing lease {lease_id} ({lease.tenant_name}): {len(raw_text or '')} chars")

        # Step 1: Segment
        chunks = segment_lease_text(raw_text or "", max_chars or self.max_chars)
        summary.chunk_count = len(chunks)
        summary.stats = chunking_stats(chunks)
        logger.info(f"Segmented into {len(chunks)} chunks: {summary.stats.to_dict()}")
        if len(chunks) < LOW_CHUNK_COUNT:
            summary.warnings.append(
                f"Low chunk count ({len(chunks)}); check text extraction or segmentation"
            )

        # Steps 2-3: Classify and embed before touching stored clauses
        classifications: list[ClauseClassification] = []
        vectors: list[list[float] | None] = []
        if chunks:
            classifications = await self.classifier.classify_batch(chunks)
            vectors = await self._embed_chunks(chunks, summary.failures)

        # Every clause in the corpus shares one embedding length
        dimension = (
            await self.repository.clause_dimension(exclude_lease_id=lease_id)
            or getattr(self.embedder, "dimension", None)
            or next((len(v) for v in vectors if v), None)
        )
        drafts: list[ClauseDraft] = []
        for i, (chunk, classification, vector) in enumerate(zip(chunks, classifications, vectors)):
            if vector is None:
                continue
            if len(vector) != dimension:
                summary.failures.append(ChunkFailure(
                    index=i,
                    stage="embed",
                    error=f"embedding dimension {len(vector)} != {dimension}",
                ))
                continue
            drafts.append(ClauseDraft(
                lease_id=lease_id,
                text=chunk.text,
                topic=classification.topic,
                responsible_party=classification.responsible_party,
                embedding=vector,
                section_label=chunk.section_label,
                page_number=chunk.page_number,
                position=i,
            ))

        if chunks and not drafts:
            summary.warnings.append("No chunk could be embedded; existing clauses kept")
            logger.error(f"Indexing lease {lease_id} produced no clauses; existing clauses kept")
            return summary

        # Step 4: Replace
        summary.deleted_count = await self.repository.delete_clauses_for_lease(lease_id)
        logger.info(f"Deleted {summary.deleted_count} existing clauses for lease {lease_id}")
        stored: list[ClauseDraft] = []
        try:
            await self.repository.create_clauses(drafts)
            stored = drafts
        except Exception as e:
            logger.error(f"Batch clause write failed for lease {lease_id}, writing one by one: {e}")
            for draft in drafts:
                try:
                    await self.repository.upsert_clause(draft)
                    stored.append(draft)
                except Exception as row_error:
                    summary.failures.append(
                        ChunkFailure(index=draft.position, stage="store", error=str(row_error))
                    )

        summary.clause_count = len(stored)
        summary.topic_distribution = dict(Counter(d.topic.value for d in stored).most_common())
        if summary.clause_count < LOW_CLAUSE_COUNT:
            summary.warnings.append(f"Low clause count ({summary.clause_count})")

        for warning in summary.warnings:
            logger.warning(f"Lease {lease_id}: {warning}")
        for topic, count in summary.topic_distribution.items():
            logger.info(f"  {topic}: {count}")
        logger.info(
            f"Indexed lease {lease_id}: {summary.clause_count}/{summary.chunk_count} clauses stored, "
            f"{len(summary.failures)} failures"
        )
        return summary

    async def index_lease_pdf(self, lease_id: str, file_path: str | Path) -> IndexingSummary:
        """
        Extract text from a lease PDF and index it.

        Raises:
            LeaseNotFoundError: If the lease does not exist
            TextExtractionError: If the PDF has no extractable text
        """
        if await self.repository.get_lease(lease_id) is None:
            raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
        raw_text = await extract_pdf_text(file_path)
        return await self.index_lease_text(lease_id, raw_text)
