"""
LeaseWise Vector Search Module
==============================
Exact cosine-similarity search over a pre-filtered candidate set.

Search is brute force: every candidate that survives the store's exact
filters is scored against the query vector. Cost is O(candidates) per
query, which holds for hundreds to low thousands of clauses per scope.
A warning is logged when a candidate set grows past the configured
threshold so the limit is visible before it becomes a latency problem.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

import numpy as np

from core.config import get_settings
from core.embeddings import EmbeddingProvider
from core.repository import ClauseFilter, ClauseView, DocumentChunkView, LeaseRepository
from core.vocabulary import ClauseTopic, ResponsibleParty

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 300

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), defined as 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64).reshape(-1)
    vb = np.asarray(b, dtype=np.float64).reshape(-1)
    if va.shape != vb.shape:
        raise ValueError(f"Vectors must have the same length ({va.size} != {vb.size})")
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def rank_by_similarity(
    query_vector: Sequence[float],
    candidates: Sequence[T],
    vector_of: Callable[[T], Sequence[float]],
    top_k: int,
    min_similarity: float,
) -> list[tuple[T, float]]:
    """
    Score candidates against the query and keep the best top_k.

    Candidates below min_similarity are dropped. Ordering is descending by
    similarity; equal scores keep their original fetch order.
    """
    scored: list[tuple[T, float]] = []
    for candidate in candidates:
        vector = vector_of(candidate)
        if not vector:
            continue
        try:
            similarity = cosine_similarity(query_vector, vector)
        except ValueError as e:
            logger.warning(f"Skipping candidate with incompatible embedding: {e}")
            continue
        if similarity >= min_similarity:
            scored.append((candidate, similarity))

    # sorted() is stable, so ties stay in fetch order
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return scored[:max(top_k, 0)]


def make_snippet(text: str, limit: int = SNIPPET_CHARS) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


@dataclass
class ClauseSearchResult:
    """A retrieved clause with its similarity to the query."""
    clause_id: str
    lease_id: str
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    section_label: str | None
    text: str
    text_snippet: str
    page_number: int | None
    similarity: float
    tenant_name: str | None = None
    property_id: str | None = None
    property_name: str | None = None

    @classmethod
    def from_view(cls, view: ClauseView, similarity: float) -> "ClauseSearchResult":
        return cls(
            clause_id=view.clause_id,
            lease_id=view.lease_id,
            topic=view.topic,
            responsible_party=view.responsible_party,
            section_label=view.section_label,
            text=view.text,
            text_snippet=make_snippet(view.text),
            page_number=view.page_number,
            similarity=similarity,
            tenant_name=view.tenant_name,
            property_id=view.property_id,
            property_name=view.property_name,
        )


@dataclass
class ChunkSearchResult:
    """A retrieved generic document chunk."""
    chunk_id: str
    document_id: str
    chunk_index: int
    content: str
    similarity: float
    lease_id: str | None = None


class VectorSearchEngine:
    """
    Clause and document-chunk retrieval by exact cosine similarity.

    Filtering happens in the store before any scoring, so a filter is
    never approximated.
    """

    def __init__(self, repository: LeaseRepository, embedder: EmbeddingProvider):
        self.repository = repository
        self.embedder = embedder
        self.warn_candidates = get_settings().brute_force_warn_candidates

    def _check_scale(self, count: int, scope: str) -> None:
        if count > self.warn_candidates:
            logger.warning(
                f"Exact search over {count} candidates ({scope}) exceeds "
                f"{self.warn_candidates}; brute-force scoring will degrade"
            )

    async def search(
        self,
        query: str,
        filters: ClauseFilter | None = None,
        top_k: int = 10,
        min_similarity: float = 0.25,
    ) -> list[ClauseSearchResult]:
        """
        Retrieve clauses most similar to the query text.

        Args:
            query: Natural-language query
            filters: Exact pre-filters (lease, property, tenant, topics, party)
            top_k: Maximum number of results
            min_similarity: Similarity floor

        Returns:
            Results sorted by descending similarity, all >= min_similarity
        """
        filters = filters or ClauseFilter()
        candidates = await self.repository.find_clauses(filters)
        if not candidates:
            return []
        self._check_scale(len(candidates), "clauses")

        query_vector = await self.embedder.embed(query)
        ranked = rank_by_similarity(
            query_vector,
            candidates,
            lambda view: view.embedding,
            top_k,
            min_similarity,
        )
        logger.debug(
            f"Clause search: {len(candidates)} candidates, {len(ranked)} results "
            f"(top_k={top_k}, min_similarity={min_similarity})"
        )
        return [ClauseSearchResult.from_view(view, score) for view, score in ranked]

    async def search_document_chunks(
        self,
        query: str,
        document_id: str | None = None,
        lease_id: str | None = None,
        top_k: int = 5,
        min_similarity: float = 0.0,
    ) -> list[ChunkSearchResult]:
        """Retrieve generic document chunks for a document or for all of a lease's documents."""
        candidates: list[DocumentChunkView] = await self.repository.find_document_chunks(
            document_id=document_id, lease_id=lease_id
        )
        if not candidates:
            return []
        self._check_scale(len(candidates), "document chunks")

        query_vector = await self.embedder.embed(query)
        ranked = rank_by_similarity(
            query_vector,
            candidates,
            lambda chunk: chunk.embedding,
            top_k,
            min_similarity,
        )
        return [
            ChunkSearchResult(
                chunk_id=chunk.chunk_id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                similarity=score,
                lease_id=chunk.lease_id,
            )
            for chunk, score in ranked
        ]
