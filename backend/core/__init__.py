"""
LeaseWise Core Module
=====================
Core business logic for lease clause indexing and retrieval.

Modules:
- vocabulary: Clause topics, responsible parties and question keywords
- segmenter: Heading-aware clause segmentation
- classifier: LLM clause classification
- embeddings: Local and OpenAI embedding providers
- database / repository: SQLAlchemy persistence
- vector_search: Exact cosine-similarity retrieval
- indexer: Lease indexing pipeline
- retrieval: Clause question answering
- documents: Generic document ingestion and Q&A
- config: Application configuration
"""

from core.classifier import ClauseClassification, ClauseClassifier
from core.config import Settings, get_settings
from core.documents import DocumentIngestor, DocumentQAService, chunk_text
from core.embeddings import EmbeddingError, EmbeddingProvider, create_embedding_provider
from core.indexer import ChunkFailure, IndexingSummary, LeaseIndexer
from core.llm import LLMClient, LLMError
from core.pdf_text import TextExtractionError, extract_pdf_text
from core.repository import (
    ClauseDraft,
    ClauseFilter,
    ClauseView,
    DocumentNotFoundError,
    LeaseNotFoundError,
    LeaseRepository,
    NotFoundError,
    PropertyNotFoundError,
    SQLLeaseRepository,
)
from core.retrieval import AnswerGenerationError, LeaseQAResult, LeaseQAService
from core.segmenter import ClauseChunk, chunking_stats, segment_lease_text
from core.vector_search import ClauseSearchResult, VectorSearchEngine, cosine_similarity
from core.vocabulary import (
    CLAUSE_TOPICS,
    RESPONSIBLE_PARTIES,
    ClauseTopic,
    ResponsibleParty,
    infer_topics_from_question,
)

__all__ = [
    # Vocabulary
    "ClauseTopic",
    "ResponsibleParty",
    "CLAUSE_TOPICS",
    "RESPONSIBLE_PARTIES",
    "infer_topics_from_question",
    # Segmentation
    "ClauseChunk",
    "segment_lease_text",
    "chunking_stats",
    # Classification
    "ClauseClassifier",
    "ClauseClassification",
    "LLMClient",
    "LLMError",
    # Embeddings
    "EmbeddingProvider",
    "EmbeddingError",
    "create_embedding_provider",
    # Persistence
    "LeaseRepository",
    "SQLLeaseRepository",
    "ClauseDraft",
    "ClauseFilter",
    "ClauseView",
    "NotFoundError",
    "PropertyNotFoundError",
    "LeaseNotFoundError",
    "DocumentNotFoundError",
    # Search
    "VectorSearchEngine",
    "ClauseSearchResult",
    "cosine_similarity",
    # Indexing
    "LeaseIndexer",
    "IndexingSummary",
    "ChunkFailure",
    "extract_pdf_text",
    "TextExtractionError",
    # Q&A
    "LeaseQAService",
    "LeaseQAResult",
    "AnswerGenerationError",
    # Documents
    "DocumentIngestor",
    "DocumentQAService",
    "chunk_text",
    # Config
    "Settings",
    "get_settings",
]
