"""
LeaseWise API Dependencies
==========================
FastAPI dependency providers for the store, providers and services.

Every provider can be replaced through `app.dependency_overrides`.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine

from core.classifier import ClauseClassifier
from core.config import get_settings
from core.database import make_engine, make_session_factory
from core.documents import DocumentIngestor, DocumentQAService
from core.embeddings import EmbeddingProvider, get_embedding_provider
from core.indexer import LeaseIndexer
from core.llm import LLMClient
from core.repository import LeaseRepository, SQLLeaseRepository
from core.retrieval import LeaseQAService
from core.vector_search import VectorSearchEngine


@lru_cache
def get_engine() -> AsyncEngine:
    return make_engine(get_settings().database_url)


@lru_cache
def _repository() -> SQLLeaseRepository:
    return SQLLeaseRepository(make_session_factory(get_engine()))


def get_repository() -> LeaseRepository:
    return _repository()


def get_embedder() -> EmbeddingProvider:
    return get_embedding_provider()


@lru_cache
def _llm() -> LLMClient:
    return LLMClient()


def get_llm() -> LLMClient:
    return _llm()


RepositoryDep = Annotated[LeaseRepository, Depends(get_repository)]
EmbedderDep = Annotated[EmbeddingProvider, Depends(get_embedder)]
LLMDep = Annotated[LLMClient, Depends(get_llm)]


def get_search_engine(repository: RepositoryDep, embedder: EmbedderDep) -> VectorSearchEngine:
    return VectorSearchEngine(repository, embedder)


SearchEngineDep = Annotated[VectorSearchEngine, Depends(get_search_engine)]


def get_indexer(repository: RepositoryDep, embedder: EmbedderDep, llm: LLMDep) -> LeaseIndexer:
    return LeaseIndexer(repository, ClauseClassifier(llm), embedder)


def get_qa_service(
    repository: RepositoryDep, search_engine: SearchEngineDep, llm: LLMDep
) -> LeaseQAService:
    return LeaseQAService(repository, search_engine, llm)


def get_document_ingestor(repository: RepositoryDep, embedder: EmbedderDep) -> DocumentIngestor:
    return DocumentIngestor(repository, embedder)


def get_document_qa(
    repository: RepositoryDep, search_engine: SearchEngineDep, llm: LLMDep
) -> DocumentQAService:
    return DocumentQAService(repository, search_engine, llm)


IndexerDep = Annotated[LeaseIndexer, Depends(get_indexer)]
QAServiceDep = Annotated[LeaseQAService, Depends(get_qa_service)]
DocumentIngestorDep = Annotated[DocumentIngestor, Depends(get_document_ingestor)]
DocumentQADep = Annotated[DocumentQAService, Depends(get_document_qa)]
