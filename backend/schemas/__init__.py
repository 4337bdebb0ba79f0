"""
LeaseWise API Schemas
=====================
Pydantic models for API request/response validation.
All API contracts are defined here for type safety and documentation.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from core.vocabulary import ClauseTopic, ResponsibleParty


# === Enums ===

class DocumentStatusEnum(str, Enum):
    """Processing status of an uploaded document."""
    UPLOADED = "UPLOADED"
    EXTRACTED = "EXTRACTED"
    FAILED = "FAILED"


class QAModeEnum(str, Enum):
    """How a question was answered."""
    CLAUSE_RAG = "clause_rag"
    NO_CLAUSES = "no_clauses"
    RAG = "rag"
    NO_CHUNKS = "no_chunks"
    METADATA_ONLY = "metadata_only"


# === Portfolio Schemas ===

class PropertyCreate(BaseModel):
    """Request to register a property."""
    name: str = Field(..., min_length=1, max_length=256, description="Property name")
    address: str = Field(default="", max_length=512, description="Street address")


class PropertyResponse(BaseModel):
    id: str
    name: str
    address: str
    created_at: datetime | None = None


class LeaseCreate(BaseModel):
    """Request to register a lease under a property."""
    property_id: str = Field(..., description="Owning property")
    tenant_name: str = Field(..., min_length=1, max_length=256, description="Tenant name")
    suite: str | None = Field(default=None, max_length=64)
    square_feet: int | None = Field(default=None, ge=0)
    base_rent: float | None = Field(default=None, ge=0, description="Monthly base rent")
    lease_start: date | None = None
    lease_end: date | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "property_id": "3f1c0d2e9a8b4c7d",
                "tenant_name": "Acme Coffee Co.",
                "suite": "101",
                "square_feet": 2400,
                "base_rent": 8500.0,
                "lease_start": "2024-01-01",
                "lease_end": "2029-12-31"
            }
        }


class LeaseResponse(BaseModel):
    id: str
    property_id: str
    tenant_name: str
    suite: str | None = None
    square_feet: int | None = None
    base_rent: float | None = None
    lease_start: date | None = None
    lease_end: date | None = None
    property_name: str | None = None
    property_address: str | None = None
    clause_count: int = 0


class LeaseDeleteResponse(BaseModel):
    lease_id: str
    deleted_clauses: int


# === Clause Indexing ===

class IndexTextRequest(BaseModel):
    """Raw lease text to segment, classify and index."""
    text: str = Field(..., min_length=1, description="Full lease text")
    max_chars: int | None = Field(
        default=None,
        ge=80,
        le=10000,
        description="Maximum characters per clause chunk"
    )


class ChunkFailureSchema(BaseModel):
    index: int
    stage: str
    error: str


class ChunkingStatsSchema(BaseModel):
    total_chunks: int
    avg_length: int
    min_length: int
    max_length: int
    with_section_label: int


class IndexingSummaryResponse(BaseModel):
    """Outcome of a clause indexing run."""
    lease_id: str
    chunk_count: int
    clause_count: int
    deleted_count: int
    failures: list[ChunkFailureSchema] = Field(default_factory=list)
    topic_distribution: dict[str, int] = Field(default_factory=dict)
    stats: ChunkingStatsSchema | None = None
    warnings: list[str] = Field(default_factory=list)


class ClauseSchema(BaseModel):
    """A stored lease clause (embedding omitted)."""
    id: str
    lease_id: str
    text: str
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    section_label: str | None = None
    page_number: int | None = None


class ClauseListResponse(BaseModel):
    lease_id: str
    total: int
    clauses: list[ClauseSchema]


# === Clause Q&A ===

class ClauseQuestionRequest(BaseModel):
    """A question against one lease or the portfolio."""
    question: str = Field(..., min_length=1, max_length=2000, description="Natural-language question")
    lease_id: str | None = Field(default=None, description="Restrict to one lease")
    property_id: str | None = Field(default=None, description="Restrict to one property")
    tenant_name: str | None = Field(default=None, description="Restrict to one tenant")
    topic: ClauseTopic | None = Field(default=None, description="Explicit topic filter")

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question must not be blank")
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "question": "Who pays for roof repairs?",
                "lease_id": "9b2e4f6a1c3d5e7f"
            }
        }


class CitationSchema(BaseModel):
    """Clause cited in support of an answer."""
    lease_id: str
    tenant_name: str | None = None
    property_id: str | None = None
    property_name: str | None = None
    section_label: str | None = None
    text_snippet: str
    page_number: int | None = None
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    similarity: float


class ClauseAnswerResponse(BaseModel):
    answer: str
    mode: QAModeEnum
    scope: str
    responsible_party: ResponsibleParty | None = None
    citations: list[CitationSchema] = Field(default_factory=list)
    inferred_topics: list[ClauseTopic] = Field(default_factory=list)
    widened: bool = False


# === Documents ===

class DocumentResponse(BaseModel):
    """Stored document with its processing status."""
    id: str
    file_name: str
    status: DocumentStatusEnum
    mime_type: str | None = None
    lease_id: str | None = None
    property_id: str | None = None
    uploaded_at: datetime | None = None
    chunk_count: int = 0


class QuestionRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question must not be blank")
        return v.strip()


class SourceChunkSchema(BaseModel):
    document_id: str
    chunk_index: int
    snippet: str
    similarity: float


class DocumentAnswerResponse(BaseModel):
    answer: str
    mode: QAModeEnum
    sources: list[SourceChunkSchema] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None


# === Error Schemas ===

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] | None = Field(None, description="Additional error details")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "LeaseNotFound",
                "message": "Lease '9b2e4f6a1c3d5e7f' not found",
                "details": {"lease_id": "9b2e4f6a1c3d5e7f"}
            }
        }


# === Health Check ===

class HealthCheckResponse(BaseModel):
    """API health check response."""
    status: str = Field(..., description="API status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Current server timestamp")
    services: dict[str, str] = Field(..., description="Status of dependent services")
