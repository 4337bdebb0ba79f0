"""
LeaseWise Clauses API
=====================
Clause indexing, listing and clause-level question answering.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, File, Query, UploadFile, status

from api.dependencies import IndexerDep, QAServiceDep, RepositoryDep
from api.documents import PDF_TYPES, save_file, validate_file
from core.indexer import IndexingSummary
from core.repository import ClauseFilter, LeaseNotFoundError
from core.vocabulary import ClauseTopic, ResponsibleParty
from schemas import (
    ClauseAnswerResponse,
    ClauseListResponse,
    ClauseQuestionRequest,
    ClauseSchema,
    ErrorResponse,
    IndexingSummaryResponse,
    IndexTextRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Clauses"])


def summary_response(summary: IndexingSummary) -> IndexingSummaryResponse:
    return IndexingSummaryResponse(**summary.to_dict())


@router.post(
    "/leases/{lease_id}/clauses/index",
    response_model=IndexingSummaryResponse,
    responses={404: {"model": ErrorResponse, "description": "Lease not found"}},
    summary="Index lease text into clauses",
    description="""
    Segment the lease text into clause chunks, classify each chunk by topic
    and responsible party, embed it, and replace the lease's stored clauses.
    Re-indexing the same lease is idempotent in clause count.
    """
)
async def index_lease_text(
    lease_id: str, request: IndexTextRequest, indexer: IndexerDep
) -> IndexingSummaryResponse:
    summary = await indexer.index_lease_text(lease_id, request.text, request.max_chars)
    return summary_response(summary)


@router.post(
    "/leases/{lease_id}/clauses/index-pdf",
    response_model=IndexingSummaryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Lease not found"},
        415: {"model": ErrorResponse, "description": "Unsupported file type"},
        422: {"model": ErrorResponse, "description": "No extractable text"}
    },
    summary="Index a lease PDF into clauses"
)
async def index_lease_pdf(
    lease_id: str,
    file: Annotated[UploadFile, File(description="Lease PDF")],
    repository: RepositoryDep,
    indexer: IndexerDep,
) -> IndexingSummaryResponse:
    if await repository.get_lease(lease_id) is None:
        raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
    suffix = validate_file(file, PDF_TYPES)
    file_path, file_size = await save_file(file, suffix)
    logger.info(f"Indexing uploaded PDF for lease {lease_id} ({file_size} bytes)")
    try:
        summary = await indexer.index_lease_pdf(lease_id, file_path)
    finally:
        # Clauses keep the text; the upload itself is not retained
        file_path.unlink(missing_ok=True)
    return summary_response(summary)


@router.get(
    "/leases/{lease_id}/clauses",
    response_model=ClauseListResponse,
    responses={404: {"model": ErrorResponse, "description": "Lease not found"}},
    summary="List a lease's indexed clauses"
)
async def list_clauses(
    lease_id: str,
    repository: RepositoryDep,
    topic: Annotated[ClauseTopic | None, Query()] = None,
    responsible_party: Annotated[ResponsibleParty | None, Query()] = None,
) -> ClauseListResponse:
    if await repository.get_lease(lease_id) is None:
        raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
    views = await repository.find_clauses(ClauseFilter(
        lease_id=lease_id,
        topics=(topic,) if topic else None,
        responsible_party=responsible_party,
    ))
    clauses = [
        ClauseSchema(
            id=v.clause_id,
            lease_id=v.lease_id,
            text=v.text,
            topic=v.topic,
            responsible_party=v.responsible_party,
            section_label=v.section_label,
            page_number=v.page_number,
        )
        for v in views
    ]
    return ClauseListResponse(lease_id=lease_id, total=len(clauses), clauses=clauses)


@router.post(
    "/qa/clauses",
    response_model=ClauseAnswerResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Lease not found"},
        502: {"model": ErrorResponse, "description": "Answer generation failed"}
    },
    summary="Ask a question against indexed clauses",
    description="""
    Answer a question about one lease (`lease_id`) or the whole portfolio,
    optionally narrowed by property, tenant or topic. Returns
    `mode=no_clauses` rather than an error when nothing relevant is indexed.
    """
)
async def ask_clauses(request: ClauseQuestionRequest, service: QAServiceDep) -> ClauseAnswerResponse:
    result = await service.ask(
        request.question,
        lease_id=request.lease_id,
        property_id=request.property_id,
        tenant_name=request.tenant_name,
        topic=request.topic,
    )
    return ClauseAnswerResponse(**result.to_dict())
