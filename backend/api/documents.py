"""
LeaseWise Documents API
=======================
Handles document upload, validation, storage and document-level Q&A.
"""

import logging
import uuid
from pathlib import Path
from typing import Annotated

import aiofiles
from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from api.dependencies import DocumentIngestorDep, DocumentQADep, RepositoryDep
from core.config import get_settings
from core.documents import DocumentAnswer
from core.repository import DocumentNotFoundError, DocumentRecord
from schemas import (
    DocumentAnswerResponse,
    DocumentResponse,
    DocumentStatusEnum,
    ErrorResponse,
    QuestionRequest,
    SourceChunkSchema,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Documents"])

PDF_TYPES = {"application/pdf": ".pdf"}
DOCUMENT_TYPES = {**PDF_TYPES, "text/plain": ".txt"}


def validate_file(file: UploadFile, accepted: dict[str, str]) -> str:
    """
    Validate an uploaded file's content type and extension.

    Returns:
        The file extension to store it under

    Raises:
        HTTPException: If validation fails
    """
    if file.content_type not in accepted:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail={
                "error": "UnsupportedMediaType",
                "message": f"Accepted file types: {', '.join(sorted(accepted))}.",
                "details": {
                    "received_type": file.content_type,
                    "accepted_types": sorted(accepted)
                }
            }
        )

    suffix = accepted[file.content_type]
    if not file.filename or not file.filename.lower().endswith(suffix):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "InvalidFilename",
                "message": f"File must have a {suffix} extension.",
                "details": {"filename": file.filename}
            }
        )
    return suffix


async def save_file(file: UploadFile, suffix: str) -> tuple[Path, int]:
    """
    Stream an uploaded file to the upload directory.

    Returns:
        Tuple of (file_path, file_size_bytes)
    """
    settings = get_settings()
    upload_dir = settings.upload_dir
    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / f"{uuid.uuid4().hex}{suffix}"

    file_size = 0
    async with aiofiles.open(file_path, 'wb') as out_file:
        while chunk := await file.read(1024 * 1024):  # 1MB chunks
            file_size += len(chunk)
            if file_size > settings.max_file_size_bytes:
                file_path.unlink(missing_ok=True)
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail={
                        "error": "FileTooLarge",
                        "message": f"File exceeds maximum size of {settings.max_file_size_mb}MB.",
                        "details": {
                            "max_size_mb": settings.max_file_size_mb,
                            "received_bytes": file_size
                        }
                    }
                )
            await out_file.write(chunk)

    if file_size == 0:
        file_path.unlink(missing_ok=True)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "EmptyFile",
                "message": "Uploaded file is empty.",
                "details": {"filename": file.filename}
            }
        )
    return file_path, file_size


def document_response(doc: DocumentRecord, chunk_count: int = 0) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id,
        file_name=doc.file_name,
        status=DocumentStatusEnum(doc.status),
        mime_type=doc.mime_type,
        lease_id=doc.lease_id,
        property_id=doc.property_id,
        uploaded_at=doc.uploaded_at,
        chunk_count=chunk_count,
    )


def answer_response(answer: DocumentAnswer) -> DocumentAnswerResponse:
    return DocumentAnswerResponse(
        answer=answer.answer,
        mode=answer.mode.value,
        sources=[SourceChunkSchema(**s.to_dict()) for s in answer.sources],
        metadata=answer.metadata,
    )


@router.post(
    "/documents/upload",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        413: {"model": ErrorResponse, "description": "File too large"},
        415: {"model": ErrorResponse, "description": "Unsupported file type"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
        404: {"model": ErrorResponse, "description": "Lease not found"}
    },
    summary="Upload a document",
    description="""
    Upload a PDF or plain-text document, optionally attached to a lease.

    The document is extracted, chunked and embedded immediately; the
    returned status is `EXTRACTED` when chunks were stored.
    """
)
async def upload_document(
    file: Annotated[UploadFile, File(description="PDF or text document to upload")],
    repository: RepositoryDep,
    ingestor: DocumentIngestorDep,
    lease_id: Annotated[str | None, Form()] = None,
    property_id: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    logger.info(f"Received upload request: {file.filename}")
    suffix = validate_file(file, DOCUMENT_TYPES)
    file_path, file_size = await save_file(file, suffix)

    try:
        doc = await repository.create_document(
            file_name=file.filename or f"document{suffix}",
            file_path=str(file_path),
            mime_type=file.content_type,
            lease_id=lease_id,
            property_id=property_id,
        )
    except Exception:
        file_path.unlink(missing_ok=True)
        raise

    result = await ingestor.ingest(doc.id)
    logger.info(f"Document uploaded: {doc.id} ({file_size} bytes, {result.chunk_count} chunks)")

    stored = await repository.get_document(doc.id)
    return document_response(stored or doc, result.chunk_count)


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
    summary="Get document status"
)
async def get_document(document_id: str, repository: RepositoryDep) -> DocumentResponse:
    doc = await repository.get_document(document_id)
    if doc is None:
        raise DocumentNotFoundError(f"Document '{document_id}' not found")
    chunks = await repository.find_document_chunks(document_id=document_id)
    return document_response(doc, len(chunks))


@router.post(
    "/documents/{document_id}/ask",
    response_model=DocumentAnswerResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Document not found"},
        502: {"model": ErrorResponse, "description": "Answer generation failed"}
    },
    summary="Ask a question about one document"
)
async def ask_document(
    document_id: str, request: QuestionRequest, service: DocumentQADep
) -> DocumentAnswerResponse:
    return answer_response(await service.ask_document(document_id, request.question))


@router.post(
    "/leases/{lease_id}/ask",
    response_model=DocumentAnswerResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Lease not found"},
        502: {"model": ErrorResponse, "description": "Answer generation failed"}
    },
    summary="Ask a question about a lease's documents",
    description="Answers from the lease's document chunks, or from lease metadata when none exist."
)
async def ask_lease(
    lease_id: str, request: QuestionRequest, service: DocumentQADep
) -> DocumentAnswerResponse:
    return answer_response(await service.ask_lease(lease_id, request.question))
