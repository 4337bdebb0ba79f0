"""
LeaseWise Repository Module
===========================
Persistence contract used by the indexing and retrieval core.

The core never holds an object graph: it works with ids and flat records,
and reads clauses through one filtered, joined projection (`ClauseView`)
that carries the lease and property fields needed for citations.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.database import Document, DocumentChunk, Lease, LeaseClause, Property, utcnow
from core.vocabulary import ClauseTopic, ResponsibleParty, parse_party, parse_topic

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Base class for missing records."""
    pass


class PropertyNotFoundError(NotFoundError):
    pass


class LeaseNotFoundError(NotFoundError):
    pass


class ClauseNotFoundError(NotFoundError):
    pass


class DocumentNotFoundError(NotFoundError):
    pass


# === Records ===

@dataclass
class PropertyRecord:
    id: str
    name: str
    address: str
    created_at: datetime | None = None


@dataclass
class LeaseRecord:
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


@dataclass
class ClauseDraft:
    """Everything needed to write one clause row as a unit."""
    lease_id: str
    text: str
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    embedding: list[float]
    section_label: str | None = None
    page_number: int | None = None
    position: int = 0


@dataclass
class ClauseView:
    """A clause joined with its owning lease and property."""
    clause_id: str
    lease_id: str
    text: str
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    section_label: str | None
    page_number: int | None
    embedding: list[float]
    created_at: datetime | None = None
    tenant_name: str | None = None
    property_id: str | None = None
    property_name: str | None = None


@dataclass(frozen=True)
class ClauseFilter:
    """Exact, non-vector filters applied before similarity scoring."""
    lease_id: str | None = None
    property_id: str | None = None
    tenant_name: str | None = None
    topics: tuple[ClauseTopic, ...] | None = None
    responsible_party: ResponsibleParty | None = None

    @property
    def has_topics(self) -> bool:
        return bool(self.topics)

    def without_topics(self) -> "ClauseFilter":
        return replace(self, topics=None)


@dataclass
class DocumentRecord:
    id: str
    file_name: str
    file_path: str
    status: str
    mime_type: str | None = None
    lease_id: str | None = None
    property_id: str | None = None
    extracted_text: str = ""
    uploaded_at: datetime | None = None


@dataclass
class DocumentChunkView:
    chunk_id: str
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float] = field(default_factory=list)
    lease_id: str | None = None


# === Contract ===

class LeaseRepository(ABC):
    """Storage operations the core relies on."""

    # Properties and leases
    @abstractmethod
    async def create_property(self, name: str, address: str = "") -> PropertyRecord: ...

    @abstractmethod
    async def get_property(self, property_id: str) -> PropertyRecord | None: ...

    @abstractmethod
    async def create_lease(self, property_id: str, tenant_name: str, **fields: Any) -> LeaseRecord: ...

    @abstractmethod
    async def get_lease(self, lease_id: str) -> LeaseRecord | None: ...

    @abstractmethod
    async def list_leases(self, property_id: str | None = None) -> list[LeaseRecord]: ...

    @abstractmethod
    async def delete_lease(self, lease_id: str) -> int: ...

    # Clauses
    @abstractmethod
    async def upsert_clause(self, draft: ClauseDraft, clause_id: str | None = None) -> str: ...

    @abstractmethod
    async def create_clauses(self, drafts: list[ClauseDraft]) -> list[str]: ...

    @abstractmethod
    async def delete_clauses_for_lease(self, lease_id: str) -> int: ...

    @abstractmethod
    async def find_clauses(self, filters: ClauseFilter) -> list[ClauseView]: ...

    @abstractmethod
    async def count_clauses(self, lease_id: str) -> int: ...

    @abstractmethod
    async def clause_dimension(self, exclude_lease_id: str | None = None) -> int | None:
        """Embedding length of the stored corpus, or None when it is empty."""

    # Documents
    @abstractmethod
    async def create_document(
        self,
        file_name: str,
        file_path: str,
        mime_type: str | None = None,
        lease_id: str | None = None,
        property_id: str | None = None,
    ) -> DocumentRecord: ...

    @abstractmethod
    async def get_document(self, document_id: str) -> DocumentRecord | None: ...

    @abstractmethod
    async def update_document(
        self, document_id: str, status: str, extracted_text: str | None = None
    ) -> None: ...

    @abstractmethod
    async def replace_document_chunks(
        self, document_id: str, chunks: list[tuple[str, list[float]]]
    ) -> int: ...

    @abstractmethod
    async def find_document_chunks(
        self, document_id: str | None = None, lease_id: str | None = None
    ) -> list[DocumentChunkView]: ...


def _check_dimensions(drafts: list[ClauseDraft]) -> None:
    dimensions = {len(d.embedding) for d in drafts}
    if len(dimensions) > 1:
        raise ValueError(f"Clause embeddings have mixed dimensions: {sorted(dimensions)}")
    if 0 in dimensions:
        raise ValueError("Clause embedding is empty")


def _lease_record(lease: Lease, prop: Property | None) -> LeaseRecord:
    return LeaseRecord(
        id=lease.id,
        property_id=lease.property_id,
        tenant_name=lease.tenant_name,
        suite=lease.suite,
        square_feet=lease.square_feet,
        base_rent=lease.base_rent,
        lease_start=lease.lease_start,
        lease_end=lease.lease_end,
        property_name=prop.name if prop else None,
        property_address=prop.address if prop else None,
    )


def _document_record(doc: Document) -> DocumentRecord:
    return DocumentRecord(
        id=doc.id,
        file_name=doc.file_name,
        file_path=doc.file_path,
        status=doc.status,
        mime_type=doc.mime_type,
        lease_id=doc.lease_id,
        property_id=doc.property_id,
        extracted_text=doc.extracted_text or "",
        uploaded_at=doc.uploaded_at,
    )


LEASE_FIELDS = ("suite", "square_feet", "base_rent", "lease_start", "lease_end")


class SQLLeaseRepository(LeaseRepository):
    """SQLAlchemy implementation; every method runs in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create_property(self, name: str, address: str = "") -> PropertyRecord:
        async with self._session_factory() as session, session.begin():
            prop = Property(name=name, address=address)
            session.add(prop)
            await session.flush()
            return PropertyRecord(id=prop.id, name=prop.name, address=prop.address, created_at=prop.created_at)

    async def get_property(self, property_id: str) -> PropertyRecord | None:
        async with self._session_factory() as session:
            prop = await session.get(Property, property_id)
            if prop is None:
                return None
            return PropertyRecord(id=prop.id, name=prop.name, address=prop.address, created_at=prop.created_at)

    async def create_lease(self, property_id: str, tenant_name: str, **fields: Any) -> LeaseRecord:
        unknown = set(fields) - set(LEASE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown lease fields: {sorted(unknown)}")
        async with self._session_factory() as session, session.begin():
            prop = await session.get(Property, property_id)
            if prop is None:
                raise PropertyNotFoundError(f"Property '{property_id}' not found")
            lease = Lease(property_id=property_id, tenant_name=tenant_name, **fields)
            session.add(lease)
            await session.flush()
            return _lease_record(lease, prop)

    async def get_lease(self, lease_id: str) -> LeaseRecord | None:
        async with self._session_factory() as session:
            row = (await session.execute(
                select(Lease, Property)
                .outerjoin(Property, Lease.property_id == Property.id)
                .where(Lease.id == lease_id)
            )).first()
            if row is None:
                return None
            return _lease_record(row[0], row[1])

    async def list_leases(self, property_id: str | None = None) -> list[LeaseRecord]:
        stmt = (
            select(Lease, Property)
            .outerjoin(Property, Lease.property_id == Property.id)
            .order_by(Lease.created_at, Lease.id)
        )
        if property_id:
            stmt = stmt.where(Lease.property_id == property_id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
            return [_lease_record(lease, prop) for lease, prop in rows]

    async def delete_lease(self, lease_id: str) -> int:
        """Delete a lease and its clauses; returns the number of clauses removed."""
        async with self._session_factory() as session, session.begin():
            lease = await session.get(Lease, lease_id)
            if lease is None:
                raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
            result = await session.execute(delete(LeaseClause).where(LeaseClause.lease_id == lease_id))
            await session.delete(lease)
            return result.rowcount or 0

    async def upsert_clause(self, draft: ClauseDraft, clause_id: str | None = None) -> str:
        _check_dimensions([draft])
        async with self._session_factory() as session, session.begin():
            if clause_id:
                clause = await session.get(LeaseClause, clause_id)
                if clause is None:
                    raise ClauseNotFoundError(f"Clause '{clause_id}' not found")
            else:
                clause = LeaseClause(lease_id=draft.lease_id)
                session.add(clause)
            clause.lease_id = draft.lease_id
            clause.text = draft.text
            clause.topic = draft.topic.value
            clause.responsible_party = draft.responsible_party.value
            clause.section_label = draft.section_label
            clause.page_number = draft.page_number
            clause.position = draft.position
            clause.embedding = list(draft.embedding)
            await session.flush()
            return clause.id

    async def create_clauses(self, drafts: list[ClauseDraft]) -> list[str]:
        if not drafts:
            return []
        _check_dimensions(drafts)
        created_at = utcnow()
        async with self._session_factory() as session, session.begin():
            rows = [
                LeaseClause(
                    lease_id=d.lease_id,
                    text=d.text,
                    topic=d.topic.value,
                    responsible_party=d.responsible_party.value,
                    section_label=d.section_label,
                    page_number=d.page_number,
                    position=d.position,
                    embedding=list(d.embedding),
                    created_at=created_at,
                )
                for d in drafts
            ]
            session.add_all(rows)
            await session.flush()
            return [row.id for row in rows]

    async def delete_clauses_for_lease(self, lease_id: str) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(delete(LeaseClause).where(LeaseClause.lease_id == lease_id))
            return result.rowcount or 0

    async def find_clauses(self, filters: ClauseFilter) -> list[ClauseView]:
        stmt = (
            select(LeaseClause, Lease.tenant_name, Lease.property_id, Property.name)
            .join(Lease, LeaseClause.lease_id == Lease.id)
            .outerjoin(Property, Lease.property_id == Property.id)
        )
        if filters.lease_id:
            stmt = stmt.where(LeaseClause.lease_id == filters.lease_id)
        if filters.property_id:
            stmt = stmt.where(Lease.property_id == filters.property_id)
        if filters.tenant_name:
            stmt = stmt.where(Lease.tenant_name == filters.tenant_name)
        if filters.topics:
            stmt = stmt.where(LeaseClause.topic.in_([t.value for t in filters.topics]))
        if filters.responsible_party:
            stmt = stmt.where(LeaseClause.responsible_party == filters.responsible_party.value)
        stmt = stmt.order_by(LeaseClause.created_at, LeaseClause.lease_id, LeaseClause.position, LeaseClause.id)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            ClauseView(
                clause_id=clause.id,
                lease_id=clause.lease_id,
                text=clause.text,
                topic=parse_topic(clause.topic),
                responsible_party=parse_party(clause.responsible_party),
                section_label=clause.section_label,
                page_number=clause.page_number,
                embedding=list(clause.embedding or []),
                created_at=clause.created_at,
                tenant_name=tenant_name,
                property_id=property_id,
                property_name=property_name,
            )
            for clause, tenant_name, property_id, property_name in rows
        ]

    async def count_clauses(self, lease_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(LeaseClause).where(LeaseClause.lease_id == lease_id)
            )
            return int(result.scalar_one())

    async def clause_dimension(self, exclude_lease_id: str | None = None) -> int | None:
        stmt = select(LeaseClause.embedding).limit(1)
        if exclude_lease_id:
            stmt = stmt.where(LeaseClause.lease_id != exclude_lease_id)
        async with self._session_factory() as session:
            embedding = (await session.execute(stmt)).scalar_one_or_none()
        return len(embedding) if embedding else None


    async def create_document(
        self,
        file_name: str,
        file_path: str,
        mime_type: str | None = None,
        lease_id: str | None = None,
        property_id: str | None = None,
    ) -> DocumentRecord:
        async with self._session_factory() as session, session.begin():
            if lease_id and await session.get(Lease, lease_id) is None:
                raise LeaseNotFoundError(f"Lease '{lease_id}' not found")
            doc = Document(
                file_name=file_name,
                file_path=file_path,
                mime_type=mime_type,
                lease_id=lease_id,
                property_id=property_id,
                status="UPLOADED",
                extracted_text="",
            )
            session.add(doc)
            await session.flush()
            return _document_record(doc)

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        async with self._session_factory() as session:
            doc = await session.get(Document, document_id)
            return _document_record(doc) if doc else None

    async def update_document(
        self, document_id: str, status: str, extracted_text: str | None = None
    ) -> None:
        async with self._session_factory() as session, session.begin():
            doc = await session.get(Document, document_id)
            if doc is None:
                raise DocumentNotFoundError(f"Document '{document_id}' not found")
            doc.status = status
            if extracted_text is not None:
                doc.extracted_text = extracted_text

    async def replace_document_chunks(
        self, document_id: str, chunks: list[tuple[str, list[float]]]
    ) -> int:
        async with self._session_factory() as session, session.begin():
            await session.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            session.add_all([
                DocumentChunk(
                    document_id=document_id,
                    chunk_index=index,
                    content=content,
                    embedding=list(embedding),
                )
                for index, (content, embedding) in enumerate(chunks)
            ])
            return len(chunks)

    async def find_document_chunks(
        self, document_id: str | None = None, lease_id: str | None = None
    ) -> list[DocumentChunkView]:
        stmt = (
            select(DocumentChunk, Document.lease_id)
            .join(Document, DocumentChunk.document_id == Document.id)
            .order_by(Document.uploaded_at, DocumentChunk.document_id, DocumentChunk.chunk_index)
        )
        if document_id:
            stmt = stmt.where(DocumentChunk.document_id == document_id)
        if lease_id:
            stmt = stmt.where(Document.lease_id == lease_id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            DocumentChunkView(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=list(chunk.embedding or []),
                lease_id=doc_lease_id,
            )
            for chunk, doc_lease_id in rows
        ]
