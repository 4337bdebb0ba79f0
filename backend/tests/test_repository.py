"""
Tests for the SQL repository.
"""
import pytest

from core.repository import (
    ClauseDraft,
    ClauseFilter,
    ClauseNotFoundError,
    DocumentNotFoundError,
    LeaseNotFoundError,
    PropertyNotFoundError,
)
from core.vocabulary import ClauseTopic, ResponsibleParty


def _draft(lease_id: str, text: str, topic=ClauseTopic.ROOF, party=ResponsibleParty.LANDLORD,
           position: int = 0, embedding=None) -> ClauseDraft:
    return ClauseDraft(
        lease_id=lease_id,
        text=text,
        topic=topic,
        responsible_party=party,
        embedding=embedding or [1.0, 0.0, 0.0],
        section_label="ARTICLE 1",
        page_number=1,
        position=position,
    )


class TestPortfolio:
    """Tests for properties and leases."""

    @pytest.mark.asyncio
    async def test_lease_round_trip_includes_property(self, repository, lease):
        fetched = await repository.get_lease(lease.id)
        assert fetched.tenant_name == "Acme Coffee Co."
        assert fetched.property_name == "Main Street Plaza"
        assert fetched.property_address == "100 Main St, Springfield"
        assert fetched.lease_end.year == 2029

    @pytest.mark.asyncio
    async def test_missing_records(self, repository):
        assert await repository.get_lease("missing") is None
        assert await repository.get_property("missing") is None
        assert await repository.get_document("missing") is None

    @pytest.mark.asyncio
    async def test_lease_requires_property(self, repository):
        with pytest.raises(PropertyNotFoundError):
            await repository.create_lease("missing", "Ghost Tenant")

    @pytest.mark.asyncio
    async def test_unknown_lease_fields_rejected(self, repository, lease):
        with pytest.raises(TypeError):
            await repository.create_lease(lease.property_id, "Bolt Fitness", colour="red")

    @pytest.mark.asyncio
    async def test_list_leases_by_property(self, repository, lease):
        other = await repository.create_property("Harbor Center")
        await repository.create_lease(other.id, "Bolt Fitness")

        assert [l.id for l in await repository.list_leases(lease.property_id)] == [lease.id]
        assert len(await repository.list_leases()) == 2

    @pytest.mark.asyncio
    async def test_delete_lease_cascades_clauses(self, repository, lease):
        await repository.create_clauses([_draft(lease.id, "one"), _draft(lease.id, "two", position=1)])

        assert await repository.delete_lease(lease.id) == 2
        assert await repository.get_lease(lease.id) is None
        assert await repository.count_clauses(lease.id) == 0
        with pytest.raises(LeaseNotFoundError):
            await repository.delete_lease(lease.id)


class TestClauses:
    """Tests for clause writes and filtered reads."""

    @pytest.mark.asyncio
    async def test_batch_create_and_read_in_order(self, repository, lease):
        ids = await repository.create_clauses([
            _draft(lease.id, "first", position=0),
            _draft(lease.id, "second", topic=ClauseTopic.HVAC, party=ResponsibleParty.TENANT, position=1),
        ])
        views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))

        assert [v.clause_id for v in views] == ids
        assert views[1].topic == ClauseTopic.HVAC
        assert views[1].responsible_party == ResponsibleParty.TENANT
        assert views[0].embedding == [1.0, 0.0, 0.0]
        assert views[0].tenant_name == "Acme Coffee Co."
        assert views[0].property_name == "Main Street Plaza"
        assert views[0].page_number == 1

    @pytest.mark.asyncio
    async def test_filters(self, repository, lease):
        other_prop = await repository.create_property("Harbor Center")
        other = await repository.create_lease(other_prop.id, "Bolt Fitness")
        await repository.create_clauses([
            _draft(lease.id, "roof"),
            _draft(lease.id, "hvac", topic=ClauseTopic.HVAC, party=ResponsibleParty.TENANT, position=1),
        ])
        await repository.create_clauses([_draft(other.id, "other roof", party=ResponsibleParty.SHARED)])

        by_property = await repository.find_clauses(ClauseFilter(property_id=other_prop.id))
        by_tenant = await repository.find_clauses(ClauseFilter(tenant_name="Acme Coffee Co."))
        by_topics = await repository.find_clauses(ClauseFilter(topics=(ClauseTopic.ROOF,)))
        by_party = await repository.find_clauses(ClauseFilter(responsible_party=ResponsibleParty.TENANT))

        assert [v.text for v in by_property] == ["other roof"]
        assert {v.text for v in by_tenant} == {"roof", "hvac"}
        assert {v.text for v in by_topics} == {"roof", "other roof"}
        assert [v.text for v in by_party] == ["hvac"]

    @pytest.mark.asyncio
    async def test_mixed_dimensions_rejected(self, repository, lease):
        with pytest.raises(ValueError):
            await repository.create_clauses([
                _draft(lease.id, "a", embedding=[1.0, 0.0]),
                _draft(lease.id, "b", embedding=[1.0, 0.0, 0.0]),
            ])
        assert await repository.count_clauses(lease.id) == 0

    @pytest.mark.asyncio
    async def test_upsert_updates_in_place(self, repository, lease):
        clause_id = await repository.upsert_clause(_draft(lease.id, "original"))
        same_id = await repository.upsert_clause(
            _draft(lease.id, "revised", topic=ClauseTopic.STRUCTURE), clause_id=clause_id
        )

        views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))
        assert same_id == clause_id
        assert [(v.text, v.topic) for v in views] == [("revised", ClauseTopic.STRUCTURE)]

        with pytest.raises(ClauseNotFoundError):
            await repository.upsert_clause(_draft(lease.id, "x"), clause_id="missing")

    @pytest.mark.asyncio
    async def test_delete_for_lease_returns_count(self, repository, lease):
        await repository.create_clauses([_draft(lease.id, str(i), position=i) for i in range(3)])
        assert await repository.delete_clauses_for_lease(lease.id) == 3
        assert await repository.delete_clauses_for_lease(lease.id) == 0


class TestDocuments:
    """Tests for documents and their chunks."""

    @pytest.mark.asyncio
    async def test_document_lifecycle(self, repository, lease):
        doc = await repository.create_document("lease.pdf", "/tmp/lease.pdf", "application/pdf", lease_id=lease.id)
        assert doc.status == "UPLOADED"

        await repository.replace_document_chunks(doc.id, [("alpha", [1.0, 0.0]), ("beta", [0.0, 1.0])])
        await repository.update_document(doc.id, "EXTRACTED", "alpha beta")

        fetched = await repository.get_document(doc.id)
        assert fetched.status == "EXTRACTED"
        assert fetched.extracted_text == "alpha beta"

        by_doc = await repository.find_document_chunks(document_id=doc.id)
        by_lease = await repository.find_document_chunks(lease_id=lease.id)
        assert [c.content for c in by_doc] == ["alpha", "beta"]
        assert [c.chunk_index for c in by_lease] == [0, 1]
        assert by_lease[0].lease_id == lease.id

    @pytest.mark.asyncio
    async def test_replace_chunks_discards_previous(self, repository):
        doc = await repository.create_document("notes.txt", "/tmp/notes.txt")
        await repository.replace_document_chunks(doc.id, [("old", [1.0])])
        await repository.replace_document_chunks(doc.id, [("new", [1.0])])
        assert [c.content for c in await repository.find_document_chunks(document_id=doc.id)] == ["new"]

    @pytest.mark.asyncio
    async def test_deleting_lease_detaches_documents(self, repository, lease):
        doc = await repository.create_document("lease.pdf", "/tmp/lease.pdf", lease_id=lease.id)
        await repository.replace_document_chunks(doc.id, [("alpha", [1.0, 0.0])])

        await repository.delete_lease(lease.id)

        assert (await repository.get_document(doc.id)).lease_id is None
        assert await repository.find_document_chunks(lease_id=lease.id) == []
        assert len(await repository.find_document_chunks(document_id=doc.id)) == 1

    @pytest.mark.asyncio
    async def test_document_requires_existing_lease(self, repository):
        with pytest.raises(LeaseNotFoundError):
            await repository.create_document("x.pdf", "/tmp/x.pdf", lease_id="missing")

    @pytest.mark.asyncio
    async def test_update_missing_document(self, repository):
        with pytest.raises(DocumentNotFoundError):
            await repository.update_document("missing", "FAILED")
