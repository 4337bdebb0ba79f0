"""
Tests for generic document ingestion and document Q&A.
"""
import pytest

from conftest import FakeEmbedder, FakeLLM
from core.documents import (
    DocumentIngestor,
    DocumentQAMode,
    DocumentQAService,
    DocumentStatus,
    chunk_text,
)
from core.llm import LLMError
from core.repository import DocumentNotFoundError, LeaseNotFoundError
from core.retrieval import AnswerGenerationError
from core.vector_search import VectorSearchEngine

PARKING_TEXT = (
    "Tenant shall have the non-exclusive right to use four reserved parking spaces "
    "located adjacent to the Premises. Visitor parking is available on a first come basis. "
)


class TestChunkText:
    """Tests for overlapping window chunking."""

    def test_short_text_is_dropped(self):
        assert chunk_text("Too short to be useful.") == []

    def test_single_window(self):
        chunks = chunk_text(PARKING_TEXT)
        assert chunks == [PARKING_TEXT.strip()]

    def test_whitespace_is_collapsed(self):
        chunks = chunk_text("Tenant   shall\n\npay\tall utilities " * 5)
        assert "  " not in chunks[0]
        assert "\n" not in chunks[0]

    def test_windows_overlap_and_respect_size(self):
        text = " ".join(f"word{i}" for i in range(800))
        chunks = chunk_text(text, max_chars=500, overlap=50)

        assert len(chunks) > 1
        assert all(len(c) <= 500 for c in chunks)
        for previous, current in zip(chunks, chunks[1:]):
            assert previous[-40:] in current[:60]

    def test_prefers_sentence_boundaries(self):
        text = "".join(f"This is sentence number {i} of the lease. " for i in range(60))
        chunks = chunk_text(text, max_chars=400, overlap=40)
        assert all(c.endswith(".") for c in chunks[:-1])

    def test_large_overlap_still_advances(self):
        text = " ".join(f"word{i}" for i in range(200))
        chunks = chunk_text(text, max_chars=100, overlap=99)
        assert chunks
        assert all(len(c) <= 100 for c in chunks)

    @pytest.mark.parametrize("max_chars,overlap", [(0, 0), (100, 100), (100, -1)])
    def test_invalid_arguments(self, max_chars, overlap):
        with pytest.raises(ValueError):
            chunk_text(PARKING_TEXT, max_chars=max_chars, overlap=overlap)


async def _document(repository, tmp_path, content: str, lease_id=None, name="notes.txt"):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return await repository.create_document(name, str(path), "text/plain", lease_id=lease_id)


class TestDocumentIngestor:
    """Tests for the document ingestion status lifecycle."""

    @pytest.mark.asyncio
    async def test_text_document_is_extracted(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT * 2)

        result = await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)

        assert result.status == DocumentStatus.EXTRACTED
        assert result.chunk_count == 1
        stored = await repository.get_document(doc.id)
        assert stored.status == "EXTRACTED"
        assert "reserved parking" in stored.extracted_text
        assert len(await repository.find_document_chunks(document_id=doc.id)) == 1

    @pytest.mark.asyncio
    async def test_empty_file_stays_uploaded(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, "   \n")

        result = await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)

        assert result.status == DocumentStatus.UPLOADED
        assert result.error
        assert (await repository.get_document(doc.id)).status == "UPLOADED"

    @pytest.mark.asyncio
    async def test_text_too_short_to_chunk_stays_uploaded(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, "Suite 101.")

        result = await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)

        assert result.status == DocumentStatus.UPLOADED
        assert result.chunk_count == 0
        assert (await repository.get_document(doc.id)).extracted_text == "Suite 101."

    @pytest.mark.asyncio
    async def test_embedding_failure_marks_failed(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT)

        result = await DocumentIngestor(repository, FakeEmbedder(fail_on="parking")).ingest(doc.id)

        assert result.status == DocumentStatus.FAILED
        assert (await repository.get_document(doc.id)).status == "FAILED"

    @pytest.mark.asyncio
    async def test_missing_document(self, repository):
        with pytest.raises(DocumentNotFoundError):
            await DocumentIngestor(repository, FakeEmbedder()).ingest("missing")


def _qa(repository, llm, embedder=None) -> DocumentQAService:
    return DocumentQAService(repository, VectorSearchEngine(repository, embedder or FakeEmbedder()), llm)


class TestDocumentQAService:
    """Tests for document and lease-level document questions."""

    @pytest.mark.asyncio
    async def test_ask_document_from_chunks(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT)
        await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)
        llm = FakeLLM(["Four reserved spaces."])

        answer = await _qa(repository, llm).ask_document(doc.id, "How many parking spaces?")

        assert answer.mode == DocumentQAMode.RAG
        assert answer.answer == "Four reserved spaces."
        assert answer.sources[0].document_id == doc.id
        assert answer.sources[0].snippet.endswith("...")
        assert "[Context 1]:" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_unprocessed_document_has_no_chunks(self, repository, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT)
        llm = FakeLLM()

        answer = await _qa(repository, llm).ask_document(doc.id, "How many parking spaces?")

        assert answer.mode == DocumentQAMode.NO_CHUNKS
        assert answer.sources == []
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_ask_missing_document(self, repository):
        with pytest.raises(DocumentNotFoundError):
            await _qa(repository, FakeLLM()).ask_document("missing", "Anything?")

    @pytest.mark.asyncio
    async def test_ask_lease_uses_attached_documents(self, repository, lease, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT, lease_id=lease.id)
        await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)
        llm = FakeLLM(["Four spaces."])

        answer = await _qa(repository, llm).ask_lease(lease.id, "How many parking spaces?")

        assert answer.mode == DocumentQAMode.RAG
        assert answer.metadata["tenant_name"] == "Acme Coffee Co."
        assert "LEASE METADATA:" in llm.prompts[0]
        assert "- Base Rent: $8500.0/month" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_ask_lease_without_documents_uses_metadata(self, repository, lease):
        llm = FakeLLM(["The lease ends on 2029-12-31."])

        answer = await _qa(repository, llm).ask_lease(lease.id, "When does the lease end?")

        assert answer.mode == DocumentQAMode.METADATA_ONLY
        assert answer.sources == []
        assert answer.metadata["lease_end"] == "2029-12-31"
        assert "No lease document text is available" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_retrieval_failure_falls_back_to_metadata(self, repository, lease, tmp_path):
        doc = await _document(repository, tmp_path, PARKING_TEXT, lease_id=lease.id)
        await DocumentIngestor(repository, FakeEmbedder()).ingest(doc.id)

        answer = await _qa(repository, FakeLLM(), embedder=FakeEmbedder(fail_on="parking")).ask_lease(
            lease.id, "How many parking spaces?"
        )

        assert answer.mode == DocumentQAMode.METADATA_ONLY

    @pytest.mark.asyncio
    async def test_ask_missing_lease(self, repository):
        with pytest.raises(LeaseNotFoundError):
            await _qa(repository, FakeLLM()).ask_lease("missing", "Anything?")

    @pytest.mark.asyncio
    async def test_generation_failure(self, repository, lease):
        with pytest.raises(AnswerGenerationError):
            await _qa(repository, FakeLLM([LLMError("quota exceeded")])).ask_lease(lease.id, "Anything?")
