"""
Tests for the lease indexing pipeline.
"""
import pytest

from conftest import FakeEmbedder, FakeLLM, keyword_classification
from core import indexer as indexer_module
from core.classifier import ClauseClassifier
from core.indexer import LeaseIndexer
from core.pdf_text import TextExtractionError
from core.rate_limit import NoopRateLimiter
from core.repository import ClauseFilter, LeaseNotFoundError
from core.vocabulary import ClauseTopic, ResponsibleParty


def _indexer(repository, embedder=None, llm=None) -> LeaseIndexer:
    classifier = ClauseClassifier(llm or FakeLLM(handler=keyword_classification), rate_limiter=NoopRateLimiter())
    return LeaseIndexer(repository, classifier, embedder or FakeEmbedder())


class TruncatingEmbedder(FakeEmbedder):
    """Returns vectors cut to `length`, whatever dimension it declares."""

    def __init__(self, length: int, dimension: int | None = None):
        super().__init__()
        self.length = length
        self.dimension = dimension or length

    async def embed_batch(self, texts):
        self.calls.append(list(texts))
        return [self.vector(t)[:self.length] for t in texts]


class TestIndexLeaseText:
    """Tests for indexing raw lease text."""

    @pytest.mark.asyncio
    async def test_indexes_classified_clauses(self, repository, lease, sample_lease_text):
        summary = await _indexer(repository).index_lease_text(lease.id, sample_lease_text)

        assert summary.chunk_count == 5
        assert summary.clause_count == 5
        assert summary.deleted_count == 0
        assert summary.failures == []
        assert summary.topic_distribution == {
            "OTHER": 1, "ROOF": 1, "HVAC": 1, "INSURANCE": 1, "RENT_ESCALATION": 1,
        }
        assert summary.stats.with_section_label == 4

        views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))
        by_label = {v.section_label: v for v in views}
        assert by_label["ARTICLE 1. ROOF"].responsible_party == ResponsibleParty.LANDLORD
        assert by_label["ARTICLE 2. HVAC"].topic == ClauseTopic.HVAC
        assert by_label["ARTICLE 3. INSURANCE"].page_number == 2
        assert [v.text[:9] for v in views][1:] == ["ARTICLE 1", "ARTICLE 2", "ARTICLE 3", "ARTICLE 4"]

    @pytest.mark.asyncio
    async def test_small_lease_warns(self, repository, lease, sample_lease_text):
        summary = await _indexer(repository).index_lease_text(lease.id, sample_lease_text)
        assert any("Low chunk count" in w for w in summary.warnings)
        assert any("Low clause count" in w for w in summary.warnings)

    @pytest.mark.asyncio
    async def test_reindex_replaces_clauses(self, repository, lease, sample_lease_text):
        indexer = _indexer(repository)

        first = await indexer.index_lease_text(lease.id, sample_lease_text)
        first_ids = {v.clause_id for v in await repository.find_clauses(ClauseFilter(lease_id=lease.id))}
        second = await indexer.index_lease_text(lease.id, sample_lease_text)
        second_ids = {v.clause_id for v in await repository.find_clauses(ClauseFilter(lease_id=lease.id))}

        assert second.clause_count == first.clause_count
        assert second.deleted_count == first.clause_count
        assert await repository.count_clauses(lease.id) == first.clause_count
        assert first_ids.isdisjoint(second_ids)

    @pytest.mark.asyncio
    async def test_reindex_reproduces_labels(self, repository, lease, sample_lease_text):
        indexer = _indexer(repository)

        async def labels():
            views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))
            return [(v.topic, v.responsible_party, v.section_label) for v in views]

        first = await indexer.index_lease_text(lease.id, sample_lease_text)
        first_labels = await labels()
        second = await indexer.index_lease_text(lease.id, sample_lease_text)

        assert second.chunk_count == first.chunk_count
        assert await labels() == first_labels
        assert first_labels[1] == (ClauseTopic.ROOF, ResponsibleParty.LANDLORD, "ARTICLE 1. ROOF")

    @pytest.mark.asyncio
    async def test_embedding_length_must_match_stored_corpus(self, repository, lease, sample_lease_text):
        await _indexer(repository).index_lease_text(lease.id, sample_lease_text)
        other = await repository.create_lease(lease.property_id, "Bolt Fitness")

        summary = await _indexer(repository, embedder=TruncatingEmbedder(3)).index_lease_text(
            other.id, sample_lease_text
        )

        assert summary.clause_count == 0
        assert len(summary.failures) == 5
        assert {f.stage for f in summary.failures} == {"embed"}
        views = await repository.find_clauses(ClauseFilter())
        assert {len(v.embedding) for v in views} == {FakeEmbedder.dimension}

    @pytest.mark.asyncio
    async def test_embedding_length_must_match_provider_dimension(self, repository, lease, sample_lease_text):
        embedder = TruncatingEmbedder(3, dimension=FakeEmbedder.dimension)

        summary = await _indexer(repository, embedder=embedder).index_lease_text(lease.id, sample_lease_text)

        assert summary.clause_count == 0
        assert [f.stage for f in summary.failures] == ["embed"] * 5

    @pytest.mark.asyncio
    async def test_reindexing_only_lease_may_change_dimension(self, repository, lease, sample_lease_text):
        await _indexer(repository).index_lease_text(lease.id, sample_lease_text)

        summary = await _indexer(repository, embedder=TruncatingEmbedder(3)).index_lease_text(
            lease.id, sample_lease_text
        )

        assert summary.clause_count == 5
        views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))
        assert {len(v.embedding) for v in views} == {3}

    @pytest.mark.asyncio
    async def test_missing_lease(self, repository, sample_lease_text):
        with pytest.raises(LeaseNotFoundError):
            await _indexer(repository).index_lease_text("missing", sample_lease_text)

    @pytest.mark.asyncio
    async def test_batch_embedding_failure_falls_back_per_chunk(self, repository, lease, sample_lease_text):
        embedder = FakeEmbedder(fail_batch=True)
        summary = await _indexer(repository, embedder=embedder).index_lease_text(lease.id, sample_lease_text)

        assert summary.clause_count == 5
        assert summary.failures == []
        assert len(embedder.calls) == 1 + 5

    @pytest.mark.asyncio
    async def test_chunk_embedding_failure_is_recorded(self, repository, lease, sample_lease_text):
        embedder = FakeEmbedder(fail_batch=True, fail_on="HVAC")
        summary = await _indexer(repository, embedder=embedder).index_lease_text(lease.id, sample_lease_text)

        assert summary.chunk_count == 5
        assert summary.clause_count == 4
        assert [(f.index, f.stage) for f in summary.failures] == [(2, "embed")]
        assert "HVAC" not in summary.topic_distribution

    @pytest.mark.asyncio
    async def test_classifier_outage_stores_default_labels(self, repository, lease, sample_lease_text):
        llm = FakeLLM(handler=lambda prompt: RuntimeError("model unavailable"))
        summary = await _indexer(repository, llm=llm).index_lease_text(lease.id, sample_lease_text)

        assert summary.clause_count == 5
        assert summary.topic_distribution == {"OTHER": 5}
        views = await repository.find_clauses(ClauseFilter(lease_id=lease.id))
        assert {v.responsible_party for v in views} == {ResponsibleParty.UNKNOWN}

    @pytest.mark.asyncio
    async def test_embedding_outage_keeps_previous_clauses(self, repository, lease, sample_lease_text):
        await _indexer(repository).index_lease_text(lease.id, sample_lease_text)

        class BrokenEmbedder(FakeEmbedder):
            async def embed_batch(self, texts):
                raise RuntimeError("embedding service down")

        summary = await _indexer(repository, embedder=BrokenEmbedder()).index_lease_text(
            lease.id, sample_lease_text
        )
        assert summary.clause_count == 0
        assert len(summary.failures) == 5
        assert summary.deleted_count == 0
        assert await repository.count_clauses(lease.id) == 5

    @pytest.mark.asyncio
    async def test_too_short_text_yields_no_chunks(self, repository, lease):
        summary = await _indexer(repository).index_lease_text(lease.id, "Too short.")
        assert summary.chunk_count == 0
        assert summary.clause_count == 0
        assert summary.stats.total_chunks == 0


class TestIndexLeasePdf:

    @pytest.mark.asyncio
    async def test_unreadable_pdf_raises(self, repository, lease, tmp_path):
        with pytest.raises(TextExtractionError):
            await _indexer(repository).index_lease_pdf(lease.id, tmp_path / "missing.pdf")

    @pytest.mark.asyncio
    async def test_extracted_text_is_indexed(self, repository, lease, sample_lease_text, monkeypatch, tmp_path):
        async def fake_extract(path):
            return sample_lease_text

        monkeypatch.setattr(indexer_module, "extract_pdf_text", fake_extract)
        summary = await _indexer(repository).index_lease_pdf(lease.id, tmp_path / "lease.pdf")
        assert summary.clause_count == 5

    @pytest.mark.asyncio
    async def test_missing_lease_checked_before_extraction(self, repository, tmp_path):
        with pytest.raises(LeaseNotFoundError):
            await _indexer(repository).index_lease_pdf("missing", tmp_path / "lease.pdf")
