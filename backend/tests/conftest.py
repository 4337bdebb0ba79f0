"""
Pytest configuration and fixtures for LeaseWise tests.
"""
import json
import os
import sys
import tempfile
from datetime import date
from pathlib import Path
from typing import Callable, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Mock environment variables before importing app
_TEST_DIR = Path(tempfile.mkdtemp(prefix="leasewise-tests-"))
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR / 'api.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_TEST_DIR / "uploads"))
os.environ.setdefault("CLASSIFIER_DELAY_MS", "0")
os.environ.setdefault("EMBEDDING_PROVIDER", "local")

from core.database import init_database, make_engine, make_session_factory  # noqa: E402
from core.embeddings import EmbeddingProvider  # noqa: E402
from core.repository import (  # noqa: E402
    ClauseFilter,
    ClauseView,
    DocumentChunkView,
    LeaseRecord,
    SQLLeaseRepository,
)
from core.vocabulary import ClauseTopic, ResponsibleParty  # noqa: E402


# === Fakes ===

FAKE_KEYWORDS = [
    "roof", "hvac", "insurance", "rent", "repair",
    "parking", "utilit", "signage", "default", "terminat",
]


class FakeEmbedder(EmbeddingProvider):
    """Deterministic embedder: one dimension per keyword, valued by occurrence count."""

    dimension = len(FAKE_KEYWORDS)

    def __init__(self, fail_batch: bool = False, fail_on: str | None = None):
        self.fail_batch = fail_batch
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    @staticmethod
    def vector(text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(keyword)) for keyword in FAKE_KEYWORDS]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_batch and len(texts) > 1:
            raise RuntimeError("batch embedding unavailable")
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise RuntimeError(f"cannot embed text containing {self.fail_on!r}")
        return [self.vector(t) for t in texts]


class FakeLLM:
    """
    Scripted text generator.

    Responds from `handler(prompt)` when given, otherwise pops `responses`
    in order. A response that is an exception instance is raised.
    """

    def __init__(self, responses: list | None = None, handler: Callable[[str], object] | None = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.prompts: list[str] = []
        self.kwargs: list[dict] = []

    async def generate(self, prompt: str, **kwargs) -> str:
        self.prompts.append(prompt)
        self.kwargs.append(kwargs)
        if self.handler is not None:
            result = self.handler(prompt)
        elif self.responses:
            result = self.responses.pop(0)
        else:
            result = "No answer."
        if isinstance(result, Exception):
            raise result
        return result


def clause_text_from_prompt(prompt: str) -> str:
    """Pull the clause body out of a classification prompt."""
    parts = prompt.split('"""')
    return parts[1] if len(parts) > 2 else prompt


def keyword_classification(prompt: str) -> str:
    """Classify by keyword, the way a well-behaved model would."""
    text = clause_text_from_prompt(prompt).lower()
    if "roof" in text:
        label = ("ROOF", "LANDLORD")
    elif "hvac" in text:
        label = ("HVAC", "TENANT")
    elif "insurance" in text:
        label = ("INSURANCE", "TENANT")
    elif "rent" in text:
        label = ("RENT_ESCALATION", "TENANT")
    else:
        label = ("OTHER", "UNKNOWN")
    return json.dumps({"topic": label[0], "responsibleParty": label[1], "sectionLabel": None, "confidence": 0.9})


def lease_llm_handler(answer: str = "Summary.\n\nResponsible Party: LANDLORD") -> Callable[[str], str]:
    """Classify classification prompts by keyword; answer everything else with `answer`."""
    def handler(prompt: str) -> str:
        if prompt.startswith("Classify this lease clause"):
            return keyword_classification(prompt)
        return answer
    return handler


class FakeClauseStore:
    """In-memory stand-in for the read side of the repository."""

    def __init__(
        self,
        clauses: list[ClauseView] | None = None,
        leases: list[LeaseRecord] | None = None,
        chunks: list[DocumentChunkView] | None = None,
    ):
        self.clauses = list(clauses or [])
        self.leases = {lease.id: lease for lease in leases or []}
        self.chunks = list(chunks or [])
        self.filters: list[ClauseFilter] = []

    @staticmethod
    def _matches(filters: ClauseFilter, view: ClauseView) -> bool:
        if filters.lease_id and view.lease_id != filters.lease_id:
            return False
        if filters.property_id and view.property_id != filters.property_id:
            return False
        if filters.tenant_name and view.tenant_name != filters.tenant_name:
            return False
        if filters.topics and view.topic not in filters.topics:
            return False
        if filters.responsible_party and view.responsible_party != filters.responsible_party:
            return False
        return True

    async def find_clauses(self, filters: ClauseFilter) -> list[ClauseView]:
        self.filters.append(filters)
        return [view for view in self.clauses if self._matches(filters, view)]

    async def get_lease(self, lease_id: str) -> LeaseRecord | None:
        return self.leases.get(lease_id)

    async def find_document_chunks(self, document_id=None, lease_id=None) -> list[DocumentChunkView]:
        return [
            c for c in self.chunks
            if (not document_id or c.document_id == document_id)
            and (not lease_id or c.lease_id == lease_id)
        ]


def make_view(
    text: str,
    topic: ClauseTopic = ClauseTopic.OTHER,
    party: ResponsibleParty = ResponsibleParty.UNKNOWN,
    lease_id: str = "lease-1",
    clause_id: str | None = None,
    embedding: list[float] | None = None,
    section_label: str | None = None,
    tenant_name: str | None = "Acme Coffee Co.",
    property_id: str | None = "prop-1",
    property_name: str | None = "Main Street Plaza",
) -> ClauseView:
    return ClauseView(
        clause_id=clause_id or f"clause-{abs(hash(text)) % 10**8}",
        lease_id=lease_id,
        text=text,
        topic=topic,
        responsible_party=party,
        section_label=section_label,
        page_number=None,
        embedding=embedding if embedding is not None else FakeEmbedder.vector(text),
        tenant_name=tenant_name,
        property_id=property_id,
        property_name=property_name,
    )


# === Fixtures ===

@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest_asyncio.fixture
async def repository(tmp_path):
    """SQL repository over a fresh SQLite file."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'leasewise.db'}")
    await init_database(engine)
    yield SQLLeaseRepository(make_session_factory(engine))
    await engine.dispose()


@pytest_asyncio.fixture
async def lease(repository) -> LeaseRecord:
    prop = await repository.create_property("Main Street Plaza", "100 Main St, Springfield")
    return await repository.create_lease(
        prop.id,
        "Acme Coffee Co.",
        suite="101",
        square_feet=2400,
        base_rent=8500.0,
        lease_start=date(2024, 1, 1),
        lease_end=date(2029, 12, 31),
    )


@pytest.fixture
def sample_lease_text() -> str:
    """A short multi-article lease with page breaks."""
    return (
        "COMMERCIAL LEASE AGREEMENT\n"
        "This Lease is made between Main Street Plaza LLC (Landlord) and Acme Coffee Co. (Tenant).\n\n"
        "ARTICLE 1. ROOF\n"
        "Landlord shall maintain, repair and replace the roof and roof membrane of the Building "
        "at Landlord's sole cost, except for damage caused by Tenant.\n\n"
        "ARTICLE 2. HVAC\n"
        "Tenant shall maintain and repair the HVAC system serving the Premises and shall keep a "
        "preventive maintenance contract with a licensed HVAC contractor.\n"
        "\fARTICLE 3. INSURANCE\n"
        "Tenant shall carry commercial general liability insurance with limits of not less than "
        "$2,000,000 per occurrence and name Landlord as additional insured.\n\n"
        "ARTICLE 4. RENT\n"
        "Base rent shall increase by three percent on each anniversary of the Commencement Date, "
        "payable monthly in advance without demand or offset.\n\n"
        "IN WITNESS WHEREOF, the parties have executed this Lease as of the date first written above.\n"
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(handler=lease_llm_handler())


@pytest.fixture
def test_client(fake_embedder, fake_llm) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app with fake providers."""
    from api.dependencies import get_embedder, get_llm
    from main import app

    app.dependency_overrides[get_embedder] = lambda: fake_embedder
    app.dependency_overrides[get_llm] = lambda: fake_llm
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
