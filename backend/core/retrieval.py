"""
LeaseWise Retrieval Orchestrator
================================
Answers natural-language questions against the indexed clause corpus.

Pipeline:
1. Infer candidate topics from the question (unless a topic is given)
2. Retrieve clauses with every supplied filter
3. Widen by dropping the topic filter when nothing matched
4. Return a `no_clauses` outcome when the scope has nothing relevant
5. Assemble context (flat for one lease, grouped per lease for a portfolio)
6. Generate the answer under a fixed response contract
7. Resolve the responsible party (explicit tag, else weighted vote)
8. Return the top citations for display and audit
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from core.config import get_settings
from core.llm import LLMError
from core.repository import ClauseFilter, LeaseNotFoundError, LeaseRecord, LeaseRepository
from core.vector_search import ClauseSearchResult, VectorSearchEngine
from core.vocabulary import ClauseTopic, ResponsibleParty, infer_topics_from_question

logger = logging.getLogger(__name__)

RESPONSIBLE_PARTY_TAG = re.compile(r"responsible\s*party\W+(\w+)", re.IGNORECASE)


class TextGenerator(Protocol):
    async def generate(self, prompt: str, **kwargs: Any) -> str: ...


class AnswerGenerationError(Exception):
    """Raised when the answer model fails; there is no answer without it."""
    pass


class QAMode(str, Enum):
    CLAUSE_RAG = "clause_rag"
    NO_CLAUSES = "no_clauses"


class QAScope(str, Enum):
    LEASE = "lease"
    PORTFOLIO = "portfolio"


@dataclass
class Citation:
    lease_id: str
    tenant_name: str | None
    property_id: str | None
    property_name: str | None
    section_label: str | None
    text_snippet: str
    page_number: int | None
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "lease_id": self.lease_id,
            "tenant_name": self.tenant_name,
            "property_id": self.property_id,
            "property_name": self.property_name,
            "section_label": self.section_label,
            "text_snippet": self.text_snippet,
            "page_number": self.page_number,
            "topic": self.topic.value,
            "responsible_party": self.responsible_party.value,
            "similarity": round(self.similarity, 4),
        }


@dataclass
class LeaseQAResult:
    """Outcome of a clause question; `no_clauses` is a success, not an error."""
    answer: str
    mode: QAMode
    scope: QAScope
    responsible_party: ResponsibleParty | None = None
    citations: list[Citation] = field(default_factory=list)
    inferred_topics: list[ClauseTopic] = field(default_factory=list)
    widened: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "mode": self.mode.value,
            "scope": self.scope.value,
            "responsible_party": self.responsible_party.value if self.responsible_party else None,
            "citations": [c.to_dict() for c in self.citations],
            "inferred_topics": [t.value for t in self.inferred_topics],
            "widened": self.widened,
        }


def resolve_responsible_party(
    answer: str,
    results: list[ClauseSearchResult],
) -> ResponsibleParty | None:
    """
    Determine who is responsible, preferring the answer's explicit tag.

    Falls back to a vote over the retrieved clauses' own labels, each
    weighted by its similarity. UNKNOWN only wins when it is the sole label;
    ties go to the label encountered first.
    """
    for match in RESPONSIBLE_PARTY_TAG.finditer(answer):
        try:
            return ResponsibleParty(match.group(1).upper())
        except ValueError:
            continue

    if not results:
        return None

    votes: dict[ResponsibleParty, float] = {}
    for result in results:
        votes[result.responsible_party] = votes.get(result.responsible_party, 0.0) + result.similarity

    eligible = [
        (party, weight)
        for party, weight in votes.items()
        if party != ResponsibleParty.UNKNOWN or len(votes) == 1
    ]
    winner: tuple[ResponsibleParty, float] | None = None
    for party, weight in eligible:
        if winner is None or weight > winner[1]:
            winner = (party, weight)
    return winner[0] if winner else None


def _render_clause(number: int, result: ClauseSearchResult) -> str:
    header = f"[{number}. {result.section_label}]" if result.section_label else f"[{number}]"
    return (
        f"{header}\n"
        f"Topic: {result.topic.value} | Responsible: {result.responsible_party.value}\n"
        f"{result.text}"
    )


def build_clause_context(results: list[ClauseSearchResult], group_by_lease: bool) -> str:
    """
    Render retrieved clauses for the prompt.

    Lease scope is a flat numbered list. Portfolio scope groups clauses by
    (property, tenant), with numbering continuing across groups.
    """
    if not group_by_lease:
        return "\n\n---\n\n".join(
            _render_clause(i + 1, result) for i, result in enumerate(results)
        )

    grouped: dict[str, list[ClauseSearchResult]] = {}
    for result in results:
        key = f"{result.property_name or 'Unknown Property'} - {result.tenant_name or 'Unknown Tenant'}"
        grouped.setdefault(key, []).append(result)

    sections = []
    number = 1
    for key, group in grouped.items():
        rendered = []
        for result in group:
            rendered.append(_render_clause(number, result))
            number += 1
        sections.append(f"=== {key} ===\n\n" + "\n\n".join(rendered))
    return "\n\n---\n\n".join(sections)


def build_lease_context(lease: LeaseRecord) -> str:
    return (
        "LEASE CONTEXT:\n"
        f"- Tenant: {lease.tenant_name}\n"
        f"- Property: {lease.property_name or 'Unknown'}\n"
        f"- Address: {lease.property_address or 'Unknown'}\n"
        f"- Suite: {lease.suite or 'N/A'}\n"
        f"- Lease Start: {lease.lease_start.isoformat() if lease.lease_start else 'N/A'}\n"
        f"- Lease End: {lease.lease_end.isoformat() if lease.lease_end else 'N/A'}\n"
    )


ANSWER_PROMPT = """You are an AI lease analyst for commercial real estate (CRE).
Using ONLY the clauses provided below, answer the user's question in a concise, executive-style format.

{scope_line}
{lease_context}
RELEVANT LEASE CLAUSES:
{clause_context}

USER QUESTION:
{question}

RESPONSE FORMAT INSTRUCTIONS:
1. Start with a 1-3 sentence SUMMARY that directly answers the question
2. If the question is about responsibility (who pays, who maintains, who is liable), clearly state:
   "Responsible Party: LANDLORD", "Responsible Party: TENANT" or "Responsible Party: SHARED"
3. Provide a short bullet list of KEY POINTS (3-5 bullets max)
4. {grouping_line}
5. Be direct and factual - avoid speculation beyond what the clauses state

Example structure:
---
[1-3 sentence summary]

Responsible Party: <LANDLORD/TENANT/SHARED>

Key Points:
- Point 1
- Point 2
- Point 3
{breakdown_example}---

YOUR ANSWER:"""


def build_answer_prompt(
    question: str,
    clause_context: str,
    lease_context: str,
    portfolio: bool,
) -> str:
    if portfolio:
        scope_line = "You are analyzing clauses from MULTIPLE leases across a CRE portfolio."
        grouping_line = "Group findings BY LEASE if there are differences across properties/tenants"
        breakdown_example = "\nBy Lease:\n- Property A - Tenant X: ...\n- Property B - Tenant Y: ...\n"
    else:
        scope_line = "You are analyzing clauses from a SINGLE lease."
        grouping_line = "Reference specific sections when citing the lease"
        breakdown_example = ""
    return ANSWER_PROMPT.format(
        scope_line=scope_line,
        lease_context=lease_context,
        clause_context=clause_context,
        question=question,
        grouping_line=grouping_line,
        breakdown_example=breakdown_example,
    )


def no_clauses_message(filters: ClauseFilter) -> str:
    if filters.lease_id:
        return (
            "No indexed clauses found for this lease. Please ensure the lease document "
            "has been processed through clause indexing."
        )
    if filters.property_id or filters.tenant_name:
        return (
            "No relevant clauses found for the selected property or tenant. Please ensure "
            "their lease documents have been indexed."
        )
    return "No relevant clauses found in the portfolio. Please ensure lease documents have been indexed."


class LeaseQAService:
    """
    Entry point for clause-level questions.

    Args:
        repository: Lease/clause store
        search_engine: Vector search over clauses
        llm: Answer-generation capability
    """

    def __init__(
        self,
        repository: LeaseRepository,
        search_engine: VectorSearchEngine,
        llm: TextGenerator,
    ):
        settings = get_settings()
        self.repository = repository
        self.search_engine = search_engine
        self.llm = llm
        self.top_k = settings.qa_top_k
        self.min_similarity = settings.qa_min_similarity
        self.citation_limit = settings.citation_limit

    async def retrieve(
        self, question: str, filters: ClauseFilter
    ) -> tuple[list[ClauseSearchResult], bool]:
        """
        Run the primary search and, when it is empty and topic-filtered,
        the widened search. Returns (results, widened).
        """
        results = await self.search_engine.search(
            question, filters, top_k=self.top_k, min_similarity=self.min_similarity
        )
        if results or not filters.has_topics:
            return results, False

        logger.info(
            f"No clauses matched topics {[t.value for t in filters.topics or ()]}; "
            "retrying without topic filter"
        )
        widened = await self.search_engine.search(
            question, filters.without_topics(), top_k=self.top_k, min_similarity=self.min_similarity
        )
        return widened, True

    async def ask(
        self,
        question: str,
        lease_id: str | None = None,
        property_id: str | None = None,
        tenant_name: str | None = None,
        topic: ClauseTopic | None = None,
    ) -> LeaseQAResult:
        """
        Answer a question about one lease or the whole portfolio.

        Raises:
            ValueError: If the question is blank
            LeaseNotFoundError: If lease_id does not exist
            AnswerGenerationError: If the answer model fails
        """
        question = (question or "").strip()
        if not question:
            raise ValueError("Question must not be empty")

        lease = None
        if lease_id:
            lease = await self.repository.get_lease(lease_id)
            if lease is None:
                raise LeaseNotFoundError(f"Lease '{lease_id}' not found")

        scope = QAScope.LEASE if lease_id else QAScope.PORTFOLIO
        topics = [topic] if topic else infer_topics_from_question(question)
        filters = ClauseFilter(
            lease_id=lease_id,
            property_id=property_id,
            tenant_name=tenant_name,
            topics=tuple(topics) if topics else None,
        )

        results, widened = await self.retrieve(question, filters)

        if not results:
            logger.info(f"No clauses found for {scope.value} question")
            return LeaseQAResult(
                answer=no_clauses_message(filters),
                mode=QAMode.NO_CLAUSES,
                scope=scope,
                inferred_topics=topics,
                widened=widened,
            )

        prompt = build_answer_prompt(
            question=question,
            clause_context=build_clause_context(results, group_by_lease=lease is None),
            lease_context=build_lease_context(lease) if lease else "",
            portfolio=lease is None,
        )

        try:
            answer = (await self.llm.generate(prompt, temperature=0.2, max_tokens=1500)).strip()
        except LLMError as e:
            raise AnswerGenerationError(f"Answer generation failed: {e}") from e

        citations = [
            Citation(
                lease_id=r.lease_id,
                tenant_name=r.tenant_name,
                property_id=r.property_id,
                property_name=r.property_name,
                section_label=r.section_label,
                text_snippet=r.text_snippet,
                page_number=r.page_number,
                topic=r.topic,
                responsible_party=r.responsible_party,
                similarity=r.similarity,
            )
            for r in results[:self.citation_limit]
        ]

        return LeaseQAResult(
            answer=answer,
            mode=QAMode.CLAUSE_RAG,
            scope=scope,
            responsible_party=resolve_responsible_party(answer, results),
            citations=citations,
            inferred_topics=topics,
            widened=widened,
        )
