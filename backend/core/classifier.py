"""
LeaseWise Clause Classifier Module
==================================
Assigns each lease chunk a topic and a responsible party from the closed
vocabularies, using an LLM constrained to JSON output.

The model's answer is never trusted as-is:
- Labels are normalized and checked against the allow-lists
- Unrecognized labels collapse to OTHER / UNKNOWN
- Confidence is clamped to [0, 1]
- Any failure yields the default classification instead of raising
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from core.config import get_settings
from core.rate_limit import FixedDelayRateLimiter, RateLimiter
from core.segmenter import ClauseChunk
from core.vocabulary import (
    CLAUSE_TOPICS,
    RESPONSIBLE_PARTIES,
    ClauseTopic,
    ResponsibleParty,
    parse_party,
    parse_topic,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


class TextGenerator(Protocol):
    async def generate(self, prompt: str, **kwargs: Any) -> str: ...


@dataclass
class ClauseClassification:
    """Validated classifier output for a single chunk."""
    topic: ClauseTopic
    responsible_party: ResponsibleParty
    section_label: str | None
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic.value,
            "responsible_party": self.responsible_party.value,
            "section_label": self.section_label,
            "confidence": self.confidence,
        }


def default_classification(section_label: str | None = None) -> ClauseClassification:
    return ClauseClassification(
        topic=ClauseTopic.OTHER,
        responsible_party=ResponsibleParty.UNKNOWN,
        section_label=section_label,
        confidence=0.0,
    )


# System prompt for clause classification
CLASSIFICATION_SYSTEM_PROMPT = """You are a commercial real estate (CRE) lease analyst. You classify lease clauses.
Respond with ONLY a JSON object (no markdown, no explanation)."""

CLASSIFICATION_PROMPT = """Classify this lease clause.

{section_context}CLAUSE TEXT:
\"\"\"
{clause_text}
\"\"\"

ALLOWED TOPICS (pick exactly one):
{topics}

ALLOWED RESPONSIBLE PARTIES (pick exactly one):
{parties}

CLASSIFICATION RULES:
1. TOPIC: Choose the MOST SPECIFIC applicable topic.
   - HVAC = heating, ventilation, air conditioning, mechanical systems
   - ROOF = roof repairs, roof replacement, roof maintenance
   - STRUCTURE = foundation, walls, building envelope, structural elements
   - CAM = common area maintenance, operating expenses, NNN pass-throughs
   - MAINTENANCE = general maintenance obligations (use more specific if possible)
   - REPAIRS = general repair obligations (use more specific if possible)
   - USE = permitted use, prohibited uses
   - EXCLUSIVITY = exclusive use, non-compete, co-tenancy
   - Use OTHER only for definitions, recitals, or truly miscellaneous provisions

2. RESPONSIBLE PARTY:
   - LANDLORD: The clause clearly places the obligation on Landlord/Lessor
   - TENANT: The clause clearly places the obligation on Tenant/Lessee
   - SHARED: Obligations are split (e.g., Landlord = structural, Tenant = non-structural) OR both parties have duties
   - UNKNOWN: Cannot determine responsibility (e.g., definitions, general provisions)

3. If this is a definitions section, recitals, or signature block, use topic=OTHER, responsibleParty=UNKNOWN

Output format:
{{
  "topic": "TOPIC_HERE",
  "responsibleParty": "PARTY_HERE",
  "sectionLabel": "section number/title if visible, or null",
  "confidence": 0.0
}}"""

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_classification_prompt(chunk_text: str, section_label: str | None, max_chars: int) -> str:
    section_context = (
        f'SECTION CONTEXT: This clause is from "{section_label}"\n\n' if section_label else ""
    )
    return CLASSIFICATION_PROMPT.format(
        section_context=section_context,
        clause_text=chunk_text[:max_chars],
        topics=", ".join(CLAUSE_TOPICS),
        parties=", ".join(RESPONSIBLE_PARTIES),
    )


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


def parse_classification(raw: str, section_label: str | None = None) -> ClauseClassification:
    """
    Validate raw model output into a ClauseClassification.

    Raises:
        ValueError: If the output is not a JSON object
    """
    cleaned = CODE_FENCE.sub("", raw.strip()).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    topic = parse_topic(data.get("topic"))
    party = parse_party(data.get("responsibleParty", data.get("responsible_party")))

    label = section_label
    if not label:
        parsed_label = data.get("sectionLabel", data.get("section_label"))
        if isinstance(parsed_label, str) and parsed_label.strip() and parsed_label.strip().lower() != "null":
            label = parsed_label.strip()

    return ClauseClassification(
        topic=topic,
        responsible_party=party,
        section_label=label,
        confidence=_clamp_confidence(data.get("confidence")),
    )


class ClauseClassifier:
    """
    Classifies lease chunks by topic and responsible party.

    Args:
        llm: Text-generation capability (see core.llm.LLMClient)
        rate_limiter: Pacing between consecutive calls in batch mode
        max_chars: Character budget for the clause text sent to the model
    """

    def __init__(
        self,
        llm: TextGenerator,
        rate_limiter: RateLimiter | None = None,
        max_chars: int | None = None,
    ):
        settings = get_settings()
        self.llm = llm
        self.rate_limiter = rate_limiter or FixedDelayRateLimiter(settings.classifier_delay_seconds)
        self.max_chars = max_chars or settings.classifier_max_chars

    async def classify(self, text: str, section_label: str | None = None) -> ClauseClassification:
        """Classify a single chunk. Never raises."""
        prompt = build_classification_prompt(text, section_label, self.max_chars)
        try:
            raw = await self.llm.generate(
                prompt,
                system=CLASSIFICATION_SYSTEM_PROMPT,
                json_response=True,
                temperature=0.0,
                max_tokens=300,
            )
            return parse_classification(raw, section_label)
        except Exception as e:
            logger.warning(f"Clause classification failed, using default: {e}")
            return default_classification(section_label)

    async def classify_batch(self, chunks: Sequence[ClauseChunk]) -> list[ClauseClassification]:
        """
        Classify chunks strictly in order, pacing calls through the rate limiter.

        Returns one classification per chunk, in input order.
        """
        results: list[ClauseClassification] = []
        total = len(chunks)
        for i, chunk in enumerate(chunks):
            logger.debug(f"Classifying chunk {i + 1}/{total}")
            results.append(await self.classify(chunk.text, chunk.section_label))
            if i < total - 1:
                await self.rate_limiter.wait()
        return results
