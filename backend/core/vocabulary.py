"""
LeaseWise Vocabulary Module
===========================
Closed vocabularies shared by the classifier, the clause store, the search
filters and the API schemas.

Changing either enumeration requires re-classifying the whole corpus.
"""

import re
from enum import Enum


class ClauseTopic(str, Enum):
    """Subject matter of a lease clause (commercial real estate)."""
    HVAC = "HVAC"
    ROOF = "ROOF"
    STRUCTURE = "STRUCTURE"
    CAM = "CAM"
    INSURANCE = "INSURANCE"
    INDEMNITY = "INDEMNITY"
    PARKING = "PARKING"
    SIGNAGE = "SIGNAGE"
    ACCESS = "ACCESS"
    UTILITIES = "UTILITIES"
    MAINTENANCE = "MAINTENANCE"
    REPAIRS = "REPAIRS"
    JANITORIAL = "JANITORIAL"
    LANDSCAPING = "LANDSCAPING"
    SECURITY = "SECURITY"
    FIRE_SAFETY = "FIRE_SAFETY"
    ELEVATORS = "ELEVATORS"
    PLUMBING = "PLUMBING"
    ELECTRICAL = "ELECTRICAL"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    EXCLUSIVITY = "EXCLUSIVITY"
    USE = "USE"
    RENEWAL_OPTIONS = "RENEWAL_OPTIONS"
    RENT_ESCALATION = "RENT_ESCALATION"
    DEFAULT = "DEFAULT"
    TERMINATION = "TERMINATION"
    OTHER = "OTHER"


class ResponsibleParty(str, Enum):
    """Who bears the obligation described by a clause."""
    LANDLORD = "LANDLORD"
    TENANT = "TENANT"
    SHARED = "SHARED"
    UNKNOWN = "UNKNOWN"


CLAUSE_TOPICS = [topic.value for topic in ClauseTopic]
RESPONSIBLE_PARTIES = [party.value for party in ResponsibleParty]

# Labels the classifier model tends to produce that map onto a real topic
TOPIC_ALIASES = {
    "GENERAL_MAINTENANCE": ClauseTopic.MAINTENANCE,
}

# Keyword table used to guess topics from a free-text question.
# Matching is case-insensitive substring search.
TOPIC_KEYWORDS: dict[ClauseTopic, list[str]] = {
    ClauseTopic.HVAC: ["hvac", "heating", "cooling", "air conditioning", "ac unit", "ventilation", "mechanical"],
    ClauseTopic.ROOF: ["roof", "roofing", "leak", "water damage from above"],
    ClauseTopic.STRUCTURE: ["structure", "structural", "foundation", "walls", "building envelope", "exterior walls"],
    ClauseTopic.CAM: ["cam", "common area", "operating expenses", "pass-through", "triple net", "nnn", "cam cap"],
    ClauseTopic.INSURANCE: ["insurance", "liability", "coverage", "policy", "waiver of subrogation"],
    ClauseTopic.INDEMNITY: ["indemnity", "indemnification", "hold harmless"],
    ClauseTopic.PARKING: ["parking", "spaces", "garage", "lot"],
    ClauseTopic.SIGNAGE: ["signage", "sign", "logo", "branding", "monument"],
    ClauseTopic.ACCESS: ["access", "entry", "keys", "24/7", "hours of operation", "building access"],
    ClauseTopic.UTILITIES: ["utilities", "electric", "gas", "water", "sewer", "utility"],
    ClauseTopic.MAINTENANCE: ["maintenance", "maintain", "upkeep", "preventive maintenance"],
    ClauseTopic.REPAIRS: ["repair", "fix", "restore", "replacement"],
    ClauseTopic.JANITORIAL: ["janitorial", "cleaning", "custodial", "trash"],
    ClauseTopic.LANDSCAPING: ["landscaping", "grounds", "exterior grounds", "lawn"],
    ClauseTopic.SECURITY: ["security", "alarm", "surveillance", "guard"],
    ClauseTopic.FIRE_SAFETY: ["fire", "sprinkler", "life safety", "fire extinguisher", "smoke detector"],
    ClauseTopic.ELEVATORS: ["elevator", "lift", "escalator"],
    ClauseTopic.PLUMBING: ["plumbing", "pipes", "water heater", "drain", "sewer"],
    ClauseTopic.ELECTRICAL: ["electrical", "wiring", "outlets", "power", "electric panel"],
    ClauseTopic.ENVIRONMENTAL: ["environmental", "hazardous", "asbestos", "mold", "contamination"],
    ClauseTopic.EXCLUSIVITY: ["exclusivity", "exclusive use", "non-compete", "co-tenancy", "radius restriction"],
    ClauseTopic.USE: ["permitted use", "prohibited use", "use restriction", "operating covenant"],
    ClauseTopic.RENEWAL_OPTIONS: ["renewal", "option to renew", "extension", "renewal option"],
    ClauseTopic.RENT_ESCALATION: ["escalation", "increase", "cpi", "rent bump", "annual increase"],
    ClauseTopic.DEFAULT: ["default", "breach", "violation", "cure period"],
    ClauseTopic.TERMINATION: ["termination", "early termination", "break clause", "termination option"],
    ClauseTopic.OTHER: [],
}


def _normalize_label(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", value.strip()).upper()


def parse_topic(value: object) -> ClauseTopic:
    """Map an untrusted label onto the topic vocabulary, defaulting to OTHER."""
    if not isinstance(value, str) or not value.strip():
        return ClauseTopic.OTHER
    label = _normalize_label(value)
    if label in TOPIC_ALIASES:
        return TOPIC_ALIASES[label]
    try:
        return ClauseTopic(label)
    except ValueError:
        return ClauseTopic.OTHER


def parse_party(value: object) -> ResponsibleParty:
    """Map an untrusted label onto the party vocabulary, defaulting to UNKNOWN."""
    if not isinstance(value, str) or not value.strip():
        return ResponsibleParty.UNKNOWN
    try:
        return ResponsibleParty(_normalize_label(value))
    except ValueError:
        return ResponsibleParty.UNKNOWN


def infer_topics_from_question(question: str) -> list[ClauseTopic]:
    """Return every topic whose keywords appear in the question, in vocabulary order."""
    lowered = question.lower()
    return [
        topic
        for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    ]
