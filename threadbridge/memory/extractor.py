"""Trigger-pattern memory extraction.

Pure rule-table evaluation: no storage, no clocks. Every rule is tried
independently, so one message can yield several extractions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from threadbridge.memory.models import Extraction, ExtractionResult, MemoryCategory, MemoryKind


@dataclass(frozen=True, slots=True)
class TriggerRule:
    pattern: re.Pattern[str]
    kind: MemoryKind
    confidence: float


def _rule(pattern: str, kind: MemoryKind, confidence: float) -> TriggerRule:
    return TriggerRule(re.compile(pattern, re.IGNORECASE), kind, confidence)


RULES: tuple[TriggerRule, ...] = (
    _rule(r"goal[:\s]+(.+)", "goal", 0.95),
    _rule(r"my (?:new )?goal is[:\s]+(.+)", "goal", 0.9),
    _rule(r"i want to[:\s]+(.+)", "goal", 0.7),
    _rule(r"remember[:\s]+(.+)", "fact", 0.95),
    _rule(r"fact[:\s]+(.+)", "fact", 0.95),
    _rule(r"note[:\s]+(.+)", "fact", 0.85),
    _rule(r"challenge[:\s]+(.+)", "challenge", 0.95),
    _rule(r"struggling with[:\s]+(.+)", "challenge", 0.85),
    _rule(r"having trouble with[:\s]+(.+)", "challenge", 0.8),
    _rule(r"idea[:\s]+(.+)", "idea", 0.95),
    _rule(r"what if[:\s]+(.+)", "idea", 0.7),
    _rule(r"project[:\s]+(.+)", "project", 0.95),
    _rule(r"working on[:\s]+(.+)", "project", 0.8),
    _rule(r"i prefer[:\s]+(.+)", "preference", 0.85),
    _rule(r"i like[:\s]+(.+)", "preference", 0.7),
)

# Order matters: the first category with a keyword hit wins.
CATEGORY_KEYWORDS: dict[MemoryCategory, tuple[str, ...]] = {
    "health": ("health", "exercise", "workout", "diet", "sleep", "meditation", "gym", "weight", "fitness", "running"),
    "work": ("work", "job", "career", "project", "deadline", "meeting", "office", "colleague", "client", "business"),
    "family": ("family", "kids", "children", "wife", "husband", "spouse", "parent", "daughter", "son", "mother", "father"),
    "learning": ("learn", "study", "read", "book", "course", "skill", "tutorial", "training", "education"),
    "finance": ("money", "budget", "savings", "investment", "financial", "income", "expense", "bank", "crypto"),
    "relationships": ("friend", "relationship", "partner", "dating", "social", "network", "community"),
    "spirituality": ("meditation", "prayer", "spiritual", "mindfulness", "gratitude", "faith", "soul"),
    "routine": ("morning", "evening", "daily", "routine", "habit", "schedule", "ritual"),
    "technical": ("code", "programming", "software", "api", "database", "server", "bug", "feature", "deploy"),
}

SYNC_CATEGORIES: frozenset[str] = frozenset({"health", "work", "family", "learning", "finance"})


def detect_category(text: str) -> MemoryCategory:
    """Substring keyword scan over the fixed taxonomy; ``general`` when nothing hits."""
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return "general"


def extract(text: str) -> ExtractionResult:
    """Evaluate every rule against ``text`` and split by confidence."""
    result = ExtractionResult()
    for rule in RULES:
        match = rule.pattern.search(text)
        if not match:
            continue
        content = match.group(1).strip()
        category = detect_category(content)
        extraction = Extraction(
            kind=rule.kind,
            content=content,
            confidence=rule.confidence,
            category=category,
            raw=match.group(0),
            sync_eligible=category in SYNC_CATEGORIES,
        )
        if extraction.accepted:
            result.accepted.append(extraction)
        else:
            result.pending.append(extraction)
    return result
