"""Heuristics that decide what an agent message asks and whether a user message is a question."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Protocol

from switchboard.onboarding.fields import FieldDefinition

# Leading words that make a user message a question. "will" and "may" are left
# out because they are also first names.
_INTERROGATIVE_START = re.compile(
    r"^\s*(what|why|how|who|whom|whose|when|where|which|can|could|would|should|"
    r"do|does|did|is|are|am|isn't|aren't|don't|doesn't)\b",
    re.IGNORECASE,
)

_CLARIFICATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bwhat do you mean\b",
        r"\bwhy do you (need|want|ask)\b",
        r"\bi don'?t understand\b",
        r"\bcan you (explain|clarify|repeat)\b",
        r"^\s*(sorry|huh|pardon|what)\s*[?!.]*\s*$",
    )
]


class MessageClassifier(Protocol):
    def referenced_fields(self, text: str, fields: list[FieldDefinition]) -> list[str]:
        """Return the keys of fields the (agent) text refers to, in field order."""
        ...

    def is_question(self, text: str) -> bool:
        """Return True when the (user) text is itself a question."""
        ...


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"(?<![\w@])" + re.escape(keyword) + r"(?![\w@])", re.IGNORECASE)


class KeywordClassifier:
    """Case-insensitive keyword matching on word boundaries."""

    def referenced_fields(self, text: str, fields: list[FieldDefinition]) -> list[str]:
        if not text:
            return []
        return [
            field.field_key
            for field in fields
            if any(_keyword_pattern(kw).search(text) for kw in field.keywords)
        ]

    def is_question(self, text: str) -> bool:
        stripped = text.strip()
        if not stripped:
            return False
        if stripped.endswith("?"):
            return True
        if any(p.search(stripped) for p in _CLARIFICATION_PATTERNS):
            return True
        return bool(_INTERROGATIVE_START.match(stripped))


default_classifier = KeywordClassifier()
