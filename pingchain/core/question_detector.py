"""Question and commitment detection.

A cheap keyword/pattern heuristic, not semantic parsing. False positives and
negatives are expected; the only hard requirement is that the same text
always yields the same answer.
"""

from __future__ import annotations

import re

_INTERROGATIVE = re.compile(
    r"^(what|when|where|who|why|how|can|could|would|will|do|does|did|is|are|was|were)\b"
)
_DIRECT_ASK = re.compile(r"^(are you|can you|could you|would you|will you)\b")

ACTION_KEYWORDS = (
    "please", "need", "want", "require", "looking for", "seeking",
    "help", "assist", "support", "advice", "suggestion", "recommendation",
)

URGENT_KEYWORDS = (
    "urgent", "asap", "emergency", "important", "deadline", "critical", "immediately",
)


def is_question_or_request(text: str) -> bool:
    """Return True if the text looks like a question or an actionable request."""
    clean = (text or "").strip().lower()
    if not clean:
        return False
    if clean.endswith("?"):
        return True
    if _INTERROGATIVE.match(clean) or _DIRECT_ASK.match(clean):
        return True
    return is_request_for_action(clean)


def is_request_for_action(text: str) -> bool:
    lower = text.lower()
    return any(word in lower for word in ACTION_KEYWORDS)


def extract_questions(texts: list[str]) -> list[str]:
    """Filter a list of message texts down to the questions/requests, in order."""
    return [t for t in texts if is_question_or_request(t)]


def has_urgent_keywords(text: str) -> bool:
    lower = (text or "").lower()
    return any(word in lower for word in URGENT_KEYWORDS)
