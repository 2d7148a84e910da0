"""Message profiling for conversation memory.

Annotates a message with sentiment, emotional context, communication style,
topics, urgency, category and action items. A keyword heuristic always
works offline; when LLM profiling is enabled the LLM answer is used instead
and the heuristic is the fallback.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pingchain.config import ENGINE_CONFIG
from pingchain.core.question_detector import has_urgent_keywords, is_question_or_request
from pingchain.llm.client import llm_complete_json
from pingchain.prompts import MESSAGE_PROFILE_SYSTEM

logger = logging.getLogger(__name__)

_POSITIVE = ("great", "good", "awesome", "excellent", "love", "happy", "thanks", "thank")
_NEGATIVE = ("bad", "terrible", "hate", "angry", "sad", "disappointed", "upset")

_EMOTIONS = (
    ("excited", ("excited", "can't wait", "cant wait", "thrilled")),
    ("grateful", ("thank", "appreciate", "grateful")),
    ("frustrated", ("frustrat", "annoy", "angry", "disappointed")),
    ("concerned", ("worried", "concern", "anxious", "sorry")),
    ("happy", ("happy", "great", "love", "glad")),
)

_TOPICS = (
    "work", "project", "meeting", "call", "family", "health", "finance",
    "travel", "food", "weekend", "holiday", "birthday", "dinner",
)

_PROFESSIONAL = ("work", "project", "meeting", "deadline", "client", "invoice", "report")
_SOCIAL = ("party", "weekend", "dinner", "drinks", "holiday", "game")
_FORMAL = ("dear", "regards", "sincerely", "please find", "kindly")
_CASUAL = ("hey", "lol", "thx", "haha", "btw", "!!")

_COMMITMENTS = ("i'll", "i will", "let me", "get back to you", "i promise", "will send")

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

_VALID = {
    "sentiment": ("positive", "negative", "neutral"),
    "communication_style": ("formal", "casual", "mixed"),
    "urgency": ("low", "medium", "high"),
    "category": ("personal", "professional", "social"),
}


def analyze_sentiment(text: str) -> str:
    lower = text.lower()
    positive = sum(1 for w in _POSITIVE if w in lower)
    negative = sum(1 for w in _NEGATIVE if w in lower)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def extract_action_items(text: str) -> list[str]:
    """Sentences that ask for something or promise something."""
    items = []
    for sentence in _SENTENCE_SPLIT.split(text.strip()):
        sentence = sentence.strip()
        if not sentence:
            continue
        lower = sentence.lower()
        if is_question_or_request(sentence) or any(c in lower for c in _COMMITMENTS):
            items.append(sentence)
    return items


def heuristic_profile(text: str) -> dict[str, Any]:
    lower = (text or "").lower()

    emotional_context = "neutral"
    for emotion, markers in _EMOTIONS:
        if any(m in lower for m in markers):
            emotional_context = emotion
            break

    formal = any(m in lower for m in _FORMAL)
    casual = any(m in lower for m in _CASUAL)
    if formal and casual:
        style = "mixed"
    elif formal:
        style = "formal"
    elif casual:
        style = "casual"
    else:
        style = None

    if any(w in lower for w in _PROFESSIONAL):
        category = "professional"
    elif any(w in lower for w in _SOCIAL):
        category = "social"
    else:
        category = "personal"

    if has_urgent_keywords(lower):
        urgency = "high"
    elif is_question_or_request(lower):
        urgency = "medium"
    else:
        urgency = "low"

    return {
        "sentiment": analyze_sentiment(lower),
        "emotional_context": emotional_context,
        "communication_style": style,
        "topics": [t for t in _TOPICS if re.search(rf"\b{t}", lower)],
        "urgency": urgency,
        "category": category,
        "action_items": extract_action_items(text or ""),
    }


async def profile_text(text: str, use_llm: bool | None = None) -> dict[str, Any]:
    """Profile a message.

    Returns dict with keys: sentiment, emotional_context, communication_style,
    topics, urgency, category, action_items.
    """
    baseline = heuristic_profile(text)
    if use_llm is None:
        use_llm = ENGINE_CONFIG["llm_profiling_enabled"]
    if not use_llm:
        return baseline

    prompt = f"Annotate this message:\n\n<message>\n{text}\n</message>"
    try:
        result = await llm_complete_json(prompt, system=MESSAGE_PROFILE_SYSTEM)
    except Exception:
        logger.exception("LLM profiling failed, using heuristic profile")
        return baseline

    profile = dict(baseline)
    for key, allowed in _VALID.items():
        value = str(result.get(key, "")).lower()
        if value in allowed:
            profile[key] = value
    if isinstance(result.get("emotional_context"), str) and result["emotional_context"].strip():
        profile["emotional_context"] = result["emotional_context"].strip().lower()
    if isinstance(result.get("topics"), list):
        profile["topics"] = [str(t).lower() for t in result["topics"][:5]]
    if isinstance(result.get("action_items"), list):
        profile["action_items"] = [str(a) for a in result["action_items"]]
    return profile
