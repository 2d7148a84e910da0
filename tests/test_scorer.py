"""Tests for message profiling."""

import pytest

from pingchain.emotion import scorer
from pingchain.emotion.scorer import (
    analyze_sentiment,
    extract_action_items,
    heuristic_profile,
    profile_text,
)


def test_sentiment_lexicon():
    assert analyze_sentiment("That was great, thanks!") == "positive"
    assert analyze_sentiment("This is terrible and I'm angry") == "negative"
    assert analyze_sentiment("The train leaves at noon") == "neutral"


def test_heuristic_profile_work_message():
    profile = heuristic_profile(
        "Dear Sam, the project deadline moved. Could you send the report by Friday?"
    )
    assert profile["category"] == "professional"
    assert profile["communication_style"] == "formal"
    assert profile["urgency"] == "high"
    assert "project" in profile["topics"]
    assert profile["action_items"] == ["Could you send the report by Friday?"]


def test_heuristic_profile_casual_message():
    profile = heuristic_profile("hey! so excited for dinner this weekend lol")
    assert profile["communication_style"] == "casual"
    assert profile["emotional_context"] == "excited"
    assert profile["category"] == "social"
    assert profile["urgency"] == "low"
    assert set(profile["topics"]) == {"dinner", "weekend"}


def test_commitments_are_action_items():
    items = extract_action_items("Nice chat. I'll get back to you tomorrow. Bye.")
    assert items == ["I'll get back to you tomorrow."]


def test_empty_text():
    profile = heuristic_profile("")
    assert profile["sentiment"] == "neutral"
    assert profile["emotional_context"] == "neutral"
    assert profile["topics"] == []
    assert profile["action_items"] == []


@pytest.mark.asyncio
async def test_profile_text_uses_heuristic_by_default(monkeypatch):
    async def _fail(*args, **kwargs):
        raise AssertionError("LLM must not be called")

    monkeypatch.setattr(scorer, "llm_complete_json", _fail)
    profile = await profile_text("thanks so much!")
    assert profile["emotional_context"] == "grateful"


@pytest.mark.asyncio
async def test_profile_text_merges_llm_answer(monkeypatch):
    async def _fake(prompt, system=None):
        assert "thanks" in prompt
        return {
            "sentiment": "POSITIVE",
            "emotional_context": "Relieved",
            "communication_style": "shouty",
            "topics": ["Invoice", "Payment"],
            "urgency": "low",
            "category": "professional",
            "action_items": [],
        }

    monkeypatch.setattr(scorer, "llm_complete_json", _fake)
    profile = await profile_text("thanks for paying", use_llm=True)
    assert profile["sentiment"] == "positive"
    assert profile["emotional_context"] == "relieved"
    assert profile["communication_style"] is None
    assert profile["topics"] == ["invoice", "payment"]
    assert profile["category"] == "professional"


@pytest.mark.asyncio
async def test_profile_text_falls_back_on_llm_error(monkeypatch):
    async def _boom(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(scorer, "llm_complete_json", _boom)
    profile = await profile_text("Please call me about the meeting", use_llm=True)
    assert profile == heuristic_profile("Please call me about the meeting")
