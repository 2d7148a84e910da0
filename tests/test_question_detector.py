"""Tests for question and request detection."""

import pytest

from pingchain.core.question_detector import (
    extract_questions,
    has_urgent_keywords,
    is_question_or_request,
)


@pytest.mark.parametrize("text", [
    "Are you free tomorrow?",
    "what time works for you",
    "How was the trip",
    "Could you send the file",
    "Please review the draft.",
    "I need your advice on this",
    "   did you see my email   ",
    "Lunch?",
])
def test_flags_questions_and_requests(text):
    assert is_question_or_request(text)


@pytest.mark.parametrize("text", [
    "Thanks, see you soon.",
    "Great seeing you yesterday",
    "",
    "   ",
    "Whatever works.",
    "Showing the slides now",
])
def test_ignores_statements(text):
    assert not is_question_or_request(text)


def test_interrogative_must_be_a_whole_word():
    # "Whatever" starts with "what" but is not a question
    assert not is_question_or_request("Whatever you decide is fine")
    assert is_question_or_request("What you decide is fine")


def test_case_insensitive_and_deterministic():
    text = "PLEASE call me back"
    assert is_question_or_request(text)
    assert all(is_question_or_request(text) for _ in range(5))


def test_extract_questions_preserves_order():
    texts = ["hi", "can we talk?", "ok", "please send it"]
    assert extract_questions(texts) == ["can we talk?", "please send it"]


def test_urgent_keywords():
    assert has_urgent_keywords("This is URGENT")
    assert has_urgent_keywords("need it asap")
    assert not has_urgent_keywords("whenever you have time")
    assert not has_urgent_keywords("")
