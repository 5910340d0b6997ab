"""
Unit tests for NaturalLanguageEngine.

Tests description parsing and the result cache.
"""

import pytest

from selfheal.core.language import NaturalLanguageEngine
from selfheal.models import Intent


@pytest.fixture
def engine():
    """Create a fresh engine."""
    return NaturalLanguageEngine()


class TestDescriptionParsing:
    """Test parsing of element descriptions."""

    def test_quoted_button(self, engine):
        """Test a click on a quoted button label."""
        result = engine.process_description("click the 'Login' button")

        assert result.intent == Intent.CLICK
        assert result.element_type == "button"
        assert result.text_content == "Login"
        assert result.keywords == ["click", "login", "button"]
        assert result.expected_roles == ["button", "link"]
        assert result.confidence == pytest.approx(0.9)

    def test_enter_maps_to_type(self, engine):
        """Test 'enter' is a typing intent and password implies an input."""
        result = engine.process_description("enter the password")

        assert result.intent == Intent.TYPE
        assert result.element_type == "input"
        assert result.form_context is True
        assert "password" in result.keywords

    def test_intent_inferred_from_element_type(self, engine):
        """Test intent falls back to the element type."""
        result = engine.process_description("the username field")

        assert result.intent == Intent.TYPE
        assert result.element_type == "input"

    def test_default_intent_is_click(self, engine):
        """Test descriptions without cues default to click."""
        result = engine.process_description("something shiny")

        assert result.intent == Intent.CLICK
        assert result.element_type is None
        assert result.expected_roles is None

    def test_action_only_in_first_three_tokens(self, engine):
        """Test an action word late in the text does not set the intent."""
        result = engine.process_description("the big blue select dropdown")

        assert result.intent == Intent.SELECT
        assert result.element_type == "select"

    def test_visual_and_position_cues(self, engine):
        """Test colors and relationships are extracted."""
        result = engine.process_description("click the red button below the form")

        assert result.visual_cues.colors == ["red"]
        assert result.visual_cues.sizes is None
        assert result.position_cues.relation == "below"
        assert result.position_cues.relative_to == "the form"

    def test_position_word(self, engine):
        """Test absolute positions are extracted."""
        result = engine.process_description("click the first link")

        assert result.position_cues.position == "first"
        assert result.element_type == "link"

    def test_stop_words_and_short_tokens_dropped(self, engine):
        """Test keyword filtering."""
        result = engine.process_description("go to the ok page")

        assert result.keywords == ["page"]

    def test_tokenize_marks_quotes(self, engine):
        """Test quotes become separate marker tokens."""
        tokens = engine.tokenize('type "hello" here')

        assert tokens == ["type", "QUOTE", "hello", "QUOTE", "here"]

    def test_confidence_capped(self, engine):
        """Test confidence never exceeds 1.0."""
        result = engine.process_description("click the large red submit button near the header")

        assert result.confidence <= 1.0
        assert result.confidence == pytest.approx(1.0)


class TestCache:
    """Test the NLP result cache."""

    def test_same_normalised_text_returns_same_object(self, engine):
        """Test cache hits return the identical result."""
        first = engine.process_description("Click Login")
        second = engine.process_description("  click login ")

        assert first is second

    def test_clear_cache(self, engine):
        """Test clearing produces a fresh result."""
        first = engine.process_description("click login")
        engine.clear_cache()

        assert engine.get_cache_stats()["size"] == 0
        assert engine.process_description("click login") is not first

    def test_expired_entries_are_recomputed(self):
        """Test entries expire after the TTL."""
        engine = NaturalLanguageEngine(cache_ttl_seconds=10)
        clock = {"now": 0.0}
        engine._cache._clock = lambda: clock["now"]

        first = engine.process_description("click login")
        clock["now"] = 11.0

        assert engine.process_description("click login") is not first
