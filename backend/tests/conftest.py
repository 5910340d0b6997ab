"""
Pytest configuration and shared fixtures for selfheal tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import Mock, AsyncMock

# Add backend app to path
sys.path.insert(0, str(Path(__file__).parent.parent / "app"))

from selfheal.config import AIConfig
from selfheal.knowledge.history import HistoryLedger
from selfheal.models import (
    ContextFeatures,
    ElementFeatures,
    SemanticFeatures,
    StructuralFeatures,
    TextFeatures,
    VisualFeatures,
)


# ==================== Mock Page Fixture ====================

@pytest.fixture
def mock_locator():
    """Create a mock Playwright locator that resolves to one element."""
    locator = AsyncMock()
    locator.first = locator
    locator.filter = Mock(return_value=locator)
    locator.count = AsyncMock(return_value=1)
    locator.is_visible = AsyncMock(return_value=True)
    locator.wait_for = AsyncMock()
    locator.click = AsyncMock()
    locator.scroll_into_view_if_needed = AsyncMock()
    locator.element_handle = AsyncMock(return_value=None)
    locator.element_handles = AsyncMock(return_value=[])
    return locator


@pytest.fixture
def mock_page(mock_locator):
    """Create a mock Playwright page object."""
    page = AsyncMock()

    # Basic properties
    page.url = "https://example.com/login"

    # Evaluation
    page.evaluate = AsyncMock(return_value={})

    # Locators
    page.locator = Mock(return_value=mock_locator)

    # Events
    page.on = Mock()
    page.remove_listener = Mock()

    # Keyboard and mouse
    page.keyboard = AsyncMock()
    page.keyboard.press = AsyncMock()
    page.click = AsyncMock()

    # Wait
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()

    return page


@pytest.fixture
def mock_element():
    """Create a mock element handle whose generated selector is '#login-btn'."""
    element = AsyncMock()
    element.evaluate = AsyncMock(return_value="#login-btn")
    element.click = AsyncMock()
    return element


# ==================== Feature Fixtures ====================

@pytest.fixture
def make_features():
    """Factory for ElementFeatures with only the interesting fields set."""

    def _make(
        tag="input",
        attributes=None,
        role=None,
        semantic_type="generic",
        visible=True,
        text="",
        aria_label=None,
        class_list=None,
        interactive=True,
        **context
    ) -> ElementFeatures:
        attributes = dict(attributes or {})
        return ElementFeatures(
            text=TextFeatures(content=text, visible_text=text, aria_label=aria_label),
            visual=VisualFeatures(is_visible=visible),
            structural=StructuralFeatures(
                tag_name=tag,
                attributes=attributes,
                class_list=list(class_list or []),
                id=attributes.get("id", ""),
                is_interactive=interactive,
                role=role,
                form_element=tag in ("input", "select", "textarea"),
                input_type=attributes.get("type") if tag == "input" else None,
            ),
            semantic=SemanticFeatures(role=role or "generic", semantic_type=semantic_type),
            context=ContextFeatures(**context),
        )

    return _make


@pytest.fixture
def mock_feature_extractor(make_features):
    """Create a feature extractor that always returns a visible button."""
    extractor = Mock()
    extractor.extract_features = AsyncMock(
        return_value=make_features(tag="button", role="button", text="Login")
    )
    extractor.clear_cache = Mock()
    return extractor


# ==================== Config / Ledger Fixtures ====================

@pytest.fixture
def ai_config():
    """Default AI configuration (no environment lookups)."""
    return AIConfig()


@pytest.fixture
def history():
    """Empty history ledger."""
    return HistoryLedger(max_entries=100)
