"""
Unit tests for IntelligentAI.

Tests element identification against a mocked page and failure analysis.
"""

import pytest
from unittest.mock import AsyncMock

from selfheal.config import AIConfig
from selfheal.models import (
    AIOperationType,
    DiagnosticStats,
    FailureType,
    IdentificationMethod,
    PageDiagnosticData,
)
from selfheal.worker import WorkerContext


def discovered(**overrides):
    """One element as returned by the candidate discovery script."""
    data = {
        "index": 0,
        "tagName": "button",
        "id": "login-btn",
        "innerText": "Login",
        "labelText": "",
        "surroundingText": "Sign in to continue",
        "testId": "",
        "tableHeaders": "",
    }
    data.update(overrides)
    return data


@pytest.fixture
def worker(mock_feature_extractor):
    return WorkerContext("w1", AIConfig(), feature_extractor=mock_feature_extractor)


@pytest.fixture
def ai(worker):
    return worker.intelligent_ai


def page_with_candidates(page, element, candidates):
    """Make page.evaluate return `candidates` for the discovery script only."""

    async def evaluate(script, arg=None):
        if arg is not None:
            return candidates
        return {}

    page.evaluate = AsyncMock(side_effect=evaluate)
    page.locator.return_value.element_handle = AsyncMock(return_value=element)
    return page


class TestIdentification:
    """Test identify_element()."""

    @pytest.mark.asyncio
    async def test_disabled_returns_none(self, mock_page, mock_feature_extractor):
        """Test nothing is attempted when AI is disabled."""
        worker = WorkerContext("w1", AIConfig(enabled=False), feature_extractor=mock_feature_extractor)

        result = await worker.intelligent_ai.identify_element("click the 'Login' button", mock_page)

        assert result is None
        mock_page.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_candidates_returns_none(self, ai, mock_page):
        """Test an empty page yields None and a failed operation."""
        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result is None
        operation = ai.get_operations()[-1]
        assert operation.type == AIOperationType.IDENTIFICATION
        assert operation.success is False
        assert operation.details["reason"] == "No candidates found"

    @pytest.mark.asyncio
    async def test_identifies_best_candidate(self, ai, worker, mock_page, mock_element):
        """Test the deep search result is ranked and recorded."""
        page_with_candidates(mock_page, mock_element, [discovered()])

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result is not None
        assert result.selector == "#login-btn"
        assert result.method == IdentificationMethod.TEXT
        assert result.confidence == 1.0
        assert result.features.context.inner_text == "Login"
        assert result.features.context.surrounding_text == "Sign in to continue"
        mock_page.locator.assert_any_call('button[id="login-btn"]')

        rows = worker.history.get_by_operation(AIOperationType.IDENTIFICATION)
        assert len(rows) == 1
        assert rows[0].healed_locator == "#login-btn"
        assert rows[0].strategy == ""
        assert worker.history.get_strategy_effectiveness() == []

    @pytest.mark.asyncio
    async def test_alternatives_limited_to_three(self, ai, mock_page, mock_element):
        """Test at most three runners-up are returned."""
        page_with_candidates(
            mock_page, mock_element, [discovered(index=i, id=f"btn-{i}") for i in range(6)]
        )

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert len(result.alternatives) == 3

    @pytest.mark.asyncio
    async def test_class_selector_gets_text_filter(self, ai, mock_page, mock_element):
        """Test class-only selectors are narrowed by exact text."""
        mock_element.evaluate = AsyncMock(return_value=".btn.primary")
        page_with_candidates(mock_page, mock_element, [discovered()])

        await ai.identify_element("click the 'Login' button", mock_page)

        pattern = mock_page.locator.return_value.filter.call_args.kwargs["has_text"]
        assert pattern.match("  Login ")
        assert not pattern.match("Login now")

    @pytest.mark.asyncio
    async def test_bare_tag_selector_narrowed(self, ai, mock_page, mock_element):
        """Test a tag-only selector is narrowed and reported with its text."""
        mock_element.evaluate = AsyncMock(return_value="button")
        page_with_candidates(mock_page, mock_element, [discovered()])

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result.selector == 'button:text-is("Login")'
        pattern = mock_page.locator.return_value.filter.call_args.kwargs["has_text"]
        assert pattern.match("Login")

    @pytest.mark.asyncio
    async def test_id_selector_not_narrowed(self, ai, mock_page, mock_element):
        """Test unique selectors are reported unchanged."""
        page_with_candidates(mock_page, mock_element, [discovered()])

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result.selector == "#login-btn"

    @pytest.mark.asyncio
    async def test_special_characters_in_id_are_quoted(self, ai, mock_page, mock_element):
        """Test ids that are not valid CSS identifiers still resolve."""
        page_with_candidates(mock_page, mock_element, [discovered(id='form:email"1')])

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result is not None
        mock_page.locator.assert_any_call('button[id="form:email\\"1"]')

    @pytest.mark.asyncio
    async def test_elements_without_identity_skipped(self, ai, mock_page, mock_element):
        """Test discovery rows with nothing to locate them by are skipped."""
        page_with_candidates(mock_page, mock_element, [discovered(id="", innerText="")])

        assert await ai.identify_element("click the 'Login' button", mock_page) is None

    @pytest.mark.asyncio
    async def test_fallback_search(self, ai, mock_page, mock_element):
        """Test fallback selectors are used when deep search finds nothing."""
        mock_page.locator.return_value.element_handles = AsyncMock(return_value=[mock_element])

        result = await ai.identify_element("click the 'Login' button", mock_page)

        assert result is not None
        mock_page.locator.assert_any_call('text="Login"')
        assert result.alternatives == []

    @pytest.mark.asyncio
    async def test_errors_return_none(self, ai, mock_page):
        """Test unexpected errors are contained."""
        ai.nlp_engine.process_description = lambda description: 1 / 0

        assert await ai.identify_element("click login", mock_page) is None
        assert "error" in ai.get_operations()[-1].details


class TestFailureAnalysis:
    """Test analyze_failure()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,failure_type,healable", [
        ("Timeout 30000ms exceeded", FailureType.TIMEOUT, True),
        ("Element not found: #save", FailureType.ELEMENT_NOT_FOUND, True),
        ("element is not visible", FailureType.ELEMENT_NOT_VISIBLE, True),
        ("Element is not clickable at point", FailureType.ELEMENT_NOT_INTERACTIVE, True),
        ("Something odd happened", FailureType.UNKNOWN, False),
    ])
    async def test_classification(self, ai, mock_page, message, failure_type, healable):
        """Test error messages map to failure types."""
        analysis = await ai.analyze_failure(Exception(message), "I click save", page=mock_page)

        assert analysis.failure_type == failure_type
        assert analysis.healable is healable
        assert analysis.context.url == mock_page.url

    @pytest.mark.asyncio
    async def test_page_errors_classify_network(self, ai):
        """Test network page errors are recognised."""
        diagnostics = PageDiagnosticData(
            page_errors=[{"message": "network request failed"}],
            stats=DiagnosticStats(total_errors=1),
        )

        analysis = await ai.analyze_failure(Exception("boom"), "step", url="u", diagnostics=diagnostics)

        assert analysis.failure_type == FailureType.NETWORK_ERROR
        assert analysis.healable is False
        assert analysis.diagnostic_insights == ["1 page errors detected"]

    @pytest.mark.asyncio
    async def test_suggested_strategies_and_confidence(self, ai):
        """Test strategies and confidence for a clean not-found failure."""
        analysis = await ai.analyze_failure(
            Exception("no element matches"), "step", url="u", diagnostics=PageDiagnosticData()
        )

        assert analysis.suggested_strategies[0] == "alternative_locators"
        assert analysis.root_cause == "Element not found. No page errors."
        assert analysis.confidence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_operation_recorded(self, ai, mock_page):
        """Test analyses are counted in the statistics."""
        await ai.analyze_failure(Exception("timeout"), "step", page=mock_page)

        stats = ai.get_statistics()

        assert stats["total_operations"] == 1
        assert stats["operations_by_type"]["analysis"] == 1
        assert stats["success_rate"] == 1.0


class TestConfiguration:
    """Test configuration and bookkeeping."""

    def test_configure_returns_new_config(self, ai):
        """Test configure replaces fields."""
        config = ai.configure(confidence_threshold=0.9)

        assert config.confidence_threshold == 0.9
        assert ai.get_config() is config

    def test_clear_operations(self, ai):
        """Test clearing the operation log."""
        ai.clear_operations()

        assert ai.get_operations() == []
        assert ai.get_success_rate() == 0.0
        assert ai.get_average_confidence() == 0.0
