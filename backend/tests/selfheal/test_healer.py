"""
Unit tests for IntelligentHealer.

Tests strategy selection, the attempt budget and the built-in strategies
against a mocked page.
"""

import pytest
from unittest.mock import AsyncMock

from selfheal.config import AIConfig
from selfheal.models import FailureType, HealingAttemptResult, HealingContext, HealingStrategy
from selfheal.worker import WorkerContext


@pytest.fixture
def worker(mock_feature_extractor):
    return WorkerContext("w1", AIConfig(), feature_extractor=mock_feature_extractor)


@pytest.fixture
def healer(worker):
    return worker.healer


def failing_strategy(name, priority):
    return HealingStrategy(name, priority, AsyncMock(return_value=HealingAttemptResult(success=False)))


class TestHeal:
    """Test heal()."""

    @pytest.mark.asyncio
    async def test_not_healable(self, healer, mock_page):
        """Test unknown failures are not healed."""
        result = await healer.heal(Exception("weird"), mock_page, "#save", "I click save")

        assert result.success is False
        assert result.strategy == "none"
        assert result.attempts == 0

    @pytest.mark.asyncio
    async def test_alternative_locator_heals_not_found(self, healer, mock_page, make_features):
        """Test a missing element is found again through its aria label."""
        features = make_features(tag="button", role="button", aria_label="Save changes")

        result = await healer.heal(
            Exception("Element not found"), mock_page, "#save", "I click save", features=features
        )

        assert result.success is True
        assert result.strategy == "alternative_locators"
        assert result.healed_locator == '[aria-label="Save changes"]'
        assert result.original_locator == "#save"
        assert result.confidence == pytest.approx(0.8)
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_scroll_heals_not_visible(self, healer, mock_page):
        """Test a hidden element is scrolled into view."""
        result = await healer.heal(Exception("element is not visible"), mock_page, "#save", "I click save")

        assert result.success is True
        assert result.strategy == "scroll_into_view"
        assert result.healed_locator == "#save"
        mock_page.locator.return_value.scroll_into_view_if_needed.assert_awaited()

    @pytest.mark.asyncio
    async def test_attempts_capped(self, healer, worker, mock_page):
        """Test no more than max_healing_attempts strategies run."""
        healer.strategies = [failing_strategy(f"s{i}", 9) for i in range(6)]

        result = await healer.heal(Exception("not found"), mock_page, "#save", "I click save")

        assert result.success is False
        assert result.strategy == "all_failed"
        assert result.attempts == worker.config.max_healing_attempts
        ran = sum(1 for s in healer.strategies if s.apply.await_count)
        assert ran == 3

    @pytest.mark.asyncio
    async def test_raising_strategy_counts_as_failure(self, healer, mock_page):
        """Test an exception inside a strategy moves on to the next one."""
        broken = HealingStrategy("broken", 20, AsyncMock(side_effect=RuntimeError("boom")))
        working = HealingStrategy(
            "working", 19, AsyncMock(return_value=HealingAttemptResult(success=True, confidence=0.9, locator="#ok"))
        )
        healer.strategies = [broken, working]

        result = await healer.heal(Exception("not found"), mock_page, "#save", "I click save")

        assert result.success is True
        assert result.strategy == "working"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_outcomes_fed_to_optimizer(self, healer, worker, mock_page):
        """Test every attempt adjusts the learned priority."""
        healer.strategies = [failing_strategy("flaky", 9)]

        await healer.heal(Exception("not found"), mock_page, "#save", "I click save")

        assert worker.optimizer.get_strategy_priority("flaky") == pytest.approx(4.8)

    @pytest.mark.asyncio
    async def test_analysis_error_contained(self, healer, mock_page):
        """Test a broken analysis returns the error outcome."""
        healer.intelligent_ai.analyze_failure = AsyncMock(side_effect=RuntimeError("broken"))

        result = await healer.heal(Exception("not found"), mock_page, "#save", "I click save")

        assert result.success is False
        assert result.strategy == "error"


class TestStrategySelection:
    """Test which strategies are considered."""

    @pytest.mark.asyncio
    async def test_suggested_and_high_priority(self, healer, mock_page):
        """Test low-priority strategies only run when suggested."""
        analysis = await healer.intelligent_ai.analyze_failure(Exception("not found"), "step", page=mock_page)

        names = [s.name for s in healer.select_strategies(analysis)]

        assert names[0] == "alternative_locators"
        assert "visual_similarity" in names
        assert "force_click" not in names
        assert "pattern_based_search" not in names

    @pytest.mark.asyncio
    async def test_force_click_for_not_interactive(self, healer, mock_page):
        """Test force click is considered when the element is blocked."""
        analysis = await healer.intelligent_ai.analyze_failure(
            Exception("not clickable"), "step", page=mock_page
        )

        assert analysis.failure_type == FailureType.ELEMENT_NOT_INTERACTIVE
        assert "force_click" in [s.name for s in healer.select_strategies(analysis)]

    @pytest.mark.asyncio
    async def test_previous_attempts_ranked_last(self, healer, mock_page):
        """Test strategies tried by an earlier heal are demoted, not dropped."""
        analysis = await healer.intelligent_ai.analyze_failure(Exception("not found"), "step", page=mock_page)

        names = [s.name for s in healer.select_strategies(analysis, previous_attempts=["alternative_locators"])]

        assert names[0] != "alternative_locators"
        assert "alternative_locators" in names

    @pytest.mark.asyncio
    async def test_heal_uses_previous_attempts(self, healer, mock_page):
        """Test heal() tries fresh strategies before ones that already ran."""
        first = HealingStrategy(
            "first", 10, AsyncMock(return_value=HealingAttemptResult(success=True, confidence=0.9, locator="#a"))
        )
        second = HealingStrategy(
            "second", 9, AsyncMock(return_value=HealingAttemptResult(success=True, confidence=0.9, locator="#b"))
        )
        healer.strategies = [first, second]

        result = await healer.heal(
            Exception("not found"), mock_page, "#save", "I click save", previous_attempts=["first"]
        )

        assert result.strategy == "second"
        assert result.healed_locator == "#b"
        first.apply.assert_not_awaited()

    def test_register_strategy_replaces(self, healer):
        """Test registering a strategy with an existing name replaces it."""
        custom = failing_strategy("force_click", 12)

        healer.register_strategy(custom)

        assert healer.strategies[0] is custom
        assert sum(1 for s in healer.strategies if s.name == "force_click") == 1


class TestStrategies:
    """Test individual strategies."""

    @pytest.mark.asyncio
    async def test_alternative_locators_need_features(self, healer, mock_page):
        """Test nothing is tried without captured features."""
        outcome = await healer._alternative_locators(HealingContext(page=mock_page, original_locator="#x", failure_reason=""))

        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_wait_for_visible_timeout(self, healer, mock_page):
        """Test waiting uses the long visibility timeout."""
        context = HealingContext(page=mock_page, original_locator="#x", failure_reason="")

        outcome = await healer._wait_for_visible(context)

        assert outcome.success is True
        mock_page.locator.return_value.wait_for.assert_awaited_with(state="visible", timeout=10000)

    @pytest.mark.asyncio
    async def test_close_modal(self, healer, mock_page, mock_element, make_features):
        """Test a close button is clicked until the dialog is gone."""
        healer.pattern_matcher.find_by_pattern = AsyncMock(return_value=[mock_element])
        mock_page.locator.return_value.count = AsyncMock(return_value=0)
        context = HealingContext(page=mock_page, original_locator="#x", failure_reason="")

        outcome = await healer._close_modal(context)

        assert outcome.success is True
        mock_element.click.assert_awaited()

    @pytest.mark.asyncio
    async def test_pattern_based_search(self, healer, mock_page, mock_element, make_features):
        """Test a button is recovered through the submit button pattern."""
        mock_page.locator.return_value.element_handles = AsyncMock(return_value=[mock_element])
        healer.feature_extractor.extract_features = AsyncMock(
            return_value=make_features(tag="button", role="button", attributes={"type": "submit"})
        )
        context = HealingContext(
            page=mock_page, original_locator="#x", failure_reason="",
            features=make_features(tag="button"),
        )

        outcome = await healer._pattern_based_search(context)

        assert outcome.success is True
        assert outcome.locator == "#login-btn"

    @pytest.mark.asyncio
    async def test_visual_similarity(self, healer, mock_page, mock_element, make_features):
        """Test the most similar element of the same tag is chosen."""
        target = make_features(tag="button", role="button", text="Save")
        healer.feature_extractor.extract_features = AsyncMock(return_value=target)
        mock_page.locator.return_value.element_handles = AsyncMock(return_value=[mock_element])
        context = HealingContext(page=mock_page, original_locator="#x", failure_reason="", features=target)

        outcome = await healer._visual_similarity(context)

        assert outcome.success is True
        assert outcome.confidence > 0.7
        assert outcome.locator == "#login-btn"

    @pytest.mark.asyncio
    async def test_force_click(self, healer, mock_page):
        """Test force click reports the lowest confidence."""
        outcome = await healer._force_click(HealingContext(page=mock_page, original_locator="#x", failure_reason=""))

        assert outcome.confidence == pytest.approx(0.5)
        mock_page.locator.return_value.click.assert_awaited_with(force=True, timeout=5000)


class TestStatistics:
    """Test healing history and statistics."""

    @pytest.mark.asyncio
    async def test_statistics(self, healer, mock_page):
        """Test successes and failures are both counted."""
        await healer.heal(Exception("element is not visible"), mock_page, "#save", "I click save")
        healer.strategies = [failing_strategy("nope", 9)]
        await healer.heal(Exception("not found"), mock_page, "#save", "I click save")

        stats = healer.get_statistics()

        assert stats["total_healings"] == 2
        assert stats["success_rate"] == pytest.approx(0.5)
        assert stats["strategy_effectiveness"]["scroll_into_view"]["successes"] == 1
        assert len(healer.get_healing_history("#save")) == 2

        healer.clear_history()
        assert healer.get_statistics()["total_healings"] == 0

    @pytest.mark.asyncio
    async def test_tracked_locators_bounded(self, healer, mock_page):
        """Test the least recently healed locator is dropped past the cap."""
        healer.MAX_TRACKED_LOCATORS = 2
        healer.strategies = [failing_strategy("nope", 9)]

        for locator in ("#a", "#b", "#a", "#c"):
            await healer.heal(Exception("not found"), mock_page, locator, "I click save")

        assert healer.get_healing_history("#b") == []
        assert len(healer.get_healing_history("#a")) == 2
        assert len(healer.get_healing_history("#c")) == 1
        assert healer.get_statistics()["total_healings"] == 3
