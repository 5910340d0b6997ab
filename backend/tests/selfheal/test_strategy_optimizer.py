"""
Unit tests for StrategyOptimizer.
"""

import pytest
from unittest.mock import AsyncMock

from selfheal.knowledge.strategy_optimizer import DEFAULT_PRIORITIES, StrategyOptimizer
from selfheal.models import AIOperationType, FailureType, HealingStrategy


def strategy(name, priority=None):
    return HealingStrategy(name, priority if priority is not None else DEFAULT_PRIORITIES.get(name, 5), AsyncMock())


@pytest.fixture
def optimizer(history):
    return StrategyOptimizer(history)


class TestOrdering:
    """Test strategy ordering."""

    def test_failure_type_affinity(self, optimizer):
        """Test strategies suited to the failure type move up."""
        strategies = [strategy("alternative_locators"), strategy("scroll_into_view")]

        ordered = optimizer.optimize_strategies(strategies, FailureType.ELEMENT_NOT_VISIBLE)

        assert [s.name for s in ordered] == ["scroll_into_view", "alternative_locators"]

    def test_previous_attempts_penalised(self, optimizer):
        """Test strategies already tried fall behind."""
        strategies = [strategy("alternative_locators"), strategy("scroll_into_view")]

        ordered = optimizer.optimize_strategies(
            strategies, FailureType.ELEMENT_NOT_FOUND, previous_attempts=["alternative_locators"]
        )

        assert ordered[0].name == "scroll_into_view"

    def test_history_success_rate_counts(self, optimizer, history):
        """Test a strategy that keeps working overtakes a higher base priority."""
        for _ in range(40):
            history.record(AIOperationType.HEALING, "save button", True, strategy="force_click", confidence=0.5)
        history.record(AIOperationType.HEALING, "save button", False, strategy="remove_overlays")
        strategies = [strategy("remove_overlays"), strategy("force_click")]

        ordered = optimizer.optimize_strategies(strategies, FailureType.UNEXPECTED_STATE)

        assert ordered[0].name == "force_click"

    def test_learning_disabled_keeps_order(self, optimizer):
        """Test the input order is returned untouched when learning is off."""
        strategies = [strategy("force_click"), strategy("alternative_locators")]
        optimizer.set_learning_enabled(False)

        ordered = optimizer.optimize_strategies(strategies, FailureType.ELEMENT_NOT_FOUND)

        assert ordered == strategies
        assert ordered is not strategies

    def test_element_type_extraction(self, make_features):
        """Test semantic type beats role beats tag."""
        assert StrategyOptimizer.extract_element_type(make_features(tag="input", semantic_type="search")) == "search"
        assert StrategyOptimizer.extract_element_type(make_features(tag="a", role="link")) == "link"
        assert StrategyOptimizer.extract_element_type(make_features(tag="div")) == "div"


class TestLearning:
    """Test priority learning."""

    def test_success_raises_priority(self, optimizer):
        """Test success adds half the confidence."""
        optimizer.learn("scroll_into_view", True, "button", FailureType.ELEMENT_NOT_VISIBLE, 0.8)

        assert optimizer.get_strategy_priority("scroll_into_view") == pytest.approx(9.4)

    def test_failure_lowers_priority_with_floor(self, optimizer):
        """Test failure subtracts 0.2 but never below the minimum."""
        optimizer.learn("wait_for_visible", False, "input", FailureType.TIMEOUT, 0.0)
        optimizer.learn("force_click", False, "button", FailureType.TIMEOUT, 0.0)

        assert optimizer.get_strategy_priority("wait_for_visible") == pytest.approx(7.8)
        assert optimizer.get_strategy_priority("force_click") == StrategyOptimizer.MIN_PRIORITY

    def test_learning_disabled(self, optimizer):
        """Test priorities do not move when learning is off."""
        optimizer.set_learning_enabled(False)

        optimizer.learn("scroll_into_view", True, "button", FailureType.ELEMENT_NOT_VISIBLE, 1.0)

        assert optimizer.get_strategy_priority("scroll_into_view") == 9

    def test_unknown_strategy_default_priority(self, optimizer):
        """Test strategies without a priority start at the default."""
        assert optimizer.get_strategy_priority("custom") == StrategyOptimizer.DEFAULT_PRIORITY

    def test_reset_priorities(self, optimizer):
        """Test reset restores the defaults."""
        optimizer.set_strategy_priority("force_click", 20)

        optimizer.reset_priorities()

        assert optimizer.get_strategy_priority("force_click") == 1


class TestRecommendations:
    """Test suggestions and comparisons."""

    def test_suggest_defaults(self, optimizer):
        """Test defaults when the ledger has nothing."""
        assert optimizer.suggest_best_strategy("modal") == "close_modal"
        assert optimizer.suggest_best_strategy("widget") == "alternative_locators"

    def test_suggest_from_history(self, optimizer, history):
        """Test history wins over defaults."""
        history.record(AIOperationType.HEALING, "the modal", True, strategy="remove_overlays")

        assert optimizer.suggest_best_strategy("modal") == "remove_overlays"

    def test_compare_strategies(self, optimizer, history):
        """Test comparison by success rate."""
        history.record(AIOperationType.HEALING, "x", True, strategy="a")
        history.record(AIOperationType.HEALING, "x", False, strategy="b")

        comparison = optimizer.compare_strategies("a", "b")

        assert comparison["winner"] == "a"
        assert comparison["difference"] == pytest.approx(100)
        assert optimizer.compare_strategies("c", "d")["winner"] == "tie"


class TestSnapshot:
    """Test priority snapshots."""

    def test_restore(self, optimizer, history):
        """Test learned priorities survive a round trip."""
        optimizer.learn("scroll_into_view", True, "button", FailureType.ELEMENT_NOT_VISIBLE, 1.0)
        data = optimizer.export()

        restored = StrategyOptimizer(history)
        restored.import_data(data)

        assert restored.get_strategy_priority("scroll_into_view") == pytest.approx(9.5)

    def test_unknown_version_rejected(self, optimizer):
        """Test snapshots from another version are refused."""
        with pytest.raises(ValueError):
            optimizer.restore({"version": 0, "priorities": {}})
