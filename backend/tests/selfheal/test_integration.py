"""
Unit tests for IntegrationLayer and the worker registry.

Tests UI-only gating, the runner-facing operations and per-worker isolation.
"""

import pytest
import threading
from unittest.mock import AsyncMock

from selfheal.config import AIConfig
from selfheal.core.context_gate import ExecutionContext
from selfheal.models import AIOperationType, IntelligentHealingResult
from selfheal.worker import WorkerContext, WorkerRegistry


@pytest.fixture
def worker(mock_feature_extractor):
    return WorkerContext("w1", AIConfig(), feature_extractor=mock_feature_extractor)


@pytest.fixture
def integration(worker):
    return worker.integration


class TestGating:
    """Test should_activate_ai()."""

    def test_ui_step_activates(self, integration):
        """Test UI steps activate AI."""
        assert integration.should_activate_ai("I click the login button") is True

    @pytest.mark.parametrize("step", ["I send a GET request with header X", "I query the orders table in SQL"])
    def test_non_ui_steps_skip(self, integration, step):
        """Test API and database steps never activate AI."""
        assert integration.should_activate_ai(step) is False

    def test_disabled(self, mock_feature_extractor):
        """Test nothing activates when AI is disabled."""
        integration = WorkerContext("w", AIConfig(enabled=False), mock_feature_extractor).integration

        assert integration.should_activate_ai("I click the login button") is False

    def test_ui_only_off(self, mock_feature_extractor):
        """Test every step activates when UI-only gating is off."""
        integration = WorkerContext("w", AIConfig(ui_only=False), mock_feature_extractor).integration

        assert integration.should_activate_ai("I send a request") is True

    def test_current_context_used_without_text(self, integration):
        """Test the current context decides when no step text is given."""
        assert integration.should_activate_ai() is False

        integration.set_context(ExecutionContext.UI)

        assert integration.should_activate_ai() is True
        assert integration.is_current_context_ui() is True


class TestAttemptHealing:
    """Test attempt_healing()."""

    @pytest.mark.asyncio
    async def test_api_step_not_healed(self, integration, mock_page):
        """Test API steps bypass healing entirely."""
        integration.healer.heal = AsyncMock()

        result = await integration.attempt_healing(
            Exception("not found"), mock_page, "#x", "the API response contains the user"
        )

        assert result == {"healed": False, "new_locator": None, "healing_data": None}
        integration.healer.heal.assert_not_called()

    @pytest.mark.asyncio
    async def test_healing_disabled(self, mock_feature_extractor, mock_page):
        """Test the healing switch is honoured."""
        integration = WorkerContext(
            "w", AIConfig(intelligent_healing_enabled=False), mock_feature_extractor
        ).integration

        result = await integration.attempt_healing(Exception("not found"), mock_page, "#x", "I click save")

        assert result["healed"] is False

    @pytest.mark.asyncio
    async def test_successful_healing_recorded(self, integration, worker, mock_page):
        """Test a healed step returns the new locator and is written to the ledger."""
        result = await integration.attempt_healing(
            Exception("element is not visible"), mock_page, "#save", "I click save",
            test_name="checkout", feature_name="cart",
        )

        assert result["healed"] is True
        assert result["new_locator"] == "#save"
        assert result["healing_data"]["strategy"] == "scroll_into_view"

        rows = worker.history.get_by_operation(AIOperationType.HEALING)
        assert len(rows) == 1
        assert rows[0].context.test_name == "checkout"
        assert rows[0].context.url == mock_page.url

    @pytest.mark.asyncio
    async def test_failed_healing(self, integration, mock_page):
        """Test a failed heal reports the data but no locator."""
        integration.healer.heal = AsyncMock(return_value=IntelligentHealingResult(
            success=False, strategy="all_failed", confidence=0.0, attempts=3, duration_ms=50,
            original_locator="#x",
        ))

        result = await integration.attempt_healing(Exception("not found"), mock_page, "#x", "I click save")

        assert result["healed"] is False
        assert result["new_locator"] is None
        assert result["healing_data"]["attempts"] == 3

    @pytest.mark.asyncio
    async def test_no_recording_without_learning(self, mock_feature_extractor, mock_page):
        """Test the ledger is untouched when learning is off."""
        worker = WorkerContext("w", AIConfig(learning_enabled=False), mock_feature_extractor)

        await worker.integration.attempt_healing(
            Exception("element is not visible"), mock_page, "#save", "I click save"
        )

        assert len(worker.history) == 0


class TestPredictAndIdentify:
    """Test predict_failure() and identify_element()."""

    @pytest.mark.asyncio
    async def test_prediction_off_by_default(self, integration, mock_page):
        """Test prediction needs the predictive switch."""
        result = await integration.predict_failure("#x", mock_page, "I click save")

        assert result == {"will_fail": False, "fragility_score": 0.0, "prediction_data": None}

    @pytest.mark.asyncio
    async def test_prediction_enabled(self, mock_feature_extractor, mock_page):
        """Test a fragile locator is reported."""
        worker = WorkerContext("w", AIConfig(predictive_healing_enabled=True), mock_feature_extractor)
        for _ in range(3):
            worker.history.record(AIOperationType.HEALING, "save button", False, original_locator="#x")

        result = await worker.integration.predict_failure("#x", mock_page, "I click save")

        assert result["will_fail"] is True
        assert result["prediction_data"]["predicted"] is True
        assert result["prediction_data"]["prevented"] is False

    @pytest.mark.asyncio
    async def test_identify_skips_api_steps(self, integration, mock_page):
        """Test identification is gated like healing."""
        result = await integration.identify_element("the user id", mock_page, "the API returns the user id")

        assert result == {"locator": None, "identification_data": None}

    @pytest.mark.asyncio
    async def test_identify_not_found(self, integration, mock_page):
        """Test an empty page returns no locator."""
        result = await integration.identify_element("the 'Login' button", mock_page, "I click the 'Login' button")

        assert result["locator"] is None

    def test_statistics(self, integration):
        """Test statistics are tagged with the worker."""
        stats = integration.get_statistics()

        assert stats["worker_id"] == "w1"
        assert stats["context"] == "unknown"
        assert "healing_stats" in stats and "history_stats" in stats


class TestWorkerContext:
    """Test WorkerContext wiring."""

    def test_learning_switches(self, mock_feature_extractor):
        """Test learning flags reach the learner and optimizer."""
        worker = WorkerContext(
            "w", AIConfig(pattern_matching_enabled=False), mock_feature_extractor
        )

        assert worker.pattern_learner.learning_enabled is False
        assert worker.optimizer.learning_enabled is True

    def test_attach_and_close(self, worker, mock_page):
        """Test diagnostics follow the attached page."""
        worker.attach_page(mock_page)
        assert mock_page.on.call_count == 4

        worker.close()
        assert mock_page.remove_listener.call_count == 4


class TestWorkerRegistry:
    """Test per-worker isolation."""

    def test_one_context_per_worker(self):
        """Test the same worker id gets the same context and others do not share it."""
        registry = WorkerRegistry(AIConfig())

        first = registry.get("w1")

        assert registry.get("w1") is first
        assert registry.get("w2") is not first
        assert registry.get_context("w1").history is not registry.get_context("w2").history
        assert sorted(registry.worker_ids()) == ["w1", "w2"]

    def test_clear(self):
        """Test clearing one or all workers."""
        registry = WorkerRegistry(AIConfig())
        first = registry.get("w1")
        registry.get("w2")

        registry.clear("w1")
        assert registry.worker_ids() == ["w2"]
        assert registry.get("w1") is not first

        registry.clear_all()
        assert registry.worker_ids() == []

    def test_concurrent_creation(self):
        """Test threads asking for the same worker get one context."""
        registry = WorkerRegistry(AIConfig())
        results = []

        def fetch():
            results.append(registry.get_context("shared"))

        threads = [threading.Thread(target=fetch) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(c) for c in results}) == 1
