"""
Integration Layer

The façade a test runner talks to. Every call is gated on the step
context so that API and database steps keep their normal retry
behaviour and never see AI healing.
"""

import logging
from typing import Any, Dict, Optional

from ..config import AIConfig
from ..knowledge.history import HistoryContext, HistoryLedger
from ..models import ElementFeatures
from .context_gate import ContextGate, ExecutionContext
from .healer import IntelligentHealer
from .intelligent_ai import IntelligentAI
from .predictive_healer import PredictiveHealer

logger = logging.getLogger(__name__)


class IntegrationLayer:
    """
    Per-worker entry point for the runner.

    Features:
    - UI-only gating (API/database steps bypass AI entirely)
    - Healing with ledger recording when learning is on
    - Failure prediction and description-based identification
    - Worker-tagged statistics
    """

    def __init__(
        self,
        worker_id: str,
        config: AIConfig,
        context_gate: ContextGate,
        intelligent_ai: IntelligentAI,
        healer: IntelligentHealer,
        predictor: PredictiveHealer,
        history: HistoryLedger
    ):
        self.worker_id = worker_id
        self.config = config
        self.context_gate = context_gate
        self.intelligent_ai = intelligent_ai
        self.healer = healer
        self.predictor = predictor
        self.history = history

        self.predictor.set_prediction_enabled(config.predictive_healing_enabled)
        logger.debug(
            f"[AIIntegration][{worker_id}] Initialized - AI: {config.enabled}, "
            f"healing: {config.intelligent_healing_enabled}, UI only: {config.ui_only}"
        )

    # ==================== Gating ====================

    def should_activate_ai(self, step_text: Optional[str] = None) -> bool:
        """
        Decide whether AI may act on a step.

        Args:
            step_text: Step to classify; when omitted the current context is used

        Returns:
            True only for UI work (or any work when ui_only is off)
        """
        if not self.config.enabled:
            return False
        if not self.config.ui_only:
            return True

        context = self.context_gate.detect(step_text) if step_text is not None else self.context_gate.current
        if context == ExecutionContext.UI:
            return True

        logger.debug(
            f"[AIIntegration][{self.worker_id}] AI disabled for {context.value} step: "
            f"'{step_text or ''}' - using existing retry behavior"
        )
        return False

    def is_current_context_ui(self) -> bool:
        return self.context_gate.current == ExecutionContext.UI

    def set_context(self, context: ExecutionContext):
        self.context_gate.set_context(context)

    # ==================== Operations ====================

    async def attempt_healing(
        self,
        error: BaseException,
        page,
        locator: str,
        step: str,
        url: Optional[str] = None,
        element: Any = None,
        features: Optional[ElementFeatures] = None,
        test_name: str = "",
        feature_name: str = ""
    ) -> Dict[str, Any]:
        """
        Heal a failed UI step.

        Returns:
            {"healed": bool, "new_locator": str | None, "healing_data": dict | None}
        """
        not_healed = {"healed": False, "new_locator": None, "healing_data": None}

        if not self.should_activate_ai(step):
            logger.debug(f"[AIIntegration][{self.worker_id}] Healing skipped - not a UI step")
            return not_healed
        if not self.config.intelligent_healing_enabled:
            logger.debug(f"[AIIntegration][{self.worker_id}] Healing disabled in configuration")
            return not_healed

        try:
            result = await self.healer.heal(
                error, page, locator, step, url=url, element=element, features=features
            )

            if self.config.learning_enabled:
                self.history.record_healing(
                    result,
                    HistoryContext(
                        url=url or getattr(page, "url", "") or "",
                        test_name=test_name,
                        step_text=step,
                        feature_name=feature_name,
                    ),
                )

            healing_data = {
                "attempted": True,
                "success": result.success,
                "strategy": result.strategy,
                "confidence": result.confidence,
                "duration_ms": result.duration_ms,
                "original_locator": result.original_locator,
                "healed_locator": result.healed_locator,
                "attempts": result.attempts,
            }

            if result.success:
                logger.info(
                    f"[AIIntegration][{self.worker_id}] Healing SUCCESS using {result.strategy} "
                    f"({result.confidence:.1%} confidence)"
                )
                return {"healed": True, "new_locator": result.healed_locator, "healing_data": healing_data}

            logger.debug(f"[AIIntegration][{self.worker_id}] Healing FAILED after {result.attempts} attempts")
            return {"healed": False, "new_locator": None, "healing_data": healing_data}

        except Exception as e:
            logger.debug(f"[AIIntegration][{self.worker_id}] Healing error: {e}")
            return not_healed

    async def predict_failure(self, locator: str, page, step_text: str) -> Dict[str, Any]:
        """
        Returns:
            {"will_fail": bool, "fragility_score": float, "prediction_data": dict | None}
        """
        no_prediction = {"will_fail": False, "fragility_score": 0.0, "prediction_data": None}
        if not self.should_activate_ai(step_text) or not self.config.predictive_healing_enabled:
            return no_prediction

        try:
            prediction = self.predictor.predict_failure(locator)
            if prediction.will_fail:
                logger.debug(
                    f"[AIIntegration][{self.worker_id}] Prediction: element likely to fail "
                    f"({prediction.confidence:.1%} confidence, {prediction.fragility_score:.1%} fragility)"
                )
            return {
                "will_fail": prediction.will_fail,
                "fragility_score": prediction.fragility_score,
                "prediction_data": {
                    "predicted": prediction.will_fail,
                    "prevented": False,
                    "confidence": prediction.confidence,
                    "fragility_score": prediction.fragility_score,
                    "reason": prediction.reason,
                    "suggested_locator": prediction.suggested_locator,
                },
            }
        except Exception as e:
            logger.debug(f"[AIIntegration][{self.worker_id}] Prediction error: {e}")
            return no_prediction

    async def identify_element(
        self,
        description: str,
        page,
        step_text: str,
        test_name: str = "",
        feature_name: str = ""
    ) -> Dict[str, Any]:
        """
        Returns:
            {"locator": Locator | None, "identification_data": dict | None}
        """
        not_found = {"locator": None, "identification_data": None}
        if not self.should_activate_ai(step_text):
            return not_found

        try:
            result = await self.intelligent_ai.identify_element(
                description,
                page,
                HistoryContext(
                    url=getattr(page, "url", "") or "",
                    test_name=test_name,
                    step_text=step_text,
                    feature_name=feature_name,
                ),
            )
            if result is None:
                return not_found

            logger.debug(
                f"[AIIntegration][{self.worker_id}] Element identified using {result.method.value} "
                f"({result.confidence:.1%} confidence)"
            )
            return {
                "locator": result.locator,
                "identification_data": {
                    "method": result.method.value,
                    "confidence": result.confidence,
                    "alternatives": len(result.alternatives),
                    "duration_ms": result.duration_ms,
                },
            }
        except Exception as e:
            logger.debug(f"[AIIntegration][{self.worker_id}] Identification error: {e}")
            return not_found

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "healing_stats": self.healer.get_statistics(),
            "history_stats": self.history.get_statistics(),
            "context": self.context_gate.current.value,
        }
