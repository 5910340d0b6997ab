"""
Predictive Healer

Estimates how likely a locator is to break from its healing history and,
when it looks fragile, swaps in a better locator before the step runs.
"""

import logging
import re
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..knowledge.history import HistoryLedger
from ..models import FragilityScore, PredictionResult
from ..ttl_cache import TTLMap

logger = logging.getLogger(__name__)

SUGGESTED_LOCATOR_RE = re.compile(r"locator to: (.+)")


class PredictiveHealer:
    """
    History-based failure prediction.

    Features:
    - Fragility from heal count, failure rate, locator churn and recency
    - Scores cached per locator (5 minutes by default)
    - Pre-emptive healing from the suggested fix or the most common healed locator
    - Disabled until explicitly enabled
    """

    FAIL_THRESHOLD = 0.5
    PREEMPTIVE_CONFIDENCE = 0.7

    def __init__(self, history: HistoryLedger, cache_ttl_seconds: float = 300.0):
        self.history = history
        self.prediction_enabled = False
        self._cache: TTLMap[str, FragilityScore] = TTLMap(cache_ttl_seconds)

    def set_prediction_enabled(self, enabled: bool):
        self.prediction_enabled = enabled
        logger.debug(f"Prediction {'enabled' if enabled else 'disabled'}")

    # ==================== Fragility ====================

    def calculate_fragility_score(self, locator: str) -> FragilityScore:
        """
        Score a locator between 0 (stable) and 1 (about to break).

        score = min(heals/10, 0.4) + failure_rate*0.3
                + (1 - stability)*0.2 + recency (0.3 today, 0.2 this week,
                0.1 this month)
        """
        cached = self._cache.get(locator)
        if cached is not None:
            return cached

        try:
            healings = self.history.get_healing_history(locator)
            if not healings:
                return FragilityScore(locator=locator, score=0.0)

            heal_count = len(healings)
            failure_rate = sum(1 for h in healings if not h.success) / heal_count

            distinct_healed = {h.healed_locator for h in healings if h.success and h.healed_locator}
            stability = max(0.0, 1 - len(distinct_healed) / 10) if distinct_healed else 1.0

            days_since = (datetime.now() - healings[-1].timestamp).total_seconds() / 86400
            if days_since < 1:
                recency = 0.3
            elif days_since < 7:
                recency = 0.2
            elif days_since < 30:
                recency = 0.1
            else:
                recency = 0.0

            score = min(heal_count / 10, 0.4)
            score += failure_rate * 0.3
            score += (1 - stability) * 0.2
            score += recency

            factors = []
            if heal_count >= 3:
                factors.append(f"Healed {heal_count} times")
            if failure_rate > 0.3:
                factors.append(f"{failure_rate * 100:.0f}% failure rate")
            if stability < 0.7:
                factors.append("Unstable locator")
            if recency > 0.1:
                factors.append("Recently healed")

            fragility = FragilityScore(
                locator=locator,
                score=min(score, 1.0),
                heal_count=heal_count,
                failure_rate=failure_rate,
                locator_stability=stability,
                recency_factor=recency,
                factors=factors,
            )
            self._cache.set(locator, fragility)
            return fragility

        except Exception as e:
            logger.debug(f"Error calculating fragility for {locator}: {e}")
            return FragilityScore(locator=locator, score=0.0)

    @staticmethod
    def prediction_confidence(fragility: FragilityScore) -> float:
        confidence = 0.5
        if fragility.heal_count >= 5:
            confidence += 0.3
        elif fragility.heal_count >= 3:
            confidence += 0.2
        elif fragility.heal_count >= 1:
            confidence += 0.1

        if fragility.failure_rate > 0.5:
            confidence += 0.2
        elif fragility.failure_rate > 0.3:
            confidence += 0.1
        return min(confidence, 1.0)

    @staticmethod
    def prediction_reason(fragility: FragilityScore) -> str:
        if not fragility.factors:
            return "Element appears stable"
        return f"Element is fragile: {', '.join(fragility.factors)}"

    # ==================== Prediction ====================

    def predict_failure(self, locator: Any) -> PredictionResult:
        """Predict whether interacting with `locator` is likely to fail"""
        if not self.prediction_enabled:
            return PredictionResult(will_fail=False, confidence=0.0, fragility_score=0.0)

        locator = str(locator)
        try:
            fragility = self.calculate_fragility_score(locator)
            will_fail = fragility.score > self.FAIL_THRESHOLD
            prediction = PredictionResult(
                will_fail=will_fail,
                confidence=self.prediction_confidence(fragility),
                fragility_score=fragility.score,
                reason=self.prediction_reason(fragility),
                suggested_locator=self.suggested_locator(locator) if will_fail else None,
            )
            if will_fail:
                prediction.preemptive_action = "use_suggested_locator" if prediction.suggested_locator else "heal"
            logger.debug(
                f"Prediction for {locator}: {'WILL FAIL' if will_fail else 'OK'} "
                f"(confidence {prediction.confidence:.0%}, fragility {fragility.score:.0%})"
            )
            return prediction

        except Exception as e:
            logger.debug(f"Prediction error for {locator}: {e}")
            return PredictionResult(will_fail=False, confidence=0.0, fragility_score=0.0)

    def suggested_locator(self, locator: str) -> Optional[str]:
        """Locator named in the ledger's suggested fix for this element"""
        for fragile in self.history.get_fragile_elements():
            if fragile.locator == locator and fragile.suggested_fix:
                match = SUGGESTED_LOCATOR_RE.search(fragile.suggested_fix)
                if match:
                    return match.group(1)
        return None

    def most_common_healed_locator(self, locator: str) -> Optional[str]:
        healed = [
            h.healed_locator for h in self.history.get_healing_history(locator)
            if h.success and h.healed_locator
        ]
        return Counter(healed).most_common(1)[0][0] if healed else None

    async def preemptive_heal(self, page, locator: Any) -> Dict[str, Any]:
        """
        Replace a fragile locator before it is used.

        Returns:
            {"healed": bool, "new_locator": str | None, "confidence": float}
        """
        not_healed = {"healed": False, "new_locator": None, "confidence": 0.0}
        if not self.prediction_enabled:
            return not_healed

        locator = str(locator)
        try:
            prediction = self.predict_failure(locator)
            if not prediction.will_fail:
                logger.debug(f"{locator} is not fragile, no pre-emptive healing needed")
                return not_healed

            if prediction.suggested_locator and await self._exists(page, prediction.suggested_locator):
                return {
                    "healed": True,
                    "new_locator": prediction.suggested_locator,
                    "confidence": prediction.confidence,
                }

            alternative = self.most_common_healed_locator(locator)
            if alternative and await self._exists(page, alternative):
                logger.debug(f"Using historic healed locator {alternative} for {locator}")
                return {"healed": True, "new_locator": alternative, "confidence": self.PREEMPTIVE_CONFIDENCE}

            logger.debug(f"No alternative locator found for {locator}")
            return not_healed

        except Exception as e:
            logger.debug(f"Pre-emptive healing error for {locator}: {e}")
            return not_healed

    @staticmethod
    async def _exists(page, locator: str) -> bool:
        try:
            return await page.locator(locator).count() > 0
        except Exception as e:
            logger.debug(f"Locator {locator} could not be checked: {e}")
            return False

    # ==================== Reporting ====================

    def get_elements_needing_attention(self, threshold: float = 0.6) -> List[FragilityScore]:
        scores = [self.calculate_fragility_score(f.locator) for f in self.history.get_fragile_elements()]
        return sorted((s for s in scores if s.score >= threshold), key=lambda s: s.score, reverse=True)

    def generate_fragility_report(self) -> Dict[str, Any]:
        fragile = self.history.get_fragile_elements()
        elements = []
        critical = high = medium = 0
        total = 0.0

        for element in fragile:
            fragility = self.calculate_fragility_score(element.locator)
            total += fragility.score
            if fragility.score > 0.8:
                critical += 1
            elif fragility.score > 0.6:
                high += 1
            elif fragility.score > 0.4:
                medium += 1
            elements.append({
                "locator": element.locator,
                "description": element.description,
                "fragility": fragility,
                "recommendation": element.suggested_fix or "Consider using more stable locator attributes",
            })

        elements.sort(key=lambda e: e["fragility"].score, reverse=True)
        return {
            "summary": {
                "total_elements": len(fragile),
                "critical_elements": critical,
                "high_risk_elements": high,
                "medium_risk_elements": medium,
                "average_score": total / len(fragile) if fragile else 0.0,
            },
            "elements": elements,
        }

    def clear_cache(self):
        self._cache.clear()
        logger.debug("Fragility cache cleared")

    def get_statistics(self) -> Dict[str, Any]:
        fragile = self.history.get_fragile_elements()
        scores = [self.calculate_fragility_score(f.locator).score for f in fragile]
        return {
            "prediction_enabled": self.prediction_enabled,
            "fragile_elements_count": len(fragile),
            "average_fragility_score": sum(scores) / len(scores) if scores else 0.0,
            "high_risk_elements": sum(1 for s in scores if s > 0.7),
            "cache_size": len(self._cache),
        }
