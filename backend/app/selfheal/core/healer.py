"""
Intelligent Healer

Repairs failed element interactions. A failure is analysed first; if it
is healable the matching strategies run best-first (as ordered by the
strategy optimizer) until one produces a working locator.
"""

import logging
import time
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from ..analysis.feature_extractor import FeatureExtractor, generate_selector
from ..analysis.similarity import SimilarityEngine
from ..config import AIConfig
from ..knowledge.pattern_matcher import PatternMatcher
from ..knowledge.strategy_optimizer import StrategyOptimizer
from ..models import (
    ElementFeatures,
    FailureAnalysis,
    HealingAttemptResult,
    HealingContext,
    HealingStrategy,
    IntelligentHealingResult,
)
from .intelligent_ai import IntelligentAI

logger = logging.getLogger(__name__)


class IntelligentHealer:
    """
    Diagnostic-driven healing engine.

    Features:
    - Eight built-in strategies, from alternative locators down to force click
    - Suggested strategies plus every high-priority strategy are tried
    - Order decided by StrategyOptimizer; outcomes fed back to it
    - Bounded per-locator healing history
    """

    HIGH_PRIORITY = 7
    HISTORY_PER_LOCATOR = 10
    MAX_TRACKED_LOCATORS = 500

    WAIT_FOR_VISIBLE_TIMEOUT_MS = 10000
    SETTLE_MS = 500
    OVERLAY_SETTLE_MS = 300
    VISUAL_MATCH_THRESHOLD = 0.7
    PATTERN_MATCH_THRESHOLD = 0.6

    def __init__(
        self,
        config: AIConfig,
        intelligent_ai: IntelligentAI,
        pattern_matcher: PatternMatcher,
        feature_extractor: FeatureExtractor,
        similarity_engine: SimilarityEngine,
        optimizer: StrategyOptimizer
    ):
        self.config = config
        self.intelligent_ai = intelligent_ai
        self.pattern_matcher = pattern_matcher
        self.feature_extractor = feature_extractor
        self.similarity_engine = similarity_engine
        self.optimizer = optimizer

        self._history: "OrderedDict[str, Deque[IntelligentHealingResult]]" = OrderedDict()
        self.strategies: List[HealingStrategy] = [
            HealingStrategy("alternative_locators", 10, self._alternative_locators),
            HealingStrategy("scroll_into_view", 9, self._scroll_into_view),
            HealingStrategy("wait_for_visible", 8, self._wait_for_visible),
            HealingStrategy("remove_overlays", 7, self._remove_overlays),
            HealingStrategy("close_modal", 7, self._close_modal),
            HealingStrategy("pattern_based_search", 6, self._pattern_based_search),
            HealingStrategy("visual_similarity", 5, self._visual_similarity),
            HealingStrategy("force_click", 1, self._force_click),
        ]
        self._sort_strategies()
        logger.debug(f"Healer initialized with {len(self.strategies)} strategies")

    def _sort_strategies(self):
        self.strategies.sort(key=lambda s: s.priority, reverse=True)

    def register_strategy(self, strategy: HealingStrategy):
        """Add a strategy, replacing any existing one with the same name"""
        self.strategies = [s for s in self.strategies if s.name != strategy.name]
        self.strategies.append(strategy)
        self._sort_strategies()
        logger.debug(f"Registered healing strategy {strategy.name} (priority {strategy.priority})")

    # ==================== Healing ====================

    async def heal(
        self,
        error: BaseException,
        page,
        locator: str,
        step: str,
        url: Optional[str] = None,
        element: Any = None,
        features: Optional[ElementFeatures] = None,
        previous_attempts: Iterable[str] = ()
    ) -> IntelligentHealingResult:
        """
        Try to recover from a failed interaction.

        Args:
            error: Exception raised by the step
            page: Playwright page
            locator: Locator that failed
            step: Step text
            url: Page URL (read from the page when omitted)
            element: Element handle, if one was resolved before the failure
            features: Features captured for the element when it last worked
            previous_attempts: Strategies already tried for this step by an
                earlier heal; they are ranked last rather than skipped

        Returns:
            IntelligentHealingResult; strategy is "none" when the failure
            is not healable, "all_failed" when nothing worked and "error"
            when the healing process itself broke
        """
        start = time.time()
        context = HealingContext(
            page=page,
            original_locator=locator,
            failure_reason="",
            element=element,
            features=features,
        )

        try:
            logger.debug(f"Starting healing for: {step}")
            analysis = await self.intelligent_ai.analyze_failure(error, step, page=page, url=url)
            diagnostics = analysis.context.diagnostics

            if not analysis.healable:
                logger.debug(f"{analysis.failure_type.value} is not healable")
                return IntelligentHealingResult(
                    success=False,
                    strategy="none",
                    confidence=0.0,
                    attempts=0,
                    duration_ms=self._elapsed_ms(start),
                    original_locator=locator,
                    diagnostic_context=diagnostics,
                )

            context.failure_reason = analysis.failure_type.value
            context.diagnostics = diagnostics
            element_type = self.optimizer.extract_element_type(features) if features else "unknown"

            attempts = 0
            for strategy in self.select_strategies(analysis, features, previous_attempts):
                if attempts >= self.config.max_healing_attempts:
                    break
                if strategy.name in context.attempted_strategies:
                    continue

                attempts += 1
                context.attempted_strategies.add(strategy.name)
                logger.debug(f"Attempting strategy {strategy.name} (priority {strategy.priority})")

                try:
                    outcome = await strategy.apply(context)
                except Exception as e:
                    logger.debug(f"Strategy {strategy.name} raised: {e}")
                    outcome = HealingAttemptResult(success=False)

                self.optimizer.learn(
                    strategy.name, outcome.success, element_type,
                    analysis.failure_type, outcome.confidence
                )

                if outcome.success:
                    result = IntelligentHealingResult(
                        success=True,
                        strategy=strategy.name,
                        confidence=outcome.confidence,
                        attempts=attempts,
                        duration_ms=self._elapsed_ms(start),
                        healed_locator=outcome.locator,
                        original_locator=locator,
                        diagnostic_context=diagnostics,
                    )
                    self._record(locator, result)
                    logger.debug(
                        f"Healing succeeded with {strategy.name}, confidence {outcome.confidence:.2f}"
                    )
                    return result

            logger.debug(f"All healing strategies exhausted after {attempts} attempts")
            result = IntelligentHealingResult(
                success=False,
                strategy="all_failed",
                confidence=0.0,
                attempts=attempts,
                duration_ms=self._elapsed_ms(start),
                original_locator=locator,
                diagnostic_context=diagnostics,
            )
            self._record(locator, result)
            return result

        except Exception as e:
            logger.debug(f"Healing process error: {e}")
            return IntelligentHealingResult(
                success=False,
                strategy="error",
                confidence=0.0,
                attempts=len(context.attempted_strategies),
                duration_ms=self._elapsed_ms(start),
                original_locator=locator,
            )

    def select_strategies(
        self,
        analysis: FailureAnalysis,
        features: Optional[ElementFeatures] = None,
        previous_attempts: Iterable[str] = ()
    ) -> List[HealingStrategy]:
        """Suggested strategies plus every high-priority one, best first"""
        suggested = set(analysis.suggested_strategies)
        selected = [
            s for s in self.strategies
            if s.name in suggested or s.priority >= self.HIGH_PRIORITY
        ]
        return self.optimizer.optimize_strategies(
            selected, analysis.failure_type, features, previous_attempts
        )

    # ==================== Strategies ====================

    async def _alternative_locators(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        features = context.features
        if features is None:
            return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

        alternatives = []
        if features.text.visible_text:
            alternatives.append(f'text="{features.text.visible_text}"')
        if features.text.aria_label:
            alternatives.append(f'[aria-label="{features.text.aria_label}"]')
        if features.semantic.role and features.semantic.role != "generic":
            alternatives.append(f'[role="{features.semantic.role}"]')
        test_id = features.structural.attributes.get("data-testid")
        if test_id:
            alternatives.append(f'[data-testid="{test_id}"]')

        for selector in alternatives:
            try:
                if await context.page.locator(selector).first.count() > 0:
                    return HealingAttemptResult(
                        success=True, confidence=0.8,
                        duration_ms=self._elapsed_ms(start), locator=selector,
                    )
            except Exception as e:
                logger.debug(f"Alternative locator {selector} failed: {e}")
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    async def _scroll_into_view(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        locator = context.page.locator(context.original_locator)
        await locator.scroll_into_view_if_needed(timeout=self.config.healing_timeout_ms)
        await context.page.wait_for_timeout(self.SETTLE_MS)

        if await locator.is_visible():
            return HealingAttemptResult(
                success=True, confidence=0.85,
                duration_ms=self._elapsed_ms(start), locator=context.original_locator,
            )
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    async def _wait_for_visible(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        locator = context.page.locator(context.original_locator)
        await locator.wait_for(state="visible", timeout=self.WAIT_FOR_VISIBLE_TIMEOUT_MS)
        return HealingAttemptResult(
            success=True, confidence=0.75,
            duration_ms=self._elapsed_ms(start), locator=context.original_locator,
        )

    async def _remove_overlays(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        page = context.page

        for _ in range(2):
            try:
                await page.click("body", position={"x": 0, "y": 0}, timeout=1000)
                await page.wait_for_timeout(self.OVERLAY_SETTLE_MS)
            except Exception as e:
                logger.debug(f"Click outside overlay failed: {e}")
            try:
                await page.keyboard.press("Escape")
                await page.wait_for_timeout(self.OVERLAY_SETTLE_MS)
            except Exception as e:
                logger.debug(f"Escape failed: {e}")

        if await page.locator(context.original_locator).is_visible():
            return HealingAttemptResult(
                success=True, confidence=0.7,
                duration_ms=self._elapsed_ms(start), locator=context.original_locator,
            )
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    async def _close_modal(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        page = context.page

        for button in await self.pattern_matcher.find_by_pattern(page, "close_button"):
            try:
                await button.click(timeout=2000)
                await page.wait_for_timeout(self.SETTLE_MS)
                if await page.locator('[role="dialog"]').count() == 0:
                    return HealingAttemptResult(
                        success=True, confidence=0.8,
                        duration_ms=self._elapsed_ms(start), locator=context.original_locator,
                    )
            except Exception as e:
                logger.debug(f"Close button click failed: {e}")
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    async def _pattern_based_search(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        pattern_name = self._pattern_for(context.features)
        if not pattern_name:
            return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

        match = await self.pattern_matcher.get_best_match(context.page, pattern_name)
        if match and match.element is not None and match.confidence > self.PATTERN_MATCH_THRESHOLD:
            return HealingAttemptResult(
                success=True, confidence=match.confidence,
                duration_ms=self._elapsed_ms(start), locator=await generate_selector(match.element),
            )
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    @staticmethod
    def _pattern_for(features: Optional[ElementFeatures]) -> Optional[str]:
        if features is None:
            return None
        if features.structural.tag_name.lower() == "button":
            return "submit_button"
        if features.structural.input_type == "search":
            return "search_input"
        if features.semantic.role == "checkbox":
            return "checkbox"
        return None

    async def _visual_similarity(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        target = context.features
        if target is None or not target.structural.tag_name:
            return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

        best, best_score = None, 0.0
        for candidate in await context.page.locator(target.structural.tag_name).element_handles():
            try:
                features = await self.feature_extractor.extract_features(candidate, context.page)
            except Exception as e:
                logger.debug(f"Feature extraction failed during visual search: {e}")
                continue
            score = self.similarity_engine.calculate_similarity(target, features).overall
            if score > best_score and score > self.VISUAL_MATCH_THRESHOLD:
                best, best_score = candidate, score

        if best is not None:
            return HealingAttemptResult(
                success=True, confidence=best_score,
                duration_ms=self._elapsed_ms(start), locator=await generate_selector(best),
            )
        return HealingAttemptResult(success=False, duration_ms=self._elapsed_ms(start))

    async def _force_click(self, context: HealingContext) -> HealingAttemptResult:
        start = time.time()
        await context.page.locator(context.original_locator).click(
            force=True, timeout=self.config.healing_timeout_ms
        )
        return HealingAttemptResult(
            success=True, confidence=0.5,
            duration_ms=self._elapsed_ms(start), locator=context.original_locator,
        )

    # ==================== History ====================

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.time() - start) * 1000)

    def _record(self, locator: str, result: IntelligentHealingResult):
        """Keep the latest results per locator, dropping the least recently healed locators"""
        history = self._history.pop(locator, None)
        if history is None:
            history = deque(maxlen=self.HISTORY_PER_LOCATOR)
        history.append(result)
        self._history[locator] = history
        while len(self._history) > self.MAX_TRACKED_LOCATORS:
            self._history.popitem(last=False)

    def get_healing_history(self, locator: str) -> List[IntelligentHealingResult]:
        return list(self._history.get(locator, []))

    def get_statistics(self) -> Dict[str, Any]:
        results = [r for history in self._history.values() for r in history]
        successes = [r for r in results if r.success]

        by_strategy: Dict[str, Dict[str, Any]] = {}
        for r in results:
            stats = by_strategy.setdefault(r.strategy, {"attempts": 0, "successes": 0})
            stats["attempts"] += 1
            if r.success:
                stats["successes"] += 1
        for stats in by_strategy.values():
            stats["success_rate"] = stats["successes"] / stats["attempts"]

        return {
            "total_healings": len(results),
            "success_rate": len(successes) / len(results) if results else 0.0,
            "average_confidence": (
                sum(r.confidence for r in successes) / len(successes) if successes else 0.0
            ),
            "average_attempts": sum(r.attempts for r in results) / len(results) if results else 0.0,
            "strategy_effectiveness": by_strategy,
        }

    def clear_history(self):
        self._history.clear()
        logger.debug("Healing history cleared")
