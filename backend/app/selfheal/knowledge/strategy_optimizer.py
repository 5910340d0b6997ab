"""
Strategy Optimizer

Orders healing strategies for a failure using what the history ledger
knows about each strategy, how well it suits the failure type, and the
priorities learned from earlier healing outcomes.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..models import ElementFeatures, FailureType, HealingStrategy
from ..snapshots import PrioritySnapshot, load_snapshot
from .history import HistoryLedger

logger = logging.getLogger(__name__)


DEFAULT_PRIORITIES: Dict[str, float] = {
    "alternative_locators": 10,
    "scroll_into_view": 9,
    "wait_for_visible": 8,
    "remove_overlays": 7,
    "close_modal": 7,
    "pattern_based_search": 6,
    "visual_similarity": 5,
    "dom_traversal": 4,
    "text_based_search": 3,
    "force_click": 1,
}

# Extra points a strategy earns for a given failure type
FAILURE_TYPE_AFFINITY: Dict[FailureType, Dict[str, float]] = {
    FailureType.ELEMENT_NOT_FOUND: {
        "alternative_locators": 3, "pattern_based_search": 2,
        "visual_similarity": 2, "dom_traversal": 1,
    },
    FailureType.ELEMENT_NOT_VISIBLE: {
        "scroll_into_view": 3, "wait_for_visible": 2, "remove_overlays": 1,
    },
    FailureType.ELEMENT_NOT_INTERACTIVE: {
        "remove_overlays": 3, "close_modal": 2, "wait_for_visible": 1, "force_click": 1,
    },
    FailureType.MODAL_BLOCKING: {"close_modal": 3, "remove_overlays": 2},
    FailureType.TIMEOUT: {"wait_for_visible": 2, "scroll_into_view": 1},
    FailureType.UNEXPECTED_STATE: {"alternative_locators": 1},
}

DEFAULT_SUGGESTIONS = {
    "button": "alternative_locators",
    "input": "wait_for_visible",
    "link": "text_based_search",
    "select": "pattern_based_search",
    "checkbox": "visual_similarity",
    "modal": "close_modal",
}


class StrategyOptimizer:
    """
    History-driven strategy ordering.

    Features:
    - Score = base priority + success rate, element-type relevance,
      usage and failure-type affinity, minus a penalty for strategies
      already tried this session
    - Learned base priorities nudged by each healing outcome
    - Versioned priority snapshot/restore
    """

    ATTEMPTED_PENALTY = 5
    DEFAULT_PRIORITY = 5.0
    MIN_PRIORITY = 1.0

    def __init__(self, history: HistoryLedger):
        self.history = history
        self.learning_enabled = True
        self._priorities: Dict[str, float] = dict(DEFAULT_PRIORITIES)

    @staticmethod
    def failure_type_boost(strategy_name: str, failure_type: FailureType) -> float:
        return FAILURE_TYPE_AFFINITY.get(FailureType(failure_type), {}).get(strategy_name, 0)

    @staticmethod
    def extract_element_type(features: ElementFeatures) -> str:
        """Semantic type, else role, else tag name"""
        if features.semantic.semantic_type and features.semantic.semantic_type != "generic":
            return features.semantic.semantic_type
        if features.semantic.role and features.semantic.role != "generic":
            return features.semantic.role
        return features.structural.tag_name

    def score_strategy(
        self,
        strategy: HealingStrategy,
        failure_type: FailureType,
        element_features: Optional[ElementFeatures] = None,
        previous_attempts: Iterable[str] = ()
    ) -> float:
        score = self._priorities.get(strategy.name, strategy.priority)

        stats = next(
            (s for s in self.history.get_strategy_effectiveness() if s.strategy == strategy.name),
            None
        )
        if stats:
            score += stats.success_rate * 5
            if element_features is not None:
                relevance = stats.element_types.get(self.extract_element_type(element_features), 0)
                score += min(relevance / 10, 3)
            if stats.attempts > 0:
                score += min(stats.attempts / 20, 2)

        score += self.failure_type_boost(strategy.name, failure_type)

        if strategy.name in set(previous_attempts):
            score -= self.ATTEMPTED_PENALTY
        return score

    def optimize_strategies(
        self,
        strategies: Sequence[HealingStrategy],
        failure_type: FailureType,
        element_features: Optional[ElementFeatures] = None,
        previous_attempts: Iterable[str] = ()
    ) -> List[HealingStrategy]:
        """
        Order strategies best first.

        Returns:
            A new list; the input order is kept unchanged when learning is off
        """
        if not self.learning_enabled:
            return list(strategies)

        attempted = set(previous_attempts)
        scored = [
            (self.score_strategy(s, failure_type, element_features, attempted), s)
            for s in strategies
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        logger.debug(
            "Optimized strategy order: "
            + ", ".join(f"{s.name}={score:.2f}" for score, s in scored)
        )
        return [s for _, s in scored]

    def suggest_best_strategy(self, element_type: str, failure_type: Optional[FailureType] = None) -> str:
        best = self.history.get_best_strategy_for_element_type(element_type)
        if best:
            logger.debug(f"Suggesting {best} for {element_type} based on history")
            return best
        return DEFAULT_SUGGESTIONS.get(element_type, "alternative_locators")

    def learn(
        self,
        strategy_name: str,
        success: bool,
        element_type: str,
        failure_type: FailureType,
        confidence: float
    ):
        """Raise the base priority on success (up to +0.5), lower it on failure"""
        if not self.learning_enabled:
            return
        current = self._priorities.get(strategy_name, self.DEFAULT_PRIORITY)
        if success:
            self._priorities[strategy_name] = current + confidence * 0.5
        else:
            self._priorities[strategy_name] = max(self.MIN_PRIORITY, current - 0.2)
        logger.debug(
            f"Learned from {strategy_name} on {element_type} ({FailureType(failure_type).value}): "
            f"{'success' if success else 'failure'}, priority {self._priorities[strategy_name]:.2f}"
        )

    def get_recommended_strategies(
        self,
        failure_type: FailureType,
        element_features: Optional[ElementFeatures] = None,
        max_strategies: int = 5
    ) -> List[str]:
        """Strategy names from history, ranked for this failure type"""
        element_type = self.extract_element_type(element_features) if element_features else None
        ranked = []
        for stats in self.history.get_strategy_effectiveness():
            score = stats.success_rate * 10
            score += self.failure_type_boost(stats.strategy, failure_type)
            if element_type:
                score += stats.element_types.get(element_type, 0) * 0.1
            score += min(stats.attempts / 100, 1)
            ranked.append((score, stats.strategy))

        ranked.sort(key=lambda pair: pair[0], reverse=True)
        return [name for _, name in ranked[:max_strategies]]

    # ==================== Priorities ====================

    def get_strategy_priority(self, strategy_name: str) -> float:
        return self._priorities.get(strategy_name, self.DEFAULT_PRIORITY)

    def set_strategy_priority(self, strategy_name: str, priority: float):
        self._priorities[strategy_name] = priority

    def reset_priorities(self):
        self._priorities = dict(DEFAULT_PRIORITIES)

    def set_learning_enabled(self, enabled: bool):
        self.learning_enabled = enabled

    def compare_strategies(self, strategy1: str, strategy2: str) -> Dict[str, Any]:
        rates = {s.strategy: s.success_rate * 100 for s in self.history.get_strategy_effectiveness()}
        score1, score2 = rates.get(strategy1, 0.0), rates.get(strategy2, 0.0)
        if score1 > score2:
            winner = strategy1
        elif score2 > score1:
            winner = strategy2
        else:
            winner = "tie"
        return {
            "strategy1": strategy1,
            "strategy2": strategy2,
            "winner": winner,
            "difference": abs(score1 - score2),
        }

    def get_statistics(self) -> Dict[str, Any]:
        effectiveness = self.history.get_strategy_effectiveness()
        total_attempts = sum(e.attempts for e in effectiveness)
        return {
            "total_optimizations": total_attempts,
            "average_strategies_per_optimization": (
                total_attempts / len(effectiveness) if effectiveness else 0.0
            ),
            "most_recommended_strategy": (
                max(effectiveness, key=lambda e: e.success_rate).strategy if effectiveness else None
            ),
            "least_recommended_strategy": (
                min(effectiveness, key=lambda e: e.success_rate).strategy if effectiveness else None
            ),
            "learning_enabled": self.learning_enabled,
        }

    # ==================== Snapshot ====================

    def snapshot(self) -> PrioritySnapshot:
        return PrioritySnapshot(priorities=dict(self._priorities))

    def restore(self, data: Union[PrioritySnapshot, Dict[str, Any]]):
        snapshot = load_snapshot(PrioritySnapshot, data)
        self._priorities = dict(snapshot.priorities)
        logger.debug(f"Restored {len(self._priorities)} strategy priorities")

    def export(self) -> Dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def import_data(self, data: Dict[str, Any]):
        self.restore(data)
