"""
Knowledge Module

What a worker has learned: UI patterns, the operation ledger and
healing-strategy priorities.
"""

from .history import AIHistoryEntry, FragileElement, HistoryContext, HistoryLedger, StrategyEffectiveness
from .pattern_learner import LearnedPattern, PatternLearner
from .pattern_matcher import PatternMatch, PatternMatcher, UIPattern
from .strategy_optimizer import StrategyOptimizer

__all__ = [
    "AIHistoryEntry",
    "FragileElement",
    "HistoryContext",
    "HistoryLedger",
    "StrategyEffectiveness",
    "LearnedPattern",
    "PatternLearner",
    "PatternMatch",
    "PatternMatcher",
    "UIPattern",
    "StrategyOptimizer",
]
