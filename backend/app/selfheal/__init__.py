"""
Self-Healing Element Intelligence

Rule-based element identification and self-healing for Playwright UI tests:
- Finds elements from natural-language descriptions
- Heals broken locators with diagnostic-driven strategies
- Learns recurring element shapes and strategy effectiveness
- Predicts fragile locators from healing history
- Stays out of API and database steps
"""

from .config import AIConfig, RankingWeights
from .core.context_gate import ContextGate, ExecutionContext
from .core.integration import IntegrationLayer
from .core.intelligent_ai import IntelligentAI
from .core.healer import IntelligentHealer
from .core.predictive_healer import PredictiveHealer
from .knowledge.history import HistoryLedger
from .models import (
    ElementFeatures,
    ElementIdentificationResult,
    FailureAnalysis,
    FailureType,
    IntelligentHealingResult,
    PredictionResult,
)
from .ttl_cache import TTLMap
from .worker import WorkerContext, WorkerRegistry

__all__ = [
    # Configuration
    "AIConfig",
    "RankingWeights",
    # Workers
    "WorkerContext",
    "WorkerRegistry",
    "IntegrationLayer",
    # Engines
    "ContextGate",
    "ExecutionContext",
    "IntelligentAI",
    "IntelligentHealer",
    "PredictiveHealer",
    "HistoryLedger",
    "TTLMap",
    # Records
    "ElementFeatures",
    "ElementIdentificationResult",
    "FailureAnalysis",
    "FailureType",
    "IntelligentHealingResult",
    "PredictionResult",
]

__version__ = "1.0.0"
