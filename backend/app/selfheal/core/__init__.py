"""
Core Module

Context gating, description parsing, identification, healing and the
runner-facing integration layer.
"""

from .candidate_ranker import Candidate, CandidateRanker, RankedCandidate
from .context_gate import ContextGate, ExecutionContext
from .healer import IntelligentHealer
from .integration import IntegrationLayer
from .intelligent_ai import IntelligentAI
from .language import NaturalLanguageEngine
from .predictive_healer import PredictiveHealer

__all__ = [
    "Candidate",
    "CandidateRanker",
    "RankedCandidate",
    "ContextGate",
    "ExecutionContext",
    "IntelligentHealer",
    "IntegrationLayer",
    "IntelligentAI",
    "NaturalLanguageEngine",
    "PredictiveHealer",
]
