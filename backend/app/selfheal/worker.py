"""
Worker Context

Builds one complete, independent set of AI components per execution
worker. Nothing is shared between workers; collaborators are injected
through constructors.
"""

import logging
import threading
from typing import Dict, List, Optional

from .analysis.diagnostics import PageDiagnostics
from .analysis.dom_intelligence import DOMIntelligence
from .analysis.feature_extractor import FeatureExtractor, PlaywrightFeatureExtractor
from .analysis.similarity import SimilarityEngine
from .config import AIConfig
from .core.candidate_ranker import CandidateRanker
from .core.context_gate import ContextGate
from .core.healer import IntelligentHealer
from .core.integration import IntegrationLayer
from .core.intelligent_ai import IntelligentAI
from .core.language import NaturalLanguageEngine
from .core.predictive_healer import PredictiveHealer
from .knowledge.history import HistoryLedger
from .knowledge.pattern_learner import PatternLearner
from .knowledge.pattern_matcher import PatternMatcher
from .knowledge.strategy_optimizer import StrategyOptimizer

logger = logging.getLogger(__name__)


class WorkerContext:
    """
    Every component one worker needs, wired together.

    Features:
    - One instance per component, created once per worker
    - Learning/pattern switches applied from AIConfig
    - Feature extractor can be swapped (e.g. for tests)
    """

    def __init__(
        self,
        worker_id: str = "main",
        config: Optional[AIConfig] = None,
        feature_extractor: Optional[FeatureExtractor] = None
    ):
        self.worker_id = worker_id
        self.config = config or AIConfig.from_env()
        ttl = self.config.cache_ttl_seconds

        self.context_gate = ContextGate()
        self.feature_extractor = feature_extractor or PlaywrightFeatureExtractor()
        self.nlp_engine = NaturalLanguageEngine(cache_ttl_seconds=ttl)
        self.dom_intelligence = DOMIntelligence(cache_ttl_seconds=ttl)
        self.similarity_engine = SimilarityEngine()
        self.diagnostics = PageDiagnostics()

        self.history = HistoryLedger(max_entries=self.config.history_max_entries)
        self.pattern_matcher = PatternMatcher(self.feature_extractor)
        self.pattern_learner = PatternLearner(self.pattern_matcher, self.history)
        self.pattern_learner.set_learning_enabled(
            self.config.learning_enabled and self.config.pattern_matching_enabled
        )
        self.optimizer = StrategyOptimizer(self.history)
        self.optimizer.set_learning_enabled(self.config.learning_enabled)

        self.intelligent_ai = IntelligentAI(
            config=self.config,
            nlp_engine=self.nlp_engine,
            dom_intelligence=self.dom_intelligence,
            feature_extractor=self.feature_extractor,
            history=self.history,
            pattern_learner=self.pattern_learner,
            diagnostics=self.diagnostics,
            ranker=CandidateRanker(self.config.ranking),
        )
        self.healer = IntelligentHealer(
            config=self.config,
            intelligent_ai=self.intelligent_ai,
            pattern_matcher=self.pattern_matcher,
            feature_extractor=self.feature_extractor,
            similarity_engine=self.similarity_engine,
            optimizer=self.optimizer,
        )
        self.predictor = PredictiveHealer(self.history, cache_ttl_seconds=ttl)

        self.integration = IntegrationLayer(
            worker_id=worker_id,
            config=self.config,
            context_gate=self.context_gate,
            intelligent_ai=self.intelligent_ai,
            healer=self.healer,
            predictor=self.predictor,
            history=self.history,
        )

    def attach_page(self, page):
        """Start collecting diagnostics from `page`"""
        self.diagnostics.attach(page)

    def close(self):
        self.diagnostics.detach()
        self.intelligent_ai.clear_all_caches()
        self.predictor.clear_cache()


class WorkerRegistry:
    """
    Worker id -> WorkerContext map owned by the test runner.

    Creation is guarded by a lock so thread-based runners can share one
    registry; the contexts themselves are never shared.
    """

    def __init__(self, config: Optional[AIConfig] = None):
        self.config = config
        self._workers: Dict[str, WorkerContext] = {}
        self._lock = threading.Lock()

    def get_context(self, worker_id: str = "main") -> WorkerContext:
        with self._lock:
            context = self._workers.get(worker_id)
            if context is None:
                context = WorkerContext(worker_id, self.config)
                self._workers[worker_id] = context
                logger.info(f"[AIIntegration] Created AI context for worker: {worker_id}")
            return context

    def get(self, worker_id: str = "main") -> IntegrationLayer:
        """Integration façade for a worker, created on first use"""
        return self.get_context(worker_id).integration

    def clear(self, worker_id: str):
        with self._lock:
            context = self._workers.pop(worker_id, None)
        if context is not None:
            context.close()
            logger.info(f"[AIIntegration] Cleared instance for worker: {worker_id}")

    def clear_all(self):
        with self._lock:
            contexts = list(self._workers.values())
            self._workers.clear()
        for context in contexts:
            context.close()
        logger.info("[AIIntegration] Cleared all worker instances")

    def worker_ids(self) -> List[str]:
        with self._lock:
            return list(self._workers)
