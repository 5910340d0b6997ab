"""
History Ledger

Bounded record of every identification, healing, analysis and
prediction a worker performs. Healing rows also feed two aggregates:
fragile elements (locators that keep needing repair) and strategy
effectiveness (how well each healing strategy does).
"""

import logging
import math
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Union

from ..models import AIOperationType, IntelligentHealingResult
from ..snapshots import HistoryEntryModel, LedgerSnapshot, load_snapshot

logger = logging.getLogger(__name__)

# Manual debugging time assumed per failure that healing fixed
MANUAL_DEBUG_TIME_MS = 600000

# Healing outcomes recorded in place of a strategy name
HEALING_OUTCOMES = {"none", "all_failed", "error"}


@dataclass(frozen=True)
class HistoryContext:
    url: str = ""
    test_name: str = ""
    step_text: str = ""
    feature_name: str = ""


@dataclass(frozen=True)
class AIHistoryEntry:
    """One ledger row; never modified after it is recorded"""
    id: str
    timestamp: datetime
    operation: AIOperationType
    element_description: str
    success: bool
    strategy: str = ""
    original_locator: Optional[str] = None
    healed_locator: Optional[str] = None
    confidence: Optional[float] = None
    duration_ms: int = 0
    context: HistoryContext = field(default_factory=HistoryContext)


@dataclass
class FragileElement:
    description: str
    locator: str
    heal_count: int = 0
    last_healed: Optional[datetime] = None
    success_rate: float = 0.0
    common_failures: List[str] = field(default_factory=list)
    suggested_fix: Optional[str] = None


@dataclass
class StrategyEffectiveness:
    strategy: str
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    success_rate: float = 0.0
    average_confidence: float = 0.0
    average_duration: float = 0.0
    element_types: Dict[str, int] = field(default_factory=dict)


class HistoryLedger:
    """
    Ring-buffered operation history for one worker.

    Features:
    - FIFO eviction once max_entries is exceeded
    - Fragile-element aggregate recomputed from healing history on each update
    - Strategy effectiveness with running averages
    - Query helpers (by operation/test/feature/time, search, trend)
    - Versioned snapshot/restore
    """

    DEFAULT_MAX_ENTRIES = 10000

    ELEMENT_TYPES = [
        "button", "input", "link", "select", "checkbox", "radio",
        "textarea", "table", "modal", "menu",
    ]

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: Deque[AIHistoryEntry] = deque(maxlen=max_entries)
        self._fragile: Dict[str, FragileElement] = {}
        self._strategies: Dict[str, StrategyEffectiveness] = {}

    # ==================== Recording ====================

    def record(
        self,
        operation: AIOperationType,
        element_description: str,
        success: bool,
        strategy: str = "",
        confidence: Optional[float] = None,
        duration_ms: int = 0,
        original_locator: Optional[str] = None,
        healed_locator: Optional[str] = None,
        context: Optional[HistoryContext] = None,
        timestamp: Optional[datetime] = None
    ) -> AIHistoryEntry:
        """
        Append a row and update the aggregates.

        Returns:
            The recorded entry (with generated id and timestamp)
        """
        entry = AIHistoryEntry(
            id=f"ai_hist_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}",
            timestamp=timestamp or datetime.now(),
            operation=AIOperationType(operation),
            element_description=element_description or "",
            success=success,
            strategy=strategy or "",
            original_locator=original_locator,
            healed_locator=healed_locator,
            confidence=confidence,
            duration_ms=duration_ms,
            context=context or HistoryContext(),
        )
        self._append(entry)
        logger.debug(f"[HISTORY] Recorded {entry.operation.value}: {entry.element_description}")
        return entry

    def record_healing(
        self,
        result: IntelligentHealingResult,
        context: HistoryContext,
        element_description: Optional[str] = None
    ) -> AIHistoryEntry:
        return self.record(
            operation=AIOperationType.HEALING,
            element_description=element_description or context.step_text,
            success=result.success,
            strategy=result.strategy,
            confidence=result.confidence,
            duration_ms=result.duration_ms,
            original_locator=result.original_locator,
            healed_locator=result.healed_locator,
            context=context,
        )

    def _append(self, entry: AIHistoryEntry):
        self._entries.append(entry)
        if entry.operation == AIOperationType.HEALING:
            self._update_fragile_element(entry)
        if entry.strategy and entry.strategy not in HEALING_OUTCOMES:
            self._update_strategy_stats(entry)

    # ==================== Aggregates ====================

    def _update_fragile_element(self, entry: AIHistoryEntry):
        key = entry.original_locator or entry.element_description
        element = self._fragile.get(key)
        if element is None:
            element = FragileElement(
                description=entry.element_description,
                locator=entry.original_locator or "",
            )
            self._fragile[key] = element

        element.heal_count += 1
        element.last_healed = entry.timestamp

        healings = self.get_healing_history(key)
        successes = sum(1 for h in healings if h.success)
        element.success_rate = successes / len(healings) if healings else 0.0

        failures: List[str] = []
        for h in healings:
            if not h.success and h.strategy and h.strategy not in failures:
                failures.append(h.strategy)
        element.common_failures = failures

        if element.heal_count >= 3 and element.success_rate < 0.5:
            element.suggested_fix = self._suggest_fix(healings)
            if element.heal_count == 3:
                logger.info(f"[HISTORY] Flagged fragile element: {key}")

    @staticmethod
    def _suggest_fix(healings: List[AIHistoryEntry]) -> str:
        healed = [h.healed_locator for h in healings if h.success and h.healed_locator]
        if healed:
            return f"Consider updating locator to: {Counter(healed).most_common(1)[0][0]}"

        strategies = [h.strategy for h in healings if h.success and h.strategy]
        if strategies:
            best = Counter(strategies).most_common(1)[0][0]
            return f"Consider using {best} strategy or updating locator to be more stable"

        return "Consider using more stable locator attributes (data-testid, aria-label, or semantic selectors)"

    def _update_strategy_stats(self, entry: AIHistoryEntry):
        stats = self._strategies.setdefault(entry.strategy, StrategyEffectiveness(strategy=entry.strategy))
        stats.attempts += 1
        if entry.success:
            stats.successes += 1
        else:
            stats.failures += 1
        stats.success_rate = stats.successes / stats.attempts

        if entry.confidence is not None:
            stats.average_confidence += (entry.confidence - stats.average_confidence) / stats.attempts
        stats.average_duration += (entry.duration_ms - stats.average_duration) / stats.attempts

        element_type = self.extract_element_type(entry.element_description)
        if element_type:
            stats.element_types[element_type] = stats.element_types.get(element_type, 0) + 1

    @classmethod
    def extract_element_type(cls, description: str) -> Optional[str]:
        lowered = (description or "").lower()
        return next((t for t in cls.ELEMENT_TYPES if t in lowered), None)

    # ==================== Queries ====================

    @property
    def entries(self) -> List[AIHistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get_healing_history(self, locator: str) -> List[AIHistoryEntry]:
        """Healing rows whose original locator or description is `locator`"""
        return [
            e for e in self._entries
            if e.operation == AIOperationType.HEALING
            and (e.original_locator == locator or e.element_description == locator)
        ]

    def get_by_operation(self, operation: AIOperationType) -> List[AIHistoryEntry]:
        operation = AIOperationType(operation)
        return [e for e in self._entries if e.operation == operation]

    def get_by_test(self, test_name: str) -> List[AIHistoryEntry]:
        return [e for e in self._entries if e.context.test_name == test_name]

    def get_by_feature(self, feature_name: str) -> List[AIHistoryEntry]:
        return [e for e in self._entries if e.context.feature_name == feature_name]

    def get_recent(self, count: int = 10) -> List[AIHistoryEntry]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def get_by_time_range(self, start: datetime, end: datetime) -> List[AIHistoryEntry]:
        return [e for e in self._entries if start <= e.timestamp <= end]

    def search(self, query: str) -> List[AIHistoryEntry]:
        """Case-insensitive match on description, step text or strategy"""
        q = (query or "").lower()
        return [
            e for e in self._entries
            if q in e.element_description.lower()
            or q in e.context.step_text.lower()
            or q in e.strategy.lower()
        ]

    def get_fragile_elements(self, min_heal_count: int = 2) -> List[FragileElement]:
        fragile = [f for f in self._fragile.values() if f.heal_count >= min_heal_count]
        return sorted(fragile, key=lambda f: f.heal_count, reverse=True)

    def get_most_fragile_element(self) -> Optional[FragileElement]:
        fragile = self.get_fragile_elements(1)
        return fragile[0] if fragile else None

    def get_strategy_effectiveness(self) -> List[StrategyEffectiveness]:
        return sorted(self._strategies.values(), key=lambda s: s.success_rate, reverse=True)

    def get_best_strategy(self) -> Optional[StrategyEffectiveness]:
        strategies = self.get_strategy_effectiveness()
        return strategies[0] if strategies else None

    def get_best_strategy_for_element_type(self, element_type: str) -> Optional[str]:
        relevant = [s for s in self._strategies.values() if s.element_types.get(element_type, 0) > 0]
        if not relevant:
            return None
        best = max(relevant, key=lambda s: s.success_rate * s.element_types[element_type])
        return best.strategy

    def get_test_success_rate(self, test_name: str) -> float:
        entries = self.get_by_test(test_name)
        if not entries:
            return 0.0
        return sum(1 for e in entries if e.success) / len(entries)

    def get_success_trend(self, intervals: int = 10) -> List[Dict[str, Any]]:
        """Success rate over `intervals` equal chunks of the ledger, oldest first"""
        entries = list(self._entries)
        if not entries or intervals <= 0:
            return []

        chunk_size = math.ceil(len(entries) / intervals)
        trend = []
        for i in range(intervals):
            chunk = entries[i * chunk_size:(i + 1) * chunk_size]
            rate = sum(1 for e in chunk if e.success) / len(chunk) if chunk else 0.0
            trend.append({"interval": i + 1, "success_rate": rate})
        return trend

    def get_time_saved(self) -> int:
        """Estimated manual debugging time saved, in milliseconds"""
        healed = sum(1 for e in self._entries if e.operation == AIOperationType.HEALING and e.success)
        return healed * MANUAL_DEBUG_TIME_MS

    def get_statistics(self) -> Dict[str, Any]:
        entries = list(self._entries)
        by_type = {op.value: 0 for op in AIOperationType}
        for e in entries:
            by_type[e.operation.value] += 1

        confidences = [e.confidence for e in entries if e.confidence is not None]
        healings = [e for e in entries if e.operation == AIOperationType.HEALING]
        most_used = max(self._strategies.values(), key=lambda s: s.attempts, default=None)

        return {
            "total_operations": len(entries),
            "operations_by_type": by_type,
            "overall_success_rate": (
                sum(1 for e in entries if e.success) / len(entries) if entries else 0.0
            ),
            "total_healings": len(healings),
            "successful_healings": sum(1 for e in healings if e.success),
            "average_confidence": sum(confidences) / len(confidences) if confidences else 0.0,
            "average_duration": (
                sum(e.duration_ms for e in entries) / len(entries) if entries else 0.0
            ),
            "fragile_elements_count": len(self._fragile),
            "most_used_strategy": most_used.strategy if most_used else None,
        }

    # ==================== Maintenance ====================

    def set_max_entries(self, max_entries: int):
        """Resize the ring buffer, evicting the oldest rows immediately"""
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries = deque(self._entries, maxlen=max_entries)

    def clear(self):
        self._entries.clear()
        self._fragile.clear()
        self._strategies.clear()
        logger.debug("[HISTORY] All history cleared")

    # ==================== Snapshot ====================

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            max_entries=self.max_entries,
            entries=[
                HistoryEntryModel(
                    id=e.id,
                    timestamp=e.timestamp,
                    operation=e.operation.value,
                    element_description=e.element_description,
                    original_locator=e.original_locator,
                    healed_locator=e.healed_locator,
                    strategy=e.strategy,
                    success=e.success,
                    confidence=e.confidence,
                    duration_ms=e.duration_ms,
                    context={
                        "url": e.context.url,
                        "test_name": e.context.test_name,
                        "step_text": e.context.step_text,
                        "feature_name": e.context.feature_name,
                    },
                )
                for e in self._entries
            ],
        )

    def restore(self, data: Union[LedgerSnapshot, Dict[str, Any]]):
        """Replace the ledger with a snapshot and rebuild the aggregates"""
        snapshot = load_snapshot(LedgerSnapshot, data)
        self.clear()
        self.set_max_entries(snapshot.max_entries)
        for row in snapshot.entries:
            self._append(AIHistoryEntry(
                id=row.id,
                timestamp=row.timestamp,
                operation=AIOperationType(row.operation),
                element_description=row.element_description,
                success=row.success,
                strategy=row.strategy,
                original_locator=row.original_locator,
                healed_locator=row.healed_locator,
                confidence=row.confidence,
                duration_ms=row.duration_ms,
                context=HistoryContext(**{
                    k: v for k, v in row.context.items() if k in HistoryContext.__dataclass_fields__
                }),
            ))
        logger.debug(f"[HISTORY] Restored {len(self._entries)} entries")

    def export(self) -> Dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def import_data(self, data: Dict[str, Any]):
        self.restore(data)
