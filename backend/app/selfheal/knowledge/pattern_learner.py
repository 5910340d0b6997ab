"""
Pattern Learner

Watches successful identifications and turns element shapes that keep
coming back into PatternMatcher patterns. A shape is only registered
once it has been seen `min_occurrences` times with a running confidence
of at least `min_confidence`; until then it is tracked but inert.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..models import AIOperationType, ElementFeatures
from ..snapshots import (
    LearnedPatternModel,
    LearnedPatternsSnapshot,
    UIPatternModel,
    load_snapshot,
)
from .history import AIHistoryEntry, HistoryLedger
from .pattern_matcher import PatternMatcher, UIPattern, pattern_key

logger = logging.getLogger(__name__)


@dataclass
class LearnedPattern:
    shape_key: str
    pattern: UIPattern
    occurrences: int = 1
    success_rate: float = 1.0
    first_seen: datetime = field(default_factory=datetime.now)
    last_seen: datetime = field(default_factory=datetime.now)
    confidence: float = 0.0
    registered: bool = False


class PatternLearner:
    """
    Learns recurring element shapes.

    Features:
    - Shape key from tag, role, semantic type, input type and two distinctive classes
    - Running-average confidence per shape
    - Promotion into PatternMatcher on reaching the thresholds (once)
    - History analysis grouping identifications by normalised description
    """

    DEFAULT_MIN_OCCURRENCES = 3
    DEFAULT_MIN_CONFIDENCE = 0.7

    # Initial confidence and weight of a learned pattern; lower than built-ins
    LEARNED_CONFIDENCE = 0.75
    LEARNED_WEIGHT = 0.8

    GENERIC_CLASSES = [
        "btn", "button", "input", "form", "container", "wrapper", "content",
        "active", "hidden", "visible", "show", "hide", "disabled", "enabled",
        "col", "row", "grid", "flex", "center", "left", "right",
    ]

    def __init__(self, pattern_matcher: PatternMatcher, history: Optional[HistoryLedger] = None):
        self.pattern_matcher = pattern_matcher
        self.history = history
        self.learning_enabled = True
        self.min_occurrences = self.DEFAULT_MIN_OCCURRENCES
        self.min_confidence = self.DEFAULT_MIN_CONFIDENCE
        self._learned: Dict[str, LearnedPattern] = {}

    # ==================== Learning ====================

    def learn_from_identification(
        self,
        features: ElementFeatures,
        locator: str,
        success: bool,
        confidence: float
    ) -> Optional[LearnedPattern]:
        """
        Observe one identification.

        Args:
            features: Features of the identified element
            locator: Selector that found it
            success: Whether the identification succeeded
            confidence: Identification confidence

        Returns:
            The tracked LearnedPattern, or None when the observation was ignored
        """
        if not self.learning_enabled or not success or confidence < self.min_confidence:
            return None

        try:
            key = self.shape_key(features)
            learned = self._learned.get(key)

            if learned is None:
                learned = LearnedPattern(
                    shape_key=key,
                    pattern=self._extract_pattern(features, locator),
                    confidence=confidence,
                )
                self._learned[key] = learned
                logger.debug(f"[LEARNING] New shape observed: {learned.pattern.name}")
            else:
                learned.occurrences += 1
                learned.last_seen = datetime.now()
                learned.confidence = (learned.confidence + confidence) / 2

            if self._qualifies(learned):
                self._register(learned)
            return learned

        except Exception as e:
            logger.debug(f"[LEARNING] Could not learn from {locator}: {e}")
            return None

    def _qualifies(self, learned: LearnedPattern) -> bool:
        return learned.occurrences >= self.min_occurrences and learned.confidence >= self.min_confidence

    def _register(self, learned: LearnedPattern):
        if learned.registered:
            return
        if self.pattern_matcher.get_pattern(pattern_key(learned.pattern.name)):
            suffix = "__" + re.sub(r"[^a-zA-Z0-9_]", "_", learned.shape_key)
            if not learned.pattern.name.endswith(suffix):
                logger.debug(f"[LEARNING] Pattern {learned.pattern.name} taken, using shape-qualified name")
                learned.pattern = replace(learned.pattern, name=learned.pattern.name + suffix)
        self.pattern_matcher.register_pattern(learned.pattern)
        learned.registered = True
        logger.info(
            f"[LEARNING] Promoted learned pattern {learned.pattern.name} "
            f"({learned.occurrences} occurrences, {learned.confidence:.0%} confidence)"
        )

    # ==================== Shape ====================

    def is_generic_class(self, class_name: str) -> bool:
        lowered = class_name.lower()
        return any(g in lowered for g in self.GENERIC_CLASSES)

    def _distinctive_classes(self, features: ElementFeatures) -> List[str]:
        return [c for c in features.structural.class_list if not self.is_generic_class(c)]

    def shape_key(self, features: ElementFeatures) -> str:
        parts = [
            features.structural.tag_name,
            features.semantic.role or "no-role",
            features.semantic.semantic_type,
            features.structural.input_type or "no-input-type",
        ]
        parts.extend(sorted(self._distinctive_classes(features))[:2])
        return "__".join(parts)

    def _extract_pattern(self, features: ElementFeatures, locator: str) -> UIPattern:
        structural, semantic = features.structural, features.semantic
        role = semantic.role or structural.tag_name
        input_type = structural.input_type

        if input_type:
            name = f"{role}_{input_type}"
            description = f"Learned pattern for {role} element with type {input_type}"
        elif semantic.semantic_type and semantic.semantic_type != "generic":
            name = f"{semantic.semantic_type}_{role}"
            description = f"Learned pattern for {role} element"
        else:
            name = f"learned_{role}"
            description = f"Learned pattern for {role} element"
        name = re.sub(r"[^a-zA-Z0-9_]", "_", name)

        selectors = [locator]
        if semantic.role:
            selectors.append(f'[role="{semantic.role}"]')
        if input_type:
            selectors.append(f'{structural.tag_name}[type="{input_type}"]')
        if features.text.aria_label:
            selectors.append(f'[aria-label="{features.text.aria_label}"]')
        distinctive = self._distinctive_classes(features)[:2]
        if distinctive:
            selectors.append("." + ".".join(distinctive))
        data_attrs = [(k, v) for k, v in structural.attributes.items() if k.startswith("data-")][:2]
        selectors.extend(f'[{k}="{v}"]' for k, v in data_attrs)

        tags = [structural.tag_name]
        if semantic.role:
            tags.append(semantic.role)
        if semantic.semantic_type and semantic.semantic_type != "generic":
            tags.append(semantic.semantic_type)
        if input_type:
            tags.append(input_type)
        if structural.form_element:
            tags.append("form")
        if semantic.is_landmark:
            tags.append("landmark")

        attributes = {"type": structural.tag_name}
        if structural.form_element:
            attributes["form_element"] = "true"
        if structural.is_interactive:
            attributes["interactive"] = "true"
        if semantic.is_landmark:
            attributes["landmark"] = "true"
        if input_type:
            attributes["input_type"] = input_type

        return UIPattern(
            name=name,
            description=description,
            selectors=selectors,
            attributes=attributes,
            tags=tags,
            confidence=self.LEARNED_CONFIDENCE,
            weight=self.LEARNED_WEIGHT,
        )

    # ==================== History ====================

    @staticmethod
    def normalize_description(description: str) -> str:
        text = (description or "").lower()
        text = re.sub(r"\d+", "N", text)
        text = re.sub(r"[\"']", "", text)
        return text.strip()

    def analyze_history(self) -> Dict[str, List[AIHistoryEntry]]:
        """
        Group confident successful identifications by normalised description.

        Returns:
            Groups that recur at least `min_occurrences` times
        """
        if not self.learning_enabled or self.history is None:
            return {}

        groups: Dict[str, List[AIHistoryEntry]] = {}
        for entry in self.history.get_by_operation(AIOperationType.IDENTIFICATION):
            if entry.success and entry.confidence is not None and entry.confidence >= self.min_confidence:
                groups.setdefault(self.normalize_description(entry.element_description), []).append(entry)

        recurring = {k: v for k, v in groups.items() if len(v) >= self.min_occurrences}
        for key, group in recurring.items():
            logger.debug(f"[LEARNING] Recurring identification: {key} ({len(group)} occurrences)")
        return recurring

    # ==================== Queries ====================

    def get_learned_patterns(self) -> List[LearnedPattern]:
        return sorted(self._learned.values(), key=lambda p: p.occurrences, reverse=True)

    def get_patterns_by_confidence(self, min_confidence: float) -> List[LearnedPattern]:
        patterns = [p for p in self._learned.values() if p.confidence >= min_confidence]
        return sorted(patterns, key=lambda p: p.confidence, reverse=True)

    def get_most_frequent_patterns(self, count: int = 10) -> List[LearnedPattern]:
        return self.get_learned_patterns()[:count]

    def get_pattern(self, name: str) -> Optional[LearnedPattern]:
        return next((p for p in self._learned.values() if p.pattern.name == name), None)

    def remove_pattern(self, name: str) -> bool:
        for key, learned in list(self._learned.items()):
            if learned.pattern.name == name:
                del self._learned[key]
                if learned.registered:
                    self.pattern_matcher.remove_pattern(pattern_key(name))
                logger.debug(f"[LEARNING] Removed pattern: {name}")
                return True
        return False

    def clear_patterns(self):
        for learned in self._learned.values():
            if learned.registered:
                self.pattern_matcher.remove_pattern(pattern_key(learned.pattern.name))
        self._learned.clear()
        logger.debug("[LEARNING] Cleared all learned patterns")

    # ==================== Settings ====================

    def set_learning_enabled(self, enabled: bool):
        self.learning_enabled = enabled

    def set_min_occurrences(self, minimum: int):
        self.min_occurrences = max(1, minimum)

    def set_min_confidence(self, minimum: float):
        self.min_confidence = max(0.0, min(1.0, minimum))

    def get_statistics(self) -> Dict[str, Any]:
        patterns = self.get_learned_patterns()
        return {
            "total_patterns_learned": len(patterns),
            "registered_patterns": sum(1 for p in patterns if p.registered),
            "average_occurrences": (
                sum(p.occurrences for p in patterns) / len(patterns) if patterns else 0.0
            ),
            "average_confidence": (
                sum(p.confidence for p in patterns) / len(patterns) if patterns else 0.0
            ),
            "most_frequent_pattern": patterns[0].pattern.name if patterns else None,
            "learning_enabled": self.learning_enabled,
            "min_occurrences": self.min_occurrences,
            "min_confidence": self.min_confidence,
        }

    # ==================== Snapshot ====================

    def snapshot(self) -> LearnedPatternsSnapshot:
        return LearnedPatternsSnapshot(
            min_occurrences=self.min_occurrences,
            min_confidence=self.min_confidence,
            patterns=[
                LearnedPatternModel(
                    shape_key=p.shape_key,
                    pattern=UIPatternModel(
                        name=p.pattern.name,
                        description=p.pattern.description,
                        selectors=p.pattern.selectors,
                        attributes=p.pattern.attributes,
                        tags=p.pattern.tags,
                        structure=p.pattern.structure,
                        confidence=p.pattern.confidence,
                        weight=p.pattern.weight,
                    ),
                    occurrences=p.occurrences,
                    success_rate=p.success_rate,
                    first_seen=p.first_seen,
                    last_seen=p.last_seen,
                    confidence=p.confidence,
                    registered=p.registered,
                )
                for p in self._learned.values()
            ],
        )

    def restore(self, data: Union[LearnedPatternsSnapshot, Dict[str, Any]]):
        """Replace learned shapes with a snapshot, re-registering qualified ones"""
        snapshot = load_snapshot(LearnedPatternsSnapshot, data)
        self.clear_patterns()
        self.set_min_occurrences(snapshot.min_occurrences)
        self.set_min_confidence(snapshot.min_confidence)

        for row in snapshot.patterns:
            learned = LearnedPattern(
                shape_key=row.shape_key,
                pattern=UIPattern(**row.pattern.model_dump()),
                occurrences=row.occurrences,
                success_rate=row.success_rate,
                first_seen=row.first_seen,
                last_seen=row.last_seen,
                confidence=row.confidence,
            )
            self._learned[row.shape_key] = learned
            if self._qualifies(learned):
                self._register(learned)

        logger.debug(f"[LEARNING] Restored {len(self._learned)} learned patterns")

    def export(self) -> Dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def import_data(self, data: Dict[str, Any]):
        self.restore(data)
