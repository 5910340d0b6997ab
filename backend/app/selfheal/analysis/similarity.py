"""
Similarity Engine

Weighted comparison of two ElementFeatures records across the text,
visual, structural, semantic and context dimensions. Each dimension is
scored against a fixed points rubric and normalised to 0-1.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import ElementFeatures

logger = logging.getLogger(__name__)


# ==================== String Metrics ====================

def levenshtein_distance(s1: str, s2: str) -> int:
    """Classic edit distance with a single rolling row"""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (c1 != c2),
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(s1: Optional[str], s2: Optional[str]) -> float:
    """(longest - distance) / longest, case-insensitive; 0 when either side is empty"""
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    s1, s2 = s1.lower(), s2.lower()
    longest = max(len(s1), len(s2))
    return (longest - levenshtein_distance(s1, s2)) / longest


def jaro_winkler(s1: Optional[str], s2: Optional[str]) -> float:
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    s1, s2 = s1.lower(), s2.lower()

    window = max(max(len(s1), len(s2)) // 2 - 1, 0)
    s1_matches = [False] * len(s1)
    s2_matches = [False] * len(s2)
    matches = 0

    for i, ch in enumerate(s1):
        start = max(0, i - window)
        end = min(i + window + 1, len(s2))
        for j in range(start, end):
            if s2_matches[j] or s2[j] != ch:
                continue
            s1_matches[i] = s2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, ch in enumerate(s1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if ch != s2[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len(s1) + matches / len(s2) + (matches - transpositions / 2) / matches) / 3

    prefix = 0
    for a, b in zip(s1[:4], s2[:4]):
        if a != b:
            break
        prefix += 1

    return jaro + prefix * 0.1 * (1 - jaro)


# ==================== Scores ====================

@dataclass
class SimilarityWeights:
    text: float = 0.30
    visual: float = 0.20
    structural: float = 0.25
    semantic: float = 0.15
    context: float = 0.10

    def total(self) -> float:
        return self.text + self.visual + self.structural + self.semantic + self.context


@dataclass
class SimilarityScore:
    overall: float
    breakdown: Dict[str, float] = field(default_factory=dict)


def _parse_px(value: str) -> Optional[float]:
    try:
        return float(str(value).replace("px", "").strip())
    except (TypeError, ValueError):
        return None


class SimilarityEngine:
    """
    Multi-dimension feature comparator.

    Features:
    - Points rubric per dimension (exact match, distance decay, set overlap)
    - Levenshtein string similarity
    - Adjustable weights, always renormalised to sum to 1.0
    """

    def __init__(self, weights: Optional[SimilarityWeights] = None):
        self._weights = weights or SimilarityWeights()

    def calculate_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> SimilarityScore:
        """
        Compare two feature records.

        Returns:
            SimilarityScore with the weighted overall score and the
            per-dimension breakdown
        """
        breakdown = {
            "text": self._text_similarity(f1, f2),
            "visual": self._visual_similarity(f1, f2),
            "structural": self._structural_similarity(f1, f2),
            "semantic": self._semantic_similarity(f1, f2),
            "context": self._context_similarity(f1, f2),
        }
        weights = asdict(self._weights)
        overall = sum(breakdown[dim] * weights[dim] for dim in breakdown)
        return SimilarityScore(overall=overall, breakdown=breakdown)

    def find_most_similar(
        self,
        target: ElementFeatures,
        candidates: Sequence[ElementFeatures],
        threshold: float = 0.0
    ) -> Optional[Tuple[int, SimilarityScore]]:
        """Index and score of the best candidate above `threshold`, if any"""
        best: Optional[Tuple[int, SimilarityScore]] = None
        for index, candidate in enumerate(candidates):
            score = self.calculate_similarity(target, candidate)
            if score.overall > threshold and (best is None or score.overall > best[1].overall):
                best = (index, score)
        return best

    # ==================== Dimensions ====================

    def _text_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> float:
        pairs = [
            (f1.text.visible_text, f2.text.visible_text),
            (f1.text.aria_label, f2.text.aria_label),
            (f1.text.title, f2.text.title),
            (f1.text.placeholder, f2.text.placeholder),
        ]
        scores = [levenshtein_similarity(a, b) for a, b in pairs if a and b]
        return sum(scores) / len(scores) if scores else 0.0

    def _visual_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> float:
        v1, v2 = f1.visual, f2.visual
        score = 0.0
        max_score = 100.0

        if v1.is_visible == v2.is_visible:
            score += 10
        if v1.position == v2.position:
            score += 15
        if v1.display == v2.display:
            score += 10

        if v1.font_size == v2.font_size:
            score += 15
        else:
            size1, size2 = _parse_px(v1.font_size), _parse_px(v2.font_size)
            if size1 is not None and size2 is not None:
                score += max(0.0, 15 - abs(size1 - size2))

        if v1.bounding_box and v2.bounding_box:
            width_diff = abs(v1.bounding_box.get("width", 0) - v2.bounding_box.get("width", 0))
            height_diff = abs(v1.bounding_box.get("height", 0) - v2.bounding_box.get("height", 0))
            score += max(0.0, 10 - width_diff / 10) + max(0.0, 10 - height_diff / 10)

        if v1.color == v2.color:
            score += 7.5
        if v1.background_color == v2.background_color:
            score += 7.5
        if v1.z_index == v2.z_index:
            score += 5
        if abs(v1.opacity - v2.opacity) < 0.1:
            score += 5
        if v1.cursor == v2.cursor:
            score += 5

        return score / max_score

    def _structural_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> float:
        s1, s2 = f1.structural, f2.structural
        score = 0.0
        max_score = 100.0

        if s1.tag_name == s2.tag_name:
            score += 30
        if s1.role == s2.role:
            score += 20
        if s1.id and s2.id:
            score += 10 * levenshtein_similarity(s1.id, s2.id)

        total_classes = max(len(s1.class_list), len(s2.class_list))
        if total_classes:
            overlap = sum(1 for c in s1.class_list if c in s2.class_list)
            score += 20 * overlap / total_classes

        score += max(0, 10 - abs(s1.depth - s2.depth))
        if s1.is_interactive == s2.is_interactive:
            score += 5
        if s1.form_element == s2.form_element:
            score += 5

        return score / max_score

    def _semantic_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> float:
        m1, m2 = f1.semantic, f2.semantic
        rubric = [
            (40, m1.role == m2.role),
            (30, m1.semantic_type == m2.semantic_type),
            (10, m1.is_landmark == m2.is_landmark),
            (10, m1.heading_level == m2.heading_level),
            (5, m1.list_item == m2.list_item),
            (5, m1.table_cell == m2.table_cell),
        ]
        return sum(points for points, hit in rubric if hit) / 100.0

    def _context_similarity(self, f1: ElementFeatures, f2: ElementFeatures) -> float:
        c1, c2 = f1.context, f2.context
        score = 0.0

        if c1.parent_tag == c2.parent_tag:
            score += 20
        if c1.form_id and c2.form_id and c1.form_id == c2.form_id:
            score += 20
        if c1.nearby_heading and c2.nearby_heading:
            score += 20 * levenshtein_similarity(c1.nearby_heading, c2.nearby_heading)
        if c1.label_text and c2.label_text:
            score += 20 * levenshtein_similarity(c1.label_text, c2.label_text)
        if c1.nearest_landmark and c2.nearest_landmark:
            if c1.nearest_landmark.get("role") == c2.nearest_landmark.get("role"):
                score += 20

        return score / 100.0

    # ==================== Weights ====================

    def set_weights(self, **weights: float):
        """Merge partial weights then renormalise all five to sum to 1.0"""
        merged = asdict(self._weights)
        for name, value in weights.items():
            if name not in merged:
                raise ValueError(f"Unknown similarity dimension: {name}")
            if value < 0:
                raise ValueError(f"Similarity weight {name} must not be negative")
            merged[name] = float(value)

        total = sum(merged.values())
        if total <= 0:
            raise ValueError("Similarity weights must sum to a positive total")
        merged = {name: value / total for name, value in merged.items()}
        self._weights = SimilarityWeights(**merged)
        logger.debug(f"Similarity weights updated: {merged}")

    def get_weights(self) -> SimilarityWeights:
        return SimilarityWeights(**asdict(self._weights))

    def reset_weights(self):
        self._weights = SimilarityWeights()

    # Exposed for callers that only need string metrics
    levenshtein_similarity = staticmethod(levenshtein_similarity)
    jaro_winkler = staticmethod(jaro_winkler)
