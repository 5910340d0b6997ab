"""
Candidate Ranker

Scores the elements found for a description. The score combines input
type agreement, the strongest context hit (test id, label, text, ...),
table/framework/loading adjustments, quoted-text similarity and
visibility. Scores are capped at 1.0 but may go negative so that a
sensitive-field mismatch stays below every plausible match.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..analysis.similarity import levenshtein_similarity
from ..config import RankingWeights
from ..models import ElementFeatures, Intent, NLPResult

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    element: Any
    selector: str
    features: ElementFeatures


@dataclass
class RankedCandidate:
    selector: str
    confidence: float
    features: ElementFeatures
    element: Any = None


class CandidateRanker:
    """
    Multi-factor candidate scorer.

    Features:
    - Hidden inputs and system fields (_token, csrf, __) dropped first
    - Password/username/email type agreement bonus and mismatch penalty
    - Context ladder: only the strongest matching source counts
    - Every constant read from RankingWeights
    """

    PASSWORD_KEYWORDS = {"password", "pass", "pwd"}
    USERNAME_KEYWORDS = {"username", "user", "email"}
    EMAIL_KEYWORDS = {"email", "e-mail"}
    TABLE_KEYWORDS = {"row", "column", "cell", "table", "grid", "data"}
    TRUSTED_LIBRARIES = ("material-ui", "ant-design")

    # Sources whose hit ends the keyword scan; the rest keep looking for a stronger hit
    DECISIVE_SOURCES = ("test_id", "label_text")

    def __init__(self, weights: Optional[RankingWeights] = None):
        self.weights = weights or RankingWeights()

    # ==================== Filtering ====================

    @staticmethod
    def is_system_field(features: ElementFeatures) -> bool:
        attributes = features.structural.attributes
        if attributes.get("type") == "hidden":
            return True
        name = attributes.get("name", "")
        return "_token" in name or "csrf" in name or "__" in name

    def filter_candidates(self, candidates: Sequence[Candidate]) -> List[Candidate]:
        """Visible, non-system candidates; everything if that leaves nothing"""
        kept = [
            c for c in candidates
            if c.features.visual.is_visible and not self.is_system_field(c.features)
        ]
        return kept if kept else list(candidates)

    # ==================== Scoring ====================

    def rank(self, candidates: Sequence[Candidate], nlp: NLPResult) -> List[RankedCandidate]:
        """
        Score and sort candidates.

        Args:
            candidates: Elements with selectors and (context-enriched) features
            nlp: Parsed description

        Returns:
            Ranked candidates, highest confidence first
        """
        ranked = [
            RankedCandidate(
                selector=c.selector,
                confidence=self.score(c.features, nlp),
                features=c.features,
                element=c.element,
            )
            for c in self.filter_candidates(candidates)
        ]
        ranked.sort(key=lambda r: r.confidence, reverse=True)

        for i, r in enumerate(ranked[:3], start=1):
            logger.debug(
                f"[RANKING] {i}. <{r.features.structural.tag_name}> "
                f"{r.selector} -> {r.confidence:.2f}"
            )
        return ranked

    def score(self, features: ElementFeatures, nlp: NLPResult) -> float:
        keywords = [k.lower() for k in nlp.keywords]
        score = self.input_type_score(features, nlp, keywords)
        score += self.context_score(features, keywords) * self.weights.context_weight
        score += self.button_text_boost(features, keywords)
        score += self.advanced_context_score(features, keywords)

        if nlp.text_content:
            score += self.text_match(features, nlp.text_content) * self.weights.text_weight
        if features.visual.is_visible:
            score += self.weights.visibility_bonus

        return min(score, 1.0)

    def input_type_score(self, features: ElementFeatures, nlp: NLPResult, keywords: List[str]) -> float:
        if features.structural.tag_name.lower() != "input":
            return 0.0

        w = self.weights
        input_type = (features.structural.attributes.get("type") or "text").lower()
        wants_password = any(k in self.PASSWORD_KEYWORDS for k in keywords)
        wants_username = any(k in self.USERNAME_KEYWORDS or k in self.EMAIL_KEYWORDS for k in keywords)

        if wants_password:
            return w.type_match_bonus if input_type == "password" else -w.type_mismatch_penalty
        if wants_username:
            if input_type == "password":
                return -w.type_mismatch_penalty
            if input_type in ("text", "email"):
                return w.type_match_bonus
            return 0.0
        if nlp.intent == Intent.TYPE and input_type in ("text", "email"):
            return w.generic_type_bonus
        return 0.0

    def _context_sources(self, features: ElementFeatures) -> List[tuple]:
        attributes = features.structural.attributes
        ctx = features.context
        values = {
            "test_id": ctx.test_id,
            "label_text": ctx.label_text,
            "inner_text": ctx.inner_text,
            "placeholder": attributes.get("placeholder", ""),
            "surrounding_text": ctx.surrounding_text,
            "nearby_headings": ctx.nearby_headings,
            "name": attributes.get("name", ""),
            "aria_label": features.text.aria_label or "",
            "id": attributes.get("id", ""),
            "semantic_context": ctx.semantic_context,
        }
        ladder = self.weights.context_sources
        ordered = sorted(ladder.items(), key=lambda item: item[1], reverse=True)
        return [(source, weight, (values.get(source) or "").lower()) for source, weight in ordered]

    def context_score(self, features: ElementFeatures, keywords: List[str]) -> float:
        """Strongest context-source hit for any keyword (not a sum)"""
        sources = self._context_sources(features)
        best = 0.0
        for keyword in keywords:
            decisive = False
            for source, weight, text in sources:
                if text and keyword in text:
                    best = max(best, weight)
                    if source in self.DECISIVE_SOURCES:
                        decisive = True
                        break
            if decisive:
                break
        return best

    def button_text_boost(self, features: ElementFeatures, keywords: List[str]) -> float:
        inner_text = features.context.inner_text.lower()
        if features.structural.tag_name.lower() in ("button", "a") and inner_text:
            if any(k in inner_text for k in keywords):
                return self.weights.button_text_boost
        return 0.0

    def advanced_context_score(self, features: ElementFeatures, keywords: List[str]) -> float:
        w = self.weights
        ctx = features.context
        score = 0.0

        headers = ctx.table_headers_text().lower()
        if ctx.table_context and headers:
            if any(k in headers for k in keywords):
                score += w.table_header_match
            if any(k in self.TABLE_KEYWORDS for k in keywords):
                score += w.table_operation

        if ctx.framework_hints:
            score += w.framework_hint
        library = ctx.component_library.lower()
        if any(lib in library for lib in self.TRUSTED_LIBRARIES):
            score += w.component_library
        if ctx.in_shadow_dom and ctx.shadow_root_host:
            score -= w.shadow_dom_penalty
        if ctx.has_loading_indicator:
            score -= w.loading_indicator_penalty
        if ctx.in_iframe:
            score -= w.iframe_penalty

        return score

    @staticmethod
    def text_match(features: ElementFeatures, target: str) -> float:
        """Best Levenshtein similarity between the target and the element's texts"""
        texts = [
            features.text.content,
            features.text.visible_text,
            features.text.aria_label,
            features.text.title,
        ]
        return max((levenshtein_similarity(t.strip(), target) for t in texts if t), default=0.0)
