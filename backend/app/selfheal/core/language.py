"""
Natural Language Engine

Turns a free-text element description ("click the blue 'Save' button
below the form") into an NLPResult: intent, keywords, element type,
visual and position cues, quoted text and expected ARIA roles.

Purely rule-based; results are cached per normalised description.
"""

import logging
import re
from typing import Dict, List, Optional

from ..models import Intent, NLPResult, PositionCues, VisualCues
from ..ttl_cache import TTLMap

logger = logging.getLogger(__name__)


class NaturalLanguageEngine:
    """
    Keyword-driven description parser.

    Features:
    - Intent from the first three tokens, inferred from element type otherwise
    - Element-type synonym table
    - Color/size/shape and position/relationship vocabularies
    - Quoted text extraction
    - 5 minute result cache
    """

    DEFAULT_CACHE_TTL = 300.0

    QUOTE_MARKER = "QUOTE"

    ACTION_KEYWORDS: Dict[str, Intent] = {
        "click": Intent.CLICK, "tap": Intent.CLICK, "press": Intent.CLICK,
        "type": Intent.TYPE, "enter": Intent.TYPE, "input": Intent.TYPE, "fill": Intent.TYPE,
        "choose": Intent.SELECT, "pick": Intent.SELECT, "dropdown": Intent.SELECT,
        "select": Intent.SELECT,
        "check": Intent.CHECK, "tick": Intent.CHECK, "mark": Intent.CHECK,
        "uncheck": Intent.UNCHECK, "untick": Intent.UNCHECK, "unmark": Intent.UNCHECK,
        "hover": Intent.HOVER, "mouseover": Intent.HOVER,
        "navigate": Intent.NAVIGATE, "goto": Intent.NAVIGATE, "visit": Intent.NAVIGATE,
        "open": Intent.NAVIGATE,
        "verify": Intent.VALIDATE, "assert": Intent.VALIDATE, "validate": Intent.VALIDATE,
        "see": Intent.VALIDATE, "should": Intent.VALIDATE, "expect": Intent.VALIDATE,
        "display": Intent.VALIDATE, "show": Intent.VALIDATE, "visible": Intent.VALIDATE,
        "appear": Intent.VALIDATE, "contain": Intent.VALIDATE, "have": Intent.VALIDATE,
        "exist": Intent.VALIDATE,
        "extract": Intent.EXTRACT, "get": Intent.EXTRACT, "read": Intent.EXTRACT,
        "wait": Intent.WAIT, "pause": Intent.WAIT,
    }

    # Synonym -> canonical element type. Order matters: first token hit wins.
    ELEMENT_TYPES: Dict[str, str] = {
        "button": "button", "btn": "button",
        "link": "link", "anchor": "link", "hyperlink": "link",
        "input": "input", "field": "input", "textbox": "input",
        "checkbox": "checkbox", "check": "checkbox",
        "radio": "radio",
        "dropdown": "select", "select": "select", "combobox": "select",
        "textarea": "textarea",
        "image": "image", "img": "image", "picture": "image",
        "icon": "icon",
        "label": "label", "text": "text",
        # Tables and data grids
        "table": "table", "grid": "table", "datagrid": "table",
        "row": "row", "tr": "row",
        "column": "column", "col": "column",
        "cell": "cell", "td": "cell", "th": "cell",
        "header": "header", "thead": "header",
        "list": "list", "listbox": "list",
        "menu": "menu", "navigation": "menu", "nav": "menu",
        "menuitem": "menuitem",
        "modal": "modal", "dialog": "dialog", "popup": "modal",
        "alert": "alert", "banner": "banner",
        "form": "form",
        # Component library widgets
        "card": "card", "panel": "panel",
        "tab": "tab", "tabs": "tabs",
        "accordion": "accordion",
        "slider": "slider", "range": "slider",
        "datepicker": "datepicker", "date": "datepicker",
        "tooltip": "tooltip",
        "badge": "badge", "tag": "tag",
        "avatar": "avatar",
        "upload": "upload", "file": "upload",
        "search": "search", "searchbox": "search",
    }

    COLORS = {
        "red", "blue", "green", "yellow", "orange", "purple", "pink", "black",
        "white", "gray", "grey", "brown", "cyan", "magenta", "lime", "navy",
        "teal", "olive", "maroon", "aqua", "silver", "gold",
    }
    SIZES = {"large", "big", "huge", "giant", "small", "tiny", "mini", "medium"}
    SHAPES = {"round", "circle", "circular", "square", "rectangular", "oval", "triangle"}
    POSITIONS = {
        "top", "bottom", "left", "right", "center", "middle",
        "upper", "lower", "first", "last",
    }
    RELATIONSHIPS = {
        "above", "below", "near", "next", "beside", "inside", "within",
        "after", "before", "under", "over",
    }

    STOP_WORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "with"}

    FORM_KEYWORDS = {"form", "login", "signup", "register", "submit", "email", "password"}

    EXPECTED_ROLES: Dict[str, List[str]] = {
        "button": ["button", "link"],
        "link": ["link", "button"],
        "input": ["textbox", "searchbox", "combobox"],
        "checkbox": ["checkbox"],
        "radio": ["radio"],
        "select": ["combobox", "listbox"],
        "menu": ["menu", "menubar", "navigation"],
        "dialog": ["dialog", "alertdialog"],
        "table": ["table", "grid"],
    }

    QUOTED_TEXT = re.compile(r"[\"']([^\"']+)[\"']")

    def __init__(self, cache_ttl_seconds: float = DEFAULT_CACHE_TTL):
        self._cache: TTLMap[str, NLPResult] = TTLMap(cache_ttl_seconds)

    @staticmethod
    def normalize(description: str) -> str:
        return (description or "").lower().strip()

    def process_description(self, description: str) -> NLPResult:
        """
        Parse an element description.

        Args:
            description: Free-text description of the target element

        Returns:
            NLPResult; the same object is returned for repeated calls
            with the same normalised text while it is cached
        """
        cache_key = self.normalize(description)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"NLP cache hit for '{description}'")
            return cached

        tokens = self.tokenize(description)
        intent = self._extract_intent(tokens)
        keywords = self._extract_keywords(tokens)
        element_type = self._extract_element_type(tokens)
        visual_cues = self._extract_visual_cues(tokens)

        result = NLPResult(
            intent=intent,
            keywords=keywords,
            visual_cues=visual_cues,
            position_cues=self._extract_position_cues(tokens),
            confidence=self._calculate_confidence(intent, element_type, keywords, visual_cues),
            form_context=any(t in self.FORM_KEYWORDS for t in tokens),
            element_type=element_type,
            text_content=self._extract_text_content(description),
            expected_roles=self.EXPECTED_ROLES.get(element_type) if element_type else None,
        )

        self._cache.set(cache_key, result)
        logger.debug(
            f"NLP parsed '{description}': intent={intent.value}, "
            f"type={element_type}, confidence={result.confidence:.2f}"
        )
        return result

    # ==================== Parsing ====================

    def tokenize(self, description: str) -> List[str]:
        """Lower-case, mark quotes, split on whitespace"""
        text = (description or "").lower()
        text = re.sub(r"[\"']", f" {self.QUOTE_MARKER} ", text)
        return text.split()

    def _extract_intent(self, tokens: List[str]) -> Intent:
        for token in tokens[:3]:
            intent = self.ACTION_KEYWORDS.get(token)
            if intent:
                return intent

        types = {self.ELEMENT_TYPES.get(t) for t in tokens}
        if "button" in types:
            return Intent.CLICK
        if "input" in types:
            return Intent.TYPE
        if "select" in types:
            return Intent.SELECT
        return Intent.CLICK

    def _extract_keywords(self, tokens: List[str]) -> List[str]:
        return [
            t for t in tokens
            if t != self.QUOTE_MARKER and t not in self.STOP_WORDS and len(t) > 2
        ]

    def _extract_element_type(self, tokens: List[str]) -> Optional[str]:
        for token in tokens:
            element_type = self.ELEMENT_TYPES.get(token)
            if element_type:
                return element_type

        if "submit" in tokens or "send" in tokens:
            return "button"
        if any(t in tokens for t in ("email", "password", "username")):
            return "input"
        return None

    def _extract_visual_cues(self, tokens: List[str]) -> VisualCues:
        colors = [t for t in tokens if t in self.COLORS]
        sizes = [t for t in tokens if t in self.SIZES]
        shapes = [t for t in tokens if t in self.SHAPES]
        return VisualCues(
            colors=colors or None,
            sizes=sizes or None,
            shapes=shapes or None,
        )

    def _extract_position_cues(self, tokens: List[str]) -> PositionCues:
        cues = PositionCues()
        for i, token in enumerate(tokens):
            if token in self.POSITIONS:
                cues.position = token
            if token in self.RELATIONSHIPS:
                cues.relation = token
                reference = " ".join(tokens[i + 1:i + 4])
                if reference:
                    cues.relative_to = reference
        return cues

    def _extract_text_content(self, description: str) -> Optional[str]:
        match = self.QUOTED_TEXT.search(description or "")
        return match.group(1) if match else None

    def _calculate_confidence(
        self,
        intent: Intent,
        element_type: Optional[str],
        keywords: List[str],
        visual_cues: VisualCues
    ) -> float:
        confidence = 0.5
        if intent != Intent.CLICK or any(k in self.ACTION_KEYWORDS for k in keywords):
            confidence += 0.1
        if element_type:
            confidence += 0.2
        if len(keywords) >= 2:
            confidence += 0.1
        if visual_cues.any():
            confidence += 0.1
        return min(confidence, 1.0)

    # ==================== Cache ====================

    def clear_cache(self):
        self._cache.clear()
        logger.debug("NLP cache cleared")

    def get_cache_stats(self) -> Dict[str, float]:
        return {"size": len(self._cache), "ttl_seconds": self._cache.ttl_seconds}
