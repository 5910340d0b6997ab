"""
Pattern Matcher

Registry of recognisable UI element families (login forms, submit
buttons, modals, tables, ...). Each pattern carries selectors to search
with and the attributes/tags its members are expected to have, so an
element found on the page can be scored against it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import ElementFeatures

logger = logging.getLogger(__name__)


@dataclass
class UIPattern:
    """A reusable element shape"""
    name: str
    description: str
    selectors: List[str]
    attributes: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    structure: Optional[Dict[str, Any]] = None
    confidence: float = 0.8
    weight: float = 1.0


@dataclass
class PatternMatch:
    pattern: UIPattern
    confidence: float
    element: Any = None
    matched_attributes: List[str] = field(default_factory=list)


def pattern_key(name: str) -> str:
    """Registry key for a pattern name: lower case, spaces to underscores"""
    return re.sub(r"\s+", "_", name.strip().lower())


# (key, name, description, selectors, attributes, tags, confidence, structure children)
BUILTIN_PATTERNS = [
    ("login_form", "Login Form", "Standard login form with username and password fields",
     ['form[name*="login"]', 'form[id*="login"]', 'form[class*="login"]',
      '[role="form"][aria-label*="login"]'],
     {"type": "form", "purpose": "authentication"}, ["form", "login", "authentication"], 0.9,
     ['input[type="text"]', 'input[type="password"]', 'button[type="submit"]']),
    ("submit_button", "Submit Button", "Button that submits a form",
     ['button[type="submit"]', 'input[type="submit"]', 'button:has-text("Submit")',
      'button:has-text("Sign In")', 'button:has-text("Login")'],
     {"type": "button", "action": "submit"}, ["button", "submit", "action"], 0.85, None),
    ("search_input", "Search Input", "Search input field",
     ['input[type="search"]', 'input[name*="search"]', 'input[placeholder*="search"]',
      'input[aria-label*="search"]', '[role="searchbox"]'],
     {"type": "input", "purpose": "search"}, ["input", "search", "query"], 0.9, None),
    ("modal_dialog", "Modal Dialog", "Modal dialog or popup overlay",
     ['[role="dialog"]', '[role="alertdialog"]', '.modal', '.dialog', '[aria-modal="true"]'],
     {"type": "modal", "overlay": "true"}, ["modal", "dialog", "popup", "overlay"], 0.95, None),
    ("close_button", "Close Button", "Button to close modal or dismiss dialog",
     ['button[aria-label*="close"]', 'button:has-text("×")', 'button:has-text("Close")',
      'button.close', '[role="button"][aria-label*="dismiss"]'],
     {"type": "button", "action": "close"}, ["button", "close", "dismiss"], 0.85, None),
    ("navigation_menu", "Navigation Menu", "Main navigation menu",
     ['nav', '[role="navigation"]', '[role="menubar"]', '.navbar', '.navigation'],
     {"type": "navigation", "purpose": "menu"}, ["nav", "navigation", "menu"], 0.9,
     ['a', 'button', '[role="menuitem"]']),
    ("dropdown_select", "Dropdown Select", "Dropdown selection element",
     ['select', '[role="combobox"]', '[role="listbox"]', '.dropdown', '[aria-haspopup="listbox"]'],
     {"type": "select", "expandable": "true"}, ["select", "dropdown", "combobox"], 0.9, None),
    ("checkbox", "Checkbox", "Checkbox input element",
     ['input[type="checkbox"]', '[role="checkbox"]'],
     {"type": "checkbox", "checkable": "true"}, ["checkbox", "input", "toggle"], 0.95, None),
    ("radio_button", "Radio Button", "Radio button input element",
     ['input[type="radio"]', '[role="radio"]'],
     {"type": "radio", "selectable": "true"}, ["radio", "input", "choice"], 0.95, None),
    ("primary_button", "Primary Action Button", "Primary call-to-action button",
     ['button.btn-primary', 'button.primary', 'button[class*="primary"]',
      '[role="button"][class*="primary"]'],
     {"type": "button", "importance": "primary"}, ["button", "primary", "cta"], 0.8, None),
    ("data_table", "Data Table", "Table displaying structured data",
     ['table', '[role="table"]', '[role="grid"]', '.table', '.data-table'],
     {"type": "table", "structured": "true"}, ["table", "grid", "data"], 0.95,
     ['thead', 'tbody', 'tr', 'td', 'th']),
    ("error_message", "Error Message", "Error or validation message",
     ['[role="alert"]', '.error', '.error-message', '[class*="error"]', '[aria-invalid="true"] + *'],
     {"type": "message", "severity": "error"}, ["error", "alert", "message"], 0.85, None),
    ("loading_indicator", "Loading Indicator", "Loading spinner or progress indicator",
     ['[role="progressbar"]', '[role="status"]', '.loading', '.spinner',
      '[class*="loading"]', '[class*="spinner"]'],
     {"type": "indicator", "state": "loading"}, ["loading", "spinner", "progress"], 0.8, None),
    ("breadcrumb", "Breadcrumb Navigation", "Breadcrumb navigation trail",
     ['[role="breadcrumb"]', 'nav[aria-label*="breadcrumb"]', '.breadcrumb', 'ol.breadcrumb'],
     {"type": "navigation", "purpose": "breadcrumb"}, ["breadcrumb", "navigation", "trail"], 0.9, None),
    ("tooltip", "Tooltip", "Tooltip or hover hint",
     ['[role="tooltip"]', '.tooltip', '[class*="tooltip"]'],
     {"type": "hint", "contextual": "true"}, ["tooltip", "hint", "help"], 0.85, None),
]


class PatternMatcher:
    """
    UI pattern registry and scorer.

    Features:
    - 15 built-in patterns seeded at construction
    - Learned/custom patterns via register_pattern
    - Match confidence from base confidence, attribute/tag agreement,
      visibility and role, scaled by pattern weight
    - Matches under 0.5 are discarded
    """

    MIN_MATCH_CONFIDENCE = 0.5

    def __init__(self, feature_extractor=None):
        self.feature_extractor = feature_extractor
        self.patterns: Dict[str, UIPattern] = {}
        self._seed_builtin_patterns()

    def _seed_builtin_patterns(self):
        for key, name, description, selectors, attributes, tags, confidence, children in BUILTIN_PATTERNS:
            self.patterns[key] = UIPattern(
                name=name,
                description=description,
                selectors=list(selectors),
                attributes=dict(attributes),
                tags=list(tags),
                structure={"children": list(children)} if children else None,
                confidence=confidence,
            )
        logger.debug(f"Seeded {len(self.patterns)} built-in patterns")

    # ==================== Scoring ====================

    @staticmethod
    def check_attribute_match(features: ElementFeatures, pattern: UIPattern) -> List[str]:
        """Names of the pattern expectations the element satisfies"""
        matched = []
        expected_type = pattern.attributes.get("type")

        if expected_type and expected_type in (features.structural.tag_name, features.semantic.role):
            matched.append("type")
        if features.semantic.role and features.semantic.role in pattern.tags:
            matched.append("role")
        if (pattern.attributes.get("action") or pattern.attributes.get("purpose")) \
                and features.structural.is_interactive:
            matched.append("interactive")
        if expected_type in ("form", "input") and features.structural.form_element:
            matched.append("form_element")

        return matched

    def score_features(self, pattern: UIPattern, features: ElementFeatures) -> PatternMatch:
        """
        Score one element's features against a pattern.

        Returns:
            PatternMatch with the confidence (capped at 1.0) and the
            matched attribute names; no element attached
        """
        matched = self.check_attribute_match(features, pattern)

        score = pattern.confidence * 0.4
        if matched:
            score += min(len(matched) / 3, 1.0) * 0.3

        tag_hit = any(
            tag == features.structural.tag_name
            or tag == features.semantic.role
            or any(tag in cls for cls in features.structural.class_list)
            for tag in pattern.tags
        )
        if tag_hit:
            score += 0.15
        if features.visual.is_visible:
            score += 0.1
        if features.semantic.role and pattern.attributes.get("type") == features.semantic.role:
            score += 0.05

        return PatternMatch(
            pattern=pattern,
            confidence=min(score * pattern.weight, 1.0),
            matched_attributes=matched,
        )

    # ==================== Page Matching ====================

    async def _match_pattern(self, page, pattern: UIPattern) -> List[PatternMatch]:
        matches: List[PatternMatch] = []
        if self.feature_extractor is None:
            logger.debug("No feature extractor configured, pattern matching skipped")
            return matches

        for selector in pattern.selectors:
            try:
                elements = await page.locator(selector).element_handles()
            except Exception as e:
                logger.debug(f"Selector '{selector}' failed for pattern {pattern.name}: {e}")
                continue

            for element in elements:
                try:
                    features = await self.feature_extractor.extract_features(element, page)
                except Exception as e:
                    logger.debug(f"Feature extraction failed for pattern {pattern.name}: {e}")
                    continue
                match = self.score_features(pattern, features)
                if match.confidence >= self.MIN_MATCH_CONFIDENCE:
                    match.element = element
                    matches.append(match)

        return matches

    async def match_patterns(self, page, pattern_name: Optional[str] = None) -> List[PatternMatch]:
        """Match one pattern (when it exists) or every registered pattern"""
        if pattern_name and pattern_name in self.patterns:
            to_match = [self.patterns[pattern_name]]
        else:
            to_match = list(self.patterns.values())

        matches: List[PatternMatch] = []
        for pattern in to_match:
            matches.extend(await self._match_pattern(page, pattern))

        logger.debug(f"Found {len(matches)} pattern matches across {len(to_match)} patterns")
        return matches

    async def find_by_pattern(self, page, pattern_name: str) -> List[Any]:
        """Element handles matching a pattern, best first"""
        pattern = self.patterns.get(pattern_name)
        if not pattern:
            logger.debug(f"Pattern not found: {pattern_name}")
            return []
        matches = await self._match_pattern(page, pattern)
        matches.sort(key=lambda m: m.confidence, reverse=True)
        return [m.element for m in matches]

    async def get_best_match(self, page, pattern_name: str) -> Optional[PatternMatch]:
        pattern = self.patterns.get(pattern_name)
        if not pattern:
            logger.debug(f"Pattern not found: {pattern_name}")
            return None
        matches = await self._match_pattern(page, pattern)
        if not matches:
            return None
        return max(matches, key=lambda m: m.confidence)

    async def detect_patterns(self, page) -> Dict[str, int]:
        """Pattern name -> number of matching elements on the page"""
        detected: Dict[str, int] = {}
        for match in await self.match_patterns(page):
            detected[match.pattern.name] = detected.get(match.pattern.name, 0) + 1
        return detected

    async def has_pattern(self, page, pattern_name: str) -> bool:
        return len(await self.find_by_pattern(page, pattern_name)) > 0

    # ==================== Registry ====================

    def register_pattern(self, pattern: UIPattern) -> str:
        """Add or replace a pattern; returns its registry key"""
        if not pattern.name or not pattern.name.strip():
            raise ValueError("Pattern name must not be empty")
        key = pattern_key(pattern.name)
        self.patterns[key] = pattern
        logger.info(f"Registered pattern: {pattern.name}")
        return key

    def remove_pattern(self, pattern_name: str) -> bool:
        removed = self.patterns.pop(pattern_name, None) is not None
        if removed:
            logger.debug(f"Removed pattern: {pattern_name}")
        return removed

    def get_pattern(self, name: str) -> Optional[UIPattern]:
        return self.patterns.get(name)

    def get_pattern_names(self) -> List[str]:
        return list(self.patterns.keys())

    def get_statistics(self) -> Dict[str, Any]:
        patterns = list(self.patterns.values())
        by_category: Dict[str, int] = {}
        for pattern in patterns:
            category = pattern.tags[0] if pattern.tags else "other"
            by_category[category] = by_category.get(category, 0) + 1

        return {
            "total_patterns": len(patterns),
            "patterns_by_category": by_category,
            "average_confidence": (
                sum(p.confidence for p in patterns) / len(patterns) if patterns else 0.0
            ),
        }
