"""
Intelligent AI

Entry point for description-driven element identification and failure
analysis. Combines the language engine, DOM analysis, candidate discovery
and ranking, and feeds every successful identification back into the
history ledger and the pattern learner.
"""

import logging
import re
import time
from collections import Counter, deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from ..analysis.diagnostics import PageDiagnostics
from ..analysis.dom_intelligence import DOMIntelligence
from ..analysis.feature_extractor import FeatureExtractor, generate_selector
from ..config import AIConfig
from ..knowledge.history import HistoryContext, HistoryLedger
from ..knowledge.pattern_learner import PatternLearner
from ..models import (
    AIOperation,
    AIOperationType,
    Alternative,
    ElementIdentificationResult,
    FailureAnalysis,
    FailureContext,
    FailureType,
    IdentificationMethod,
    Intent,
    NLPResult,
    PageDiagnosticData,
)
from .candidate_ranker import Candidate, CandidateRanker
from .language import NaturalLanguageEngine

logger = logging.getLogger(__name__)


# Selector sets queried for each intent
INTENT_SELECTORS: Dict[Intent, List[str]] = {
    Intent.CLICK: [
        "button", "a", '[role="button"]', '[role="link"]',
        "[onclick]", "[ng-click]", "[v-on\\:click]",
        'input[type="submit"]', 'input[type="button"]',
        "div[tabindex]", "span[tabindex]",
    ],
    Intent.TYPE: [
        'input:not([type="hidden"]):not([type="submit"]):not([type="button"])'
        ':not([type="checkbox"]):not([type="radio"]):not([type="file"])',
        "textarea",
    ],
    Intent.SELECT: [
        "select", '[role="listbox"]', '[role="combobox"]',
        'div[class*="select"]', 'div[class*="dropdown"]',
    ],
}
FALLBACK_SELECTORS = [
    "button", "a", "input", "select", "textarea",
    '[role="button"]', "[tabindex]", "[onclick]",
]

# Element type -> tag selector for the tag fallback search
TAG_SELECTORS = {
    "button": "button",
    "link": "a",
    "input": "input",
    "checkbox": 'input[type="checkbox"]',
    "radio": 'input[type="radio"]',
    "select": "select",
    "textarea": "textarea",
}

BARE_TAG_SELECTOR = re.compile(r"\*|[a-zA-Z][a-zA-Z0-9-]*")


def _css_string(value: str) -> str:
    """Escape a value for use inside a double-quoted CSS string"""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


# Collects every visible element matching the selector list with its
# surrounding context (labels, headings, table, framework, shadow DOM)
DISCOVER_CANDIDATES_JS = """
(selectors) => {
    const results = [];

    function text(el) { return (el && el.textContent ? el.textContent.trim() : ''); }

    function deepContext(element, index) {
        const tagName = element.tagName.toLowerCase();
        const rect = element.getBoundingClientRect();
        const id = element.getAttribute('id') || '';
        const name = element.getAttribute('name') || '';
        const type = element.getAttribute('type') || '';
        const className = typeof element.className === 'string' ? element.className : '';
        const placeholder = element.getAttribute('placeholder') || '';
        const innerText = text(element);
        const ariaLabelledBy = element.getAttribute('aria-labelledby') || '';
        const testId = element.getAttribute('data-testid') || element.getAttribute('data-test') ||
                       element.getAttribute('data-cy') || element.getAttribute('data-test-id') || '';
        const ngModel = element.getAttribute('ng-model') || '';
        const vModel = element.getAttribute('v-model') || '';

        let labelText = '';
        if (id) {
            const label = document.querySelector(`label[for="${CSS.escape(id)}"]`);
            if (label) labelText = text(label);
        }
        if (!labelText) {
            let p = element.parentElement;
            for (let depth = 0; p && depth < 5; depth++, p = p.parentElement) {
                if (p.tagName === 'LABEL') { labelText = text(p); break; }
            }
        }
        if (!labelText && ariaLabelledBy) {
            labelText = text(document.getElementById(ariaLabelledBy));
        }

        let surroundingText = '';
        const parent = element.parentElement;
        if (parent) {
            for (let prev = element.previousSibling; prev; prev = prev.previousSibling) {
                if (prev.nodeType === Node.TEXT_NODE) {
                    surroundingText = text(prev) + ' ' + surroundingText;
                } else if (prev.nodeType === Node.ELEMENT_NODE) {
                    if (['LABEL', 'SPAN', 'DIV'].includes(prev.tagName)) surroundingText = text(prev) + ' ' + surroundingText;
                    break;
                }
            }
            for (let next = element.nextSibling; next; next = next.nextSibling) {
                if (next.nodeType === Node.TEXT_NODE) {
                    surroundingText += ' ' + text(next);
                } else if (next.nodeType === Node.ELEMENT_NODE) {
                    if (['LABEL', 'SPAN', 'DIV'].includes(next.tagName)) surroundingText += ' ' + text(next);
                    break;
                }
            }
            const parentClass = (typeof parent.className === 'string' ? parent.className : '').toLowerCase();
            if (parentClass.includes('form-group') || parentClass.includes('field') || parentClass.includes('input-group')) {
                parent.querySelectorAll('label, .label, [class*="label"]').forEach(l => {
                    surroundingText += ' ' + text(l);
                });
            }
        }

        let semanticContext = '';
        let ancestor = element.parentElement;
        for (let depth = 0; ancestor && depth < 10; depth++, ancestor = ancestor.parentElement) {
            if (['FORM', 'NAV', 'HEADER', 'FOOTER', 'SECTION', 'ARTICLE'].includes(ancestor.tagName)) {
                const cls = typeof ancestor.className === 'string' ? ancestor.className : '';
                semanticContext = `${ancestor.tagName.toLowerCase()} ${ancestor.id || ''} ${cls} ${ancestor.getAttribute('role') || ''}`.trim();
                break;
            }
        }

        let nearbyHeadings = '';
        document.querySelectorAll('h1, h2, h3, h4, h5, h6').forEach(h => {
            const hRect = h.getBoundingClientRect();
            if (hRect.bottom <= rect.top && rect.top - hRect.bottom < 300) nearbyHeadings += ' ' + text(h);
        });

        let tableContext = '';
        let tableRowIndex = -1;
        let tableCellIndex = -1;
        const tableHeaders = [];
        try {
            const table = element.closest('table') || element.closest('[role="table"], [role="grid"], [role="treegrid"]');
            if (table) {
                const row = element.closest('tr, [role="row"]');
                if (row) {
                    tableRowIndex = Array.from(table.querySelectorAll('tr, [role="row"]')).indexOf(row);
                    const cellSel = 'td, th, [role="cell"], [role="gridcell"], [role="columnheader"]';
                    const cell = element.closest(cellSel);
                    if (cell) {
                        const cells = Array.from(row.querySelectorAll(cellSel));
                        tableCellIndex = cells.indexOf(cell);
                        const headerRow = table.querySelector('thead tr, [role="row"]:first-child');
                        if (headerRow) {
                            const headerCells = Array.from(headerRow.querySelectorAll('th, [role="columnheader"], td'));
                            if (headerCells[tableCellIndex]) tableHeaders.push(text(headerCells[tableCellIndex]));
                        }
                        if (cells[0] && tableCellIndex > 0 && text(cells[0])) tableHeaders.push(text(cells[0]));
                    }
                }
                tableContext = `table row=${tableRowIndex} col=${tableCellIndex} headers="${tableHeaders.join(', ')}"`;
            }
        } catch (e) {}

        let frameworkHints = '';
        try {
            const attrs = Array.from(element.attributes).map(a => a.name);
            if (attrs.some(n => n.startsWith('data-react') || n.startsWith('__react'))) frameworkHints += 'react ';
            if (ngModel || attrs.some(n => n.startsWith('ng-') || n.startsWith('_ng') || n.startsWith('[') || n.startsWith('('))) frameworkHints += 'angular ';
            if (vModel || attrs.some(n => n.startsWith('v-') || n.startsWith(':') || n.startsWith('@'))) frameworkHints += 'vue ';
            if (className.includes('svelte-')) frameworkHints += 'svelte ';
        } catch (e) {}

        let componentLibrary = '';
        const cls = className.toLowerCase();
        if (cls.includes('mui') || cls.includes('material')) componentLibrary += 'material-ui ';
        if (cls.includes('ant-')) componentLibrary += 'ant-design ';
        if (cls.includes('btn') || cls.includes('form-control') || cls.includes('bootstrap')) componentLibrary += 'bootstrap ';
        if (cls.includes('oxd-')) componentLibrary += 'oxd-library ';
        if (cls.includes('el-')) componentLibrary += 'element-ui ';
        if (cls.includes('v-')) componentLibrary += 'vuetify ';

        let inShadowDOM = false;
        let shadowRootHost = '';
        try {
            const root = element.getRootNode();
            if (root && root !== document) {
                inShadowDOM = true;
                if (root.host) {
                    const host = root.host;
                    const hostCls = typeof host.className === 'string' && host.className ? '.' + host.className.split(' ')[0] : '';
                    shadowRootHost = host.tagName.toLowerCase() + (host.id ? '#' + host.id : '') + hostCls;
                }
            }
        } catch (e) {}

        let inIframe = false;
        try { inIframe = window.self !== window.top; } catch (e) { inIframe = true; }

        let hasLoadingIndicator = false;
        try {
            const patterns = ['loading', 'spinner', 'skeleton', 'placeholder', 'shimmer'];
            const nearby = parent ? Array.from(parent.querySelectorAll('*')).slice(0, 20) : [];
            hasLoadingIndicator = nearby.some(el => {
                const c = (typeof el.className === 'string' ? el.className : '').toLowerCase();
                return patterns.some(p => c.includes(p));
            });
        } catch (e) {}

        const style = window.getComputedStyle(element);
        const isVisible = style.display !== 'none' && style.visibility !== 'hidden' &&
                          style.opacity !== '0' && rect.width > 0 && rect.height > 0;

        return {
            index, tagName, type, id, name, placeholder, testId,
            innerText: innerText.substring(0, 200),
            labelText: labelText.substring(0, 150),
            surroundingText: surroundingText.trim().substring(0, 300),
            semanticContext: semanticContext.substring(0, 200),
            nearbyHeadings: nearbyHeadings.trim().substring(0, 200),
            tableContext: tableContext.substring(0, 200),
            tableRowIndex, tableCellIndex,
            tableHeaders: tableHeaders.join(', ').substring(0, 150),
            frameworkHints: frameworkHints.trim(),
            componentLibrary: componentLibrary.trim(),
            inShadowDOM, shadowRootHost: shadowRootHost.substring(0, 100),
            inIframe, hasLoadingIndicator, isVisible
        };
    }

    Array.from(document.querySelectorAll(selectors.join(', '))).forEach((el, index) => {
        try {
            const ctx = deepContext(el, index);
            if (ctx.isVisible) results.push(ctx);
        } catch (e) {}
    });
    return results;
}
"""

# Failure type -> whether a strategy can plausibly fix it
HEALABLE_FAILURES = {
    FailureType.ELEMENT_NOT_FOUND,
    FailureType.ELEMENT_NOT_VISIBLE,
    FailureType.ELEMENT_NOT_INTERACTIVE,
    FailureType.MODAL_BLOCKING,
    FailureType.TIMEOUT,
}

SUGGESTED_STRATEGIES: Dict[FailureType, List[str]] = {
    FailureType.ELEMENT_NOT_FOUND: [
        "alternative_locators", "text_based_search", "visual_similarity", "dom_traversal",
    ],
    FailureType.ELEMENT_NOT_VISIBLE: ["scroll_into_view", "wait_for_visible", "check_display_none"],
    FailureType.ELEMENT_NOT_INTERACTIVE: ["remove_overlays", "wait_for_enabled", "force_click"],
    FailureType.MODAL_BLOCKING: ["close_modal", "dismiss_overlay", "handle_popup"],
    FailureType.TIMEOUT: ["increase_timeout", "wait_for_network_idle", "retry_with_polling"],
}


class IntelligentAI:
    """
    Orchestrator for one worker.

    Features:
    - identify_element(): NLP -> DOM analysis -> deep candidate discovery
      (with five fallback searches) -> multi-factor ranking
    - analyze_failure(): failure classification, healability, suggested
      strategies, root cause and diagnostic insights
    - Bounded operation log with success/confidence statistics
    - Successful identifications recorded in the ledger and learned from
    """

    STABILIZE_WAIT_MS = 500
    MAX_TEXT_FILTER_LENGTH = 100
    MAX_ALTERNATIVES = 3

    def __init__(
        self,
        config: AIConfig,
        nlp_engine: NaturalLanguageEngine,
        dom_intelligence: DOMIntelligence,
        feature_extractor: FeatureExtractor,
        history: HistoryLedger,
        pattern_learner: Optional[PatternLearner] = None,
        diagnostics: Optional[PageDiagnostics] = None,
        ranker: Optional[CandidateRanker] = None
    ):
        self.config = config
        self.nlp_engine = nlp_engine
        self.dom_intelligence = dom_intelligence
        self.feature_extractor = feature_extractor
        self.history = history
        self.pattern_learner = pattern_learner
        self.diagnostics = diagnostics
        self.ranker = ranker or CandidateRanker(config.ranking)

        self._operations: Deque[AIOperation] = deque(maxlen=config.history_max_entries)
        self._operation_counter = 0

    # ==================== Configuration ====================

    def configure(self, **overrides) -> AIConfig:
        """Replace config fields; the ranker follows the new weights"""
        self.config = self.config.update(**overrides)
        self.ranker.weights = self.config.ranking
        if self._operations.maxlen != self.config.history_max_entries:
            self._operations = deque(self._operations, maxlen=self.config.history_max_entries)
        logger.debug(f"AI configuration updated: {sorted(overrides)}")
        return self.config

    def get_config(self) -> AIConfig:
        return self.config

    # ==================== Identification ====================

    async def identify_element(
        self,
        description: str,
        page,
        context: Optional[HistoryContext] = None
    ) -> Optional[ElementIdentificationResult]:
        """
        Find the element a description refers to.

        Args:
            description: Free-text description, e.g. "click the 'Login' button"
            page: Playwright page
            context: Test/step context stored with the ledger row

        Returns:
            Best match with up to three alternatives, or None when AI is
            disabled, nothing matched, or identification failed
        """
        if not self.config.enabled:
            logger.debug("AI disabled, skipping identification")
            return None

        start = time.time()
        operation_id = self._next_operation_id()

        try:
            nlp = self.nlp_engine.process_description(description)
            logger.debug(
                f"NLP result - intent: {nlp.intent.value}, type: {nlp.element_type}, "
                f"confidence: {nlp.confidence:.2f}"
            )

            analysis = await self.dom_intelligence.analyze(page)
            logger.debug(
                f"DOM analysis - {analysis.metrics.total_elements} elements, "
                f"{analysis.metrics.interactable_elements} interactable"
            )

            candidates = await self.find_candidates(page, nlp)
            logger.debug(f"Found {len(candidates)} candidate elements")

            if not candidates:
                self._record_operation(AIOperation(
                    id=operation_id,
                    type=AIOperationType.IDENTIFICATION,
                    timestamp=datetime.now(),
                    duration_ms=self._elapsed_ms(start),
                    success=False,
                    details={"description": description, "reason": "No candidates found"},
                ))
                return None

            ranked = self.ranker.rank(candidates, nlp)
            best = ranked[0]

            selector = best.selector
            locator = page.locator(selector)
            inner_text = best.features.context.inner_text.strip()
            if self._is_ambiguous(selector) and 0 < len(inner_text) < self.MAX_TEXT_FILTER_LENGTH:
                locator = locator.filter(has_text=self._exact_text(inner_text))
                selector = f'{selector}:text-is("{_css_string(inner_text)}")'
                logger.debug(f"Narrowed ambiguous selector with text filter: '{inner_text}'")

            result = ElementIdentificationResult(
                locator=locator,
                confidence=best.confidence,
                method=self.determine_method(nlp),
                features=best.features,
                selector=selector,
                alternatives=[
                    Alternative(locator=page.locator(c.selector), confidence=c.confidence, selector=c.selector)
                    for c in ranked[1:1 + self.MAX_ALTERNATIVES]
                ],
                duration_ms=self._elapsed_ms(start),
            )

            self._record_operation(AIOperation(
                id=operation_id,
                type=AIOperationType.IDENTIFICATION,
                timestamp=datetime.now(),
                duration_ms=result.duration_ms,
                success=True,
                confidence=result.confidence,
                details={
                    "description": description,
                    "method": result.method.value,
                    "candidates_count": len(candidates),
                    "nlp_confidence": nlp.confidence,
                },
            ))
            self._learn(description, result, context)

            logger.debug(
                f"Element identified with confidence {result.confidence:.2f} "
                f"using {result.method.value} method"
            )
            return result

        except Exception as e:
            logger.debug(f"Identification failed for '{description}': {e}")
            self._record_operation(AIOperation(
                id=operation_id,
                type=AIOperationType.IDENTIFICATION,
                timestamp=datetime.now(),
                duration_ms=self._elapsed_ms(start),
                success=False,
                details={"description": description, "error": str(e)},
            ))
            return None

    def _learn(
        self,
        description: str,
        result: ElementIdentificationResult,
        context: Optional[HistoryContext]
    ):
        self.history.record(
            operation=AIOperationType.IDENTIFICATION,
            element_description=description,
            success=True,
            confidence=result.confidence,
            duration_ms=result.duration_ms,
            healed_locator=result.selector,
            context=context,
        )
        if self.pattern_learner is not None and self.config.learning_enabled:
            self.pattern_learner.learn_from_identification(
                result.features, result.selector, True, result.confidence
            )

    @staticmethod
    def determine_method(nlp: NLPResult) -> IdentificationMethod:
        if nlp.text_content:
            return IdentificationMethod.TEXT
        if nlp.visual_cues.colors or nlp.visual_cues.sizes:
            return IdentificationMethod.VISUAL
        if nlp.expected_roles:
            return IdentificationMethod.STRUCTURAL
        if len(nlp.keywords) > 2:
            return IdentificationMethod.NLP
        return IdentificationMethod.PATTERN

    @staticmethod
    def _exact_text(text: str) -> "re.Pattern":
        return re.compile(rf"^\s*{re.escape(text)}\s*$")

    @staticmethod
    def _is_ambiguous(selector: str) -> bool:
        """Class-only or bare-tag selectors that can match many elements"""
        return selector.startswith(".") or bool(BARE_TAG_SELECTOR.fullmatch(selector))

    # ==================== Candidate Discovery ====================

    async def find_candidates(self, page, nlp: NLPResult) -> List[Candidate]:
        """Deep contextual search first; the fallback searches run only if it finds nothing"""
        candidates = await self._deep_search(page, nlp)
        if candidates:
            logger.debug(f"Using {len(candidates)} candidates from deep search, skipping fallbacks")
            return candidates

        logger.debug("Deep search found no candidates, trying fallback searches")
        return self.deduplicate(await self._fallback_search(page, nlp))

    async def _deep_search(self, page, nlp: NLPResult) -> List[Candidate]:
        candidates: List[Candidate] = []
        try:
            await page.wait_for_timeout(self.STABILIZE_WAIT_MS)
            selectors = INTENT_SELECTORS.get(nlp.intent, FALLBACK_SELECTORS)
            found = await page.evaluate(DISCOVER_CANDIDATES_JS, selectors) or []
            logger.debug(f"Deep search: {len(found)} visible elements")
        except Exception as e:
            logger.debug(f"Deep search failed: {e}")
            return candidates

        for data in found:
            try:
                locator = self._resolve_locator(page, data)
                if locator is None:
                    logger.debug(
                        f"Skipping <{data.get('tagName')}> #{data.get('index')}: no identifying attributes"
                    )
                    continue

                handle = await locator.first.element_handle()
                if not handle:
                    logger.debug(f"No handle for <{data.get('tagName')}> #{data.get('index')}")
                    continue

                features = await self.feature_extractor.extract_features(handle, page)
                selector = await generate_selector(handle)
                features = features.with_context(
                    label_text=data.get("labelText") or features.context.label_text,
                    has_label=bool(data.get("labelText")),
                    surrounding_text=data.get("surroundingText", ""),
                    semantic_context=data.get("semanticContext", ""),
                    nearby_headings=data.get("nearbyHeadings", ""),
                    test_id=data.get("testId", ""),
                    inner_text=data.get("innerText", ""),
                    table_context=data.get("tableContext", ""),
                    table_row_index=data.get("tableRowIndex", -1),
                    table_cell_index=data.get("tableCellIndex", -1),
                    table_headers=data.get("tableHeaders", ""),
                    framework_hints=data.get("frameworkHints", ""),
                    component_library=data.get("componentLibrary", ""),
                    in_shadow_dom=bool(data.get("inShadowDOM")),
                    shadow_root_host=data.get("shadowRootHost", ""),
                    in_iframe=bool(data.get("inIframe")),
                    has_loading_indicator=bool(data.get("hasLoadingIndicator")),
                )
                candidates.append(Candidate(element=handle, selector=selector, features=features))
            except Exception as e:
                logger.debug(f"Failed to extract features for element {data.get('index')}: {e}")

        return candidates

    def _resolve_locator(self, page, data: Dict[str, Any]):
        """id > testid > name > placeholder > exact inner text; None when none apply"""
        tag = data.get("tagName") or "*"
        inner_text = (data.get("innerText") or "").strip()

        if data.get("id"):
            return page.locator(f'{tag}[id="{_css_string(data["id"])}"]')
        if data.get("testId"):
            return page.locator(f'{tag}[data-testid="{_css_string(data["testId"])}"]')
        if data.get("name"):
            return page.locator(f'{tag}[name="{_css_string(data["name"])}"]')
        if data.get("placeholder"):
            return page.locator(f'{tag}[placeholder="{_css_string(data["placeholder"])}"]')
        if 0 < len(inner_text) < self.MAX_TEXT_FILTER_LENGTH:
            return page.locator(tag).filter(has_text=self._exact_text(inner_text))
        return None

    async def _fallback_search(self, page, nlp: NLPResult) -> List[Candidate]:
        selectors: List[str] = []

        if nlp.text_content:
            selectors.append(f'text="{nlp.text_content}"')
        for role in nlp.expected_roles or []:
            selectors.append(f'[role="{role}"]')
        tag = TAG_SELECTORS.get(nlp.element_type or "")
        if tag:
            selectors.append(tag)
        if nlp.element_type in ("input", "textarea"):
            for keyword in nlp.keywords[:3]:
                for attribute in ("placeholder", "name", "aria-label", "id"):
                    selectors.append(
                        f'input[{attribute}*="{keyword}" i], textarea[{attribute}*="{keyword}" i]'
                    )
        for keyword in nlp.keywords[:3]:
            selectors.append(f"text=/.*{re.escape(keyword)}.*/i")

        candidates: List[Candidate] = []
        for selector in selectors:
            try:
                handles = await page.locator(selector).element_handles()
                for handle in handles:
                    features = await self.feature_extractor.extract_features(handle, page)
                    candidates.append(Candidate(
                        element=handle,
                        selector=await generate_selector(handle),
                        features=features,
                    ))
            except Exception as e:
                logger.debug(f"Fallback search '{selector}' failed: {e}")
        return candidates

    @staticmethod
    def deduplicate(candidates: List[Candidate]) -> List[Candidate]:
        """Drop repeats of the same tag and text prefix"""
        seen = set()
        unique = []
        for candidate in candidates:
            key = (candidate.features.structural.tag_name, candidate.features.text.content[:50])
            if key not in seen:
                seen.add(key)
                unique.append(candidate)
        return unique

    # ==================== Failure Analysis ====================

    async def analyze_failure(
        self,
        error: BaseException,
        step: str,
        page=None,
        url: Optional[str] = None,
        diagnostics: Optional[PageDiagnosticData] = None
    ) -> FailureAnalysis:
        """
        Classify a step failure and decide whether it is worth healing.

        Args:
            error: The exception the step raised
            step: Step text
            page: Page the step ran against (used for the URL)
            url: Page URL, if already known
            diagnostics: Pre-collected diagnostics; collected from the
                attached PageDiagnostics when omitted

        Returns:
            FailureAnalysis; a not-healable Unknown analysis if anything goes wrong
        """
        start = time.time()
        operation_id = self._next_operation_id()
        if url is None:
            url = getattr(page, "url", "") or ""

        try:
            if diagnostics is None and self.diagnostics is not None:
                diagnostics = self.diagnostics.collect(url)

            failure_type = self.classify_failure(error, diagnostics)
            suggested = list(SUGGESTED_STRATEGIES.get(failure_type, []))
            confidence = self._analysis_confidence(failure_type, diagnostics, len(suggested))

            analysis = FailureAnalysis(
                failure_type=failure_type,
                healable=failure_type in HEALABLE_FAILURES,
                confidence=confidence,
                suggested_strategies=suggested,
                root_cause=self.root_cause(failure_type, diagnostics, error),
                context=FailureContext(error=error, step=step, url=url, diagnostics=diagnostics),
                diagnostic_insights=self.diagnostic_insights(diagnostics),
            )

            self._record_operation(AIOperation(
                id=operation_id,
                type=AIOperationType.ANALYSIS,
                timestamp=datetime.now(),
                duration_ms=self._elapsed_ms(start),
                success=True,
                confidence=confidence,
                details={
                    "failure_type": failure_type.value,
                    "healable": analysis.healable,
                    "strategies_count": len(suggested),
                },
            ))
            logger.debug(
                f"Failure analysis - type: {failure_type.value}, healable: {analysis.healable}, "
                f"confidence: {confidence:.2f}"
            )
            return analysis

        except Exception as e:
            logger.debug(f"Failure analysis error: {e}")
            return FailureAnalysis(
                failure_type=FailureType.UNKNOWN,
                healable=False,
                confidence=0.0,
                suggested_strategies=[],
                root_cause=f"Failed to analyze: {e}",
                context=FailureContext(error=error, step=step, url=url),
                diagnostic_insights=[],
            )

    @staticmethod
    def classify_failure(error: BaseException, diagnostics: Optional[PageDiagnosticData]) -> FailureType:
        message = str(error).lower()

        if "timeout" in message or "exceeded" in message:
            return FailureType.TIMEOUT
        if "not found" in message or "no element" in message:
            return FailureType.ELEMENT_NOT_FOUND
        if "not visible" in message or "hidden" in message:
            return FailureType.ELEMENT_NOT_VISIBLE
        if "not clickable" in message or "not interactable" in message:
            return FailureType.ELEMENT_NOT_INTERACTIVE

        if diagnostics is not None:
            page_errors = [str(e.get("message", "")) for e in diagnostics.page_errors]
            if any("network" in m or "fetch" in m for m in page_errors):
                return FailureType.NETWORK_ERROR
            if any("javascript" in m or "script error" in m for m in page_errors):
                return FailureType.JAVASCRIPT_ERROR

        return FailureType.UNKNOWN

    @staticmethod
    def root_cause(
        failure_type: FailureType,
        diagnostics: Optional[PageDiagnosticData],
        error: BaseException
    ) -> str:
        if diagnostics is None:
            return f"{failure_type.value}: {error}"

        stats = diagnostics.stats
        if failure_type == FailureType.ELEMENT_NOT_FOUND:
            errors = f"{stats.total_errors} page errors detected." if stats.total_errors else "No page errors."
            return f"Element not found. {errors}"
        if failure_type == FailureType.ELEMENT_NOT_VISIBLE:
            return "Element not visible. May need to scroll or wait for element."
        if failure_type == FailureType.ELEMENT_NOT_INTERACTIVE:
            return "Element not interactable. May be blocked by overlay or modal."
        if failure_type == FailureType.MODAL_BLOCKING:
            return "Modal blocking interaction."
        if failure_type == FailureType.TIMEOUT:
            return (
                f"Operation timed out. {stats.failed_requests} failed requests. "
                f"{stats.total_errors} console errors."
            )
        if failure_type == FailureType.NETWORK_ERROR:
            return f"Network error detected. {stats.failed_requests} failed requests."
        if failure_type == FailureType.JAVASCRIPT_ERROR:
            return f"JavaScript error detected. {stats.total_errors} page errors."
        return f"Unknown failure: {error}"

    @staticmethod
    def diagnostic_insights(diagnostics: Optional[PageDiagnosticData]) -> List[str]:
        if diagnostics is None:
            return []
        stats = diagnostics.stats
        insights = []
        if stats.total_errors > 0:
            insights.append(f"{stats.total_errors} page errors detected")
        if stats.error_logs > 0:
            insights.append(f"{stats.error_logs} console errors detected")
        if stats.warning_logs > 0:
            insights.append(f"{stats.warning_logs} console warnings")
        if stats.failed_requests > 0:
            insights.append(f"{stats.failed_requests} failed network requests")
        return insights

    @staticmethod
    def _analysis_confidence(
        failure_type: FailureType,
        diagnostics: Optional[PageDiagnosticData],
        strategies_count: int
    ) -> float:
        confidence = 0.5
        if failure_type != FailureType.UNKNOWN:
            confidence += 0.2
        if diagnostics is not None:
            confidence += 0.1
            if diagnostics.stats.total_errors == 0:
                confidence += 0.1
        if strategies_count > 0:
            confidence += 0.1 * min(strategies_count / 3, 1)
        return min(confidence, 1.0)

    # ==================== Operations ====================

    def _next_operation_id(self) -> str:
        self._operation_counter += 1
        return f"ai_op_{self._operation_counter}_{int(time.time() * 1000)}"

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.time() - start) * 1000)

    def _record_operation(self, operation: AIOperation):
        self._operations.append(operation)

    def get_operations(self) -> List[AIOperation]:
        return list(self._operations)

    def get_operations_by_type(self, operation_type: AIOperationType) -> List[AIOperation]:
        return [op for op in self._operations if op.type == operation_type]

    def get_success_rate(self) -> float:
        if not self._operations:
            return 0.0
        return sum(1 for op in self._operations if op.success) / len(self._operations)

    def get_average_confidence(self) -> float:
        scored = [op.confidence for op in self._operations if op.confidence is not None]
        return sum(scored) / len(scored) if scored else 0.0

    def clear_operations(self):
        self._operations.clear()
        self._operation_counter = 0
        logger.debug("Operation history cleared")

    def clear_all_caches(self):
        self.nlp_engine.clear_cache()
        self.feature_extractor.clear_cache()
        self.dom_intelligence.clear_cache()
        logger.debug("All AI caches cleared")

    def get_statistics(self) -> Dict[str, Any]:
        by_type = Counter(op.type.value for op in self._operations)
        return {
            "total_operations": len(self._operations),
            "success_rate": self.get_success_rate(),
            "average_confidence": self.get_average_confidence(),
            "operations_by_type": {t.value: by_type.get(t.value, 0) for t in AIOperationType},
        }
