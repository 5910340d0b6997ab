"""
DOM Intelligence

Page-wide structural analysis: element hierarchy, forms, tables,
navigation, metrics and the ARIA/HTML5 semantic map. Results are cached
per URL, but only once the page shows interactable elements, so a page
that is still loading is never cached.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..ttl_cache import TTLMap

logger = logging.getLogger(__name__)


# ==================== Result Types ====================

@dataclass
class ElementInfo:
    tag_name: str
    id: str = ""
    class_name: str = ""
    text: str = ""
    visible: bool = True
    interactive: bool = False
    depth: int = 0
    path: List[str] = field(default_factory=list)
    children: List["ElementInfo"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementInfo":
        return cls(
            tag_name=data.get("tagName", ""),
            id=data.get("id", ""),
            class_name=data.get("className", "") if isinstance(data.get("className"), str) else "",
            text=data.get("text", ""),
            visible=data.get("visible", True),
            interactive=data.get("interactive", False),
            depth=data.get("depth", 0),
            path=data.get("path", []),
            children=[cls.from_dict(c) for c in data.get("children", [])],
        )

    def count(self) -> int:
        return 1 + sum(child.count() for child in self.children)


@dataclass
class FormField:
    name: str
    type: str
    required: bool = False
    label: str = ""


@dataclass
class FormInfo:
    id: str
    name: str
    action: str = ""
    method: str = ""
    fields: List[FormField] = field(default_factory=list)


@dataclass
class TableInfo:
    id: str
    rows: int
    columns: int
    headers: List[str] = field(default_factory=list)
    has_caption: bool = False


@dataclass
class NavLink:
    text: str
    href: str
    active: bool = False


@dataclass
class NavigationInfo:
    id: str
    role: str
    links: List[NavLink] = field(default_factory=list)

    @property
    def active_link(self) -> Optional[NavLink]:
        return next((link for link in self.links if link.active), None)


@dataclass
class DOMMetrics:
    total_elements: int = 0
    visible_elements: int = 0
    interactable_elements: int = 0
    forms: int = 0
    tables: int = 0
    images: int = 0
    links: int = 0
    buttons: int = 0
    inputs: int = 0
    max_depth: int = 0
    average_depth: float = 0.0


@dataclass
class Landmark:
    role: str
    label: str
    selector: str


@dataclass
class Heading:
    level: int
    text: str
    selector: str


@dataclass
class SemanticMap:
    landmarks: List[Landmark] = field(default_factory=list)
    headings: List[Heading] = field(default_factory=list)
    regions: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class DOMAnalysisResult:
    url: str
    hierarchy: Optional[ElementInfo]
    forms: List[FormInfo]
    tables: List[TableInfo]
    navigation: List[NavigationInfo]
    metrics: DOMMetrics
    semantic_map: SemanticMap
    timestamp: float = field(default_factory=time.time)


# ==================== In-page scripts ====================

HIERARCHY_JS = """
() => {
    function walk(el, depth, path) {
        const style = window.getComputedStyle(el);
        const role = el.getAttribute('role');
        const nextPath = path.concat([el.tagName.toLowerCase()]);
        const children = [];
        if (depth < %(max_depth)d) {
            for (const child of Array.from(el.children)) children.push(walk(child, depth + 1, nextPath));
        }
        return {
            tagName: el.tagName.toLowerCase(),
            id: el.id || '',
            className: typeof el.className === 'string' ? el.className : '',
            text: (el.textContent || '').slice(0, 100),
            visible: style.display !== 'none' && style.visibility !== 'hidden' && parseFloat(style.opacity) > 0,
            interactive: ['A', 'BUTTON', 'INPUT', 'SELECT', 'TEXTAREA'].includes(el.tagName) ||
                el.hasAttribute('onclick') || ['button', 'link'].includes(role),
            depth: depth,
            path: nextPath,
            children: children
        };
    }
    return document.body ? walk(document.body, 0, []) : null;
}
"""

FORMS_JS = """
() => Array.from(document.querySelectorAll('form')).map(form => ({
    id: form.id || '',
    name: form.getAttribute('name') || '',
    action: form.action || '',
    method: form.method || '',
    fields: Array.from(form.querySelectorAll('input, select, textarea')).map(input => {
        const label = input.id ? form.querySelector(`label[for="${input.id}"]`) : null;
        return {
            name: input.getAttribute('name') || '',
            type: input.getAttribute('type') || input.tagName.toLowerCase(),
            required: input.hasAttribute('required'),
            label: label ? (label.textContent || '') : ''
        };
    })
}))
"""

TABLES_JS = """
() => Array.from(document.querySelectorAll('table')).map(table => {
    const firstRow = table.querySelector('tr');
    return {
        id: table.id || '',
        rows: table.querySelectorAll('tr').length,
        columns: firstRow ? firstRow.querySelectorAll('td, th').length : 0,
        headers: Array.from(table.querySelectorAll('th')).map(th => th.textContent || ''),
        hasCaption: !!table.querySelector('caption')
    };
})
"""

NAVIGATION_JS = """
() => Array.from(document.querySelectorAll('nav, [role="navigation"]')).map(nav => ({
    id: nav.id || '',
    role: nav.getAttribute('role') || 'navigation',
    links: Array.from(nav.querySelectorAll('a')).map(a => ({
        text: a.textContent || '',
        href: a.href || '',
        active: a.classList.contains('active') || a.getAttribute('aria-current') === 'page'
    }))
}))
"""

METRICS_JS = """
() => {
    const all = document.querySelectorAll('*');
    let visible = 0, interactable = 0, maxDepth = 0, totalDepth = 0;
    all.forEach(el => {
        const style = window.getComputedStyle(el);
        const isVisible = style.display !== 'none' && style.visibility !== 'hidden' && parseFloat(style.opacity) > 0;
        if (isVisible) visible++;
        const isInteractive = ['A', 'BUTTON', 'INPUT', 'SELECT', 'TEXTAREA'].includes(el.tagName) ||
            el.hasAttribute('onclick');
        if (isInteractive && isVisible) {
            const type = (el.getAttribute('type') || '').toLowerCase();
            const name = (el.getAttribute('name') || '').toLowerCase();
            const systemField = type === 'hidden' || name.includes('_token') ||
                name.includes('csrf') || name.includes('__');
            if (!systemField) interactable++;
        }
        let depth = 0;
        let node = el;
        while (node.parentElement) { depth++; node = node.parentElement; }
        maxDepth = Math.max(maxDepth, depth);
        totalDepth += depth;
    });
    return {
        totalElements: all.length,
        visibleElements: visible,
        interactableElements: interactable,
        forms: document.querySelectorAll('form').length,
        tables: document.querySelectorAll('table').length,
        images: document.querySelectorAll('img').length,
        links: document.querySelectorAll('a').length,
        buttons: document.querySelectorAll('button').length,
        inputs: document.querySelectorAll('input').length,
        maxDepth: maxDepth,
        averageDepth: all.length > 0 ? totalDepth / all.length : 0
    };
}
"""

SEMANTIC_MAP_JS = """
() => {
    const landmarks = [];
    ['banner', 'navigation', 'main', 'complementary', 'contentinfo', 'search', 'region'].forEach(role => {
        document.querySelectorAll(`[role="${role}"]`).forEach(el => landmarks.push({
            role: role,
            label: el.getAttribute('aria-label') || '',
            selector: `[role="${role}"]` + (el.id ? `#${el.id}` : '')
        }));
    });
    const html5 = { header: 'banner', nav: 'navigation', main: 'main', aside: 'complementary', footer: 'contentinfo' };
    document.querySelectorAll('header, nav, main, aside, footer').forEach(el => {
        const tag = el.tagName.toLowerCase();
        landmarks.push({
            role: html5[tag],
            label: el.getAttribute('aria-label') || '',
            selector: tag + (el.id ? `#${el.id}` : '')
        });
    });
    const headings = [];
    for (let level = 1; level <= 6; level++) {
        document.querySelectorAll(`h${level}`).forEach(h => headings.push({
            level: level,
            text: h.textContent || '',
            selector: `h${level}` + (h.id ? `#${h.id}` : '')
        }));
    }
    const regions = Array.from(document.querySelectorAll('[role]')).map(el => ({
        role: el.getAttribute('role'),
        label: el.getAttribute('aria-label') || ''
    }));
    return { landmarks: landmarks, headings: headings, regions: regions };
}
"""


class DOMIntelligence:
    """
    Page structure analyzer.

    Features:
    - Depth-limited element hierarchy
    - Forms with label pairing, tables, navigation with active links
    - Page metrics excluding hidden/system inputs from interactable counts
    - Landmark/heading semantic map
    - Per-URL cache (5 minutes), skipped while nothing is interactable
    """

    MAX_HIERARCHY_DEPTH = 5
    DOM_CONTENT_TIMEOUT_MS = 5000
    NETWORK_IDLE_TIMEOUT_MS = 3000

    def __init__(self, cache_ttl_seconds: float = 300.0):
        self._cache: TTLMap[str, DOMAnalysisResult] = TTLMap(cache_ttl_seconds)

    async def analyze(self, page) -> DOMAnalysisResult:
        """
        Analyze the current page.

        Args:
            page: Playwright page

        Returns:
            DOMAnalysisResult (cached per URL when the page is interactive)
        """
        url = page.url
        cached = self._cache.get(url)
        if cached is not None:
            logger.debug(f"DOM analysis cache hit for {url}")
            return cached

        await self._wait_for_stable(page)

        hierarchy, forms, tables, navigation, metrics, semantic_map = await asyncio.gather(
            self._run(page, HIERARCHY_JS % {"max_depth": self.MAX_HIERARCHY_DEPTH}, None),
            self._run(page, FORMS_JS, []),
            self._run(page, TABLES_JS, []),
            self._run(page, NAVIGATION_JS, []),
            self._run(page, METRICS_JS, {}),
            self._run(page, SEMANTIC_MAP_JS, {}),
        )

        result = DOMAnalysisResult(
            url=url,
            hierarchy=ElementInfo.from_dict(hierarchy) if isinstance(hierarchy, dict) and hierarchy else None,
            forms=[self._form(f) for f in forms or []],
            tables=[self._table(t) for t in tables or []],
            navigation=[self._navigation(n) for n in navigation or []],
            metrics=self._metrics(metrics or {}),
            semantic_map=self._semantic_map(semantic_map or {}),
        )

        if result.metrics.interactable_elements > 0:
            self._cache.set(url, result)
            logger.debug(f"Cached DOM analysis for {url} ({result.metrics.interactable_elements} interactable)")
        else:
            logger.debug(f"Not caching DOM analysis for {url}: no interactable elements yet")

        return result

    async def _wait_for_stable(self, page):
        for state, timeout in (
            ("domcontentloaded", self.DOM_CONTENT_TIMEOUT_MS),
            ("networkidle", self.NETWORK_IDLE_TIMEOUT_MS),
        ):
            try:
                await page.wait_for_load_state(state, timeout=timeout)
            except Exception as e:
                logger.debug(f"Load state '{state}' not reached, continuing: {e}")

    async def _run(self, page, script: str, fallback: Any) -> Any:
        try:
            return await page.evaluate(script)
        except Exception as e:
            logger.debug(f"DOM sub-analysis failed: {e}")
            return fallback

    # ==================== Conversion ====================

    @staticmethod
    def _form(data: Dict[str, Any]) -> FormInfo:
        return FormInfo(
            id=data.get("id", ""),
            name=data.get("name", ""),
            action=data.get("action", ""),
            method=data.get("method", ""),
            fields=[
                FormField(
                    name=f.get("name", ""),
                    type=f.get("type", ""),
                    required=f.get("required", False),
                    label=f.get("label", ""),
                )
                for f in data.get("fields", [])
            ],
        )

    @staticmethod
    def _table(data: Dict[str, Any]) -> TableInfo:
        return TableInfo(
            id=data.get("id", ""),
            rows=data.get("rows", 0),
            columns=data.get("columns", 0),
            headers=data.get("headers", []),
            has_caption=data.get("hasCaption", False),
        )

    @staticmethod
    def _navigation(data: Dict[str, Any]) -> NavigationInfo:
        return NavigationInfo(
            id=data.get("id", ""),
            role=data.get("role", "navigation"),
            links=[
                NavLink(text=l.get("text", ""), href=l.get("href", ""), active=l.get("active", False))
                for l in data.get("links", [])
            ],
        )

    @staticmethod
    def _metrics(data: Dict[str, Any]) -> DOMMetrics:
        return DOMMetrics(
            total_elements=data.get("totalElements", 0),
            visible_elements=data.get("visibleElements", 0),
            interactable_elements=data.get("interactableElements", 0),
            forms=data.get("forms", 0),
            tables=data.get("tables", 0),
            images=data.get("images", 0),
            links=data.get("links", 0),
            buttons=data.get("buttons", 0),
            inputs=data.get("inputs", 0),
            max_depth=data.get("maxDepth", 0),
            average_depth=data.get("averageDepth", 0.0),
        )

    @staticmethod
    def _semantic_map(data: Dict[str, Any]) -> SemanticMap:
        return SemanticMap(
            landmarks=[
                Landmark(role=l.get("role", ""), label=l.get("label", ""), selector=l.get("selector", ""))
                for l in data.get("landmarks", [])
            ],
            headings=[
                Heading(level=h.get("level", 0), text=h.get("text", ""), selector=h.get("selector", ""))
                for h in data.get("headings", [])
            ],
            regions=data.get("regions", []),
        )

    # ==================== Queries ====================

    async def find_by_semantics(
        self,
        page,
        landmark: Optional[str] = None,
        heading: Optional[str] = None
    ) -> Optional[str]:
        """Selector of the first landmark (by role or label) or heading (by text) that matches"""
        analysis = await self.analyze(page)

        if landmark:
            for item in analysis.semantic_map.landmarks:
                if item.role == landmark or landmark in item.label:
                    return item.selector

        if heading:
            wanted = heading.lower()
            for item in analysis.semantic_map.headings:
                if wanted in item.text.lower():
                    return item.selector

        return None

    async def get_form_info(self, page, form_id: Optional[str] = None) -> Optional[FormInfo]:
        """Form by id or name; the first form when no id is given"""
        analysis = await self.analyze(page)
        if form_id:
            return next((f for f in analysis.forms if f.id == form_id or f.name == form_id), None)
        return analysis.forms[0] if analysis.forms else None

    def clear_cache(self):
        self._cache.clear()
        logger.debug("DOM analysis cache cleared")
