"""
Feature Extraction

Captures an ElementFeatures record for a live element handle. The engine
only depends on the FeatureExtractor interface; PlaywrightFeatureExtractor
is the in-page implementation used by default.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from playwright.async_api import ElementHandle, Page

from ..models import ElementFeatures

logger = logging.getLogger(__name__)


# Single in-page pass returning the five feature groups in camelCase
EXTRACT_FEATURES_JS = """
(el) => {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const parent = el.parentElement;

    const opacity = parseFloat(style.opacity);
    const zIndex = parseInt(style.zIndex) || 0;
    const inViewport = rect.top >= 0 && rect.left >= 0 &&
        rect.bottom <= (window.innerHeight || document.documentElement.clientHeight) &&
        rect.right <= (window.innerWidth || document.documentElement.clientWidth);

    const attributes = {};
    for (const attr of el.attributes) attributes[attr.name] = attr.value;

    const path = [];
    let node = el;
    while (node && node.tagName) {
        path.unshift(node.tagName.toLowerCase());
        node = node.parentElement;
    }

    const siblings = parent ? Array.from(parent.children) : [];
    const interactiveTags = ['A', 'BUTTON', 'INPUT', 'SELECT', 'TEXTAREA'];
    const explicitRole = el.getAttribute('role');

    let role = explicitRole;
    if (!role) {
        const implicit = {
            A: 'link', BUTTON: 'button', SELECT: 'combobox', TEXTAREA: 'textbox',
            NAV: 'navigation', MAIN: 'main', HEADER: 'banner', FOOTER: 'contentinfo',
            ASIDE: 'complementary', TABLE: 'table', UL: 'list', OL: 'list', LI: 'listitem',
            H1: 'heading', H2: 'heading', H3: 'heading', H4: 'heading', H5: 'heading', H6: 'heading'
        };
        if (el.tagName === 'INPUT') {
            role = el.type === 'checkbox' ? 'checkbox' : el.type === 'radio' ? 'radio' : 'textbox';
        } else {
            role = implicit[el.tagName] || 'generic';
        }
    }

    const landmarkRoles = ['banner', 'navigation', 'main', 'complementary', 'contentinfo', 'search', 'region'];
    const isLandmark = landmarkRoles.includes(role);
    let headingLevel = 0;
    if (/^H[1-6]$/.test(el.tagName)) headingLevel = parseInt(el.tagName.charAt(1));
    else if (role === 'heading') headingLevel = parseInt(el.getAttribute('aria-level') || '0');
    const listItem = el.tagName === 'LI' || role === 'listitem';
    const tableCell = ['TD', 'TH'].includes(el.tagName) || role === 'cell' || role === 'gridcell';

    let semanticType = 'generic';
    if (isLandmark) semanticType = 'landmark';
    else if (headingLevel > 0) semanticType = 'heading';
    else if (listItem) semanticType = 'listitem';
    else if (tableCell) semanticType = 'tablecell';
    else if (['button', 'link'].includes(role)) semanticType = 'interactive';
    else if (['textbox', 'searchbox', 'combobox'].includes(role)) semanticType = 'input';

    let nearbyHeading = '';
    let prev = el.previousElementSibling;
    while (prev && !nearbyHeading) {
        if (/^H[1-6]$/.test(prev.tagName)) nearbyHeading = prev.textContent || '';
        prev = prev.previousElementSibling;
    }

    let labelText = '';
    if (el.id) {
        const label = document.querySelector(`label[for="${el.id}"]`);
        if (label) labelText = label.textContent || '';
    }
    if (!labelText && parent && parent.tagName === 'LABEL') labelText = parent.textContent || '';

    const form = el.closest('form');
    const formId = form ? (form.id || form.getAttribute('name') || '') : '';

    const tableHeaders = [];
    const table = el.closest('table');
    if (table) table.querySelectorAll('th').forEach(th => tableHeaders.push(th.textContent || ''));

    let nearestLandmark = null;
    let landmark = el;
    while (landmark) {
        const r = landmark.getAttribute && landmark.getAttribute('role');
        if (r && ['banner', 'navigation', 'main', 'complementary', 'contentinfo'].includes(r)) {
            nearestLandmark = { role: r, id: landmark.id || '' };
            break;
        }
        landmark = landmark.parentElement;
    }

    return {
        text: {
            content: el.textContent || '',
            visibleText: el.innerText || '',
            ariaLabel: el.getAttribute('aria-label') || null,
            title: el.getAttribute('title') || null,
            placeholder: el.getAttribute('placeholder') || null,
            value: el.value || null,
            alt: el.getAttribute('alt') || null
        },
        visual: {
            isVisible: style.display !== 'none' && style.visibility !== 'hidden' && opacity > 0,
            boundingBox: { x: rect.x, y: rect.y, width: rect.width, height: rect.height },
            zIndex: zIndex,
            opacity: opacity,
            backgroundColor: style.backgroundColor,
            color: style.color,
            fontSize: style.fontSize,
            fontWeight: style.fontWeight,
            hasHighContrast: style.backgroundColor !== style.color && style.backgroundColor !== 'transparent',
            hasAnimation: style.animationName !== 'none',
            display: style.display,
            position: style.position,
            cursor: style.cursor,
            inViewport: inViewport,
            visualWeight: rect.width * rect.height * opacity * (zIndex || 1)
        },
        structural: {
            tagName: el.tagName.toLowerCase(),
            attributes: attributes,
            classList: Array.from(el.classList),
            id: el.id || '',
            isInteractive: interactiveTags.includes(el.tagName) || el.hasAttribute('onclick') ||
                ['button', 'link'].includes(explicitRole),
            hasChildren: el.children.length > 0,
            childCount: el.children.length,
            depth: path.length,
            path: path,
            role: explicitRole,
            formElement: ['INPUT', 'SELECT', 'TEXTAREA', 'BUTTON'].includes(el.tagName),
            inputType: el.type || null,
            href: el.href || null,
            src: el.src || null,
            disabled: el.disabled || null,
            readOnly: el.readOnly || null,
            checked: el.checked || null,
            selected: el.selected || null,
            siblingCount: siblings.length,
            siblingIndex: siblings.indexOf(el)
        },
        semantic: {
            role: role,
            ariaLabel: el.getAttribute('aria-label'),
            ariaDescribedBy: el.getAttribute('aria-describedby'),
            ariaLabelledBy: el.getAttribute('aria-labelledby'),
            isLandmark: isLandmark,
            headingLevel: headingLevel,
            listItem: listItem,
            listContainer: ['UL', 'OL'].includes(el.tagName) || role === 'list',
            tableCell: tableCell,
            tableRow: el.tagName === 'TR' || role === 'row',
            semanticType: semanticType,
            isRequired: el.hasAttribute('required') || el.getAttribute('aria-required') === 'true' || null
        },
        context: {
            parentTag: parent ? parent.tagName.toLowerCase() : '',
            parentText: parent ? (parent.textContent || '').slice(0, 100) : '',
            siblingTexts: siblings.filter(s => s !== el)
                .map(s => (s.textContent || '').slice(0, 50))
                .filter(t => t.length > 0)
                .slice(0, 5),
            nearbyHeading: nearbyHeading,
            labelText: labelText,
            formId: formId,
            tableHeaders: tableHeaders,
            nearestLandmark: nearestLandmark,
            precedingText: el.previousSibling ? (el.previousSibling.textContent || '').slice(0, 50) : '',
            followingText: el.nextSibling ? (el.nextSibling.textContent || '').slice(0, 50) : ''
        },
        timestamp: Date.now() / 1000
    };
}
"""

# Most stable CSS selector for a handle: id, test id, name, placeholder, type, classes, tag
GENERATE_SELECTOR_JS = r"""
(el) => {
    const tag = el.tagName.toLowerCase();
    const quote = (v) => v.replace(/\\/g, '\\\\').replace(/"/g, '\\"');
    if (el.id) return `#${CSS.escape(el.id)}`;
    const testId = el.getAttribute('data-testid');
    if (testId) return `[data-testid="${quote(testId)}"]`;
    const name = el.getAttribute('name');
    if (name) return `${tag}[name="${quote(name)}"]`;
    const placeholder = el.getAttribute('placeholder');
    if (placeholder) return `${tag}[placeholder="${quote(placeholder)}"]`;
    const type = el.getAttribute('type');
    if (type && type !== 'text') return `${tag}[type="${quote(type)}"]`;
    const classes = (typeof el.className === 'string' ? el.className : '')
        .split(' ').filter(c => c.length > 0);
    if (classes.length > 0) return '.' + classes.map(c => CSS.escape(c)).join('.');
    return tag;
}
"""


async def generate_selector(element: Any) -> str:
    """Build a CSS selector for an element handle; '*' when the handle is unusable"""
    try:
        return await element.evaluate(GENERATE_SELECTOR_JS)
    except Exception as e:
        logger.debug(f"Selector generation failed: {e}")
        return "*"


class FeatureExtractor(ABC):
    """
    Interface for anything that can turn an element handle into ElementFeatures.

    Implementations may raise; callers treat a failure as "candidate skipped".
    """

    @abstractmethod
    async def extract_features(self, element: Any, page: Optional[Any] = None) -> ElementFeatures:
        ...

    def clear_cache(self):
        """Drop any cached captures (no-op by default)"""


class PlaywrightFeatureExtractor(FeatureExtractor):
    """Extracts all five feature groups in a single element.evaluate() call"""

    async def extract_features(self, element: ElementHandle, page: Optional[Page] = None) -> ElementFeatures:
        data = await element.evaluate(EXTRACT_FEATURES_JS)
        return ElementFeatures.from_dict(data or {})
