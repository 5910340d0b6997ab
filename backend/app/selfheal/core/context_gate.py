"""
Context Gate

Classifies step text as UI, API or database work and keeps a small
stack of execution contexts so AI healing only ever runs for UI steps.
"""

import logging
from enum import Enum
from typing import List, Tuple, Union

logger = logging.getLogger(__name__)


class ExecutionContext(str, Enum):
    """Kind of work the current step performs"""
    UI = "ui"
    API = "api"
    DATABASE = "database"
    UNKNOWN = "unknown"


# A marker is either a single substring or a tuple of substrings that must all appear
Marker = Union[str, Tuple[str, ...]]


class ContextGate:
    """
    Execution-context tracker for one worker.

    Features:
    - Ordered keyword detection (API, then database, then UI)
    - Push/pop context stack for nested steps
    - AI healing allowed only in UI context
    """

    API_MARKERS: List[Marker] = [
        "api", "request", "response", "endpoint",
        ("post", "body"), ("get", "header"),
        "rest", "graphql", "soap",
    ]

    DATABASE_MARKERS: List[Marker] = [
        "database", "query", "sql", "insert", "update",
        ("delete", "record"), ("select", "from"),
        "mongodb", "collection",
    ]

    UI_MARKERS: List[Marker] = [
        "click", "type", "enter", "select", "button", "input", "field", "page",
        "navigate", "see", "visible", "displayed", "checkbox", "radio", "dropdown",
        "scroll", "hover", "menu", "option", "item", "link", "tab", "header",
        "footer", "modal", "dialog", "popup", "form", "label", "text", "image",
        "icon", "dashboard", "login", "logout", "profile", "sidebar", "navigation",
    ]

    def __init__(self):
        self._current = ExecutionContext.UNKNOWN
        self._stack: List[ExecutionContext] = []

    # ==================== Stack ====================

    @property
    def current(self) -> ExecutionContext:
        return self._current

    def set_context(self, context: ExecutionContext) -> None:
        """Make `context` current, remembering the previous one"""
        context = ExecutionContext(context)
        self._stack.append(self._current)
        self._current = context
        logger.debug(f"Execution context set to {context.value}")

    push = set_context

    def pop(self) -> ExecutionContext:
        """Restore the previous context, if any, and return the current one"""
        if self._stack:
            self._current = self._stack.pop()
        return self._current

    def reset(self) -> None:
        self._current = ExecutionContext.UNKNOWN
        self._stack.clear()

    def is_ai_healing_enabled(self) -> bool:
        return self._current == ExecutionContext.UI

    # ==================== Detection ====================

    @staticmethod
    def _matches(text: str, markers: List[Marker]) -> bool:
        for marker in markers:
            if isinstance(marker, tuple):
                if all(part in text for part in marker):
                    return True
            elif marker in text:
                return True
        return False

    def detect(self, step_text: str) -> ExecutionContext:
        """
        Classify a step description.

        Unrecognised text is treated as UI; most BDD steps drive the browser.

        Args:
            step_text: Step or element description

        Returns:
            ExecutionContext (never UNKNOWN)
        """
        text = (step_text or "").lower()

        if self._matches(text, self.API_MARKERS):
            return ExecutionContext.API
        if self._matches(text, self.DATABASE_MARKERS):
            return ExecutionContext.DATABASE
        if not self._matches(text, self.UI_MARKERS):
            logger.debug(f"No context markers in '{step_text}', defaulting to ui")
        return ExecutionContext.UI

    def auto_detect(self, step_text: str) -> ExecutionContext:
        """Detect the context of a step and make it current"""
        detected = self.detect(step_text)
        self.set_context(detected)
        return detected

    def is_ui_step(self, step_text: str) -> bool:
        return self.detect(step_text) == ExecutionContext.UI

    def is_api_step(self, step_text: str) -> bool:
        return self.detect(step_text) == ExecutionContext.API

    def is_database_step(self, step_text: str) -> bool:
        return self.detect(step_text) == ExecutionContext.DATABASE
