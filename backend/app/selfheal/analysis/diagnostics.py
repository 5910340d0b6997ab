"""
Page Diagnostics

Listens to a Playwright page for console messages, uncaught page errors
and failed network requests, and summarises them as PageDiagnosticData
when a step fails.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from ..models import DiagnosticStats, PageDiagnosticData

logger = logging.getLogger(__name__)


class PageDiagnostics:
    """
    Bounded console/error/network recorder for one page.

    Features:
    - Console messages (last 50), page errors (last 10), failed requests (last 20)
    - HTTP responses with status >= 400 count as failed requests
    - attach()/detach() so a worker can move between pages
    """

    MAX_LOGS = 50
    MAX_ERRORS = 10
    MAX_REQUESTS = 20

    def __init__(
        self,
        max_logs: int = MAX_LOGS,
        max_errors: int = MAX_ERRORS,
        max_requests: int = MAX_REQUESTS
    ):
        self._console: Deque[Dict[str, Any]] = deque(maxlen=max_logs)
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=max_errors)
        self._failed: Deque[Dict[str, Any]] = deque(maxlen=max_requests)
        self._page = None

    # ==================== Listeners ====================

    def attach(self, page) -> "PageDiagnostics":
        """Start listening to `page`, detaching from any previous page"""
        if self._page is page:
            return self
        self.detach()
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)
        page.on("requestfailed", self._on_request_failed)
        page.on("response", self._on_response)
        self._page = page
        logger.debug("Page diagnostics attached")
        return self

    def detach(self):
        if self._page is None:
            return
        for event, handler in (
            ("console", self._on_console),
            ("pageerror", self._on_page_error),
            ("requestfailed", self._on_request_failed),
            ("response", self._on_response),
        ):
            try:
                self._page.remove_listener(event, handler)
            except Exception as e:
                logger.debug(f"Could not remove '{event}' listener: {e}")
        self._page = None

    def _on_console(self, message):
        try:
            self._console.append({
                "type": message.type,
                "text": message.text,
                "location": message.location,
                "timestamp": datetime.now().isoformat(),
            })
        except Exception as e:
            logger.debug(f"Skipping console message: {e}")

    def _on_page_error(self, error):
        self._errors.append({
            "name": getattr(error, "name", None) or "Error",
            "message": getattr(error, "message", None) or str(error),
            "stack": getattr(error, "stack", None),
            "timestamp": datetime.now().isoformat(),
        })

    def _on_request_failed(self, request):
        try:
            self._failed.append({
                "method": request.method,
                "url": request.url,
                "resource_type": request.resource_type,
                "failure": request.failure,
            })
        except Exception as e:
            logger.debug(f"Skipping failed request: {e}")

    def _on_response(self, response):
        try:
            if response.status >= 400:
                self._failed.append({
                    "method": response.request.method,
                    "url": response.url,
                    "resource_type": response.request.resource_type,
                    "status": response.status,
                    "status_text": response.status_text,
                })
        except Exception as e:
            logger.debug(f"Skipping response: {e}")

    # ==================== Summary ====================

    def collect(self, url: Optional[str] = None) -> PageDiagnosticData:
        """Summarise everything recorded so far"""
        console_logs: List[Dict[str, Any]] = list(self._console)
        page_errors: List[Dict[str, Any]] = list(self._errors)
        failed_requests: List[Dict[str, Any]] = list(self._failed)

        if url is None and self._page is not None:
            url = self._page.url

        stats = DiagnosticStats(
            total_errors=len(page_errors),
            error_logs=sum(1 for log in console_logs if log.get("type") == "error"),
            warning_logs=sum(1 for log in console_logs if log.get("type") == "warning"),
            failed_requests=len(failed_requests),
        )
        logger.debug(
            f"Diagnostics collected: {len(console_logs)} logs, "
            f"{stats.total_errors} errors, {stats.failed_requests} failed requests"
        )
        return PageDiagnosticData(
            url=url or "",
            page_errors=page_errors,
            console_logs=console_logs,
            failed_requests=failed_requests,
            stats=stats,
        )

    def clear(self):
        self._console.clear()
        self._errors.clear()
        self._failed.clear()

    @staticmethod
    def format_for_log(data: PageDiagnosticData) -> str:
        """Short multi-line summary for step failure logs"""
        lines = [
            f"Page Diagnostics ({data.url}):",
            f"  Console: {len(data.console_logs)} logs "
            f"({data.stats.error_logs} errors, {data.stats.warning_logs} warnings)",
            f"  Page Errors: {data.stats.total_errors}",
            f"  Failed Requests: {data.stats.failed_requests}",
        ]
        for error in data.page_errors[:3]:
            lines.append(f"    - {error.get('name')}: {error.get('message')}")
        for request in data.failed_requests[:3]:
            lines.append(f"    - {request.get('method')} {request.get('url')} {request.get('status', '')}".rstrip())
        return "\n".join(lines)
