"""
Unit tests for PageDiagnostics.
"""

import pytest
from unittest.mock import Mock

from selfheal.analysis.diagnostics import PageDiagnostics


def handler(page, event):
    """Return the callback registered for `event`."""
    for call in page.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"no handler for {event}")


@pytest.fixture
def diagnostics(mock_page):
    return PageDiagnostics().attach(mock_page)


class TestCollection:
    """Test event recording and summaries."""

    def test_console_and_errors(self, diagnostics, mock_page):
        """Test console messages and page errors are summarised."""
        handler(mock_page, "console")(Mock(type="error", text="boom", location={}))
        handler(mock_page, "console")(Mock(type="warning", text="careful", location={}))
        handler(mock_page, "pageerror")(Exception("Script error"))

        data = diagnostics.collect()

        assert data.url == mock_page.url
        assert data.stats.error_logs == 1
        assert data.stats.warning_logs == 1
        assert data.stats.total_errors == 1
        assert data.page_errors[0]["message"] == "Script error"

    def test_failed_requests(self, diagnostics, mock_page):
        """Test failed requests and 4xx/5xx responses are recorded."""
        handler(mock_page, "requestfailed")(
            Mock(method="GET", url="https://api/x", resource_type="fetch", failure="net::ERR")
        )
        handler(mock_page, "response")(Mock(status=500, url="https://api/y", status_text="Server Error"))
        handler(mock_page, "response")(Mock(status=200, url="https://api/z"))

        data = diagnostics.collect()

        assert data.stats.failed_requests == 2
        assert [r["url"] for r in data.failed_requests] == ["https://api/x", "https://api/y"]

    def test_bounded_buffers(self, mock_page):
        """Test old console entries are dropped past the limit."""
        diagnostics = PageDiagnostics(max_logs=2).attach(mock_page)
        for i in range(5):
            handler(mock_page, "console")(Mock(type="log", text=str(i), location={}))

        assert [log["text"] for log in diagnostics.collect().console_logs] == ["3", "4"]

    def test_clear(self, diagnostics, mock_page):
        """Test clear empties the buffers."""
        handler(mock_page, "pageerror")(Exception("x"))

        diagnostics.clear()

        assert diagnostics.collect().stats.total_errors == 0

    def test_format_for_log(self, diagnostics, mock_page):
        """Test the log summary."""
        handler(mock_page, "pageerror")(Exception("Script error"))

        text = PageDiagnostics.format_for_log(diagnostics.collect())

        assert text.startswith(f"Page Diagnostics ({mock_page.url}):")
        assert "Page Errors: 1" in text
        assert "Script error" in text


class TestAttachment:
    """Test attaching and detaching."""

    def test_detach_removes_listeners(self, diagnostics, mock_page):
        """Test all four listeners are removed."""
        diagnostics.detach()

        events = [call.args[0] for call in mock_page.remove_listener.call_args_list]
        assert sorted(events) == ["console", "pageerror", "requestfailed", "response"]

    def test_attach_same_page_once(self, diagnostics, mock_page):
        """Test attaching twice does not double the listeners."""
        diagnostics.attach(mock_page)

        assert mock_page.on.call_count == 4
