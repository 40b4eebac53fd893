"""JavaScript error capture.

``ErrorCapture`` is attached to a page before it navigates, so errors thrown
while the page loads are seen too. ``JSErrorChecker`` lets the page run for a
short observation window and then reports what was captured.
"""

from __future__ import annotations

import logging
import re

from playwright.async_api import ConsoleMessage, Error, Page

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import JSError

logger = logging.getLogger(__name__)


ERROR_HOOKS_JS = """
window.__jsErrors = [];
window.addEventListener('error', (e) => {
    window.__jsErrors.push({
        message: e.message || String(e.error || 'Unknown error'),
        source: e.filename || null,
        lineno: e.lineno || null,
        colno: e.colno || null,
        stack: e.error && e.error.stack ? e.error.stack : null,
        kind: 'exception',
    });
});
window.addEventListener('unhandledrejection', (e) => {
    const reason = e.reason;
    window.__jsErrors.push({
        message: 'Unhandled Promise Rejection: ' + (reason && reason.message ? reason.message : String(reason)),
        stack: reason && reason.stack ? reason.stack : null,
        kind: 'rejection',
    });
});
"""

COLLECT_ERRORS_JS = "() => window.__jsErrors || []"

_CHANNEL_PREFIX = re.compile(r"^(?:Uncaught (?:\(in promise\) )?|Unhandled Promise Rejection: )")
_ERROR_NAME = re.compile(r"^[A-Z]\w*(?:Error|Exception): ")


def error_key(message: str) -> str:
    """The message without the prefixes each reporting channel adds.

    ``pageerror`` reports ``boom`` where a window listener sees
    ``Uncaught Error: boom``; both reduce to ``boom``.
    """
    text = _CHANNEL_PREFIX.sub("", (message or "").strip())
    return _ERROR_NAME.sub("", text).strip()


class ErrorCapture:
    """Listens for console errors and uncaught exceptions on one page.

    Use as an async context manager; listeners are removed on exit.
    """

    def __init__(self, page: Page):
        self.page = page
        self.errors: list[JSError] = []

    async def __aenter__(self) -> "ErrorCapture":
        self.page.on("console", self._on_console)
        self.page.on("pageerror", self._on_page_error)
        await self.page.add_init_script(ERROR_HOOKS_JS)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.page.remove_listener("console", self._on_console)
        self.page.remove_listener("pageerror", self._on_page_error)

    def _on_console(self, message: ConsoleMessage):
        if message.type != "error":
            return
        location = message.location or {}
        self.errors.append(JSError(
            message=message.text,
            kind="console",
            source=location.get("url") or None,
            lineno=location.get("lineNumber"),
            colno=location.get("columnNumber"),
        ))

    def _on_page_error(self, error: Error):
        self.errors.append(JSError(
            message=error.message,
            kind="exception",
            stack=error.stack,
        ))

    async def collect(self) -> list[JSError]:
        """Everything captured so far, one entry per distinct error."""
        try:
            hooked = await self.page.evaluate(COLLECT_ERRORS_JS) or []
        except Exception as e:
            logger.warning("Could not read in-page error log: %s", e)
            hooked = []
        found = self.errors + [JSError(**entry) for entry in hooked]

        seen = set()
        unique = []
        for err in found:
            key = error_key(err.message)
            if key in seen:
                continue
            seen.add(key)
            unique.append(err)
        return unique


class JSErrorChecker(Checker):
    name = "js_errors"

    async def check(self, target: AuditTarget) -> list[JSError]:
        if target.errors is None:
            logger.debug("No error capture attached for %s", target.url)
            return []
        await target.page.wait_for_timeout(target.config.js_observation_ms)
        return await target.errors.collect()
