"""Condition-based settle wait used after navigation.

Waits until no loading indicator is visible and every visible image has
finished loading. Falls back to a fixed pause if the page never settles, so
callers never hang past the timeout.
"""

from __future__ import annotations

import logging

from playwright.async_api import Page

logger = logging.getLogger(__name__)


STABLE_PAGE_JS = """() => {
    const loadingSelectors = [
        '.spinner', '.loading', '[class*="skeleton"]', '[class*="shimmer"]',
        '[class*="loader"]', '[aria-busy="true"]',
    ];
    for (const sel of loadingSelectors) {
        for (const el of document.querySelectorAll(sel)) {
            const r = el.getBoundingClientRect();
            if (r.width > 0 && r.height > 0) {
                const style = window.getComputedStyle(el);
                if (style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0') {
                    return false;
                }
            }
        }
    }
    for (const img of document.querySelectorAll('img[src]')) {
        const r = img.getBoundingClientRect();
        if (r.width > 0 && r.height > 0 && !img.complete) return false;
    }
    return true;
}"""

FALLBACK_WAIT_MS = 1500


async def wait_for_stable_page(page: Page, timeout_ms: int = 2000):
    try:
        await page.wait_for_function(STABLE_PAGE_JS, timeout=timeout_ms)
    except Exception as e:
        logger.debug("Page did not settle within %dms (%s); falling back to fixed wait", timeout_ms, e)
        await page.wait_for_timeout(min(FALLBACK_WAIT_MS, timeout_ms))
