"""Mobile/responsive layout checks across a fixed set of device viewports.

Each viewport gets its own browser context that is closed on every exit path.
Page-wide properties (viewport meta, touch targets, font size) are reported
once, from the first viewport that loads; layout properties are reported per
viewport.
"""

from __future__ import annotations

import logging

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import ElementBox, MobileIssue
from auditor.models.types import Severity

logger = logging.getLogger(__name__)


MOBILE_SNAPSHOT_JS = """(limit) => {
    const describe = (el) => {
        const id = el.id ? '#' + el.id : '';
        const cls = (typeof el.className === 'string' && el.className.trim())
            ? '.' + el.className.trim().split(/\\s+/)[0] : '';
        return el.tagName.toLowerCase() + id + cls;
    };
    const box = (el, rect) => ({
        x: rect.left, y: rect.top, width: rect.width, height: rect.height, selector: describe(el),
    });

    const smallTargets = [];
    let smallTargetCount = 0;
    for (const el of document.querySelectorAll('button, a, input[type="button"], input[type="submit"]')) {
        const r = el.getBoundingClientRect();
        if (r.width > 0 && r.height > 0 && (r.width < 44 || r.height < 44)) {
            smallTargetCount++;
            if (smallTargets.length < limit) smallTargets.push(box(el, r));
        }
    }

    let smallText = 0;
    for (const el of document.querySelectorAll('p, span, div, a, li')) {
        const text = (el.textContent || '').trim();
        if (text && parseFloat(window.getComputedStyle(el).fontSize) < 12) smallText++;
    }

    const interactive = [...document.querySelectorAll('button, a, input')];
    const overlapping = [];
    let overlapCount = 0;
    for (let i = 0; i < interactive.length; i++) {
        const r1 = interactive[i].getBoundingClientRect();
        if (r1.width === 0 || r1.height === 0) continue;
        for (let j = i + 1; j < interactive.length; j++) {
            const r2 = interactive[j].getBoundingClientRect();
            if (r2.width === 0 || r2.height === 0) continue;
            if (interactive[i].contains(interactive[j]) || interactive[j].contains(interactive[i])) continue;
            if (!(r1.right < r2.left || r1.left > r2.right || r1.bottom < r2.top || r1.top > r2.bottom)) {
                overlapCount++;
                if (overlapping.length < limit) overlapping.push(box(interactive[i], r1));
                break;
            }
        }
    }

    let offscreen = 0;
    for (const el of document.querySelectorAll('*')) {
        if (el.getBoundingClientRect().right > window.innerWidth + 10) offscreen++;
    }

    return {
        horizontalScroll: document.documentElement.scrollWidth > window.innerWidth,
        hasViewportMeta: !!document.querySelector('meta[name="viewport"]'),
        smallTargetCount, smallTargets, smallText,
        overlapCount, overlapping, offscreen,
    };
}"""

MAX_ELEMENT_BOXES = 20
OFFSCREEN_LIMIT = 3


class MobileChecker(Checker):
    name = "mobile"

    async def check(self, target: AuditTarget) -> list[MobileIssue]:
        issues = []
        first = True
        for viewport in target.config.mobile_viewports:
            snapshot = await self._snapshot(target, viewport)
            if snapshot is None:
                continue
            issues.extend(evaluate_viewport(snapshot, viewport, first))
            first = False
        return issues

    async def _snapshot(self, target: AuditTarget, viewport: dict) -> dict | None:
        context = await target.browser.new_context(
            viewport={"width": viewport["width"], "height": viewport["height"]},
            user_agent=target.config.mobile_user_agent,
        )
        try:
            page = await context.new_page()
            await page.goto(target.url, wait_until="networkidle",
                            timeout=target.config.page_timeout_ms)
            return await page.evaluate(MOBILE_SNAPSHOT_JS, MAX_ELEMENT_BOXES)
        except Exception as e:
            logger.warning("Mobile check on %s at %s failed: %s", target.url, viewport["name"], e)
            return None
        finally:
            await context.close()


def evaluate_viewport(snap: dict, viewport: dict, first: bool) -> list[MobileIssue]:
    size = f"{viewport['width']}x{viewport['height']}"
    name = viewport["name"]
    issues = []

    if snap.get("horizontalScroll"):
        issues.append(MobileIssue(
            kind="Horizontal Scroll on Mobile",
            severity=Severity.CRITICAL,
            description=f"Page has horizontal scrolling on {name}",
            viewport=size,
            recommendation="Ensure all content fits within viewport width, use responsive CSS",
        ))

    if first:
        if not snap.get("hasViewportMeta", True):
            issues.append(MobileIssue(
                kind="Missing Viewport Meta Tag",
                severity=Severity.CRITICAL,
                description="Page does not have a viewport meta tag",
                recommendation='Add <meta name="viewport" content="width=device-width, initial-scale=1">',
            ))

        small_targets = snap.get("smallTargetCount") or 0
        if small_targets:
            issues.append(MobileIssue(
                kind="Small Touch Targets",
                severity=Severity.MAJOR,
                description=f"{small_targets} interactive element(s) smaller than recommended touch target size",
                recommendation="Ensure buttons and links are at least 44x44 pixels for easy tapping",
                viewport=size,
                elements=[ElementBox(**b) for b in snap.get("smallTargets") or []],
            ))

        small_text = snap.get("smallText") or 0
        if small_text:
            issues.append(MobileIssue(
                kind="Small Text Size",
                severity=Severity.MAJOR,
                description=f"{small_text} element(s) with font size smaller than 12px",
                recommendation="Use minimum font size of 16px for body text on mobile",
                viewport=size,
            ))

    if snap.get("overlapCount"):
        issues.append(MobileIssue(
            kind="Overlapping Interactive Elements",
            severity=Severity.MAJOR,
            description=f"Interactive elements are overlapping on {name}",
            viewport=size,
            recommendation="Ensure interactive elements have proper spacing and do not overlap",
            elements=[ElementBox(**b) for b in snap.get("overlapping") or []],
        ))

    offscreen = snap.get("offscreen") or 0
    if offscreen > OFFSCREEN_LIMIT:
        issues.append(MobileIssue(
            kind="Elements Extending Beyond Viewport",
            severity=Severity.MAJOR,
            description=f"{offscreen} element(s) extend beyond viewport on {name}",
            viewport=size,
            recommendation="Use max-width: 100% and proper responsive layout",
        ))

    return issues
