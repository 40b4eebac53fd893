"""Desktop layout anomalies: horizontal overflow, overlapping blocks, clipped blocks."""

from __future__ import annotations

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import VisualAnomaly
from auditor.models.types import Severity


HORIZONTAL_SCROLL_JS = """() => {
    return document.documentElement.scrollWidth > window.innerWidth;
}"""

OVERLAPPING_BLOCKS_JS = """(limit) => {
    const elements = [...document.querySelectorAll('div, section, article, header, footer, nav, main')];
    const overlapping = [];
    for (let i = 0; i < elements.length; i++) {
        const r1 = elements[i].getBoundingClientRect();
        if (r1.width === 0 || r1.height === 0) continue;
        for (let j = i + 1; j < elements.length; j++) {
            const r2 = elements[j].getBoundingClientRect();
            if (r2.width === 0 || r2.height === 0) continue;
            const intersects = !(r1.right < r2.left || r1.left > r2.right ||
                                 r1.bottom < r2.top || r1.top > r2.bottom);
            if (!intersects) continue;
            // Ancestor/descendant pairs always intersect
            if (elements[i].contains(elements[j]) || elements[j].contains(elements[i])) continue;
            overlapping.push({ element1: elements[i].tagName, element2: elements[j].tagName });
            if (overlapping.length >= limit) return overlapping;
        }
    }
    return overlapping;
}"""

VIEWPORT_OVERFLOW_JS = """() => {
    const elements = document.querySelectorAll('div, section, article, header, footer, nav, main, aside');
    for (const el of elements) {
        const rect = el.getBoundingClientRect();
        if (rect.height > 0 && (rect.top < -100 || rect.bottom > window.innerHeight + 100)) {
            const overflow = window.getComputedStyle(el).overflow;
            if (overflow !== 'auto' && overflow !== 'scroll') return true;
        }
    }
    return false;
}"""

MAX_OVERLAP_PAIRS = 5


class VisualChecker(Checker):
    name = "visual"

    async def check(self, target: AuditTarget) -> list[VisualAnomaly]:
        page = target.page
        findings = []
        width = target.config.viewport_width
        height = target.config.viewport_height

        if await page.evaluate(HORIZONTAL_SCROLL_JS):
            findings.append(VisualAnomaly(
                kind="horizontal_scroll",
                message=f"Detected horizontal scroll on desktop viewport ({width}×{height})",
                severity=Severity.MAJOR,
            ))

        pairs = await page.evaluate(OVERLAPPING_BLOCKS_JS, MAX_OVERLAP_PAIRS) or []
        if pairs:
            findings.append(VisualAnomaly(
                kind="overlapping_elements",
                message=f"Detected {len(pairs)} overlapping element(s)",
                severity=Severity.MAJOR,
                details=pairs[:MAX_OVERLAP_PAIRS],
            ))

        if await page.evaluate(VIEWPORT_OVERFLOW_JS):
            findings.append(VisualAnomaly(
                kind="viewport_overflow",
                message="Elements partially outside viewport (cropped at top/bottom)",
                severity=Severity.MINOR,
            ))

        return findings
