"""Page load timings, Web Vitals and resource weight."""

from __future__ import annotations

from dataclasses import dataclass

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import PerformanceIssue
from auditor.models.types import Severity


NAVIGATION_TIMING_JS = """() => {
    const nav = performance.getEntriesByType('navigation')[0];
    if (!nav) return null;
    const fcp = performance.getEntriesByType('paint').find(p => p.name === 'first-contentful-paint');
    return {
        load_time_ms: Math.max(0, Math.round(nav.loadEventEnd - nav.fetchStart)),
        dom_content_loaded_ms: Math.max(0, Math.round(nav.domContentLoadedEventEnd - nav.fetchStart)),
        time_to_interactive_ms: Math.max(0, Math.round(nav.domInteractive - nav.fetchStart)),
        fcp_ms: fcp ? Math.round(fcp.startTime) : 0,
    };
}"""

WEB_VITALS_JS = """() => new Promise((resolve) => {
    let lcp = 0;
    let cls = 0;
    const observers = [];
    try {
        const lcpObserver = new PerformanceObserver((list) => {
            const entries = list.getEntries();
            if (entries.length) lcp = entries[entries.length - 1].startTime;
        });
        lcpObserver.observe({ type: 'largest-contentful-paint', buffered: true });
        observers.push(lcpObserver);
        const clsObserver = new PerformanceObserver((list) => {
            for (const entry of list.getEntries()) {
                if (!entry.hadRecentInput) cls += entry.value;
            }
        });
        clsObserver.observe({ type: 'layout-shift', buffered: true });
        observers.push(clsObserver);
    } catch (e) {}
    setTimeout(() => {
        observers.forEach(o => o.disconnect());
        resolve({ lcp_ms: Math.round(lcp), cls: cls });
    }, 100);
})"""

RESOURCE_STATS_JS = """() => {
    const resources = performance.getEntriesByType('resource');
    const stats = { resource_count: resources.length, total_bytes: 0,
                    image_count: 0, script_count: 0, stylesheet_count: 0 };
    for (const r of resources) {
        stats.total_bytes += r.transferSize || 0;
        if (r.initiatorType === 'img') stats.image_count++;
        else if (r.initiatorType === 'script') stats.script_count++;
        else if (r.initiatorType === 'link' || r.initiatorType === 'css') stats.stylesheet_count++;
    }
    return stats;
}"""

MB = 1024 * 1024


@dataclass
class PerformanceMetrics:
    load_time_ms: int = 0
    dom_content_loaded_ms: int = 0
    time_to_interactive_ms: int = 0
    fcp_ms: int = 0
    lcp_ms: int = 0
    cls: float = 0.0
    resource_count: int = 0
    total_bytes: int = 0
    image_count: int = 0
    script_count: int = 0
    stylesheet_count: int = 0


class PerformanceChecker(Checker):
    name = "performance"

    async def collect_metrics(self, target: AuditTarget) -> PerformanceMetrics:
        page = target.page
        timing = await page.evaluate(NAVIGATION_TIMING_JS) or {}
        vitals = await page.evaluate(WEB_VITALS_JS) or {}
        resources = await page.evaluate(RESOURCE_STATS_JS) or {}
        return PerformanceMetrics(**{**timing, **vitals, **resources})

    async def check(self, target: AuditTarget) -> list[PerformanceIssue]:
        return evaluate_metrics(await self.collect_metrics(target))


def evaluate_metrics(m: PerformanceMetrics) -> list[PerformanceIssue]:
    """Check metrics against fixed thresholds."""
    issues = []

    if m.load_time_ms > 3000:
        issues.append(PerformanceIssue(
            kind="Slow Page Load",
            severity=Severity.CRITICAL if m.load_time_ms > 5000 else Severity.MAJOR,
            description="Page load time exceeds recommended threshold",
            value=f"{m.load_time_ms / 1000:.2f}s",
            threshold="< 3s",
            recommendation="Optimize images, minify resources, enable compression, use CDN",
        ))

    if m.fcp_ms > 1800:
        issues.append(PerformanceIssue(
            kind="Slow First Contentful Paint",
            severity=Severity.MAJOR,
            description="First Contentful Paint is slow",
            value=f"{m.fcp_ms / 1000:.2f}s",
            threshold="< 1.8s",
            recommendation="Eliminate render-blocking resources, optimize critical rendering path",
        ))

    if m.lcp_ms > 2500:
        issues.append(PerformanceIssue(
            kind="Slow Largest Contentful Paint",
            severity=Severity.CRITICAL if m.lcp_ms > 4000 else Severity.MAJOR,
            description="Largest Contentful Paint exceeds threshold",
            value=f"{m.lcp_ms / 1000:.2f}s",
            threshold="< 2.5s",
            recommendation="Optimize largest image/element, improve server response time",
        ))

    if m.cls > 0.1:
        issues.append(PerformanceIssue(
            kind="High Cumulative Layout Shift",
            severity=Severity.MAJOR if m.cls > 0.25 else Severity.MINOR,
            description="Page has significant layout shifts",
            value=f"{m.cls:.3f}",
            threshold="< 0.1",
            recommendation="Set explicit dimensions for images and embeds, avoid inserting content above existing content",
        ))

    if m.total_bytes > 3 * MB:
        issues.append(PerformanceIssue(
            kind="Large Page Size",
            severity=Severity.MAJOR,
            description="Total page size is too large",
            value=f"{m.total_bytes / MB:.2f} MB",
            threshold="< 3 MB",
            recommendation="Compress images, minify CSS/JS, enable gzip/brotli compression",
        ))

    if m.image_count > 30:
        issues.append(PerformanceIssue(
            kind="Too Many Images",
            severity=Severity.MINOR,
            description="Page loads many images",
            value=f"{m.image_count} images",
            threshold="< 30",
            recommendation="Implement lazy loading, use image sprites, optimize image formats",
        ))

    return issues
