"""On-page SEO checks: title, meta tags, headings, indexing signals."""

from __future__ import annotations

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import SEOIssue
from auditor.models.types import Severity


SEO_SNAPSHOT_JS = """() => {
    const meta = (sel) => {
        const el = document.querySelector(sel);
        return el ? (el.getAttribute('content') || '') : null;
    };
    const canonical = document.querySelector('link[rel="canonical"]');
    return {
        title: document.title || '',
        description: meta('meta[name="description"]'),
        canonical: canonical ? canonical.href : null,
        ogTitle: meta('meta[property="og:title"]'),
        ogDescription: meta('meta[property="og:description"]'),
        ogImage: meta('meta[property="og:image"]'),
        h1Count: document.querySelectorAll('h1').length,
        viewport: meta('meta[name="viewport"]'),
        robots: meta('meta[name="robots"]'),
        imagesWithoutAlt: document.querySelectorAll('img:not([alt])').length,
        hasStructuredData: !!document.querySelector('script[type="application/ld+json"]'),
    };
}"""

TITLE_MIN, TITLE_MAX = 30, 60
DESCRIPTION_MIN, DESCRIPTION_MAX = 120, 160


class SEOChecker(Checker):
    name = "seo"

    async def check(self, target: AuditTarget) -> list[SEOIssue]:
        snapshot = await target.page.evaluate(SEO_SNAPSHOT_JS) or {}
        return evaluate_seo(snapshot, target.page.url or target.url)


def evaluate_seo(snap: dict, url: str) -> list[SEOIssue]:
    issues = []

    title = (snap.get("title") or "").strip()
    if not title:
        issues.append(SEOIssue(
            kind="Missing Title",
            severity=Severity.CRITICAL,
            description="Page does not have a title tag",
            recommendation="Add a descriptive title tag (50-60 characters)",
        ))
    elif len(title) < TITLE_MIN:
        issues.append(SEOIssue(
            kind="Short Title",
            severity=Severity.MINOR,
            description="Page title is too short",
            current_value=title,
            recommendation="Use a title of 50-60 characters for better SEO",
        ))
    elif len(title) > TITLE_MAX:
        issues.append(SEOIssue(
            kind="Long Title",
            severity=Severity.MINOR,
            description="Page title is too long",
            current_value=f"{title[:TITLE_MAX]}...",
            recommendation="Keep title under 60 characters to avoid truncation in search results",
        ))

    description = snap.get("description")
    if not description:
        issues.append(SEOIssue(
            kind="Missing Meta Description",
            severity=Severity.CRITICAL,
            description="Page does not have a meta description",
            recommendation="Add a meta description (150-160 characters)",
        ))
    elif len(description) < DESCRIPTION_MIN:
        issues.append(SEOIssue(
            kind="Short Meta Description",
            severity=Severity.MINOR,
            description="Meta description is too short",
            current_value=description,
            recommendation="Use a description of 150-160 characters",
        ))
    elif len(description) > DESCRIPTION_MAX:
        issues.append(SEOIssue(
            kind="Long Meta Description",
            severity=Severity.MINOR,
            description="Meta description is too long",
            current_value=f"{description[:DESCRIPTION_MAX]}...",
            recommendation="Keep meta description under 160 characters",
        ))

    if not snap.get("canonical"):
        issues.append(SEOIssue(
            kind="Missing Canonical URL",
            severity=Severity.MAJOR,
            description="Page does not have a canonical URL",
            recommendation="Add a canonical link tag to prevent duplicate content issues",
        ))

    if not (snap.get("ogTitle") and snap.get("ogDescription") and snap.get("ogImage")):
        issues.append(SEOIssue(
            kind="Incomplete Open Graph Tags",
            severity=Severity.MINOR,
            description="Missing Open Graph meta tags for social sharing",
            recommendation="Add og:title, og:description, and og:image meta tags",
        ))

    h1_count = snap.get("h1Count") or 0
    if h1_count == 0:
        issues.append(SEOIssue(
            kind="Missing H1",
            severity=Severity.CRITICAL,
            description="Page does not have an H1 heading",
            recommendation="Add one H1 heading that describes the main topic of the page",
        ))
    elif h1_count > 1:
        issues.append(SEOIssue(
            kind="Multiple H1s",
            severity=Severity.MAJOR,
            description=f"Page has {h1_count} H1 headings",
            recommendation="Use only one H1 heading per page",
        ))

    if not snap.get("viewport"):
        issues.append(SEOIssue(
            kind="Missing Viewport Meta Tag",
            severity=Severity.CRITICAL,
            description="Page does not have a viewport meta tag",
            recommendation='Add <meta name="viewport" content="width=device-width, initial-scale=1">',
        ))

    robots = (snap.get("robots") or "").lower()
    if "noindex" in robots or "nofollow" in robots:
        issues.append(SEOIssue(
            kind="Search Engine Blocking",
            severity=Severity.CRITICAL,
            description="Page is blocking search engine indexing",
            current_value=snap.get("robots"),
            recommendation="Remove noindex/nofollow if you want the page indexed",
        ))

    missing_alt = snap.get("imagesWithoutAlt") or 0
    if missing_alt:
        issues.append(SEOIssue(
            kind="Images Without Alt Text",
            severity=Severity.MAJOR,
            description=f"{missing_alt} image(s) missing alt attributes",
            recommendation="Add descriptive alt text to all images for better SEO and accessibility",
        ))

    if not snap.get("hasStructuredData"):
        issues.append(SEOIssue(
            kind="Missing Structured Data",
            severity=Severity.MINOR,
            description="Page does not have structured data (Schema.org)",
            recommendation="Add JSON-LD structured data for better search engine understanding",
        ))

    if not url.startswith("https://"):
        issues.append(SEOIssue(
            kind="Not Using HTTPS",
            severity=Severity.CRITICAL,
            description="Page is not served over HTTPS",
            recommendation="Use HTTPS for security and SEO benefits",
        ))

    return issues
