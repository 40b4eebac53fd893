"""Turns one page's findings into issue records, one per finding category."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from auditor.models.findings import (
    Finding, MobileIssue, VisualDiffResult, count_severity, regression_severity,
)
from auditor.models.types import Issue, IssueType, Severity, worst_severity
from auditor.storage.store import AuditStore

logger = logging.getLogger(__name__)


MAX_DESCRIBED = 10
REGRESSION_FOOTER = (
    "Current screenshot differs from established baseline(s). "
    "Review the diff images to determine if changes are intentional."
)

# Issues are created in this order for a page
CATEGORY_ORDER = [
    IssueType.VISUAL,
    IssueType.FORM,
    IssueType.BROKEN_LINK,
    IssueType.ACCESSIBILITY,
    IssueType.PERFORMANCE,
    IssueType.SEO,
    IssueType.MOBILE,
    IssueType.JS_ERROR,
    IssueType.VISUAL_REGRESSION,
]


@dataclass
class PageContext:
    """References every issue created for one audited page carries."""

    project_id: str
    site_id: str
    run_id: str
    page_id: str
    url: str
    screenshot_path: str | None = None


def page_title(url: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        return "Page"
    segments = [s for s in path.split("/") if s]
    if not segments:
        return "Homepage"
    words = re.sub(r"[-_]", " ", segments[-1])
    return re.sub(r"\b\w", lambda m: m.group().upper(), words)[:50]


def issue_title(category: IssueType, count: int, url: str) -> str:
    where = page_title(url)
    if category == IssueType.VISUAL:
        return f"Visual Layout Issues on {where}"
    if category == IssueType.FORM:
        if count == 1:
            return f"Form Submission Failed on {where}"
        return f"{count} Form Submissions Failed on {where}"
    if category == IssueType.BROKEN_LINK:
        return f"{count} Broken Link(s) on {where}"
    if category == IssueType.MOBILE:
        return f"{count} Mobile Responsiveness Issue(s) on {where}"
    if category == IssueType.JS_ERROR:
        return f"{count} JavaScript Error(s) on {where}"
    if category == IssueType.VISUAL_REGRESSION:
        return f"Visual Regression: {count} Baseline(s) Failed on {where}"
    return f"{count} {category.value} Issue(s) on {where}"


def category_severity(category: IssueType, findings: list[Finding]) -> Severity:
    if category == IssueType.FORM:
        return Severity.MAJOR
    if category in (IssueType.BROKEN_LINK, IssueType.JS_ERROR):
        return count_severity(len(findings))
    if category == IssueType.VISUAL_REGRESSION:
        return regression_severity(max(f.difference_percentage for f in findings))
    return worst_severity(f.severity for f in findings)


def describe_all(findings: list[Finding], category: IssueType) -> str:
    # Visual anomalies are single bullet lines; everything else is a block
    sep = "\n" if category == IssueType.VISUAL else "\n\n"
    text = sep.join(f.describe() for f in findings[:MAX_DESCRIBED])
    hidden = len(findings) - MAX_DESCRIBED
    if hidden > 0:
        text += f"\n\n... and {hidden} more"
    if category == IssueType.VISUAL_REGRESSION:
        text += f"\n\n{REGRESSION_FOOTER}"
    return text


def group_findings(findings: list[Finding]) -> dict[IssueType, list[Finding]]:
    """Problem findings by category, in issue creation order."""
    groups: dict[IssueType, list[Finding]] = {c: [] for c in CATEGORY_ORDER}
    for finding in findings:
        if finding.is_problem:
            groups[finding.category].append(finding)
    return {c: fs for c, fs in groups.items() if fs}


def build_issues(context: PageContext, findings: list[Finding]) -> list[Issue]:
    issues = []
    for category, group in group_findings(findings).items():
        metadata = None
        if category == IssueType.MOBILE:
            metadata = {"issues": [f.to_metadata() for f in group if isinstance(f, MobileIssue)]}
        elif category == IssueType.VISUAL_REGRESSION:
            metadata = {"diffs": [
                {"baseline_id": f.baseline_id, "difference_percentage": f.difference_percentage,
                 "diff_image_path": f.diff_image_path}
                for f in group if isinstance(f, VisualDiffResult)
            ]}
        issues.append(Issue(
            project_id=context.project_id,
            site_id=context.site_id,
            run_id=context.run_id,
            page_id=context.page_id,
            url=context.url,
            type=category,
            title=issue_title(category, len(group), context.url),
            description=describe_all(group, category),
            severity=category_severity(category, group),
            screenshot_path=context.screenshot_path,
            metadata=metadata,
        ))
    return issues


class IssueAggregator:
    def __init__(self, store: AuditStore):
        self.store = store

    def aggregate(self, context: PageContext, findings: list[Finding]) -> int:
        """Persist one issue per non-empty category. Returns how many were created."""
        issues = build_issues(context, findings)
        for issue in issues:
            self.store.create_issue(issue)
            logger.info("Created %s issue for %s (%s)", issue.type.value, context.url, issue.severity.value)
        return len(issues)
