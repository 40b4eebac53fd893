"""Accessibility checks using DOM queries (no axe-core)."""

from __future__ import annotations

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import AccessibilityIssue
from auditor.models.types import Severity


ACCESSIBILITY_SNAPSHOT_JS = """() => {
    const missingAlt = [...document.querySelectorAll('img:not([alt])')].map(img => img.src);
    const headings = [...document.querySelectorAll('h1, h2, h3, h4, h5, h6')]
        .map(el => parseInt(el.tagName[1], 10));

    const inputs = document.querySelectorAll('input:not([type="hidden"]):not([type="submit"]):not([type="button"]), select, textarea');
    let unlabeled = 0;
    for (const input of inputs) {
        const hasLabel = input.id && document.querySelector(`label[for="${CSS.escape(input.id)}"]`);
        const hasAria = input.hasAttribute('aria-label') || input.hasAttribute('aria-labelledby');
        const wrapped = input.closest('label');
        if (!hasLabel && !hasAria && !wrapped) unlabeled++;
    }

    const unnamed = (els) => [...els].filter(el => {
        const text = (el.textContent || '').trim();
        return !text && !el.getAttribute('aria-label') && !el.title;
    }).length;

    let sameColor = 0;
    for (const el of document.body ? document.body.querySelectorAll('*') : []) {
        const text = (el.textContent || '').trim();
        if (!text) continue;
        const style = window.getComputedStyle(el);
        if (style.color && style.backgroundColor && style.color === style.backgroundColor) sameColor++;
    }

    return {
        missingAlt,
        headings,
        unlabeledInputs: unlabeled,
        emptyLinks: unnamed(document.querySelectorAll('a')),
        emptyButtons: unnamed(document.querySelectorAll('button')),
        sameColorText: sameColor,
        hasLang: document.documentElement.hasAttribute('lang'),
    };
}"""


class AccessibilityChecker(Checker):
    name = "accessibility"

    async def check(self, target: AuditTarget) -> list[AccessibilityIssue]:
        snapshot = await target.page.evaluate(ACCESSIBILITY_SNAPSHOT_JS)
        return evaluate_accessibility(snapshot or {})


def evaluate_accessibility(snap: dict) -> list[AccessibilityIssue]:
    """Turn a DOM snapshot into findings. Pure, so it can be tested without a browser."""
    issues = []

    missing_alt = snap.get("missingAlt") or []
    if missing_alt:
        issues.append(AccessibilityIssue(
            kind="Missing Alt Text",
            severity=Severity.MAJOR,
            description=f"{len(missing_alt)} image(s) missing alt text",
            element=", ".join(missing_alt[:3]),
            recommendation="Add descriptive alt text to all images for screen reader users",
        ))

    issues.extend(heading_issues(snap.get("headings") or []))

    unlabeled = snap.get("unlabeledInputs") or 0
    if unlabeled:
        issues.append(AccessibilityIssue(
            kind="Form Inputs Without Labels",
            severity=Severity.CRITICAL,
            description=f"{unlabeled} form input(s) without associated labels",
            recommendation="Add labels to all form inputs using <label> tags or aria-label attributes",
        ))

    empty_links = snap.get("emptyLinks") or 0
    if empty_links:
        issues.append(AccessibilityIssue(
            kind="Empty Links",
            severity=Severity.MAJOR,
            description=f"{empty_links} link(s) without text content",
            recommendation="Ensure all links have descriptive text or aria-label",
        ))

    empty_buttons = snap.get("emptyButtons") or 0
    if empty_buttons:
        issues.append(AccessibilityIssue(
            kind="Empty Buttons",
            severity=Severity.CRITICAL,
            description=f"{empty_buttons} button(s) without text or label",
            recommendation="Add descriptive text or aria-label to all buttons",
        ))

    same_color = snap.get("sameColorText") or 0
    if same_color:
        issues.append(AccessibilityIssue(
            kind="Low Color Contrast",
            severity=Severity.MAJOR,
            description=f"Potential color contrast issues detected on {same_color} element(s)",
            recommendation="Ensure text has sufficient contrast ratio (4.5:1 for normal text, 3:1 for large text)",
        ))

    if not snap.get("hasLang", True):
        issues.append(AccessibilityIssue(
            kind="Missing Language Attribute",
            severity=Severity.MAJOR,
            description="HTML element missing lang attribute",
            recommendation='Add lang attribute to <html> tag (e.g., <html lang="en">)',
        ))

    return issues


def heading_issues(levels: list[int]) -> list[AccessibilityIssue]:
    if not levels:
        return []
    issues = []
    h1_count = levels.count(1)
    if h1_count == 0:
        issues.append(AccessibilityIssue(
            kind="Missing H1",
            severity=Severity.MAJOR,
            description="Page does not have an H1 heading",
            recommendation="Add a main H1 heading to the page for proper document structure",
        ))
    elif h1_count > 1:
        issues.append(AccessibilityIssue(
            kind="Multiple H1s",
            severity=Severity.MINOR,
            description=f"Page has {h1_count} H1 headings",
            recommendation="Use only one H1 heading per page",
        ))

    for prev, cur in zip(levels, levels[1:]):
        if cur - prev > 1:
            issues.append(AccessibilityIssue(
                kind="Skipped Heading Level",
                severity=Severity.MINOR,
                description=f"Heading hierarchy jumps from H{prev} to H{cur}",
                recommendation="Maintain proper heading hierarchy without skipping levels",
            ))
            break
    return issues
