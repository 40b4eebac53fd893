"""Typed findings produced by the page checkers.

Every checker returns a list of ``Finding`` subclasses. Each subclass pins its
``category`` (the issue type it rolls up into) and exposes a ``severity`` and a
``describe()`` rendering, so the aggregator works over one closed set of
shapes instead of per-checker dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from auditor.models.types import IssueType, Severity, VisualDiff


@dataclass
class Finding:
    category: ClassVar[IssueType]

    @property
    def is_problem(self) -> bool:
        """False for findings that record a passing check (e.g. a form that worked)."""
        return True

    def describe(self) -> str:
        raise NotImplementedError


@dataclass
class VisualAnomaly(Finding):
    category: ClassVar[IssueType] = IssueType.VISUAL

    kind: str
    message: str
    severity: Severity
    details: list[dict] = field(default_factory=list)

    def describe(self) -> str:
        return f"• {self.message}"


class FormOutcome(str, Enum):
    PASSED = "Passed"
    FAILED = "Failed"


@dataclass
class FormField:
    name: str
    type: str
    required: bool = False
    label: str | None = None


@dataclass
class FormResult(Finding):
    category: ClassVar[IssueType] = IssueType.FORM

    selector: str
    fields: list[FormField]
    result: FormOutcome
    submit_status: int | None = None
    success_indicators: list[str] = field(default_factory=list)
    error_indicators: list[str] = field(default_factory=list)
    error_message: str | None = None

    @property
    def severity(self) -> Severity:
        return Severity.MAJOR

    @property
    def is_problem(self) -> bool:
        return self.result == FormOutcome.FAILED

    def describe(self) -> str:
        lines = [f"Form: {self.selector}"]
        if self.error_message:
            lines.append(f"Error: {self.error_message}")
        if self.error_indicators:
            lines.append(f"Error indicators found: {', '.join(self.error_indicators)}")
        if self.submit_status:
            lines.append(f"HTTP Status: {self.submit_status}")
        if self.fields:
            lines.append("Fields tested:")
            for f in self.fields:
                required = " [required]" if f.required else ""
                lines.append(f"• {f.name} ({f.type}){required}")
        return "\n".join(lines)


@dataclass
class BrokenLink(Finding):
    category: ClassVar[IssueType] = IssueType.BROKEN_LINK

    url: str
    source_element: str
    status_code: int
    status_text: str = ""

    @property
    def severity(self) -> Severity:
        return Severity.MINOR

    def describe(self) -> str:
        status = f"{self.status_code} {self.status_text}".strip()
        return f"• {self.url}\n  Status: {status}\n  Found in: {self.source_element}"


@dataclass
class AccessibilityIssue(Finding):
    category: ClassVar[IssueType] = IssueType.ACCESSIBILITY

    kind: str
    severity: Severity
    description: str
    recommendation: str
    element: str | None = None

    def describe(self) -> str:
        out = f"[{self.severity.value}] {self.kind}\n{self.description}\n"
        if self.element:
            out += f"Element: {self.element}\n"
        return out + f"Recommendation: {self.recommendation}"


@dataclass
class PerformanceIssue(Finding):
    category: ClassVar[IssueType] = IssueType.PERFORMANCE

    kind: str
    severity: Severity
    description: str
    value: str
    threshold: str
    recommendation: str

    def describe(self) -> str:
        return (
            f"[{self.severity.value}] {self.kind}\n{self.description}\n"
            f"Current: {self.value} | Threshold: {self.threshold}\n"
            f"Recommendation: {self.recommendation}"
        )


@dataclass
class SEOIssue(Finding):
    category: ClassVar[IssueType] = IssueType.SEO

    kind: str
    severity: Severity
    description: str
    recommendation: str
    current_value: str | None = None

    def describe(self) -> str:
        out = f"[{self.severity.value}] {self.kind}\n{self.description}\n"
        if self.current_value:
            out += f"Current: {self.current_value}\n"
        return out + f"Recommendation: {self.recommendation}"


@dataclass
class ElementBox:
    x: float
    y: float
    width: float
    height: float
    selector: str = ""

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "selector": self.selector,
        }


@dataclass
class MobileIssue(Finding):
    category: ClassVar[IssueType] = IssueType.MOBILE

    kind: str
    severity: Severity
    description: str
    recommendation: str
    viewport: str | None = None
    elements: list[ElementBox] = field(default_factory=list)

    def describe(self) -> str:
        out = f"[{self.severity.value}] {self.kind}\n{self.description}\n"
        if self.viewport:
            out += f"Viewport: {self.viewport}\n"
        return out + f"Recommendation: {self.recommendation}"

    def to_metadata(self) -> dict:
        return {
            "type": self.kind,
            "severity": self.severity.value,
            "description": self.description,
            "viewport": self.viewport,
            "elements": [e.to_dict() for e in self.elements],
        }


@dataclass
class JSError(Finding):
    category: ClassVar[IssueType] = IssueType.JS_ERROR

    message: str
    kind: str = "console"  # console | exception | rejection
    source: str | None = None
    lineno: int | None = None
    colno: int | None = None
    stack: str | None = None

    @property
    def severity(self) -> Severity:
        return Severity.MINOR

    def describe(self) -> str:
        out = f"• {self.message}"
        if self.source:
            out += f"\n  Source: {self.source}:{self.lineno}:{self.colno}"
        if self.stack:
            out += f"\n  Stack: {self.stack[:200]}..."
        return out


@dataclass
class VisualDiffResult(Finding):
    category: ClassVar[IssueType] = IssueType.VISUAL_REGRESSION

    baseline_id: str
    difference_percentage: float
    pixel_diff_count: int
    passed: bool
    diff_image_path: str | None = None

    @classmethod
    def from_diff(cls, diff: VisualDiff) -> "VisualDiffResult":
        return cls(
            baseline_id=diff.baseline_id,
            difference_percentage=diff.difference_percentage,
            pixel_diff_count=diff.pixel_diff_count,
            passed=diff.passed,
            diff_image_path=diff.diff_image_path,
        )

    @property
    def severity(self) -> Severity:
        return regression_severity(self.difference_percentage)

    @property
    def is_problem(self) -> bool:
        return not self.passed

    def describe(self) -> str:
        out = (
            f"• Visual difference detected: {self.difference_percentage:.2f}% "
            f"({self.pixel_diff_count:,} pixels)\n"
            f"  Baseline ID: {self.baseline_id}"
        )
        if self.diff_image_path:
            out += f"\n  Diff image: {self.diff_image_path}"
        return out


def count_severity(count: int) -> Severity:
    """Severity for categories judged by how many times they occur."""
    if count >= 5:
        return Severity.CRITICAL
    if count >= 2:
        return Severity.MAJOR
    return Severity.MINOR


def regression_severity(max_diff_pct: float) -> Severity:
    if max_diff_pct > 5:
        return Severity.CRITICAL
    if max_diff_pct > 1:
        return Severity.MAJOR
    return Severity.MINOR
