from __future__ import annotations

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    CRITICAL = "Critical"
    MAJOR = "Major"
    MINOR = "Minor"
    TRIVIAL = "Trivial"

    @property
    def rank(self) -> int:
        """0 is the worst."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.MAJOR, Severity.MINOR, Severity.TRIVIAL]


def worst_severity(severities, default: Severity = Severity.MAJOR) -> Severity:
    """Return the most severe entry, independent of input order."""
    ranked = [Severity(s) for s in severities]
    if not ranked:
        return default
    return min(ranked, key=lambda s: s.rank)


class RunStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class IssueType(str, Enum):
    VISUAL = "Visual"
    FORM = "Form"
    BROKEN_LINK = "Broken Link"
    ACCESSIBILITY = "Accessibility"
    PERFORMANCE = "Performance"
    SEO = "SEO"
    MOBILE = "Mobile"
    JS_ERROR = "JavaScript Error"
    VISUAL_REGRESSION = "Visual Regression"


class BaselineType(str, Enum):
    SCREENSHOT = "screenshot"
    MANUAL = "manual"
    FIGMA = "figma"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Site:
    name: str
    base_url: str
    project_id: str = ""
    id: str = field(default_factory=new_id)


@dataclass
class Run:
    site_id: str
    id: str = field(default_factory=new_id)
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    pages_processed: int = 0
    issues_created: int = 0
    error_message: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "pages_processed": self.pages_processed,
            "issues_created": self.issues_created,
            "error_message": self.error_message,
        }


@dataclass
class PageRecord:
    run_id: str
    url: str
    id: str = field(default_factory=new_id)
    depth: int = 0
    title: str = ""
    status_code: int | None = None
    screenshot_path: str | None = None
    render_failed: bool = False
    render_error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Issue:
    project_id: str
    site_id: str
    run_id: str
    page_id: str
    url: str
    type: IssueType
    title: str
    description: str
    severity: Severity
    screenshot_path: str | None = None
    status: str = "New"
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        return data


@dataclass
class VisualBaseline:
    site_id: str
    page_url: str
    baseline_type: BaselineType
    image_path: str
    viewport_width: int
    viewport_height: int
    is_active: bool = True
    figma_file_key: str | None = None
    figma_node_id: str | None = None
    created_by: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["baseline_type"] = self.baseline_type.value
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class VisualDiff:
    """Outcome of one (page, baseline) comparison. Written once."""

    run_id: str
    page_id: str
    baseline_id: str
    current_image_path: str
    diff_image_path: str | None
    difference_percentage: float
    pixel_diff_count: int
    threshold_percentage: float
    id: str = field(default_factory=new_id)

    @property
    def passed(self) -> bool:
        return self.difference_percentage <= self.threshold_percentage

    def to_dict(self) -> dict:
        data = asdict(self)
        data["passed"] = self.passed
        return data
