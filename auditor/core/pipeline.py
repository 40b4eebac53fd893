"""Per-page checker execution.

``PageAuditPipeline`` runs every registered checker against one loaded page.
Checkers are independent: one raising is logged under its name and
contributes nothing, and the rest still run.
"""

from __future__ import annotations

import logging
from typing import Iterable

from auditor.detectors.accessibility import AccessibilityChecker
from auditor.detectors.base import AuditTarget, Checker
from auditor.detectors.forms import FormChecker
from auditor.detectors.js_errors import JSErrorChecker
from auditor.detectors.links import BrokenLinkChecker
from auditor.detectors.mobile import MobileChecker
from auditor.detectors.performance import PerformanceChecker
from auditor.detectors.seo import SEOChecker
from auditor.detectors.visual import VisualChecker
from auditor.models.findings import Finding

logger = logging.getLogger(__name__)


def default_checkers() -> list[Checker]:
    # JS errors first: its observation window follows the load directly.
    # Forms run late because submitting them navigates the page; the
    # mobile checker opens its own contexts and never touches the page.
    return [
        JSErrorChecker(),
        VisualChecker(),
        AccessibilityChecker(),
        PerformanceChecker(),
        SEOChecker(),
        BrokenLinkChecker(),
        FormChecker(),
        MobileChecker(),
    ]


class TesterRegistry:
    """Ordered, name-addressable set of checkers."""

    def __init__(self, checkers: Iterable[Checker] | None = None):
        self._checkers: dict[str, Checker] = {}
        for checker in default_checkers() if checkers is None else checkers:
            self.register(checker)

    def register(self, checker: Checker):
        self._checkers[checker.name] = checker

    def unregister(self, name: str):
        self._checkers.pop(name, None)

    def names(self) -> list[str]:
        return list(self._checkers)

    def __iter__(self):
        return iter(list(self._checkers.values()))

    def __len__(self):
        return len(self._checkers)


class PageAuditPipeline:
    def __init__(self, registry: TesterRegistry | None = None):
        self.registry = registry if registry is not None else TesterRegistry()

    async def audit(self, target: AuditTarget) -> list[Finding]:
        findings: list[Finding] = []
        for checker in self.registry:
            try:
                found = await checker.check(target)
            except Exception as e:
                logger.warning("Checker %s failed on %s: %s", checker.name, target.url, e)
                continue
            logger.debug("Checker %s: %d finding(s) on %s", checker.name, len(found), target.url)
            findings.extend(found)
        return findings
