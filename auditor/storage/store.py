"""Record storage for runs, pages, issues, baselines and visual diffs.

The pipeline only talks to ``AuditStore``. ``MemoryStore`` keeps everything in
process-local dicts, the way the API server keeps its scan table, and is what
the CLI, the API and the tests use.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace

from auditor.errors import BaselineNotFound, RunNotFound
from auditor.models.types import (
    Issue, PageRecord, Run, Site, VisualBaseline, VisualDiff,
)


class AuditStore(ABC):

    @abstractmethod
    def create_site(self, site: Site) -> Site: ...

    @abstractmethod
    def get_site(self, site_id: str) -> Site | None: ...

    @abstractmethod
    def create_run(self, run: Run) -> Run: ...

    @abstractmethod
    def get_run(self, run_id: str) -> Run: ...

    @abstractmethod
    def update_run(self, run_id: str, **changes) -> Run: ...

    @abstractmethod
    def list_runs(self, site_id: str | None = None) -> list[Run]: ...

    @abstractmethod
    def create_page(self, page: PageRecord) -> PageRecord: ...

    @abstractmethod
    def update_page(self, page_id: str, **changes) -> PageRecord: ...

    @abstractmethod
    def list_pages(self, run_id: str) -> list[PageRecord]: ...

    @abstractmethod
    def create_issue(self, issue: Issue) -> Issue: ...

    @abstractmethod
    def list_issues(self, run_id: str | None = None, page_id: str | None = None) -> list[Issue]: ...

    @abstractmethod
    def create_baseline(self, baseline: VisualBaseline) -> VisualBaseline: ...

    @abstractmethod
    def get_baseline(self, baseline_id: str) -> VisualBaseline: ...

    @abstractmethod
    def update_baseline(self, baseline_id: str, **changes) -> VisualBaseline: ...

    @abstractmethod
    def find_baselines(
        self, site_id: str, page_url: str | None = None, active: bool | None = True,
    ) -> list[VisualBaseline]: ...

    @abstractmethod
    def create_visual_diff(self, diff: VisualDiff) -> VisualDiff: ...

    @abstractmethod
    def list_visual_diffs(self, run_id: str) -> list[VisualDiff]: ...


class MemoryStore(AuditStore):
    """Dict-backed store. Safe to share between the API thread and run tasks."""

    def __init__(self):
        self._lock = threading.RLock()
        self.sites: dict[str, Site] = {}
        self.runs: dict[str, Run] = {}
        self.pages: dict[str, PageRecord] = {}
        self.issues: dict[str, Issue] = {}
        self.baselines: dict[str, VisualBaseline] = {}
        self.visual_diffs: dict[str, VisualDiff] = {}

    def create_site(self, site: Site) -> Site:
        with self._lock:
            self.sites[site.id] = site
        return site

    def get_site(self, site_id: str) -> Site | None:
        return self.sites.get(site_id)

    def create_run(self, run: Run) -> Run:
        with self._lock:
            self.runs[run.id] = run
        return run

    def get_run(self, run_id: str) -> Run:
        run = self.runs.get(run_id)
        if run is None:
            raise RunNotFound(run_id)
        return run

    def update_run(self, run_id: str, **changes) -> Run:
        with self._lock:
            run = replace(self.get_run(run_id), **changes)
            self.runs[run_id] = run
        return run

    def list_runs(self, site_id: str | None = None) -> list[Run]:
        runs = [r for r in self.runs.values() if site_id is None or r.site_id == site_id]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)

    def create_page(self, page: PageRecord) -> PageRecord:
        with self._lock:
            self.pages[page.id] = page
        return page

    def update_page(self, page_id: str, **changes) -> PageRecord:
        with self._lock:
            page = replace(self.pages[page_id], **changes)
            self.pages[page_id] = page
        return page

    def list_pages(self, run_id: str) -> list[PageRecord]:
        return [p for p in self.pages.values() if p.run_id == run_id]

    def create_issue(self, issue: Issue) -> Issue:
        with self._lock:
            self.issues[issue.id] = issue
        return issue

    def list_issues(self, run_id: str | None = None, page_id: str | None = None) -> list[Issue]:
        return [
            i for i in self.issues.values()
            if (run_id is None or i.run_id == run_id)
            and (page_id is None or i.page_id == page_id)
        ]

    def create_baseline(self, baseline: VisualBaseline) -> VisualBaseline:
        with self._lock:
            self.baselines[baseline.id] = baseline
        return baseline

    def get_baseline(self, baseline_id: str) -> VisualBaseline:
        baseline = self.baselines.get(baseline_id)
        if baseline is None:
            raise BaselineNotFound(baseline_id)
        return baseline

    def update_baseline(self, baseline_id: str, **changes) -> VisualBaseline:
        with self._lock:
            baseline = replace(self.get_baseline(baseline_id), **changes)
            self.baselines[baseline_id] = baseline
        return baseline

    def find_baselines(
        self, site_id: str, page_url: str | None = None, active: bool | None = True,
    ) -> list[VisualBaseline]:
        return [
            b for b in self.baselines.values()
            if b.site_id == site_id
            and (page_url is None or b.page_url == page_url)
            and (active is None or b.is_active == active)
        ]

    def create_visual_diff(self, diff: VisualDiff) -> VisualDiff:
        with self._lock:
            self.visual_diffs[diff.id] = diff
        return diff

    def list_visual_diffs(self, run_id: str) -> list[VisualDiff]:
        return [d for d in self.visual_diffs.values() if d.run_id == run_id]
