import asyncio
from contextlib import asynccontextmanager

import pytest

from auditor.core.crawler import EXTRACT_LINKS_JS
from auditor.core.pipeline import PageAuditPipeline, TesterRegistry
from auditor.core.runner import STOPPED_MESSAGE, RunOrchestrator, resolve_custom_pages
from auditor.detectors.base import Checker
from auditor.errors import InvalidRunState, RunNotFound
from auditor.models.findings import AccessibilityIssue
from auditor.models.types import IssueType, RunStatus, Severity, Site
from auditor.storage.store import MemoryStore
from fakes import FakeBrowser, browser_factory, mock_http

BASE = "https://example.test/"
SITE = {
    BASE: {EXTRACT_LINKS_JS: [BASE + "about"], "title": "Home"},
    BASE + "about": {EXTRACT_LINKS_JS: [], "title": "About us"},
}


def make_orchestrator(config, browser, pipeline=None, factory=None):
    events = []
    orchestrator = RunOrchestrator(
        MemoryStore(),
        config,
        pipeline=pipeline,
        browser_factory=factory or browser_factory(browser),
        http_factory=lambda: mock_http(),
        on_progress=lambda event, data: events.append(event),
    )
    return orchestrator, events


def site():
    return Site(name="Example", base_url=BASE, project_id="proj")


class StaticChecker(Checker):
    name = "static"

    def __init__(self, findings):
        self.findings = findings

    async def check(self, target):
        return list(self.findings)


class BrokenChecker(Checker):
    name = "broken"

    async def check(self, target):
        raise RuntimeError("checker bug")


async def test_full_run_completes_with_counters(config):
    browser = FakeBrowser(site=SITE)
    orchestrator, events = make_orchestrator(config, browser)
    run = orchestrator.create_run(site())
    assert run.status == RunStatus.PENDING

    await orchestrator.execute_run(run.id, orchestrator.store.get_site(run.site_id))

    run = orchestrator.store.get_run(run.id)
    pages = orchestrator.store.list_pages(run.id)
    issues = orchestrator.store.list_issues(run_id=run.id)
    assert run.status == RunStatus.COMPLETED
    assert run.completed_at is not None
    assert run.pages_processed == 2
    # Fake pages have no title tag, meta description, ... so each gets one SEO issue
    assert [i.type for i in issues] == [IssueType.SEO, IssueType.SEO]
    assert run.issues_created == len(issues)
    assert {(p.url, p.depth, p.title) for p in pages} == {(BASE, 0, "Home"), (BASE + "about", 1, "About us")}
    assert all(orchestrator.files.resolve(p.screenshot_path).exists() for p in pages)
    assert browser.open_contexts == 0
    assert events[0] == "run_started"
    assert events[1] == "pages_discovered"
    assert events[-1] == "run_completed"


async def test_page_that_fails_to_load_is_recorded_and_run_completes(config):
    browser = FakeBrowser(site=SITE, failures={BASE + "about": TimeoutError("Navigation timeout")})
    orchestrator, events = make_orchestrator(config, browser)
    run = orchestrator.create_run(site())

    await orchestrator.execute_run(run.id, site())

    run = orchestrator.store.get_run(run.id)
    failed = [p for p in orchestrator.store.list_pages(run.id) if p.render_failed]
    assert run.status == RunStatus.COMPLETED
    assert run.pages_processed == 2
    assert [p.url for p in failed] == [BASE + "about"]
    assert failed[0].render_error == "Navigation timeout"
    assert "page_failed" in events
    assert browser.open_contexts == 0


async def test_browser_launch_failure_fails_the_run(config):
    @asynccontextmanager
    async def no_browser():
        raise RuntimeError("browser launch failed")
        yield

    orchestrator, events = make_orchestrator(config, None, factory=no_browser)
    run = orchestrator.create_run(site())
    await orchestrator.execute_run(run.id, site())

    run = orchestrator.store.get_run(run.id)
    assert run.status == RunStatus.FAILED
    assert run.error_message == "browser launch failed"
    assert run.completed_at is not None
    assert events[-1] == "run_failed"


async def test_checker_failure_is_isolated(config):
    finding = AccessibilityIssue(kind="Empty Links", severity=Severity.MAJOR,
                                 description="1 link(s) without text content", recommendation="text")
    pipeline = PageAuditPipeline(TesterRegistry([BrokenChecker(), StaticChecker([finding])]))
    orchestrator, _ = make_orchestrator(config, FakeBrowser(site=SITE), pipeline=pipeline)
    run = orchestrator.create_run(site())

    await orchestrator.execute_custom_run(run.id, site(), ["/"])

    run = orchestrator.store.get_run(run.id)
    [issue] = orchestrator.store.list_issues(run_id=run.id)
    assert run.status == RunStatus.COMPLETED
    assert issue.type == IssueType.ACCESSIBILITY
    assert issue.title == "1 Accessibility Issue(s) on Homepage"


class SlowChecker(StaticChecker):
    name = "slow"

    def __init__(self, findings):
        super().__init__(findings)
        self.active = 0
        self.peak = 0

    async def check(self, target):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return list(self.findings)


async def test_concurrent_pages_keep_counters_consistent(config):
    config.concurrency = 2
    finding = AccessibilityIssue(kind="Empty Links", severity=Severity.MAJOR,
                                 description="1 link(s) without text content", recommendation="text")
    checker = SlowChecker([finding])
    browser = FakeBrowser(site=SITE)
    orchestrator, events = make_orchestrator(
        config, browser, pipeline=PageAuditPipeline(TesterRegistry([checker])),
    )
    run = orchestrator.create_run(site())

    await orchestrator.execute_custom_run(run.id, site(), ["/", "/about", "/contact"])

    run = orchestrator.store.get_run(run.id)
    issues = orchestrator.store.list_issues(run_id=run.id)
    assert run.status == RunStatus.COMPLETED
    assert run.pages_processed == 3
    assert run.issues_created == 3 == len(issues)
    assert len(orchestrator.store.list_pages(run.id)) == 3
    assert checker.peak == 2
    assert events.count("page_audited") == 3
    assert browser.open_contexts == 0


async def test_stop_mid_run_skips_remaining_pages(config):
    browser = FakeBrowser(site=SITE)
    orchestrator = None

    class StopAfterFirstPage(Checker):
        name = "stopper"

        async def check(self, target):
            orchestrator.stop_run(run.id)
            return []

    pipeline = PageAuditPipeline(TesterRegistry([StopAfterFirstPage()]))
    orchestrator, events = make_orchestrator(config, browser, pipeline=pipeline)
    run = orchestrator.create_run(site())

    await orchestrator.execute_custom_run(run.id, site(), ["/", "/about"])

    stopped = orchestrator.store.get_run(run.id)
    assert stopped.status == RunStatus.FAILED
    assert stopped.error_message == STOPPED_MESSAGE
    assert stopped.pages_processed == 1
    assert browser.visits == [BASE]
    assert "run_stopped" in events
    assert "run_completed" not in events


async def test_stopping_a_pending_run_prevents_it_starting(config):
    browser = FakeBrowser(site=SITE)
    orchestrator, events = make_orchestrator(config, browser)
    run = orchestrator.create_run(site())

    orchestrator.stop_run(run.id)
    await orchestrator.execute_run(run.id, site())

    assert orchestrator.store.get_run(run.id).status == RunStatus.FAILED
    assert browser.visits == []
    assert events == ["run_stopped"]


async def test_stop_rejects_finished_and_unknown_runs(config):
    orchestrator, _ = make_orchestrator(config, FakeBrowser(site=SITE))
    run = orchestrator.create_run(site())
    await orchestrator.execute_custom_run(run.id, site(), ["/"])

    with pytest.raises(InvalidRunState):
        orchestrator.stop_run(run.id)
    with pytest.raises(RunNotFound):
        orchestrator.stop_run("missing")


async def test_running_run_cannot_be_started_twice(config):
    orchestrator, _ = make_orchestrator(config, FakeBrowser(site=SITE))
    run = orchestrator.create_run(site())
    orchestrator.store.update_run(run.id, status=RunStatus.RUNNING)

    with pytest.raises(InvalidRunState):
        await orchestrator.execute_run(run.id, site())


async def test_auto_baseline_then_regression_passes(config):
    config.auto_baseline = True
    pipeline = PageAuditPipeline(TesterRegistry([]))
    orchestrator, _ = make_orchestrator(config, FakeBrowser(site=SITE), pipeline=pipeline)
    the_site = site()

    first = orchestrator.create_run(the_site)
    await orchestrator.execute_custom_run(first.id, the_site, ["/"])
    [baseline] = orchestrator.baselines.list_for_site(the_site.id)
    assert baseline.page_url == BASE

    second = orchestrator.create_run(the_site)
    await orchestrator.execute_custom_run(second.id, the_site, ["/"])

    [diff] = orchestrator.store.list_visual_diffs(second.id)
    assert diff.baseline_id == baseline.id
    assert diff.passed
    assert orchestrator.store.list_issues(run_id=second.id) == []
    assert len(orchestrator.baselines.list_for_site(the_site.id)) == 1


def test_custom_pages_are_resolved_and_deduplicated():
    pages = ["/pricing", "about", "https://example.test/pricing/", "  ", "https://other.test/x"]
    assert resolve_custom_pages("https://example.test/", pages, max_pages=10) == [
        "https://example.test/pricing",
        "https://example.test/about",
        "https://other.test/x",
    ]
    assert len(resolve_custom_pages("https://example.test", pages, max_pages=2)) == 2
