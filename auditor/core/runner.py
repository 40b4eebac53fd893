"""Run orchestration: discovery, per-page audit, issue aggregation.

A run moves Pending -> Running -> Completed | Failed. One browser is launched
per run; every page gets its own browser context that is closed whatever
happens inside it. A page that fails to load is recorded as a failed page and
the run carries on; only a failure that makes the whole run meaningless
(browser launch, discovery) fails the run.

Stopping is cooperative. ``stop_run`` marks the run Failed at once and sets a
flag the page loop checks before starting each page; a page already being
audited finishes first.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncContextManager, Callable

import httpx
from playwright.async_api import Browser, async_playwright

from auditor.config import AuditConfig
from auditor.core.baselines import BaselineService
from auditor.core.crawler import PageDiscoveryEngine, normalize_url
from auditor.core.issues import IssueAggregator, PageContext
from auditor.core.pipeline import PageAuditPipeline
from auditor.core.visual_regression import VisualRegressionEngine
from auditor.detectors.base import AuditTarget
from auditor.detectors.js_errors import ErrorCapture
from auditor.errors import InvalidRunState
from auditor.models.findings import VisualDiffResult
from auditor.models.types import PageRecord, Run, RunStatus, Site
from auditor.storage.files import FileStore
from auditor.storage.store import AuditStore
from auditor.utils.smart_wait import wait_for_stable_page

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[str, dict], None]
BrowserFactory = Callable[[], AsyncContextManager[Browser]]
HttpFactory = Callable[[], httpx.AsyncClient]

STOPPED_MESSAGE = "Stopped by user"


@asynccontextmanager
async def launch_browser(headless: bool = True):
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=headless)
        try:
            yield browser
        finally:
            await browser.close()


def resolve_custom_pages(base_url: str, pages: list[str], max_pages: int) -> list[str]:
    """Absolute URLs for a custom page list: relative paths join the base, duplicates drop."""
    base = base_url.rstrip("/")
    urls: dict[str, None] = {}
    for page in pages:
        entry = page.strip()
        if not entry:
            continue
        if entry.startswith("/"):
            url = f"{base}{entry}"
        elif entry.startswith("http"):
            url = entry
        else:
            url = f"{base}/{entry}"
        urls.setdefault(normalize_url(url), None)
    return list(urls)[:max_pages]


class RunOrchestrator:
    def __init__(
        self,
        store: AuditStore,
        config: AuditConfig | None = None,
        files: FileStore | None = None,
        pipeline: PageAuditPipeline | None = None,
        browser_factory: BrowserFactory | None = None,
        http_factory: HttpFactory | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.store = store
        self.config = config or AuditConfig()
        self.files = files or FileStore(self.config.storage_dir)
        self.pipeline = pipeline or PageAuditPipeline()
        self.regression = VisualRegressionEngine(store, self.files, self.config)
        self.aggregator = IssueAggregator(store)
        self.baselines = BaselineService(store, self.files)
        self._browser_factory = browser_factory or (lambda: launch_browser(self.config.headless))
        self._http_factory = http_factory or (
            lambda: httpx.AsyncClient(headers={"User-Agent": self.config.user_agent})
        )
        self._on_progress = on_progress
        self._stop_flags: dict[str, asyncio.Event] = {}

    def create_run(self, site: Site) -> Run:
        if self.store.get_site(site.id) is None:
            self.store.create_site(site)
        run = self.store.create_run(Run(site_id=site.id))
        logger.info("Created run %s for %s", run.id, site.base_url)
        return run

    def stop_run(self, run_id: str) -> Run:
        run = self.store.get_run(run_id)
        if run.status not in (RunStatus.RUNNING, RunStatus.PENDING):
            raise InvalidRunState(f"Run {run_id} is not active (status: {run.status.value})")

        run = self.store.update_run(
            run_id,
            status=RunStatus.FAILED,
            completed_at=datetime.now(),
            error_message=STOPPED_MESSAGE,
        )
        flag = self._stop_flags.get(run_id)
        if flag is not None:
            flag.set()
        logger.info("Run %s stopped by user", run_id)
        self._emit("run_stopped", {"run_id": run_id})
        return run

    async def execute_run(self, run_id: str, site: Site):
        await self._execute(run_id, site, None)

    async def execute_custom_run(self, run_id: str, site: Site, pages: list[str]):
        urls = resolve_custom_pages(site.base_url, pages, self.config.max_pages)
        await self._execute(run_id, site, [(url, 0) for url in urls])

    async def _execute(self, run_id: str, site: Site, pages: list[tuple[str, int]] | None):
        run = self.store.get_run(run_id)
        if run.status.terminal:
            logger.info("Run %s already %s before it started", run_id, run.status.value)
            return
        if run.status != RunStatus.PENDING:
            raise InvalidRunState(f"Run {run_id} is already {run.status.value}")

        stop = asyncio.Event()
        self._stop_flags[run_id] = stop
        self.store.update_run(run_id, status=RunStatus.RUNNING, started_at=datetime.now())
        logger.info("Starting run %s for site %s", run_id, site.name)
        self._emit("run_started", {"run_id": run_id, "url": site.base_url})

        try:
            async with self._browser_factory() as browser, self._http_factory() as http:
                if pages is None:
                    discovery = PageDiscoveryEngine(browser, self.config, http)
                    pages = await discovery.discover_pages(site.base_url)
                logger.info("Discovered %d pages for run %s", len(pages), run_id)
                self._emit("pages_discovered", {
                    "run_id": run_id,
                    "count": len(pages),
                    "urls": [url for url, _ in pages],
                })
                await self._audit_pages(run_id, site, pages, browser, http, stop)
        except Exception as e:
            logger.exception("Run %s failed", run_id)
            if self._finish(run_id, RunStatus.FAILED, error_message=str(e)[:500]):
                self._emit("run_failed", {"run_id": run_id, "error": str(e)[:500]})
            return
        finally:
            self._stop_flags.pop(run_id, None)

        if self._finish(run_id, RunStatus.COMPLETED):
            run = self.store.get_run(run_id)
            logger.info("Completed run %s: %d pages, %d issues",
                        run_id, run.pages_processed, run.issues_created)
            self._emit("run_completed", {
                "run_id": run_id,
                "pages_processed": run.pages_processed,
                "issues_created": run.issues_created,
            })

    def _finish(self, run_id: str, status: RunStatus, error_message: str | None = None) -> bool:
        """Move a running run to a terminal status. False if it was stopped meanwhile."""
        run = self.store.get_run(run_id)
        if run.status.terminal:
            return False
        self.store.update_run(
            run_id, status=status, completed_at=datetime.now(), error_message=error_message,
        )
        return True

    async def _audit_pages(self, run_id: str, site: Site, pages: list[tuple[str, int]],
                           browser: Browser, http: httpx.AsyncClient, stop: asyncio.Event):
        semaphore = asyncio.Semaphore(max(1, self.config.concurrency))
        total = len(pages)

        async def worker(index: int, url: str, depth: int):
            async with semaphore:
                if stop.is_set():
                    return
                self._emit("page_started", {"run_id": run_id, "url": url,
                                            "page_number": index + 1, "total": total})
                created = await self._audit_page(run_id, site, url, depth, browser, http)
                run = self.store.get_run(run_id)
                self.store.update_run(
                    run_id,
                    pages_processed=run.pages_processed + 1,
                    issues_created=run.issues_created + created,
                )

        await asyncio.gather(*(worker(i, url, depth) for i, (url, depth) in enumerate(pages)))

    async def _audit_page(self, run_id: str, site: Site, url: str, depth: int,
                          browser: Browser, http: httpx.AsyncClient) -> int:
        config = self.config
        context = await browser.new_context(viewport=config.viewport, user_agent=config.user_agent)
        record = None
        try:
            page = await context.new_page()
            async with ErrorCapture(page) as errors:
                response = await page.goto(url, wait_until="networkidle",
                                           timeout=config.page_timeout_ms)
                await wait_for_stable_page(page, config.idle_timeout_ms)
                status_code = response.status if response is not None else 0
                if status_code != 200:
                    logger.warning("Page %s returned status %d", url, status_code)

                screenshot = self.files.screenshot_ref(run_id, url)
                await page.screenshot(path=str(self.files.resolve(screenshot)), full_page=True)
                record = self.store.create_page(PageRecord(
                    run_id=run_id,
                    url=url,
                    depth=depth,
                    title=await page.title(),
                    status_code=status_code,
                    screenshot_path=screenshot,
                ))

                target = AuditTarget(page=page, url=url, browser=browser,
                                     config=config, http=http, errors=errors)
                findings = await self.pipeline.audit(target)

            diffs = await self.regression.compare_screenshots(
                run_id, record.id, url, screenshot, site.id,
            )
            findings.extend(VisualDiffResult.from_diff(d) for d in diffs)
            if config.auto_baseline and not self.store.find_baselines(site.id, url, active=True):
                self.baselines.create_from_screenshot(
                    site.id, url, screenshot, config.viewport_width, config.viewport_height,
                )

            created = self.aggregator.aggregate(PageContext(
                project_id=site.project_id,
                site_id=site.id,
                run_id=run_id,
                page_id=record.id,
                url=url,
                screenshot_path=screenshot,
            ), findings)
            self._emit("page_audited", {"run_id": run_id, "url": url,
                                        "findings": len(findings), "issues": created})
            return created
        except Exception as e:
            logger.warning("Error processing page %s: %s", url, e)
            message = str(e)[:500] or type(e).__name__
            if record is None:
                self.store.create_page(PageRecord(
                    run_id=run_id, url=url, depth=depth,
                    render_failed=True, render_error=message,
                ))
            else:
                self.store.update_page(record.id, render_failed=True, render_error=message)
            self._emit("page_failed", {"run_id": run_id, "url": url, "error": message})
            return 0
        finally:
            await context.close()

    def _emit(self, event_type: str, data: dict):
        if self._on_progress:
            self._on_progress(event_type, data)
