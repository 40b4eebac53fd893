#!/usr/bin/env python3
"""
Site audit CLI
Usage: python scan.py https://example.com [--pages 30] [--depth 2] [--json]
"""

import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from auditor.config import AuditConfig
from auditor.core.report import print_report
from auditor.core.runner import RunOrchestrator
from auditor.models.types import Site
from auditor.storage.store import MemoryStore


def main():
    parser = argparse.ArgumentParser(
        description="Crawl a site and audit every page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python scan.py https://example.com\n"
               "  python scan.py https://myapp.com --pages 10 --depth 1\n"
               "  python scan.py https://myapp.com --only /pricing /contact",
    )
    parser.add_argument("url", help="Website URL to audit")
    parser.add_argument("--pages", type=int, help="Max pages to audit (default: 30)")
    parser.add_argument("--depth", type=int, help="Max crawl depth (default: 2)")
    parser.add_argument("--only", nargs="+", metavar="PATH",
                        help="Audit only these pages instead of crawling")
    parser.add_argument("--storage", help="Directory for screenshots and diff images")
    parser.add_argument("--headful", action="store_true", help="Run browser visibly")
    parser.add_argument("--json", action="store_true", help="Output results as JSON instead of a report")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )

    url = args.url
    if not url.startswith("http"):
        url = f"https://{url}"

    config = AuditConfig.from_env()
    if args.pages is not None:
        config.max_pages = args.pages
    if args.depth is not None:
        config.max_depth = args.depth
    if args.storage:
        config.storage_dir = args.storage
    config.headless = not args.headful

    store = MemoryStore()
    run = asyncio.run(run_audit(store, config, url, args.only))

    pages = store.list_pages(run.id)
    issues = store.list_issues(run.id)
    diffs = store.list_visual_diffs(run.id)

    if args.json:
        output = {
            "run": run.to_dict(),
            "pages": [p.to_dict() for p in pages],
            "issues": [i.to_dict() for i in issues],
            "visual_diffs": [d.to_dict() for d in diffs],
        }
        print(json.dumps(output, indent=2, default=str))
    else:
        print_report(run, pages, issues, diffs)

    if run.error_message:
        sys.exit(1)


def _cli_progress(event_type: str, data: dict):
    log = logging.getLogger("scan")
    if event_type == "pages_discovered":
        log.info("Auditing %d page(s)", data.get("count", 0))
    elif event_type == "page_started":
        log.info("[%s/%s] %s", data.get("page_number", "?"), data.get("total", "?"), data.get("url", "")[:80])
    elif event_type == "page_audited":
        log.info("  %d finding(s), %d issue(s)", data.get("findings", 0), data.get("issues", 0))
    elif event_type == "page_failed":
        log.warning("  failed: %s", data.get("error", "")[:120])


async def run_audit(store: MemoryStore, config: AuditConfig, url: str, only: list[str] | None):
    site = Site(name=url, base_url=url)
    orchestrator = RunOrchestrator(store, config, on_progress=_cli_progress)
    run = orchestrator.create_run(site)
    if only:
        await orchestrator.execute_custom_run(run.id, site, only)
    else:
        await orchestrator.execute_run(run.id, site)
    return store.get_run(run.id)


if __name__ == "__main__":
    main()
