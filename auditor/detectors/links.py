"""Broken link detection: HEAD every anchor, image, script and stylesheet URL."""

from __future__ import annotations

import asyncio
import logging

import httpx

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import BrokenLink

logger = logging.getLogger(__name__)


COLLECT_RESOURCES_JS = """() => {
    const out = [];
    for (const a of document.querySelectorAll('a[href]')) {
        out.push({ href: a.href, text: (a.textContent || '').trim().substring(0, 100) });
    }
    for (const img of document.querySelectorAll('img[src]')) {
        out.push({ href: img.src, text: 'Image: ' + (img.alt || 'no alt text') });
    }
    for (const s of document.querySelectorAll('script[src]')) {
        out.push({ href: s.src, text: 'Script' });
    }
    for (const l of document.querySelectorAll('link[rel="stylesheet"][href]')) {
        out.push({ href: l.href, text: 'Stylesheet' });
    }
    return out;
}"""

SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:")
MAX_PARALLEL_CHECKS = 8


def checkable_resources(resources: list[dict]) -> list[dict]:
    """Deduplicate and drop links that cannot be fetched."""
    seen = set()
    out = []
    for res in resources:
        href = (res.get("href") or "").strip()
        if not href or href in seen:
            continue
        seen.add(href)
        if href.lower().startswith(SKIPPED_SCHEMES) or href.startswith("#"):
            continue
        if "#" in href:
            # In-page anchors resolve to the current document
            continue
        out.append({"href": href, "text": res.get("text", "")})
    return out


class BrokenLinkChecker(Checker):
    name = "links"

    async def check(self, target: AuditTarget) -> list[BrokenLink]:
        resources = checkable_resources(await target.page.evaluate(COLLECT_RESOURCES_JS) or [])
        logger.info("Checking %d link(s) on %s", len(resources), target.url)

        semaphore = asyncio.Semaphore(MAX_PARALLEL_CHECKS)

        async def head_check(res: dict) -> BrokenLink | None:
            async with semaphore:
                return await check_link(target.http, res["href"], res["text"],
                                        target.config.link_check_timeout_s)

        results = await asyncio.gather(*(head_check(r) for r in resources))
        return [r for r in results if r is not None]


async def check_link(http: httpx.AsyncClient, url: str, source: str,
                     timeout: float) -> BrokenLink | None:
    try:
        response = await http.head(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return BrokenLink(
            url=url, source_element=source, status_code=0,
            status_text=str(e) or type(e).__name__,
        )
    if response.status_code >= 400:
        return BrokenLink(
            url=url, source_element=source, status_code=response.status_code,
            status_text=response.reason_phrase,
        )
    return None
