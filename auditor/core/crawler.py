"""Page discovery: sitemap seeding plus a bounded breadth-first link crawl.

- Seeds with the normalized base URL
- Adds every valid <loc> from /sitemap.xml when it can be fetched
- BFS over rendered pages with an explicit frontier, depth < max_depth
- Stops as soon as max_pages URLs are known and returns what it has

All state lives on the ``discover()`` call, so one engine can serve many runs.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import deque
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

import httpx
from playwright.async_api import Browser

from auditor.config import AuditConfig

logger = logging.getLogger(__name__)


EXTRACT_LINKS_JS = """() => {
    return [...document.querySelectorAll('a[href]')].map(a => a.href);
}"""


class PageDiscoveryEngine:
    """Finds the same-domain pages of a site worth auditing."""

    def __init__(self, browser: Browser, config: AuditConfig, http: httpx.AsyncClient):
        self.browser = browser
        self.config = config
        self.http = http

    async def discover(self, base_url: str) -> list[str]:
        return [url for url, _ in await self.discover_pages(base_url)]

    async def discover_pages(self, base_url: str) -> list[tuple[str, int]]:
        """Like ``discover`` but each URL comes with the crawl depth it was found at."""
        base = normalize_url(base_url)
        base_host = urlparse(base).hostname
        discovered: dict[str, int] = {base: 0}

        for url in await self._fetch_sitemap(base, base_host):
            if len(discovered) >= self.config.max_pages:
                break
            discovered.setdefault(url, 1)

        frontier: deque[tuple[str, int]] = deque([(base, 0)])
        while frontier and len(discovered) < self.config.max_pages:
            url, depth = frontier.popleft()
            if depth >= self.config.max_depth:
                continue

            links = await self._extract_links(url)
            for link in links:
                if len(discovered) >= self.config.max_pages:
                    break
                if not self.is_valid_url(link, base_host):
                    continue
                normalized = normalize_url(link)
                if normalized in discovered:
                    continue
                discovered[normalized] = depth + 1
                if depth + 1 < self.config.max_depth:
                    frontier.append((normalized, depth + 1))

        urls = list(discovered.items())[: self.config.max_pages]
        logger.info("Discovered %d pages for %s (max: %d)", len(urls), base, self.config.max_pages)
        return urls

    def is_valid_url(self, url: str, base_host: str | None) -> bool:
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            return False

        if parsed.scheme not in ("http", "https"):
            return False
        if not hostname or hostname != base_host:
            return False

        path = parsed.path.lower()
        if any(pattern.lower() in path for pattern in self.config.excluded_patterns):
            return False

        last_segment = path.rsplit("/", 1)[-1]
        if "." in last_segment:
            ext = last_segment.rsplit(".", 1)[-1]
            if ext in self.config.blocked_extensions:
                return False
        return True

    async def _fetch_sitemap(self, base: str, base_host: str | None) -> list[str]:
        sitemap_url = base.rstrip("/") + "/sitemap.xml"
        logger.info("Fetching sitemap: %s", sitemap_url)
        try:
            response = await self.http.get(
                sitemap_url, timeout=self.config.sitemap_timeout_s, follow_redirects=True,
            )
            if response.status_code != 200:
                logger.info("No sitemap at %s (HTTP %d)", sitemap_url, response.status_code)
                return []
            root = ET.fromstring(response.content)
        except (httpx.HTTPError, ET.ParseError) as e:
            logger.warning("Failed to fetch sitemap %s: %s", sitemap_url, e)
            return []

        urls = []
        for loc in root.findall(".//{*}loc"):
            text = (loc.text or "").strip()
            if text and self.is_valid_url(text, base_host):
                urls.append(normalize_url(text))
        logger.info("Added %d URLs from sitemap", len(urls))
        return urls

    async def _extract_links(self, url: str) -> list[str]:
        context = await self.browser.new_context(
            viewport=self.config.viewport,
            user_agent=self.config.user_agent,
        )
        try:
            page = await context.new_page()
            await page.goto(url, wait_until="networkidle", timeout=self.config.crawl_timeout_ms)
            return await page.evaluate(EXTRACT_LINKS_JS) or []
        except Exception as e:
            logger.warning("Failed to crawl %s: %s", url, e)
            return []
        finally:
            await context.close()


def normalize_url(url: str) -> str:
    """Drop the fragment, sort the query and collapse a trailing slash."""
    parsed = urlparse(url.strip())
    params = sorted(parse_qs(parsed.query, keep_blank_values=True).items())
    normalized = parsed._replace(
        fragment="",
        query=urlencode(params, doseq=True),
        path=parsed.path.rstrip("/") or "/",
    )
    return urlunparse(normalized)
