"""Tunables for a site audit.

One ``AuditConfig`` is built per process (usually via ``from_env``) and handed
to each engine at construction time. Nothing in the pipeline reads the
environment directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from auditor.utils.test_data import FormTestData

logger = logging.getLogger(__name__)


EXCLUDED_PATTERNS = [
    "/wp-admin",
    "/login",
    "/account",
    "/cart",
    "/checkout",
    "/admin",
    "/signin",
    "/signup",
    "/register",
]

BLOCKED_EXTENSIONS = ["pdf", "zip", "jpg", "jpeg", "png", "gif", "css", "js", "xml", "json"]

SUCCESS_KEYWORDS = ["thank", "received", "success", "submitted", "confirmation"]
ERROR_KEYWORDS = ["error", "invalid", "failed", "required", "missing"]

MOBILE_VIEWPORTS = [
    {"name": "iPhone SE", "width": 375, "height": 667},
    {"name": "iPhone 12 Pro", "width": 390, "height": 844},
    {"name": "iPad", "width": 768, "height": 1024},
    {"name": "Galaxy S20", "width": 360, "height": 800},
]

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@dataclass
class AuditConfig:
    max_depth: int = 2
    max_pages: int = 30
    viewport_width: int = 1440
    viewport_height: int = 900
    page_timeout_ms: int = 30000
    crawl_timeout_ms: int = 15000
    idle_timeout_ms: int = 2000
    sitemap_timeout_s: float = 10.0
    link_check_timeout_s: float = 5.0
    js_observation_ms: int = 2000
    excluded_patterns: list[str] = field(default_factory=lambda: list(EXCLUDED_PATTERNS))
    blocked_extensions: list[str] = field(default_factory=lambda: list(BLOCKED_EXTENSIONS))
    diff_threshold_pct: float = 0.1
    pixel_threshold: float = 0.1
    concurrency: int = 1
    auto_baseline: bool = False
    storage_dir: str = "./uploads"
    headless: bool = True
    user_agent: str = DESKTOP_USER_AGENT
    mobile_user_agent: str = MOBILE_USER_AGENT
    success_keywords: list[str] = field(default_factory=lambda: list(SUCCESS_KEYWORDS))
    error_keywords: list[str] = field(default_factory=lambda: list(ERROR_KEYWORDS))
    mobile_viewports: list[dict] = field(default_factory=lambda: [dict(v) for v in MOBILE_VIEWPORTS])
    test_data: FormTestData = field(default_factory=FormTestData)

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @classmethod
    def from_env(cls, environ=None) -> "AuditConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        cfg.max_depth = _int(env, "AUDIT_MAX_DEPTH", cfg.max_depth)
        cfg.max_pages = _int(env, "AUDIT_MAX_PAGES", cfg.max_pages)
        cfg.viewport_width = _int(env, "AUDIT_VIEWPORT_WIDTH", cfg.viewport_width)
        cfg.viewport_height = _int(env, "AUDIT_VIEWPORT_HEIGHT", cfg.viewport_height)
        cfg.page_timeout_ms = _int(env, "AUDIT_PAGE_TIMEOUT_MS", cfg.page_timeout_ms)
        cfg.crawl_timeout_ms = _int(env, "AUDIT_CRAWL_TIMEOUT_MS", cfg.crawl_timeout_ms)
        cfg.idle_timeout_ms = _int(env, "AUDIT_IDLE_TIMEOUT_MS", cfg.idle_timeout_ms)
        cfg.link_check_timeout_s = _float(env, "AUDIT_LINK_TIMEOUT_S", cfg.link_check_timeout_s)
        cfg.diff_threshold_pct = _float(env, "AUDIT_DIFF_THRESHOLD", cfg.diff_threshold_pct)
        cfg.concurrency = max(1, _int(env, "AUDIT_CONCURRENCY", cfg.concurrency))
        cfg.storage_dir = env.get("AUDIT_STORAGE_DIR", cfg.storage_dir)
        cfg.auto_baseline = env.get("AUDIT_AUTO_BASELINE", "").lower() in ("1", "true", "yes")
        patterns = env.get("AUDIT_EXCLUDED_PATTERNS")
        if patterns:
            cfg.excluded_patterns = [p.strip() for p in patterns.split(",") if p.strip()]
        return cfg


def _int(env, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", key, raw)
        return default


def _float(env, key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", key, raw)
        return default
