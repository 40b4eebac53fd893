"""Shared plumbing for page checkers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
from playwright.async_api import Browser, Page

from auditor.config import AuditConfig
from auditor.models.findings import Finding

if TYPE_CHECKING:
    from auditor.detectors.js_errors import ErrorCapture


@dataclass
class AuditTarget:
    """Everything a checker may touch while auditing one loaded page."""

    page: Page
    url: str
    browser: Browser
    config: AuditConfig
    http: httpx.AsyncClient
    errors: "ErrorCapture | None" = None


class Checker:
    """One independent check. Subclasses set ``name`` and implement ``check``."""

    name: str = "checker"

    async def check(self, target: AuditTarget) -> list[Finding]:
        raise NotImplementedError
