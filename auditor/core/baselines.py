"""Baseline administration: what the regression engine compares against.

Baselines are never deleted when superseded, only deactivated. A Figma access
token is used for the download and then dropped; only the file key and node
id are kept on the record.
"""

from __future__ import annotations

import logging

from auditor.core.figma import FigmaClient
from auditor.errors import BaselineError, InvalidFileRef
from auditor.models.types import BaselineType, VisualBaseline
from auditor.storage.files import FileStore
from auditor.storage.store import AuditStore

logger = logging.getLogger(__name__)


class BaselineService:
    def __init__(self, store: AuditStore, files: FileStore, figma: FigmaClient | None = None):
        self.store = store
        self.files = files
        self.figma = figma

    def list_for_site(self, site_id: str, page_url: str | None = None,
                      active: bool | None = None) -> list[VisualBaseline]:
        return self.store.find_baselines(site_id, page_url, active=active)

    def create_from_screenshot(
        self,
        site_id: str,
        page_url: str,
        screenshot_path: str,
        viewport_width: int,
        viewport_height: int,
        baseline_type: BaselineType = BaselineType.SCREENSHOT,
        created_by: str | None = None,
    ) -> VisualBaseline:
        if baseline_type == BaselineType.FIGMA:
            raise BaselineError("Figma baselines are created with create_from_figma")
        try:
            source = self.files.resolve(screenshot_path)
        except InvalidFileRef as e:
            raise BaselineError(str(e)) from e
        if not source.exists():
            raise BaselineError(f"Screenshot not found: {screenshot_path}")

        ref = self.files.copy_in(screenshot_path, self.files.baseline_ref(site_id, page_url))
        baseline = self.store.create_baseline(VisualBaseline(
            site_id=site_id,
            page_url=page_url,
            baseline_type=baseline_type,
            image_path=ref,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            created_by=created_by,
        ))
        logger.info("Created %s baseline for %s", baseline_type.value, page_url)
        return baseline

    async def create_from_figma(
        self,
        site_id: str,
        page_url: str,
        file_key: str,
        node_id: str,
        access_token: str,
        viewport_width: int,
        viewport_height: int,
        created_by: str | None = None,
    ) -> VisualBaseline:
        image = await self._figma().fetch_design(file_key, node_id, access_token)
        ref = self.files.write_bytes(self.files.figma_ref(file_key, node_id), image)
        baseline = self.store.create_baseline(VisualBaseline(
            site_id=site_id,
            page_url=page_url,
            baseline_type=BaselineType.FIGMA,
            image_path=ref,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
            figma_file_key=file_key,
            figma_node_id=node_id,
            created_by=created_by,
        ))
        logger.info("Created Figma baseline for %s", page_url)
        return baseline

    async def refresh_figma(self, baseline_id: str, access_token: str) -> VisualBaseline:
        baseline = self.store.get_baseline(baseline_id)
        if baseline.baseline_type != BaselineType.FIGMA:
            raise BaselineError(f"Baseline {baseline_id} is not a Figma baseline")

        image = await self._figma().fetch_design(
            baseline.figma_file_key, baseline.figma_node_id, access_token,
        )
        ref = self.files.write_bytes(
            self.files.figma_ref(baseline.figma_file_key, baseline.figma_node_id), image,
        )
        try:
            self.files.delete(baseline.image_path)
        except OSError as e:
            logger.warning("Failed to delete old Figma image %s: %s", baseline.image_path, e)

        logger.info("Refreshed Figma baseline %s", baseline_id)
        return self.store.update_baseline(baseline_id, image_path=ref)

    def deactivate(self, baseline_id: str) -> VisualBaseline:
        return self.store.update_baseline(baseline_id, is_active=False)

    def activate(self, baseline_id: str) -> VisualBaseline:
        return self.store.update_baseline(baseline_id, is_active=True)

    def _figma(self) -> FigmaClient:
        if self.figma is None:
            raise BaselineError("Figma integration is not configured")
        return self.figma
