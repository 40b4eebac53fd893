"""Figma images API client: renders a design node to PNG for use as a baseline."""

from __future__ import annotations

import logging

import httpx

from auditor.errors import BaselineError

logger = logging.getLogger(__name__)


FIGMA_API_BASE = "https://api.figma.com/v1"
RENDER_SCALE = 2
REQUEST_TIMEOUT_S = 30.0


class FigmaClient:
    def __init__(self, http: httpx.AsyncClient, api_base: str = FIGMA_API_BASE):
        self.http = http
        self.api_base = api_base.rstrip("/")

    async def image_url(self, file_key: str, node_id: str, token: str) -> str:
        response = await self._get(
            f"{self.api_base}/images/{file_key}",
            token,
            params={"ids": node_id, "format": "png", "scale": RENDER_SCALE},
        )
        images = response.json().get("images") or {}
        url = images.get(node_id)
        if not url:
            logger.error("Figma response has no image for node %s (available: %s)",
                         node_id, list(images))
            raise BaselineError(f"Failed to get image URL from Figma for node {node_id}")
        return url

    async def fetch_design(self, file_key: str, node_id: str, token: str) -> bytes:
        url = await self.image_url(file_key, node_id, token)
        try:
            response = await self.http.get(url, timeout=REQUEST_TIMEOUT_S, follow_redirects=True)
        except httpx.HTTPError as e:
            raise BaselineError(f"Failed to download Figma render: {e}") from e
        if response.status_code != 200:
            raise BaselineError(f"Failed to download Figma render: HTTP {response.status_code}")
        logger.info("Downloaded Figma design %s/%s", file_key, node_id)
        return response.content

    async def list_frames(self, file_key: str, token: str) -> list[dict]:
        """Every FRAME and COMPONENT node in the file, depth first."""
        response = await self._get(f"{self.api_base}/files/{file_key}", token)
        document = response.json().get("document") or {}

        frames = []
        stack = list(reversed(document.get("children") or []))
        while stack:
            node = stack.pop()
            if node.get("type") in ("FRAME", "COMPONENT"):
                frames.append({"name": node.get("name", ""), "node_id": node.get("id", "")})
            stack.extend(reversed(node.get("children") or []))
        return frames

    async def _get(self, url: str, token: str, params: dict | None = None) -> httpx.Response:
        try:
            response = await self.http.get(
                url, params=params, headers={"X-Figma-Token": token}, timeout=REQUEST_TIMEOUT_S,
            )
        except httpx.HTTPError as e:
            raise BaselineError(f"Figma API request failed: {e}") from e
        if response.status_code != 200:
            logger.error("Figma API error: %d %s", response.status_code, response.text[:300])
            raise BaselineError(f"Figma API returned HTTP {response.status_code}")
        return response
