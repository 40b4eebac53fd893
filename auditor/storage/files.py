"""Path-addressed storage for screenshots, diff images and baseline images."""

from __future__ import annotations

import hashlib
import re
import shutil
import time
from pathlib import Path

from auditor.errors import InvalidFileRef


class FileStore:
    """Stores files under one root and hands out root-relative references."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def resolve(self, ref: str) -> Path:
        """Path of a root-relative reference; refs that escape the root are rejected."""
        path = self.root / ref
        if not path.resolve().is_relative_to(self.root.resolve()):
            raise InvalidFileRef(f"File reference outside storage: {ref}")
        return path

    def screenshot_ref(self, run_id: str, url: str) -> str:
        return self._ref("screenshots", run_id, f"{_stamp()}-{_slug(url)}.png")

    def diff_ref(self, run_id: str, page_id: str, baseline_id: str) -> str:
        return self._ref("screenshots", run_id, "diffs", f"diff-{page_id}-{baseline_id}-{_stamp()}.png")

    def baseline_ref(self, site_id: str, page_url: str) -> str:
        return self._ref("baselines", site_id, f"{_url_hash(page_url)}-{_stamp()}.png")

    def figma_ref(self, file_key: str, node_id: str) -> str:
        return self._ref("figma-baselines", f"{_slug(file_key)}-{_slug(node_id)}-{_stamp()}.png")

    def copy_in(self, source: str | Path, ref: str) -> str:
        target = self.resolve(ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.resolve(str(source)), target)
        return ref

    def write_bytes(self, ref: str, data: bytes) -> str:
        target = self.resolve(ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return ref

    def delete(self, ref: str) -> None:
        self.resolve(ref).unlink(missing_ok=True)

    def _ref(self, *parts: str) -> str:
        ref = "/".join(parts)
        self.resolve(ref).parent.mkdir(parents=True, exist_ok=True)
        return ref


def _stamp() -> str:
    return str(time.time_ns() // 1000)


def _slug(value: str, max_len: int = 50) -> str:
    return re.sub(r"[^a-z0-9]", "_", value, flags=re.I)[:max_len]


def _url_hash(url: str) -> str:
    return hashlib.md5(url.encode()).hexdigest()[:10]
