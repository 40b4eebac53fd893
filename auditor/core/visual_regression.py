"""Visual regression: compare a page screenshot with its active baselines.

Each (page, active baseline) pair produces one persisted ``VisualDiff``. Images
of different sizes are padded onto a white canvas of the larger dimensions
(aspect ratio kept, nothing cropped) so pixels line up. A pixel counts as
different when its YIQ colour distance exceeds ``pixel_threshold`` of the
maximum possible distance, the same metric pixelmatch uses.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageChops, ImageMath, ImageOps

from auditor.config import AuditConfig
from auditor.errors import BaselineError
from auditor.models.types import VisualBaseline, VisualDiff
from auditor.storage.files import FileStore
from auditor.storage.store import AuditStore

logger = logging.getLogger(__name__)


# Upper bound of the YIQ delta, as used by pixelmatch
MAX_YIQ_DELTA = 35215
DIFF_COLOR = (255, 0, 0)
WHITE = (255, 255, 255)


@dataclass
class ImageComparison:
    width: int
    height: int
    pixel_diff_count: int
    diff_image: Image.Image

    @property
    def difference_percentage(self) -> float:
        total = self.width * self.height
        return (self.pixel_diff_count / total) * 100 if total else 0.0


class VisualRegressionEngine:
    def __init__(self, store: AuditStore, files: FileStore, config: AuditConfig):
        self.store = store
        self.files = files
        self.config = config

    async def compare_screenshots(
        self,
        run_id: str,
        page_id: str,
        page_url: str,
        screenshot_path: str,
        site_id: str,
    ) -> list[VisualDiff]:
        baselines = self.store.find_baselines(site_id, page_url, active=True)
        if not baselines:
            logger.info("No baselines found for %s", page_url)
            return []

        results = []
        for baseline in baselines:
            try:
                diff = await asyncio.to_thread(
                    self._compare_with_baseline, run_id, page_id, screenshot_path, baseline,
                )
            except Exception as e:
                logger.warning("Failed to compare %s with baseline %s: %s", page_url, baseline.id, e)
                continue
            self.store.create_visual_diff(diff)
            logger.info(
                "Visual comparison for %s vs %s: %s (%.2f%% diff)",
                page_url, baseline.baseline_type.value,
                "PASSED" if diff.passed else "FAILED", diff.difference_percentage,
            )
            results.append(diff)
        return results

    def _compare_with_baseline(
        self, run_id: str, page_id: str, screenshot_path: str, baseline: VisualBaseline,
    ) -> VisualDiff:
        if not baseline.image_path:
            raise BaselineError(f"Baseline {baseline.id} has no image")
        baseline_img = load_image(self.files.resolve(baseline.image_path))
        current_img = load_image(self.files.resolve(screenshot_path))

        comparison = compare_images(baseline_img, current_img, self.config.pixel_threshold)

        ref = self.files.diff_ref(run_id, page_id, baseline.id)
        comparison.diff_image.save(self.files.resolve(ref), format="PNG")

        return VisualDiff(
            run_id=run_id,
            page_id=page_id,
            baseline_id=baseline.id,
            current_image_path=screenshot_path,
            diff_image_path=ref,
            difference_percentage=comparison.difference_percentage,
            pixel_diff_count=comparison.pixel_diff_count,
            threshold_percentage=self.config.diff_threshold_pct,
        )


def load_image(path: str | Path) -> Image.Image:
    """Open an image and flatten any transparency onto white."""
    path = Path(path)
    if not path.exists():
        raise BaselineError(f"Image not found: {path}")
    with Image.open(path) as img:
        img.load()
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            canvas = Image.new("RGBA", rgba.size, WHITE + (255,))
            return Image.alpha_composite(canvas, rgba).convert("RGB")
        return img.convert("RGB")


def normalize(img1: Image.Image, img2: Image.Image) -> tuple[Image.Image, Image.Image]:
    if img1.size == img2.size:
        return img1, img2
    size = (max(img1.width, img2.width), max(img1.height, img2.height))
    return (
        ImageOps.pad(img1, size, color=WHITE),
        ImageOps.pad(img2, size, color=WHITE),
    )


def compare_images(baseline: Image.Image, current: Image.Image,
                   pixel_threshold: float = 0.1) -> ImageComparison:
    img1, img2 = normalize(baseline.convert("RGB"), current.convert("RGB"))
    width, height = img1.size

    # Unchanged pixels are drawn as faded grayscale
    faded = Image.blend(Image.new("RGB", img1.size, WHITE), img1.convert("L").convert("RGB"), 0.1)

    bbox = ImageChops.difference(img1, img2).getbbox()
    if bbox is None:
        return ImageComparison(width, height, 0, faded)

    mask = delta_mask(img1.crop(bbox), img2.crop(bbox), MAX_YIQ_DELTA * pixel_threshold * pixel_threshold)
    count = mask.histogram()[255]
    faded.paste(DIFF_COLOR, bbox, mask)
    return ImageComparison(width, height, count, faded)


def delta_mask(img1: Image.Image, img2: Image.Image, max_delta: float) -> Image.Image:
    """Mode "L" mask that is 255 wherever the colour delta exceeds ``max_delta``."""
    bands = {}
    for prefix, img in (("a", img1), ("b", img2)):
        for name, band in zip("rgb", img.split()):
            bands[prefix + name] = band.convert("F")

    def over_threshold(args):
        delta = color_delta(args["ar"], args["ag"], args["ab"], args["br"], args["bg"], args["bb"])
        return args["convert"](delta > max_delta, "L")

    return ImageMath.lambda_eval(over_threshold, **bands).point(lambda v: 255 if v else 0)


def color_delta(r1, g1, b1, r2, g2, b2):
    """Squared perceptual distance in YIQ space.

    Works on plain numbers and on ``ImageMath`` band operands alike.
    """
    dr, dg, db = r1 - r2, g1 - g2, b1 - b2
    y = dr * 0.29889531 + dg * 0.58662247 + db * 0.11448223
    i = dr * 0.59597799 - dg * 0.27417610 - db * 0.32180189
    q = dr * 0.21147017 - dg * 0.52261711 + db * 0.31114694
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q
