"""Diff engine: ignore-region masking followed by a per-pixel colour comparison.

The colour distance is the YIQ metric used by pixelmatch: both pixels are
blended onto white by their alpha, converted to YIQ, and the weighted squared
delta is compared against ``MAX_YIQ_DELTA * threshold ** 2``. A threshold of
0 flags any visible change, 1 flags nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from PIL import Image

from snapdiff.errors import DimensionMismatchError
from snapdiff.models.capture import Rect

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
MAX_YIQ_DELTA = 35215.0
DIFF_COLOR = (255, 0, 0, 255)
UNCHANGED_ALPHA = 0.1


@dataclass
class DiffResult:
    changed_pixels: int
    total_pixels: int
    diff_image: Image.Image

    @property
    def diff_ratio(self) -> float:
        if self.total_pixels == 0:
            return 0.0
        return self.changed_pixels / self.total_pixels


def apply_ignore_regions(
    baseline: np.ndarray, candidate: np.ndarray, regions: Sequence[Rect]
) -> np.ndarray:
    """Return a copy of ``baseline`` with each region replaced by the candidate's pixels.

    Regions are clipped to the image bounds.
    """
    masked = baseline.copy()
    height, width = masked.shape[:2]
    for r in regions:
        x0, y0 = min(r.x, width), min(r.y, height)
        x1, y1 = min(r.x + r.width, width), min(r.y + r.height, height)
        if x1 > x0 and y1 > y0:
            masked[y0:y1, x0:x1] = candidate[y0:y1, x0:x1]
    return masked


def _blend_to_white(rgba: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    pixels = rgba.astype(np.float64)
    alpha = pixels[..., 3] / 255.0
    r = 255.0 + (pixels[..., 0] - 255.0) * alpha
    g = 255.0 + (pixels[..., 1] - 255.0) * alpha
    b = 255.0 + (pixels[..., 2] - 255.0) * alpha
    return r, g, b


def _luma(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    return r * 0.29889531 + g * 0.58662247 + b * 0.11448223


def color_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Signed YIQ delta per pixel for two HxWx4 uint8 arrays."""
    r1, g1, b1 = _blend_to_white(a)
    r2, g2, b2 = _blend_to_white(b)

    y1, y2 = _luma(r1, g1, b1), _luma(r2, g2, b2)
    i = (r1 * 0.59597799 - g1 * 0.27417610 - b1 * 0.32180189) - (
        r2 * 0.59597799 - g2 * 0.27417610 - b2 * 0.32180189
    )
    q = (r1 * 0.21147017 - g1 * 0.52261711 + b1 * 0.31114694) - (
        r2 * 0.21147017 - g2 * 0.52261711 + b2 * 0.31114694
    )
    y = y1 - y2
    delta = 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q
    return np.where(y1 > y2, -delta, delta)


def diff(
    baseline: Image.Image,
    candidate: Image.Image,
    ignore_regions: Sequence[Rect] = (),
    threshold: float = DEFAULT_THRESHOLD,
) -> DiffResult:
    """Compare two equally sized images and render a diff image.

    Changed pixels are drawn red; unchanged pixels are a faded grayscale of the
    (masked) baseline. Neither input is modified.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
    if baseline.size != candidate.size:
        raise DimensionMismatchError(baseline.size, candidate.size)

    base = np.asarray(baseline.convert("RGBA"), dtype=np.uint8)
    cand = np.asarray(candidate.convert("RGBA"), dtype=np.uint8)
    base = apply_ignore_regions(base, cand, ignore_regions)

    identical = np.all(base == cand, axis=-1)
    delta = color_delta(base, cand)
    changed = ~identical & (np.abs(delta) > MAX_YIQ_DELTA * threshold * threshold)

    r, g, b = _blend_to_white(base)
    gray = 255.0 + (_luma(r, g, b) - 255.0) * UNCHANGED_ALPHA
    gray = np.clip(np.floor(gray), 0, 255).astype(np.uint8)

    out = np.empty_like(base)
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    out[..., 3] = 255
    out[changed] = DIFF_COLOR

    changed_pixels = int(np.count_nonzero(changed))
    width, height = baseline.size
    logger.debug("Diff %dx%d: %d pixels changed (threshold=%.3f, %d ignore regions)",
                 width, height, changed_pixels, threshold, len(ignore_regions))
    return DiffResult(
        changed_pixels=changed_pixels,
        total_pixels=width * height,
        diff_image=Image.fromarray(out),
    )
