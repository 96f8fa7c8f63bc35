"""Perceptual pixel diff between two RGBA buffers.

Colour distance is measured in YIQ space after blending both images onto a
white background, the same metric pixelmatch uses. Differences caused by a
one-pixel rendering shift (anti-aliased edges, sub-pixel text positioning)
are filtered out by a neighbourhood check before pixels are counted.
"""

import logging
from dataclasses import dataclass

import numpy as np

from diffit.errors.exceptions import DimensionMismatch, ValidationError
from diffit.imaging.codec import PixelBuffer

logger = logging.getLogger(__name__)

# Largest possible YIQ delta between two colours (black vs. white).
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = np.array([255, 0, 0, 204], dtype=np.uint8)
# Unchanged pixels are drawn as base luminance faded this far towards white.
FADE_ALPHA = 0.1

_NEIGHBOUR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
)


@dataclass(frozen=True)
class DiffOptions:
    threshold: float = 0.1
    antialiasing: bool = True
    precision: int = 4

    def __post_init__(self):
        if not 0.0 <= self.threshold <= 1.0:
            raise ValidationError(f"threshold must be within 0..1, got {self.threshold}")
        if self.precision < 0:
            raise ValidationError(f"precision must be non-negative, got {self.precision}")

    @property
    def max_delta(self) -> float:
        return MAX_YIQ_DELTA * self.threshold * self.threshold


@dataclass(frozen=True)
class DiffResult:
    mask: PixelBuffer
    diff_pixels: int
    total_pixels: int
    diff_percentage: float

    @property
    def identical(self) -> bool:
        return self.diff_pixels == 0


def _blend_on_white(pixels: np.ndarray) -> np.ndarray:
    rgba = pixels.astype(np.float64)
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def _yiq_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ya, ia, qa = _yiq(a)
    yb, ib, qb = _yiq(b)
    dy = ya - yb
    di = ia - ib
    dq = qa - qb
    return 0.5053 * dy * dy + 0.299 * di * di + 0.1957 * dq * dq


def _jitter_matches(
    base: np.ndarray,
    comparison: np.ndarray,
    ys: np.ndarray,
    xs: np.ndarray,
    max_delta: float,
) -> np.ndarray:
    """For each flagged (y, x), True when the change is a one-pixel shift.

    Both directions must hold: the comparison pixel matches some base
    neighbour, and the base pixel matches some comparison neighbour.
    """
    height, width = base.shape[:2]
    comp_px = comparison[ys, xs]
    base_px = base[ys, xs]
    comp_in_base = np.zeros(ys.shape, dtype=bool)
    base_in_comp = np.zeros(ys.shape, dtype=bool)

    for dy, dx in _NEIGHBOUR_OFFSETS:
        ny = np.clip(ys + dy, 0, height - 1)
        nx = np.clip(xs + dx, 0, width - 1)
        comp_in_base |= _yiq_delta(comp_px, base[ny, nx]) <= max_delta
        base_in_comp |= _yiq_delta(base_px, comparison[ny, nx]) <= max_delta

    return comp_in_base & base_in_comp


def _round_percentage(diff_pixels: int, total_pixels: int, precision: int) -> float:
    if diff_pixels == 0 or total_pixels == 0:
        return 0.0
    pct = round(100.0 * diff_pixels / total_pixels, precision)
    # A real change must stay visible after rounding.
    return max(pct, 10.0 ** -precision)


def _render_mask(base_rgb: np.ndarray, changed: np.ndarray) -> np.ndarray:
    luma = _yiq(base_rgb)[0]
    grey = np.clip(255.0 + (luma - 255.0) * FADE_ALPHA, 0, 255).round().astype(np.uint8)
    mask = np.empty(changed.shape + (4,), dtype=np.uint8)
    mask[..., 0] = grey
    mask[..., 1] = grey
    mask[..., 2] = grey
    mask[..., 3] = 255
    mask[changed] = DIFF_COLOR
    return mask


def compare(base: PixelBuffer, comparison: PixelBuffer, options: DiffOptions | None = None) -> DiffResult:
    """Compare two buffers of equal size.

    Raises:
        DimensionMismatch: if the buffers differ in width or height.
    """
    options = options or DiffOptions()
    if base.size != comparison.size:
        raise DimensionMismatch(base.size, comparison.size)

    base_rgb = _blend_on_white(base.pixels)
    comp_rgb = _blend_on_white(comparison.pixels)

    if np.array_equal(base.pixels, comparison.pixels):
        changed = np.zeros((base.height, base.width), dtype=bool)
    else:
        changed = _yiq_delta(base_rgb, comp_rgb) > options.max_delta
        if options.antialiasing and changed.any():
            ys, xs = np.nonzero(changed)
            jitter = _jitter_matches(base_rgb, comp_rgb, ys, xs, options.max_delta)
            changed[ys[jitter], xs[jitter]] = False

    diff_pixels = int(changed.sum())
    total_pixels = base.total_pixels
    result = DiffResult(
        mask=PixelBuffer.from_array(_render_mask(base_rgb, changed)),
        diff_pixels=diff_pixels,
        total_pixels=total_pixels,
        diff_percentage=_round_percentage(diff_pixels, total_pixels, options.precision),
    )
    logger.debug(
        "diff_computed",
        extra={"diff_pixels": diff_pixels, "total_pixels": total_pixels, "width": base.width, "height": base.height},
    )
    return result
