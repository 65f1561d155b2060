# imaging.py — numeric building blocks shared by every layer generator
# -----------------------------------------------------------------------------
# Everything in here works on plain numpy buffers:
#   channel  = (H, W) uint8 array, one scalar field (H, S, B or A)
#   rgba     = (H, W, 4) uint8 array, row-major
# Pillow is only used where a real resampling filter is needed.
#
# Rounding follows round-half-away-from-zero everywhere (not numpy's banker's
# rounding), so results are stable against the reference renders.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from typing import Any, Tuple, Union

import numpy as np
from PIL import Image

log = logging.getLogger("buffgen.imaging")

Number = Union[int, float, np.ndarray]

__all__ = [
    "clamp", "lerp", "round_half_away", "to_u8",
    "hsb_to_rgb", "hsb_to_rgb_array",
    "gaussian_kernel", "gaussian_blur_channel", "median_filter",
    "extract_alpha_source", "remap_alpha_percentile", "normalize_alpha",
    "as_rgba_array", "resample_rgba", "resample_gray",
]

# ============================ math primitives ============================

def clamp(value: Number, lo: float, hi: float) -> Number:
    if isinstance(value, np.ndarray):
        return np.clip(value, lo, hi)
    return min(max(value, lo), hi)


def lerp(start: Number, end: Number, t: Number) -> Number:
    return start + (end - start) * t


def round_half_away(x: Number) -> Number:
    out = np.sign(x) * np.floor(np.abs(x) + 0.5)
    return out if isinstance(out, np.ndarray) else float(out)


def to_u8(x: Any, hi: float = 255.0) -> np.ndarray:
    """Clamp to [0, hi], round, store as uint8."""
    v = np.clip(np.asarray(x, dtype=np.float64), 0.0, hi)
    return np.floor(v + 0.5).astype(np.uint8)


# ============================ color ============================

def hsb_to_rgb_array(h: Any, s: Any, b: Any) -> np.ndarray:
    """
    Vectorized HSB→RGB. h is on a 0..255 scale that maps onto 0..360 degrees
    (h*360/255), s and b are 0..255. Returns uint8 (..., 3).

    h == 255 lands on exactly 360° and falls through every band, giving grey (m, m, m).
    """
    hd = np.asarray(h, dtype=np.float64) / 255.0 * 360.0
    v = np.asarray(b, dtype=np.float64) / 255.0
    c = v * (np.asarray(s, dtype=np.float64) / 255.0)
    x = c * (1.0 - np.abs(np.mod(hd / 60.0, 2.0) - 1.0))
    m = v - c
    zero = np.zeros_like(c)

    bands = [(hd >= lo) & (hd < lo + 60.0) for lo in (0.0, 60.0, 120.0, 180.0, 240.0, 300.0)]
    r = np.select(bands, [c, x, zero, zero, x, c], default=0.0)
    g = np.select(bands, [x, c, c, x, zero, zero], default=0.0)
    bl = np.select(bands, [zero, zero, x, c, c, x], default=0.0)

    out = np.stack([r + m, g + m, bl + m], axis=-1) * 255.0
    return to_u8(out)


def hsb_to_rgb(h: float, s: float, b: float) -> Tuple[int, int, int]:
    r, g, bl = hsb_to_rgb_array(h, s, b).tolist()
    return int(r), int(g), int(bl)


# ============================ blur / denoise ============================

def gaussian_kernel(radius: int) -> np.ndarray:
    """1-D kernel of size 2r+1, sigma = r/3, normalized to sum 1."""
    radius = int(radius)
    sigma = radius / 3.0
    xs = np.arange(-radius, radius + 1, dtype=np.float64)
    k = np.exp(-(xs * xs) / (2.0 * sigma * sigma))
    return k / k.sum()


def gaussian_blur_channel(channel: np.ndarray, radius: int) -> np.ndarray:
    """Separable Gaussian blur, edge-clamped, horizontal then vertical, rounded to uint8."""
    radius = int(radius)
    if radius <= 0:
        return np.array(channel, dtype=np.uint8, copy=True)
    kernel = gaussian_kernel(radius)
    src = np.asarray(channel, dtype=np.float64)
    H, W = src.shape

    fp = np.pad(src, ((0, 0), (radius, radius)), mode="edge")
    horiz = np.zeros((H, W), np.float64)
    for k, w in enumerate(kernel):
        horiz += fp[:, k:k + W] * w
    # intermediate pass is kept at float32 precision
    horiz = horiz.astype(np.float32).astype(np.float64)

    fp2 = np.pad(horiz, ((radius, radius), (0, 0)), mode="edge")
    vert = np.zeros((H, W), np.float64)
    for k, w in enumerate(kernel):
        vert += fp2[k:k + H, :] * w
    return to_u8(vert)


def median_filter(channel: np.ndarray, size: int = 3, *, strict: bool = True) -> np.ndarray:
    """
    size×size median with edge-clamped neighbourhood.

    An even size is a caller bug: strict mode raises, otherwise it is bumped to
    the next odd size.
    """
    size = int(size)
    if size < 1:
        raise ValueError(f"median kernel size must be >= 1, got {size}")
    if size % 2 == 0:
        if strict:
            raise ValueError(f"median kernel size must be odd, got {size}")
        log.warning("Even median kernel size %d, using %d", size, size + 1)
        size += 1
    if size == 1:
        return np.array(channel, dtype=np.uint8, copy=True)

    r = size // 2
    src = np.asarray(channel, dtype=np.uint8)
    H, W = src.shape
    fp = np.pad(src, r, mode="edge")
    stack = np.stack([fp[dy:dy + H, dx:dx + W] for dy in range(size) for dx in range(size)], axis=0)
    return np.median(stack, axis=0).astype(np.uint8)


# ============================ alpha extraction ============================

def extract_alpha_source(rgba: np.ndarray) -> np.ndarray:
    """Pick the opacity surrogate: real alpha, else grey level, else luma."""
    alpha = rgba[..., 3]
    if np.any(alpha != 255):
        return alpha.copy()
    r, g, b = rgba[..., 0], rgba[..., 1], rgba[..., 2]
    if np.array_equal(r, g) and np.array_equal(g, b):
        return r.copy()
    luma = 0.299 * r.astype(np.float64) + 0.587 * g + 0.114 * b
    return to_u8(luma)


def remap_alpha_percentile(alpha: np.ndarray, a_factor: float = 0.5) -> np.ndarray:
    """
    Contrast-normalize an opacity map: clip to the 1st/99th percentiles (low
    floored at 10), apply the a_factor exponent, rescale to 0..255 minus one.
    Flat or inverted ranges come back unchanged.
    """
    if alpha.size == 0:
        return alpha.copy()
    lo, hi = np.percentile(alpha.astype(np.float64), [1.0, 99.0])
    lo = max(float(lo), 10.0)
    hi = float(hi)
    if hi <= lo:
        log.debug("Degenerate alpha range (low=%.2f, high=%.2f), remap skipped", lo, hi)
        return alpha.copy()
    t = np.maximum((alpha.astype(np.float64) - lo) / (hi - lo), 0.0)
    return to_u8(np.power(t, float(a_factor)) * 255.0 - 1.0)


def normalize_alpha(rgba: np.ndarray, a_factor: float = 0.5, *, median_size: int = 3,
                    strict: bool = True) -> np.ndarray:
    """Full alpha path: surrogate → median denoise → percentile remap."""
    alpha = extract_alpha_source(rgba)
    alpha = median_filter(alpha, median_size, strict=strict)
    return remap_alpha_percentile(alpha, a_factor)


# ============================ buffers & resampling ============================

def as_rgba_array(src: Any) -> np.ndarray:
    """Accept a Pillow image or a (H,W), (H,W,1), (H,W,3), (H,W,4) array; return uint8 RGBA."""
    if isinstance(src, Image.Image):
        return np.asarray(src.convert("RGBA"), dtype=np.uint8).copy()
    arr = np.asarray(src)
    if arr.dtype != np.uint8:
        arr = to_u8(arr.astype(np.float64))
    if arr.ndim == 2:
        arr = arr[..., None]
    if arr.ndim != 3 or arr.shape[2] not in (1, 3, 4):
        raise ValueError(f"Unsupported pixel buffer shape {arr.shape}")
    H, W, C = arr.shape
    if C == 4:
        return arr.copy()
    if C == 1:
        arr = np.repeat(arr, 3, axis=2)
    return np.concatenate([arr, np.full((H, W, 1), 255, np.uint8)], axis=2)


def resample_rgba(rgba: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Lanczos resize to (width, height)."""
    img = Image.fromarray(rgba, "RGBA").resize(size, Image.Resampling.LANCZOS)
    return np.asarray(img, dtype=np.uint8).copy()


def resample_gray(channel: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    img = Image.fromarray(np.asarray(channel, dtype=np.uint8), "L").resize(size, Image.Resampling.LANCZOS)
    return np.asarray(img, dtype=np.uint8).copy()
