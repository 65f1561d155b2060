"""
ring.py — octagonal ring overlay for the "ring" icon style.

The ring is drawn hard at 2x size (outer circle and octagon, minus an inner
circle), blurred, clipped back to the hard shape so the softening only eats
inward, then downsampled to the icon size. The resulting mask blends a fixed
alpha (175) and the theme's ring brightness into the background A/B channels.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
from PIL import Image, ImageDraw

from imaging import gaussian_blur_channel, resample_gray, round_half_away

log = logging.getLogger("buffgen.ring")

SUPERSAMPLE = 2
OUTER_RADIUS = 0.82
INNER_RADIUS = 0.71
RING_BLUR_RADIUS = 3
RING_ALPHA = 175.0

# clockwise, as width/height fractions
OCTAGON: List[Tuple[float, float]] = [
    (0.18, 0.18), (0.50, 0.12), (0.82, 0.18), (0.88, 0.50),
    (0.82, 0.82), (0.50, 0.88), (0.18, 0.82), (0.12, 0.50),
]


def _circle_bbox(cx: float, cy: float, r: float) -> Tuple[float, float, float, float]:
    return (cx - r, cy - r, cx + r, cy + r)


def ring_silhouette(width: int, height: int) -> np.ndarray:
    """Hard ring shape at the given (already supersampled) size: (circle ∪ octagon) − inner circle."""
    img = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(img)
    cx, cy = width / 2, height / 2
    radius = min(width, height) / 2

    draw.ellipse(_circle_bbox(cx, cy, radius * OUTER_RADIUS), fill=255)
    draw.polygon([(fx * width, fy * height) for fx, fy in OCTAGON], fill=255)
    draw.ellipse(_circle_bbox(cx, cy, radius * INNER_RADIUS), fill=0)
    return np.asarray(img, dtype=np.uint8).copy()


def ring_mask(width: int, height: int, *, supersample: int = SUPERSAMPLE,
              blur_radius: int = RING_BLUR_RADIUS) -> np.ndarray:
    """
    Soft octagonal ring mask, (height, width) uint8.

    Drawn at `supersample`× size, blurred, then clipped to the hard silhouette
    so the feathering only goes inward before downsampling.
    """
    sw, sh = width * supersample, height * supersample
    silhouette = ring_silhouette(sw, sh)
    soft = gaussian_blur_channel(silhouette, blur_radius)
    soft[silhouette == 0] = 0
    if supersample == 1:
        return soft
    return resample_gray(soft, (width, height))


def apply_ring_overlay(bg_a: np.ndarray, bg_b: np.ndarray, mask: np.ndarray,
                       ring_b_value: float) -> Tuple[np.ndarray, np.ndarray]:
    """Blend the constant ring color (A=175, B=ring_b_value) over bg A/B through the mask."""
    m = mask.astype(np.float64) / 255.0
    a = round_half_away(RING_ALPHA * m + bg_a.astype(np.float64) * (1.0 - m))
    b = round_half_away(float(ring_b_value) * m + bg_b.astype(np.float64) * (1.0 - m))
    log.debug("Ring overlay covers %d px", int(np.count_nonzero(mask)))
    return np.clip(a, 0, 255).astype(np.uint8), np.clip(b, 0, 255).astype(np.uint8)
