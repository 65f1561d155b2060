"""
layers.py — procedural HSB(A) layers for the icon.

A layer is four uint8 channels (H, S, B, A) of shape (height, width). The
background is driven by the radial distance from the image center; the
foreground mixes a vertical hue ramp, a diagonal saturation ramp, a radial
brightness falloff and the opacity map of an optional placed image.

Every channel function accepts either a scalar or an array of coordinate
fractions and returns values already clamped and rounded to 0..255 (int for
scalar input, uint8 array otherwise).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from imaging import (
    as_rgba_array,
    gaussian_blur_channel,
    hsb_to_rgb_array,
    lerp,
    normalize_alpha,
    resample_rgba,
    round_half_away,
    to_u8,
)
from presets import ColorParams, InputParams

log = logging.getLogger("buffgen.layers")

# Background S/B ramps: parabola up to 62%, linear to 70%, then constant tails
RAMP_KNEE = 62.0
RAMP_END = 70.0
BG_S_TAIL = 50.0
BG_B_TAIL = 200.0

# Background alpha: cosine head up to 58%, parabolic fade to 70% (62% with ring)
ALPHA_HEAD_END = 58.0
ALPHA_FADE_END = 70.0
ALPHA_FADE_END_RING = 62.0

FG_B_CURVE = -0.002
FG_H_CEILING = 254.0
FEATHER_RADIUS = 2


def _out(v: np.ndarray, scalar: bool) -> Any:
    return int(v) if scalar else v


# ============================ coordinate fields ============================

def _grid(width: int, height: int):
    ys, xs = np.mgrid[0:height, 0:width]
    return xs.astype(np.float64), ys.astype(np.float64)


def radial_field(width: int, height: int) -> np.ndarray:
    """Distance to (W/2, H/2) over the center-to-corner distance."""
    xs, ys = _grid(width, height)
    cx, cy = width / 2, height / 2
    dx, dy = xs - cx, ys - cy
    return np.sqrt(dx * dx + dy * dy) / math.sqrt(cx * cx + cy * cy)


def vertical_field(width: int, height: int) -> np.ndarray:
    _, ys = _grid(width, height)
    return ys / height


def diagonal_field(width: int, height: int) -> np.ndarray:
    """Distance to the top-right corner (W, 0) over the full diagonal."""
    xs, ys = _grid(width, height)
    dx, dy = width - xs, ys
    return np.sqrt(dx * dx + dy * dy) / math.sqrt(width * width + height * height)


def center_diagonal_field(width: int, height: int) -> np.ndarray:
    """Distance to the center over the full diagonal (not the half diagonal)."""
    xs, ys = _grid(width, height)
    dx, dy = xs - width / 2, ys - height / 2
    return np.sqrt(dx * dx + dy * dy) / math.sqrt(width * width + height * height)


FIELDS = {
    "radial": radial_field,
    "vertical": vertical_field,
    "diagonal": diagonal_field,
}


def generate_channel(width: int, height: int, mode: str, constant: float = 0) -> np.ndarray:
    """Coordinate gradient as a channel (fraction × 255), or a constant fill."""
    mode = mode.strip().lower()
    if mode == "constant":
        return np.full((height, width), to_u8(constant), np.uint8)
    if mode not in FIELDS:
        raise KeyError(f"Unknown channel mode '{mode}'. Available: constant, {', '.join(sorted(FIELDS))}")
    return to_u8(FIELDS[mode](width, height) * 255.0)


# ============================ background channels ============================

def bg_h_channel(value: float) -> int:
    return int(to_u8(value))


def _bg_ramp(p: Any, start: float, end: float, tail: float) -> Any:
    scalar = np.ndim(p) == 0
    P = np.asarray(p, dtype=np.float64) * 100.0
    a = (end - start) / (RAMP_KNEE * RAMP_KNEE)
    head = a * P * P + start
    knee = a * RAMP_KNEE * RAMP_KNEE + start
    mid = knee + (tail - knee) * ((P - RAMP_KNEE) / (RAMP_END - RAMP_KNEE))
    v = np.where(P < RAMP_KNEE, head, np.where(P < RAMP_END, mid, tail))
    return _out(to_u8(v), scalar)


def bg_s_channel(p: Any, start: float, end: float) -> Any:
    return _bg_ramp(p, start, end, BG_S_TAIL)


def bg_b_channel(p: Any, start: float, end: float) -> Any:
    return _bg_ramp(p, start, end, BG_B_TAIL)


def _alpha_head(P: Any) -> Any:
    # 0..58% spans phase 0..0.7 of one cosine period, mapped onto 125..255
    t = (P / 100.0) * 0.7
    return 125.0 + (np.cos(t * 2 * np.pi) + 1.0) / 2.0 * (255.0 - 125.0)


def bg_a_channel(p: Any, ring: bool = False) -> Any:
    scalar = np.ndim(p) == 0
    P = np.asarray(p, dtype=np.float64) * 100.0
    v58 = float(_alpha_head(ALPHA_HEAD_END))
    end = ALPHA_FADE_END_RING if ring else ALPHA_FADE_END
    a = v58 / ((end - ALPHA_HEAD_END) ** 2)
    v = np.where(P <= ALPHA_HEAD_END, _alpha_head(P),
                 np.where(P < end, a * (P - end) ** 2, 0.0))
    return _out(to_u8(v), scalar)


# ============================ foreground channels ============================

def fg_h_channel(y_percent: Any, top: float, bottom: float, alpha: Any = 0, offset: float = 0) -> Any:
    """Vertical hue ramp; the offset only shows where the foreground is transparent."""
    scalar = np.ndim(y_percent) == 0 and np.ndim(alpha) == 0
    base = round_half_away(lerp(top, bottom, np.asarray(y_percent, dtype=np.float64)))
    v = base + (1.0 - np.asarray(alpha, dtype=np.float64) / 255.0) * offset
    v = np.where(v < 0, v + 255.0, v)
    return _out(to_u8(v, hi=FG_H_CEILING), scalar)


def fg_s_channel(diagonal_percent: Any, topright: float, bottomleft: float, alpha: Any = 0) -> Any:
    """Diagonal saturation ramp, up to doubled where the foreground is transparent."""
    scalar = np.ndim(diagonal_percent) == 0 and np.ndim(alpha) == 0
    base = round_half_away(lerp(topright, bottomleft, np.asarray(diagonal_percent, dtype=np.float64)))
    v = base * (2.0 - np.asarray(alpha, dtype=np.float64) / 255.0)
    return _out(to_u8(v), scalar)


def fg_b_channel(radial_percent: Any, factor: float) -> Any:
    scalar = np.ndim(radial_percent) == 0
    P = np.asarray(radial_percent, dtype=np.float64) * 100.0
    return _out(to_u8(FG_B_CURVE * P * P + factor), scalar)


# ============================ layers ============================

@dataclass
class Layer:
    h: np.ndarray
    s: np.ndarray
    b: np.ndarray
    a: np.ndarray

    @property
    def size(self):
        H, W = self.a.shape
        return W, H

    def channels(self, prefix: str) -> Dict[str, np.ndarray]:
        return {f"{prefix}_{k}": getattr(self, k) for k in ("h", "s", "b", "a")}


def background_layer(width: int, height: int, color: ColorParams, ring: bool = False) -> Layer:
    p = radial_field(width, height)
    return Layer(
        h=np.full((height, width), bg_h_channel(color.bg_h_value), np.uint8),
        s=bg_s_channel(p, color.bg_s_start, color.bg_s_end),
        b=bg_b_channel(p, color.bg_b_start, color.bg_b_end),
        a=bg_a_channel(p, ring=ring),
    )


def place_foreground_alpha(width: int, height: int, source: Any, inputs: InputParams,
                           *, median_size: int = 3, strict: bool = True) -> np.ndarray:
    """
    Scale the source by (fg_w%, fg_h%), normalize its opacity, optionally invert,
    paste at (fg_x, fg_y) on a zero canvas and optionally feather. Pixels that
    fall outside the canvas are dropped.
    """
    canvas = np.zeros((height, width), np.uint8)
    rgba = as_rgba_array(source)
    src_h, src_w = rgba.shape[:2]
    sw = int(round_half_away(src_w * inputs.fg_w / 100.0))
    sh = int(round_half_away(src_h * inputs.fg_h / 100.0))
    if sw <= 0 or sh <= 0:
        log.debug("Foreground scaled to %dx%d, nothing to place", sw, sh)
        return canvas
    if (sw, sh) != (src_w, src_h):
        rgba = resample_rgba(rgba, (sw, sh))

    alpha = normalize_alpha(rgba, inputs.a_factor, median_size=median_size, strict=strict)
    if inputs.fg_invert_alpha:
        alpha = 255 - alpha

    x0, y0 = int(inputs.fg_x), int(inputs.fg_y)
    tx0, ty0 = max(0, x0), max(0, y0)
    tx1, ty1 = min(width, x0 + sw), min(height, y0 + sh)
    if tx0 < tx1 and ty0 < ty1:
        canvas[ty0:ty1, tx0:tx1] = alpha[ty0 - y0:ty1 - y0, tx0 - x0:tx1 - x0]
    else:
        log.debug("Foreground at (%d,%d) %dx%d lies fully outside the canvas", x0, y0, sw, sh)

    if inputs.fg_feather:
        canvas = gaussian_blur_channel(canvas, FEATHER_RADIUS)
    return canvas


def foreground_layer(width: int, height: int, color: ColorParams, alpha: Optional[np.ndarray] = None) -> Layer:
    if alpha is None:
        alpha = np.zeros((height, width), np.uint8)
    return Layer(
        h=fg_h_channel(vertical_field(width, height), color.fg_h_top, color.fg_h_bottom,
                       alpha, color.fg_h_offset),
        s=fg_s_channel(diagonal_field(width, height), color.fg_s_topright, color.fg_s_bottomleft, alpha),
        b=fg_b_channel(center_diagonal_field(width, height), color.fg_b_factor),
        a=alpha,
    )


# ============================ compositing ============================

def composite_layers(bg: Layer, fg: Layer) -> np.ndarray:
    """Foreground over background in RGB; returns (H, W, 4) uint8 RGBA."""
    bg_rgb = hsb_to_rgb_array(bg.h, bg.s, bg.b).astype(np.float64)
    fg_rgb = hsb_to_rgb_array(fg.h, fg.s, fg.b).astype(np.float64)
    ba = bg.a.astype(np.float64)[..., None] / 255.0
    fa = fg.a.astype(np.float64)[..., None] / 255.0

    out_a = np.minimum(fa + ba * (1.0 - fa), 1.0)
    num = fg_rgb * fa + bg_rgb * ba * (1.0 - fa)
    safe = np.where(out_a > 0, out_a, 1.0)
    rgb = np.where(out_a > 0, num / safe, 0.0)

    out = np.empty(bg.a.shape + (4,), np.uint8)
    out[..., :3] = to_u8(rgb)
    out[..., 3] = to_u8(out_a[..., 0] * 255.0)
    return out
