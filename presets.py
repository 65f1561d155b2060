"""
presets.py — color parameter model, input options and the preset table.

What lives here
---------------
• ColorParams: the 12 numbers that define one icon theme (all 0..255 except
  fg_h_offset, which is -127..127). Out-of-range values are clamped, never rejected.
• InputParams: layout/style switches for one render (ring, foreground placement,
  alpha inversion, feathering, alpha exponent).
• PRESETS: the ten built-in themes, addressable by index, name or label.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple

from imaging import round_half_away

# ------------------------------- Constants -------------------------------- #

OUTPUT_WIDTH = 100
OUTPUT_HEIGHT = 100

A_FACTOR_RANGE = (0.0, 3.0)
FG_H_OFFSET_RANGE = (-127.0, 127.0)


def _clip(v: float, lo: float, hi: float) -> float:
    return min(max(float(v), lo), hi)


# ------------------------------ Parameters -------------------------------- #

@dataclass(frozen=True)
class ColorParams:
    bg_h_value: float = 30
    bg_s_start: float = 200
    bg_s_end: float = 160
    bg_b_start: float = 210
    bg_b_end: float = 130
    ring_b_value: float = 127
    fg_h_top: float = 42
    fg_h_bottom: float = 30
    fg_s_topright: float = 98
    fg_s_bottomleft: float = 123
    fg_b_factor: float = 255
    fg_h_offset: float = -12

    def clamped(self) -> "ColorParams":
        """Copy with every field forced into its legal range."""
        out: Dict[str, float] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if f.name == "fg_h_offset":
                out[f.name] = _clip(v, *FG_H_OFFSET_RANGE)
            else:
                out[f.name] = _clip(v, 0.0, 255.0)
        return ColorParams(**out)

    def with_overrides(self, **changes: Any) -> Tuple["ColorParams", List[str]]:
        """Apply known keys, return (new params, unknown keys)."""
        names = {f.name for f in fields(self)}
        known = {k: float(v) for k, v in changes.items() if k in names}
        unknown = sorted(k for k in changes if k not in names)
        return replace(self, **known), unknown

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class InputParams:
    ring: bool = False
    # PIL image or (H, W[, C]) uint8 array; decoding happens outside the core
    fg_image: Optional[Any] = field(default=None, compare=False, repr=False)
    fg_x: int = 0
    fg_y: int = 0
    fg_w: float = 100.0
    fg_h: float = 100.0
    fg_invert_alpha: bool = False
    fg_feather: bool = False
    a_factor: float = 0.5
    color_preset_index: int = 0

    def clamped(self) -> "InputParams":
        return replace(
            self,
            ring=bool(self.ring),
            fg_x=int(round_half_away(self.fg_x)),
            fg_y=int(round_half_away(self.fg_y)),
            fg_w=max(0.0, float(self.fg_w)),
            fg_h=max(0.0, float(self.fg_h)),
            fg_invert_alpha=bool(self.fg_invert_alpha),
            fg_feather=bool(self.fg_feather),
            a_factor=_clip(self.a_factor, *A_FACTOR_RANGE),
        )


# ------------------------------- Presets -------------------------------- #

@dataclass(frozen=True)
class Preset:
    name: str
    label: str
    color: ColorParams
    description: str = ""


def _p(name: str, label: str, description: str, **kw: float) -> Preset:
    kw.setdefault("fg_h_offset", 0)
    return Preset(name=name, label=label, color=ColorParams(**kw), description=description)


PRESETS: List[Preset] = [
    _p("normal", "normal", "Neutral amber status icon.",
       bg_h_value=30, bg_s_start=200, bg_s_end=160, bg_b_start=210, bg_b_end=130,
       fg_h_top=42, fg_h_bottom=30, fg_s_topright=98, fg_s_bottomleft=123,
       fg_b_factor=255, fg_h_offset=-12, ring_b_value=127),
    _p("buff", "buff", "Warm orange for beneficial effects.",
       bg_h_value=17, bg_s_start=240, bg_s_end=170, bg_b_start=180, bg_b_end=120,
       fg_h_top=14, fg_h_bottom=13, fg_s_topright=110, fg_s_bottomleft=120,
       fg_b_factor=248, ring_b_value=150),
    _p("debuff", "debuff", "Red for harmful effects.",
       bg_h_value=0, bg_s_start=165, bg_s_end=75, bg_b_start=180, bg_b_end=130,
       fg_h_top=0, fg_h_bottom=0, fg_s_topright=118, fg_s_bottomleft=122,
       fg_b_factor=248, ring_b_value=150),
    _p("ice", "冰", "Pale cyan.",
       bg_h_value=128, bg_s_start=160, bg_s_end=110, bg_b_start=160, bg_b_end=110,
       fg_h_top=130, fg_h_bottom=125, fg_s_topright=80, fg_s_bottomleft=85,
       fg_b_factor=248, ring_b_value=150),
    _p("water", "水", "Deep blue.",
       bg_h_value=154, bg_s_start=210, bg_s_end=170, bg_b_start=205, bg_b_end=130,
       fg_h_top=154, fg_h_bottom=144, fg_s_topright=115, fg_s_bottomleft=145,
       fg_b_factor=248, ring_b_value=150),
    _p("fire", "火", "Orange-red with a strong vertical hue shift.",
       bg_h_value=10, bg_s_start=180, bg_s_end=170, bg_b_start=200, bg_b_end=150,
       fg_h_top=22, fg_h_bottom=6, fg_s_topright=110, fg_s_bottomleft=150,
       fg_b_factor=248, ring_b_value=150),
    _p("thunder", "雷", "Violet.",
       bg_h_value=192, bg_s_start=170, bg_s_end=140, bg_b_start=230, bg_b_end=150,
       fg_h_top=200, fg_h_bottom=192, fg_s_topright=80, fg_s_bottomleft=98,
       fg_b_factor=248, ring_b_value=150),
    _p("wind", "风", "Teal green.",
       bg_h_value=118, bg_s_start=210, bg_s_end=90, bg_b_start=175, bg_b_end=100,
       fg_h_top=114, fg_h_bottom=113, fg_s_topright=160, fg_s_bottomleft=163,
       fg_b_factor=248, ring_b_value=127),
    _p("rock", "岩", "Golden brown.",
       bg_h_value=27, bg_s_start=210, bg_s_end=170, bg_b_start=180, bg_b_end=120,
       fg_h_top=33, fg_h_bottom=25, fg_s_topright=120, fg_s_bottomleft=130,
       fg_b_factor=248, ring_b_value=150),
    _p("grass", "草", "Leaf green.",
       bg_h_value=68, bg_s_start=170, bg_s_end=110, bg_b_start=170, bg_b_end=110,
       fg_h_top=52, fg_h_bottom=48, fg_s_topright=115, fg_s_bottomleft=110,
       fg_b_factor=248, ring_b_value=150),
]

PRESET_NAMES: Tuple[str, ...] = tuple(p.name for p in PRESETS)


def list_presets() -> List[str]:
    return list(PRESET_NAMES)


def get_preset(key: Any) -> Preset:
    """Look up a preset by index, name or label (e.g. 0, 'buff', '冰')."""
    if isinstance(key, int) or (isinstance(key, str) and key.strip().isdigit()):
        idx = int(key)
        if not 0 <= idx < len(PRESETS):
            raise KeyError(f"Preset index {idx} out of range 0..{len(PRESETS) - 1}")
        return PRESETS[idx]
    k = str(key).strip()
    for p in PRESETS:
        if k.lower() == p.name or k == p.label:
            return p
    raise KeyError(f"Unknown preset '{key}'. Available: {', '.join(PRESET_NAMES)}")


def preset_index(key: Any) -> int:
    return PRESETS.index(get_preset(key))


def describe_preset(key: Any) -> str:
    try:
        p = get_preset(key)
    except KeyError:
        return f"(unknown preset: {key})"
    label = f" [{p.label}]" if p.label != p.name else ""
    return f"{p.name}{label}: {p.description or '(no description)'}"
