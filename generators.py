"""
generators.py — render stages, the stage registry and the render entry point.

A render is a short pipeline of named stages operating on one RenderState:

    background | ring | foreground | composite

`ring` only runs when the ring style is on. Each stage is a small generator
class registered under its name, so the CLI can list them and run partial
chains (e.g. `background|composite`) for inspection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from layers import (
    Layer,
    background_layer,
    composite_layers,
    foreground_layer,
    place_foreground_alpha,
)
from presets import ColorParams, InputParams
from ring import RING_BLUR_RADIUS, SUPERSAMPLE, apply_ring_overlay, ring_mask

log = logging.getLogger("buffgen.generators")


# =============== Registry ===============
class GeneratorRegistry:
    def __init__(self) -> None:
        self._by_name: Dict[str, type[BaseGenerator]] = {}

    def register(self, name: str, cls: type["BaseGenerator"]) -> None:
        key = name.strip().lower()
        self._by_name[key] = cls

    def names(self) -> list[str]:
        return sorted(self._by_name.keys())

    def create(self, name: str, **kwargs) -> "BaseGenerator":
        key = name.strip().lower()
        if key not in self._by_name:
            raise KeyError(f"Unknown stage '{name}'. Available: {', '.join(self.names()) or '(none)'}")
        return self._by_name[key](**kwargs)


REGISTRY = GeneratorRegistry()


# =============== State & base ===============
@dataclass
class RenderState:
    width: int
    height: int
    color: ColorParams
    inputs: InputParams
    source: Optional[Any] = None
    background: Optional[Layer] = None
    foreground: Optional[Layer] = None
    ring_mask: Optional[np.ndarray] = None
    pixels: Optional[np.ndarray] = None


@dataclass
class BaseGenerator:
    strict: bool = True

    def generate(self, state: RenderState, **kwargs) -> RenderState:  # pragma: no cover
        raise NotImplementedError


# =============== Stages ===============
@dataclass
class BackgroundGenerator(BaseGenerator):
    """Radial HSB(A) background; the alpha falloff is tighter in ring mode."""
    def generate(self, state: RenderState, **kwargs) -> RenderState:
        ring = bool(kwargs.get("ring", state.inputs.ring))
        state.background = background_layer(state.width, state.height, state.color, ring=ring)
        return state


@dataclass
class RingGenerator(BaseGenerator):
    """Octagonal ring overlay on the background A/B channels."""
    def generate(self, state: RenderState, **kwargs) -> RenderState:
        if state.background is None:
            raise ValueError("ring stage needs a background layer; put 'background' first")
        supersample = max(1, int(kwargs.get("supersample", SUPERSAMPLE)))
        blur_radius = max(0, int(kwargs.get("blur_radius", RING_BLUR_RADIUS)))

        mask = ring_mask(state.width, state.height, supersample=supersample, blur_radius=blur_radius)
        bg = state.background
        bg.a, bg.b = apply_ring_overlay(bg.a, bg.b, mask, state.color.ring_b_value)
        state.ring_mask = mask
        return state


@dataclass
class ForegroundGenerator(BaseGenerator):
    """
    Vertical/diagonal/radial foreground ramps. Opacity comes from the placed
    source image; without one the whole layer is transparent.
    """
    def generate(self, state: RenderState, **kwargs) -> RenderState:
        alpha = None
        if state.source is not None:
            alpha = place_foreground_alpha(
                state.width, state.height, state.source, state.inputs,
                median_size=int(kwargs.get("median_size", 3)),
                strict=bool(kwargs.get("strict", self.strict)),
            )
        state.foreground = foreground_layer(state.width, state.height, state.color, alpha)
        return state


@dataclass
class CompositeGenerator(BaseGenerator):
    """Foreground over background, HSB → RGBA. Missing layers count as transparent."""
    def generate(self, state: RenderState, **kwargs) -> RenderState:
        w, h = state.width, state.height
        bg = state.background
        if bg is None:
            log.debug("composite: no background layer, using a transparent one")
            zeros = np.zeros((h, w), np.uint8)
            bg = Layer(zeros, zeros, zeros, zeros)
        fg = state.foreground
        if fg is None:
            fg = foreground_layer(w, h, state.color, None)
        state.pixels = composite_layers(bg, fg)
        return state


# =============== Pipeline ===============
def default_pipeline(inputs: InputParams) -> List[str]:
    stages = ["background"]
    if inputs.ring:
        stages.append("ring")
    stages += ["foreground", "composite"]
    return stages


def run_pipeline(
    state: RenderState,
    stages: List[str],
    stage_extras: Optional[List[Dict[str, Any]]] = None,
    *,
    strict: bool = True,
) -> RenderState:
    stage_extras = stage_extras or [{} for _ in stages]
    for i, name in enumerate(stages):
        gen = REGISTRY.create(name, strict=strict)
        extras = stage_extras[i]
        log.debug("Stage %d/%d: %s extras=%s", i + 1, len(stages), name, {k: extras[k] for k in sorted(extras)})
        state = gen.generate(state, **extras)
    return state


def _check_size(width: int, height: int) -> None:
    if int(width) != width or int(height) != height or width <= 0 or height <= 0:
        raise ValueError(f"Output size must be positive integers, got {width}x{height}")


def render_state(
    width: int,
    height: int,
    color: ColorParams,
    inputs: InputParams,
    source: Optional[Any] = None,
    *,
    stages: Optional[List[str]] = None,
    stage_extras: Optional[List[Dict[str, Any]]] = None,
    strict: bool = True,
) -> RenderState:
    """Run the pipeline and keep every intermediate layer (for inspection and tests)."""
    _check_size(width, height)
    inputs = inputs.clamped()
    if source is None:
        source = inputs.fg_image
    state = RenderState(int(width), int(height), color.clamped(), inputs, source=source)
    return run_pipeline(state, stages or default_pipeline(inputs), stage_extras, strict=strict)


def render(
    width: int,
    height: int,
    color: ColorParams,
    inputs: InputParams,
    source: Optional[Any] = None,
) -> np.ndarray:
    """Render one icon. Returns (height, width, 4) uint8 RGBA; pure and deterministic."""
    state = render_state(width, height, color, inputs, source)
    return state.pixels


# ---- Register stages at import time ----
REGISTRY.register("background", BackgroundGenerator)
REGISTRY.register("ring", RingGenerator)
REGISTRY.register("foreground", ForegroundGenerator)
REGISTRY.register("composite", CompositeGenerator)
