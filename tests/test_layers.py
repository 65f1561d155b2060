"""
Tests for the HSB(A) layer generators, foreground placement and compositing.

Run with: pytest tests/test_layers.py -v
"""

import numpy as np
import pytest

from imaging import hsb_to_rgb, hsb_to_rgb_array
from layers import (
    Layer,
    background_layer,
    bg_a_channel,
    bg_b_channel,
    bg_h_channel,
    bg_s_channel,
    composite_layers,
    fg_b_channel,
    fg_h_channel,
    fg_s_channel,
    foreground_layer,
    generate_channel,
    place_foreground_alpha,
    radial_field,
)
from presets import PRESETS, ColorParams, InputParams


EXTREME_COLORS = [
    ColorParams(**{k: 255 for k in ColorParams().as_dict() if k != "fg_h_offset"}, fg_h_offset=127),
    ColorParams(**{k: 0 for k in ColorParams().as_dict() if k != "fg_h_offset"}, fg_h_offset=-127),
]


def _white_square(n=10):
    return np.full((n, n, 4), 255, np.uint8)


# ============================================================
# CHANNEL FUNCTIONS
# ============================================================

class TestBackgroundChannels:
    def test_hue_is_clamped_constant(self):
        """Background hue ignores position and clamps its value"""
        assert bg_h_channel(30.4) == 30
        assert bg_h_channel(300) == 255
        assert bg_h_channel(-5) == 0

    def test_ramp_starts_at_start(self):
        """S and B begin at their start values in the center"""
        assert bg_s_channel(0.0, 200, 160) == 200
        assert bg_b_channel(0.0, 210, 130) == 210

    def test_ramp_tails(self):
        """Past 70% S settles at 50 and B at 200"""
        assert bg_s_channel(0.9, 200, 160) == 50
        assert bg_b_channel(0.9, 210, 130) == 200

    def test_alpha_center_opaque(self):
        """The cosine head starts fully opaque"""
        assert bg_a_channel(0.0) == 255
        assert bg_a_channel(0.0, ring=True) == 255

    def test_alpha_ring_cuts_off_earlier(self):
        """At 65% the plain falloff is still visible while the ring variant is done"""
        assert bg_a_channel(0.65) > 0
        assert bg_a_channel(0.65, ring=True) == 0
        assert bg_a_channel(0.9) == 0

    def test_alpha_matches_in_head(self):
        """Both variants share the cosine head"""
        for p in (0.1, 0.3, 0.5, 0.58):
            assert bg_a_channel(p) == bg_a_channel(p, ring=True)


class TestForegroundChannels:
    def test_hue_offset_where_transparent(self):
        """The hue offset applies fully at alpha 0 and not at alpha 255"""
        assert fg_h_channel(0.0, 42, 30, alpha=0, offset=-12) == 30
        assert fg_h_channel(0.0, 42, 30, alpha=255, offset=-12) == 42

    def test_hue_wraps_negative(self):
        """Negative hues wrap by +255"""
        assert fg_h_channel(0.0, 5, 5, alpha=0, offset=-12) == 248

    def test_hue_ceiling(self):
        """Foreground hue never exceeds 254"""
        assert fg_h_channel(1.0, 255, 255, alpha=0, offset=127) == 254

    def test_saturation_doubles_where_transparent(self):
        """Saturation scales by (2 - A/255)"""
        assert fg_s_channel(0.0, 98, 123, alpha=0) == 196
        assert fg_s_channel(0.0, 98, 123, alpha=255) == 98
        assert fg_s_channel(1.0, 98, 123, alpha=0) == 246

    def test_brightness_falloff(self):
        """Brightness drops quadratically with the radial percentage"""
        assert fg_b_channel(0.0, 255) == 255
        assert fg_b_channel(0.5, 255) == 250
        assert fg_b_channel(0.0, 400) == 255


class TestGenerateChannel:
    def test_vertical_gradient(self):
        """Vertical mode is y/H scaled to 0..255"""
        out = generate_channel(1, 4, "vertical")
        assert out[:, 0].tolist() == [0, 64, 128, 191]

    def test_constant(self):
        """Constant mode clamps its value"""
        assert np.all(generate_channel(3, 2, "constant", 300) == 255)

    def test_radial_center_zero(self):
        """Radial gradient is zero in the center"""
        assert generate_channel(10, 10, "radial")[5, 5] == 0

    def test_unknown_mode(self):
        """Unknown modes raise KeyError naming the options"""
        with pytest.raises(KeyError, match="Available"):
            generate_channel(2, 2, "spiral")


# ============================================================
# LAYERS
# ============================================================

class TestLayerRanges:
    @pytest.mark.parametrize("size", [(1, 1), (7, 3), (100, 100)])
    @pytest.mark.parametrize("color", [p.color for p in PRESETS] + EXTREME_COLORS)
    def test_layers_shapes_and_ranges(self, size, color):
        """Every channel is (H, W) uint8 and foreground hue stays at or below 254"""
        w, h = size
        color = color.clamped()
        for ring in (False, True):
            bg = background_layer(w, h, color, ring=ring)
            for ch in (bg.h, bg.s, bg.b, bg.a):
                assert ch.shape == (h, w)
                assert ch.dtype == np.uint8
        for alpha in (None, np.full((h, w), 255, np.uint8)):
            fg = foreground_layer(w, h, color, alpha)
            for ch in (fg.h, fg.s, fg.b, fg.a):
                assert ch.shape == (h, w)
                assert ch.dtype == np.uint8
            assert fg.h.max() <= 254

    def test_radial_field_corner_is_one(self):
        """The radial fraction reaches 1 at the top-left corner"""
        assert radial_field(10, 10)[0, 0] == pytest.approx(1.0)

    def test_background_center_closed_form(self):
        """Center of the normal background is H=30 S=200 B=210 A=255"""
        bg = background_layer(100, 100, PRESETS[0].color)
        assert (bg.h[50, 50], bg.s[50, 50], bg.b[50, 50], bg.a[50, 50]) == (30, 200, 210, 255)

    def test_layer_channels_dict(self):
        """Layer.channels names every channel with a prefix"""
        bg = background_layer(4, 3, ColorParams())
        assert sorted(bg.channels("bg")) == ["bg_a", "bg_b", "bg_h", "bg_s"]
        assert bg.size == (4, 3)


# ============================================================
# PLACEMENT
# ============================================================

class TestPlacement:
    def test_negative_offset_clips(self):
        """A 10x10 opaque white source at x=-5 covers only columns 0..4 of rows 0..9"""
        inputs = InputParams(fg_x=-5, fg_y=0)
        canvas = place_foreground_alpha(100, 100, _white_square(), inputs)
        assert np.all(canvas[:10, :5] == 255)
        assert canvas[:, 5:].max() == 0
        assert canvas[10:, :].max() == 0

    def test_zero_scale_places_nothing(self):
        """A 0% scale yields an empty map"""
        canvas = place_foreground_alpha(20, 20, _white_square(), InputParams(fg_w=0))
        assert canvas.max() == 0

    def test_fully_outside(self):
        """An offset past the canvas places nothing and does not fail"""
        canvas = place_foreground_alpha(20, 20, _white_square(), InputParams(fg_x=200, fg_y=-50))
        assert canvas.max() == 0

    def test_scaling(self):
        """Scale percentages resize the source before placement"""
        canvas = place_foreground_alpha(50, 50, _white_square(), InputParams(fg_w=200, fg_h=50))
        assert np.all(canvas[:5, :20] == 255)
        assert canvas[5:, :].max() == 0
        assert canvas[:, 20:].max() == 0

    def test_invert(self):
        """Inverting a fully transparent source makes it opaque"""
        src = np.zeros((10, 10, 4), np.uint8)
        canvas = place_foreground_alpha(20, 20, src, InputParams(fg_invert_alpha=True))
        assert np.all(canvas[:10, :10] == 255)
        assert canvas[10:, :].max() == 0

    def test_feather_softens_edge(self):
        """Feathering spreads the edge by at most the feather radius"""
        inputs = InputParams(fg_x=-5, fg_feather=True)
        canvas = place_foreground_alpha(100, 100, _white_square(), inputs)
        assert canvas[0, 0] == 255
        assert 0 < canvas[0, 5] < 255
        assert canvas[:, 7:].max() == 0


# ============================================================
# COMPOSITING
# ============================================================

def _flat_layer(h, s, b, a, shape=(3, 3)):
    return Layer(*(np.full(shape, v, np.uint8) for v in (h, s, b, a)))


class TestCompositor:
    def test_opaque_foreground_wins(self):
        """An opaque foreground reproduces its own RGB with alpha 255"""
        bg = _flat_layer(150, 200, 100, 128)
        fg = _flat_layer(30, 200, 210, 255)
        out = composite_layers(bg, fg)
        assert tuple(out[1, 1, :3]) == hsb_to_rgb(30, 200, 210)
        assert np.all(out[..., 3] == 255)

    def test_transparent_foreground_shows_background(self):
        """A transparent foreground reproduces the background RGB and alpha"""
        bg = _flat_layer(150, 200, 100, 128)
        fg = _flat_layer(30, 200, 210, 0)
        out = composite_layers(bg, fg)
        assert tuple(out[0, 0, :3]) == hsb_to_rgb(150, 200, 100)
        assert np.all(out[..., 3] == 128)

    def test_both_transparent(self):
        """Nothing over nothing is transparent black"""
        out = composite_layers(_flat_layer(10, 10, 10, 0), _flat_layer(20, 20, 20, 0))
        assert np.all(out == 0)

    def test_output_layout(self):
        """Compositor returns (H, W, 4) uint8"""
        bg = background_layer(8, 5, ColorParams())
        fg = foreground_layer(8, 5, ColorParams())
        out = composite_layers(bg, fg)
        assert out.shape == (5, 8, 4)
        assert out.dtype == np.uint8
        rgb = hsb_to_rgb_array(bg.h, bg.s, bg.b)
        visible = bg.a > 0
        assert np.array_equal(out[..., :3][visible], rgb[visible])
