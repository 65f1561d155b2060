"""
Tests for color parameters, input options and the preset table.

Run with: pytest tests/test_presets.py -v
"""

import pytest

from presets import (
    PRESET_NAMES,
    PRESETS,
    ColorParams,
    InputParams,
    describe_preset,
    get_preset,
    list_presets,
    preset_index,
)


class TestPresetTable:
    def test_ten_presets(self):
        """Ten presets, normal first"""
        assert len(PRESETS) == 10
        assert list_presets()[0] == "normal"
        assert len(set(PRESET_NAMES)) == 10

    def test_normal_values(self):
        """The normal preset carries the reference theme"""
        c = get_preset("normal").color
        assert (c.bg_h_value, c.bg_s_start, c.bg_s_end, c.bg_b_start, c.bg_b_end) == (30, 200, 160, 210, 130)
        assert (c.fg_h_top, c.fg_h_bottom, c.fg_s_topright, c.fg_s_bottomleft) == (42, 30, 98, 123)
        assert (c.fg_b_factor, c.fg_h_offset, c.ring_b_value) == (255, -12, 127)

    def test_lookup_by_index_name_and_label(self):
        """Presets resolve by int, numeric string, name or label"""
        assert get_preset(3) is get_preset("3") is get_preset("ice") is get_preset("冰")
        assert get_preset("FIRE").name == "fire"
        assert preset_index("debuff") == 2

    @pytest.mark.parametrize("key", [10, -1, "lava"])
    def test_unknown_preset(self, key):
        """Unknown presets raise KeyError"""
        with pytest.raises(KeyError):
            get_preset(key)

    @pytest.mark.parametrize("preset", PRESETS, ids=lambda p: p.name)
    def test_presets_in_range(self, preset):
        """Every preset is already inside the legal ranges"""
        assert preset.color.clamped() == preset.color

    def test_describe(self):
        """Descriptions show the label when it differs from the name"""
        assert describe_preset("water").startswith("water [水]: ")
        assert describe_preset("buff").startswith("buff: ")
        assert "unknown" in describe_preset("nope")


class TestColorParams:
    def test_clamped(self):
        """Values are clamped, the hue offset to -127..127"""
        c = ColorParams(bg_s_start=300, bg_b_end=-4, fg_h_offset=200).clamped()
        assert c.bg_s_start == 255
        assert c.bg_b_end == 0
        assert c.fg_h_offset == 127

    def test_with_overrides(self):
        """Known keys are applied, unknown keys reported"""
        c, unknown = ColorParams().with_overrides(bg_h_value=40, glow=3)
        assert c.bg_h_value == 40.0
        assert unknown == ["glow"]

    def test_as_dict(self):
        """as_dict exposes all twelve parameters"""
        assert len(ColorParams().as_dict()) == 12


class TestInputParams:
    def test_defaults(self):
        """Defaults are unscaled, unplaced, ring off"""
        p = InputParams()
        assert (p.ring, p.fg_x, p.fg_y, p.fg_w, p.fg_h, p.a_factor) == (False, 0, 0, 100.0, 100.0, 0.5)

    def test_clamped(self):
        """a_factor clamps to 0..3, scales to >= 0, offsets to ints"""
        p = InputParams(a_factor=7, fg_w=-1, fg_x=3.6).clamped()
        assert p.a_factor == 3.0
        assert p.fg_w == 0.0
        assert p.fg_x == 4

    def test_offsets_round_half_away(self):
        """Fractional offsets round half away from zero, like every other rounding path"""
        p = InputParams(fg_x=2.5, fg_y=-2.5).clamped()
        assert (p.fg_x, p.fg_y) == (3, -3)

    def test_image_not_compared(self):
        """The source image is ignored by equality"""
        assert InputParams(fg_image=object()) == InputParams()
