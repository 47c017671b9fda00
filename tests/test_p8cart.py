"""Tests for the cart reader: section extraction, nibble decoding and the
__gff__ sprite flags."""

import pytest

from p8cart import (
    extract_section, parse_cart, hex_digit, nibble, decode_flags, flag_bits,
    CartError, INVALID, GFX_MARKER, MAP_MARKER, GFF_MARKER, NUM_SPRITES,
)


CART = """pico-8 cartridge // http://www.pico-8.com
version 42
__lua__
print("hi")
__gfx__
0123
4567
__gff__
0102
__map__
1200
__sfx__
0001
"""


# =============================================================================
# Sections
# =============================================================================

class TestExtractSection:
    def test_gfx_lines(self):
        assert extract_section(CART, GFX_MARKER) == ("0123", "4567")

    def test_marker_line_not_captured(self):
        assert GFX_MARKER not in extract_section(CART, GFX_MARKER)

    def test_stops_at_next_marker(self):
        assert extract_section(CART, GFF_MARKER) == ("0102",)
        assert extract_section(CART, MAP_MARKER) == ("1200",)

    def test_missing_section_is_empty(self):
        assert extract_section(CART, "__label__") == ()

    def test_accepts_line_list(self):
        lines = CART.splitlines()
        assert extract_section(lines, GFX_MARKER) == ("0123", "4567")

    def test_lines_kept_verbatim(self):
        text = "__gfx__\nzz 9\n\n__map__\n"
        assert extract_section(text, GFX_MARKER) == ("zz 9", "")

    def test_crlf_line_endings(self):
        text = "__gfx__\r\nabcd\r\n__map__\r\n00\r\n"
        assert extract_section(text, GFX_MARKER) == ("abcd",)


class TestParseCart:
    def test_returns_three_sections(self):
        gfx, map_lines, gff = parse_cart(CART)
        assert gfx == ("0123", "4567")
        assert map_lines == ("1200",)
        assert gff == ("0102",)

    def test_gff_optional(self):
        _, _, gff = parse_cart("__gfx__\n00\n__map__\n00\n")
        assert gff == ()

    def test_missing_gfx(self):
        with pytest.raises(CartError, match="__gfx__"):
            parse_cart("__map__\n00\n")

    def test_missing_map(self):
        with pytest.raises(CartError, match="__map__"):
            parse_cart("__gfx__\n00\n__sfx__\n00\n")


# =============================================================================
# Nibbles
# =============================================================================

class TestHexDigit:
    def test_lowercase_digits(self):
        values = [hex_digit(c) for c in "0123456789abcdef"]
        assert values == list(range(16))

    def test_uppercase(self):
        assert [hex_digit(c) for c in "ABCDEF"] == [10, 11, 12, 13, 14, 15]

    @pytest.mark.parametrize("c", ["g", "G", " ", "-", "z", "\n"])
    def test_invalid(self, c):
        assert hex_digit(c) == INVALID

    def test_nibble_reads_invalid_as_zero(self):
        assert nibble("x") == 0
        assert nibble("f") == 15


# =============================================================================
# Flags
# =============================================================================

class TestFlags:
    def test_no_section_all_zero(self):
        flags = decode_flags(())
        assert flags == [0] * NUM_SPRITES

    def test_first_digit_is_high_nibble(self):
        flags = decode_flags(("1f",))
        assert flags[0] == 0x1F
        assert flags[1] == 0

    def test_second_line_starts_at_128(self):
        line0 = "00" * 128
        line1 = "ff" + "00" * 127
        flags = decode_flags((line0, line1))
        assert flags[127] == 0
        assert flags[128] == 255

    def test_extra_lines_ignored(self):
        flags = decode_flags(("00" * 128, "00" * 128, "ff" * 128))
        assert len(flags) == NUM_SPRITES
        assert max(flags) == 0

    def test_odd_trailing_char_ignored(self):
        flags = decode_flags(("015",))
        assert flags[0] == 1
        assert flags[1] == 0

    def test_flag_bits(self):
        assert flag_bits(0) == [False] * 8
        assert flag_bits(0b10000101) == [True, False, True, False, False, False, False, True]
