#!/usr/bin/env python3
"""
PICO-8 .p8 cart reader.
Pulls the hex sections out of a text cart and decodes their nibbles:
  __gfx__  128 lines x 128 hex chars, one char per pixel
  __map__  32 lines x 256 hex chars, two chars per tile
  __gff__  2 lines x 256 hex chars, two chars per sprite flag byte
"""

GFX_MARKER = "__gfx__"
MAP_MARKER = "__map__"
GFF_MARKER = "__gff__"
MARKER_PREFIX = "__"

NUM_SPRITES = 256
FLAGS_PER_LINE = 128
INVALID = -1

# PICO-8 palette
P8_PALETTE = (
    (0, 0, 0),        # 0 black
    (29, 43, 83),     # 1 dark blue
    (126, 37, 83),    # 2 dark purple
    (0, 135, 81),     # 3 dark green
    (171, 82, 54),    # 4 brown
    (95, 87, 79),     # 5 dark grey
    (194, 195, 199),  # 6 light grey
    (255, 241, 232),  # 7 white
    (255, 0, 77),     # 8 red
    (255, 163, 0),    # 9 orange
    (255, 236, 39),   # 10 yellow
    (0, 228, 54),     # 11 green
    (41, 173, 255),   # 12 blue
    (131, 118, 156),  # 13 lavender
    (255, 119, 168),  # 14 pink
    (255, 204, 170),  # 15 peach
)


class CartError(Exception):
    """Cart is missing a section the export can't run without."""


# ── Sections ─────────────────────────────────────────────────────────────────

def read_p8(path):
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()


def extract_section(content, marker):
    """Return the lines between `marker` and the next __xxx__ marker.
    `content` is the cart text or an already split list of lines.
    A cart without the marker gives an empty tuple."""
    lines = content.splitlines() if isinstance(content, str) else content
    section = []
    inside = False
    for line in lines:
        if line.startswith(marker):
            inside = True
            continue
        if line.startswith(MARKER_PREFIX):
            inside = False
        if inside:
            section.append(line)
    return tuple(section)


def parse_cart(content):
    """Split a cart into (gfx, map, gff) line tuples.
    __gfx__ and __map__ are required, __gff__ may be empty."""
    lines = content.splitlines()
    gfx = extract_section(lines, GFX_MARKER)
    if not gfx:
        raise CartError(f"No {GFX_MARKER} section found in cart")
    map_lines = extract_section(lines, MAP_MARKER)
    if not map_lines:
        raise CartError(f"No {MAP_MARKER} section found in cart")
    gff = extract_section(lines, GFF_MARKER)
    return gfx, map_lines, gff


# ── Nibbles ──────────────────────────────────────────────────────────────────

def hex_digit(c):
    """Single hex char -> 0..15, INVALID for anything else."""
    if '0' <= c <= '9':
        return ord(c) - ord('0')
    if 'a' <= c <= 'f':
        return ord(c) - ord('a') + 10
    if 'A' <= c <= 'F':
        return ord(c) - ord('A') + 10
    return INVALID


def nibble(c):
    # bad digits read as 0 (black pixel / empty tile)
    v = hex_digit(c)
    return v if v >= 0 else 0


# ── Sprite flags ─────────────────────────────────────────────────────────────

def decode_flags(gff_lines):
    """Decode __gff__ into 256 flag bytes. Sprites past the data stay 0."""
    flags = [0] * NUM_SPRITES
    for row, line in enumerate(gff_lines[:NUM_SPRITES // FLAGS_PER_LINE]):
        for i in range(min(len(line) // 2, FLAGS_PER_LINE)):
            hi = nibble(line[i * 2])
            lo = nibble(line[i * 2 + 1])
            flags[row * FLAGS_PER_LINE + i] = hi * 16 + lo
    return flags


def flag_bits(value):
    return [bool((value >> b) & 1) for b in range(8)]
