#!/usr/bin/env python3
"""
Map rendering and the tilemap descriptor.

__map__ holds 32 rows of 128 tiles, two hex digits per tile. Carts can
extend the map downwards by storing tiles in the bottom of the sprite sheet
(the "dual-purpose" sections):
  section 3: __gfx__ rows 64..95  -> map rows 32..47
  section 4: __gfx__ rows 96..127 -> map rows 48..63
A gfx row holds 64 tiles, so two gfx rows make one map row: even rows fill
the left half (x 0..63), odd rows the right half (x 64..127).

The two sources disagree on digit order. __map__ is row-first ("12" = sprite
row 1, col 2), the dual-purpose rows are col-first. Section 3 also paints an
explicit black tile for empty pairs on its even rows, where every other
case leaves the background alone. Both quirks are kept as-is: changing them
would change output for existing carts. Open question whether either was
intended.
"""

from p8cart import nibble
from spritesheet import TILE_SIZE, GRID_SIZE, JSON_VERSION, new_indexed

MAP_WIDTH = 128
BASE_ROWS = 32
BAND_ROWS = 32
HALF_WIDTH = MAP_WIDTH // 2

SECTION3_GFX_ROW = 64
SECTION4_GFX_ROW = 96
SECTION3_MAP_ROW = 32
SECTION4_MAP_ROW = 48


def map_height(use_section3=False, use_section4=False):
    if use_section4:
        return 64
    if use_section3:
        return 48
    return BASE_ROWS


def dual_purpose_band(gfx_lines, start):
    """__gfx__ rows start..start+32, clamped to what the cart has."""
    if start >= len(gfx_lines):
        return ()
    end = min(start + BAND_ROWS, len(gfx_lines))
    return tuple(gfx_lines[start:end])


def tile_id(col, row):
    return row * GRID_SIZE + col


# ── Placements ───────────────────────────────────────────────────────────────
# Each yields (map_x, map_y, sprite_col, sprite_row). The renderer and the
# descriptor both walk these so they can't drift apart.

def base_placements(map_lines, height=BASE_ROWS):
    """Every tile pair in __map__, (0,0) included. First digit is the row.
    Rows past 32 are kept up to `height`; band rows then draw over them."""
    for y, line in enumerate(map_lines[:height]):
        for x in range(min(len(line) // 2, MAP_WIDTH)):
            row = nibble(line[x * 2])
            col = nibble(line[x * 2 + 1])
            yield x, y, col, row


def band_placements(band_lines, base_row, keep_blank_even=False):
    """Tiles packed into a dual-purpose band. First digit is the column.

    (0,0) pairs are dropped, except on even rows when keep_blank_even is set
    (section 3), where they come through for the renderer to blank out."""
    for y, line in enumerate(band_lines):
        for x in range(min(len(line) // 2, HALF_WIDTH)):
            col = nibble(line[x * 2])
            row = nibble(line[x * 2 + 1])
            blank = col == 0 and row == 0
            if y % 2 == 0:
                if blank and not keep_blank_even:
                    continue
                yield x, base_row + y // 2, col, row
            else:
                if blank:
                    continue
                yield HALF_WIDTH + x, base_row + (y - 1) // 2, col, row


def section_placements(section3=(), section4=()):
    yield from band_placements(section3, SECTION3_MAP_ROW, keep_blank_even=True)
    yield from band_placements(section4, SECTION4_MAP_ROW)


# ── Rendering ────────────────────────────────────────────────────────────────

def draw_sprite(dst, sheet, col, row, tile_x, tile_y):
    """Copy sprite (col, row) of the sheet into map cell (tile_x, tile_y)."""
    sx, sy = col * TILE_SIZE, row * TILE_SIZE
    tile = sheet.crop((sx, sy, sx + TILE_SIZE, sy + TILE_SIZE))
    dst.paste(tile, (tile_x * TILE_SIZE, tile_y * TILE_SIZE))


def draw_blank(dst, tile_x, tile_y):
    dx, dy = tile_x * TILE_SIZE, tile_y * TILE_SIZE
    dst.paste(0, (dx, dy, dx + TILE_SIZE, dy + TILE_SIZE))


def render_map(map_lines, sheet, section3=(), section4=(), height=BASE_ROWS):
    """Render the map as an indexed image, 8 px per tile, black background.

    Args:
        map_lines: __map__ section lines
        sheet: indexed sheet from spritesheet.reconstruct_sheet()
        section3/section4: band lines from dual_purpose_band(), or empty
        height: map height in tiles, see map_height()
    """
    img = new_indexed(MAP_WIDTH * TILE_SIZE, height * TILE_SIZE)

    for x, y, col, row in base_placements(map_lines, height):
        if col != 0 or row != 0:
            draw_sprite(img, sheet, col, row, x, y)

    for x, y, col, row in section_placements(section3, section4):
        if col != 0 or row != 0:
            draw_sprite(img, sheet, col, row, x, y)
        else:
            draw_blank(img, x, y)

    return img


# ── Tilemap descriptor ───────────────────────────────────────────────────────

def build_map_model(map_lines, section3=(), section4=(), height=BASE_ROWS, name="map"):
    cells = []
    for x, y, col, row in base_placements(map_lines, height):
        cells.append({"x": x, "y": y, "sprite": tile_id(col, row)})
    for x, y, col, row in section_placements(section3, section4):
        cells.append({"x": x, "y": y, "sprite": tile_id(col, row)})
    return {
        "version": JSON_VERSION,
        "description": "PICO-8 tilemap",
        "width": MAP_WIDTH,
        "height": height,
        "name": name,
        "cells": cells,
    }


def build_map(gfx_lines, map_lines, sheet, use_section3=False, use_section4=False, name="map"):
    """Slice the active dual-purpose bands, then render the map and build its
    descriptor. Returns (indexed image, descriptor dict)."""
    section3 = dual_purpose_band(gfx_lines, SECTION3_GFX_ROW) if use_section3 else ()
    section4 = dual_purpose_band(gfx_lines, SECTION4_GFX_ROW) if use_section4 else ()
    height = map_height(use_section3, use_section4)
    img = render_map(map_lines, sheet, section3, section4, height)
    model = build_map_model(map_lines, section3, section4, height, name)
    return img, model
