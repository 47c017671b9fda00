#!/usr/bin/env python3
"""
Sprite sheet reconstruction and the sprite atlas descriptor.

The sheet is a 128x128 indexed image (16x16 grid of 8x8 sprites) with the
PICO-8 palette attached, so pixel values stay palette indices until the
image is converted for saving. Sprite id = row * 16 + col.

The sheet splits into four 128x32 bands of 64 sprites each. Bands 2 and 3
(sprites 128..191 and 192..255) can double as extra map rows; when one is
in that mode its sprites are left out of every sprite export.
"""

from functools import lru_cache

from PIL import Image

from p8cart import P8_PALETTE, nibble, flag_bits

SHEET_SIZE = 128
TILE_SIZE = 8
GRID_SIZE = SHEET_SIZE // TILE_SIZE  # 16 sprites per row
BAND_H = 32
BAND_COUNT = SHEET_SIZE // BAND_H
SECTION3_BAND = 2
SECTION4_BAND = 3

JSON_VERSION = "1.0"


def sprite_filename(sprite_id):
    return f"sprite_{sprite_id:03d}.png"


def new_indexed(w, h):
    """Blank indexed image (all index 0) with the PICO-8 palette."""
    img = Image.new("P", (w, h), 0)
    img.putpalette([c for rgb in P8_PALETTE for c in rgb])
    return img


# ── Sheet reconstruction ─────────────────────────────────────────────────────

def reconstruct_sheet(gfx_lines):
    """Decode __gfx__ lines into the 128x128 indexed sprite sheet.
    Short or missing lines leave black; anything past 128 is ignored."""
    img = new_indexed(SHEET_SIZE, SHEET_SIZE)
    px = img.load()
    for y, line in enumerate(gfx_lines[:SHEET_SIZE]):
        for x, c in enumerate(line[:SHEET_SIZE]):
            px[x, y] = nibble(c)
    return img


def sprite_origin(sprite_id):
    """Top-left pixel of a sprite in the sheet."""
    return (sprite_id % GRID_SIZE) * TILE_SIZE, (sprite_id // GRID_SIZE) * TILE_SIZE


def sprite_image(sheet, sprite_id):
    sx, sy = sprite_origin(sprite_id)
    return sheet.crop((sx, sy, sx + TILE_SIZE, sy + TILE_SIZE))


def sprite_pixels(sheet, sprite_id):
    """8x8 grid of palette indices, row-major."""
    sx, sy = sprite_origin(sprite_id)
    px = sheet.load()
    return [[px[sx + x, sy + y] for x in range(TILE_SIZE)]
            for y in range(TILE_SIZE)]


# ── Availability ─────────────────────────────────────────────────────────────

def sprite_ranges(use_section3=False, use_section4=False):
    """(start, end, description) of the sprite ids that hold real sprites."""
    ranges = [(0, 127, "Base sprites (sections 1-2)")]
    if not use_section3:
        ranges.append((128, 191, "Section 3 sprites"))
    if not use_section4:
        ranges.append((192, 255, "Section 4 sprites"))
    return ranges


def available_sprite_ids(use_section3=False, use_section4=False):
    ids = []
    for start, end, _ in sprite_ranges(use_section3, use_section4):
        ids.extend(range(start, end + 1))
    return ids


# ── Atlas descriptor ─────────────────────────────────────────────────────────

def sprite_record(sheet, flags, sprite_id):
    pixels = sprite_pixels(sheet, sprite_id)
    bitfield = flags[sprite_id]
    return {
        "id": sprite_id,
        "x": sprite_id % GRID_SIZE,
        "y": sprite_id // GRID_SIZE,
        "width": TILE_SIZE,
        "height": TILE_SIZE,
        "pixels": pixels,
        "flags": {
            "bitfield": bitfield,
            "individual": flag_bits(bitfield),
        },
        "used": any(p != 0 for row in pixels for p in row),
        "filename": sprite_filename(sprite_id),
    }


def build_atlas_model(sheet, flags, use_section3=False, use_section4=False):
    """Build the sprite atlas descriptor for every available sprite.

    Args:
        sheet: indexed sheet from reconstruct_sheet()
        flags: 256 flag bytes from decode_flags()
        use_section3/use_section4: bands taken over by map data

    Returns:
        dict ready for json.dump()
    """
    sprites = [sprite_record(sheet, flags, i)
               for i in available_sprite_ids(use_section3, use_section4)]
    used_ids = {s["id"] for s in sprites if s["used"]}

    ranges = []
    for start, end, desc in sprite_ranges(use_section3, use_section4):
        ranges.append({
            "start": start,
            "end": end,
            "used": any(i in used_ids for i in range(start, end + 1)),
            "description": desc,
        })

    return {
        "version": JSON_VERSION,
        "description": "PICO-8 sprite atlas",
        "sprites": sprites,
        "metadata": {
            "spriteWidth": TILE_SIZE,
            "spriteHeight": TILE_SIZE,
            "gridWidth": GRID_SIZE,
            "gridHeight": GRID_SIZE,
            "availableSprites": {
                "total": len(sprites),
                "ranges": ranges,
                "sections": {
                    "base": True,
                    "section3": not use_section3,
                    "section4": not use_section4,
                },
            },
            "palette": [{"r": r, "g": g, "b": b, "a": 255}
                        for r, g, b in P8_PALETTE],
        },
    }


# ── Bands ────────────────────────────────────────────────────────────────────

def sheet_bands(sheet):
    """The four 128x32 bands of the sheet, top to bottom."""
    return [sheet.crop((0, b * BAND_H, SHEET_SIZE, (b + 1) * BAND_H))
            for b in range(BAND_COUNT)]


def sprite_bands(use_section3=False, use_section4=False):
    """Indices of the bands that still hold sprites (4, 3 or 2 of them)."""
    skip = set()
    if use_section3:
        skip.add(SECTION3_BAND)
    if use_section4:
        skip.add(SECTION4_BAND)
    return [b for b in range(BAND_COUNT) if b not in skip]


def compose_sheet(sheet, use_section3=False, use_section4=False):
    """Stack the sprite bands top to bottom on a transparent 128x128 sheet.
    Slots left over by dual-purpose bands stay alpha 0."""
    out = Image.new("RGBA", (SHEET_SIZE, SHEET_SIZE), (0, 0, 0, 0))
    bands = sheet_bands(sheet)
    for slot, b in enumerate(sprite_bands(use_section3, use_section4)):
        out.paste(bands[b].convert("RGBA"), (0, slot * BAND_H))
    return out


# ── PNG round-trip ───────────────────────────────────────────────────────────

@lru_cache(maxsize=4096)
def nearest_p8(r, g, b):
    best_i = 0
    best_d = float('inf')
    for i, (pr, pg, pb) in enumerate(P8_PALETTE):
        d = (r - pr) ** 2 + (g - pg) ** 2 + (b - pb) ** 2
        if d < best_d:
            best_d = d
            best_i = i
    return best_i


def image_indices(img):
    """Map an exported RGB(A) image back to rows of palette indices."""
    rgba = img.convert("RGBA")
    w, h = rgba.size
    px = rgba.load()
    rows = []
    for y in range(h):
        row = []
        for x in range(w):
            r, g, b, _ = px[x, y]
            row.append(nearest_p8(r, g, b))
        rows.append(row)
    return rows
