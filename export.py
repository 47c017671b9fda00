#!/usr/bin/env python3
"""
PICO-8 cart exporter.
Reads a .p8 cart and writes its sprite sheet and map out as PNG + JSON:
  spritesheet.png        restitched sprite bands (128x128, unused bands transparent)
  spritesheet.json       sprite atlas: per-sprite pixels, flags, used bit
  map.png                rendered map (128 x 32/48/64 tiles)
  map.json               tilemap cells
  sprites/sprite_NNN.png one 8x8 PNG per available sprite
  sprites/section_N.png  one 128x32 PNG per sprite band

--3 / --4 treat sprites 128..191 / 192..255 as extra map rows instead of
sprites (the cart's "dual-purpose" sections).

Usage:
  python3 export.py --cart game.p8 [--3] [--4] [--clean] [--out DIR] [--verify]
"""

import os, sys, json, shutil, argparse
from PIL import Image

from p8cart import CartError, read_p8, parse_cart, decode_flags
from spritesheet import (
    reconstruct_sheet, build_atlas_model, compose_sheet, sheet_bands,
    sprite_bands, sprite_image, image_indices,
)
from tilemap import build_map

DEFAULT_CART = os.path.expanduser("~/.lexaloffle/pico-8/carts/test.p8")
SPRITES_DIR = "sprites"
MAP_PNG = "map.png"
MAP_JSON = "map.json"
SHEET_PNG = "spritesheet.png"
SHEET_JSON = "spritesheet.json"


# ── Output helpers ───────────────────────────────────────────────────────────

def save_png(img, path):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    if img.mode == "P":
        img = img.convert("RGBA")
    img.save(path, "PNG")


def save_json(data, path):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


class Outputs:
    """Writes artifacts under one root. A failed write is reported and
    counted, the rest of the export carries on."""

    def __init__(self, root):
        self.root = root
        self.written = 0
        self.failed = 0
        self.failed_paths = set()

    def path(self, *parts):
        return os.path.join(self.root, *parts)

    def write(self, saver, data, *parts):
        path = self.path(*parts)
        try:
            saver(data, path)
        except OSError as e:
            print(f"Error saving {path}: {e}", file=sys.stderr)
            self.failed += 1
            self.failed_paths.add(path)
            return False
        self.written += 1
        return True


def clean_outputs(root):
    """Remove outputs of an earlier run. Returns how many couldn't be removed."""
    failed = 0
    sprites = os.path.join(root, SPRITES_DIR)
    if os.path.isdir(sprites):
        try:
            shutil.rmtree(sprites)
            print(f"  Removed old {SPRITES_DIR}/ folder.")
        except OSError as e:
            print(f"Error removing {sprites}: {e}", file=sys.stderr)
            failed += 1
    for name in (MAP_PNG, MAP_JSON, SHEET_PNG, SHEET_JSON):
        p = os.path.join(root, name)
        if os.path.exists(p):
            try:
                os.remove(p)
                print(f"  Removed {name}")
            except OSError as e:
                print(f"Error removing {p}: {e}", file=sys.stderr)
                failed += 1
    return failed


# ── Export phases ────────────────────────────────────────────────────────────

def export_sprites(out, sheet, atlas, use3, use4):
    for spr in atlas["sprites"]:
        out.write(save_png, sprite_image(sheet, spr["id"]), SPRITES_DIR, spr["filename"])

    bands = sheet_bands(sheet)
    band_ids = sprite_bands(use3, use4)
    for b in band_ids:
        out.write(save_png, bands[b], SPRITES_DIR, f"section_{b}.png")

    print(f"  Saved {len(atlas['sprites'])} sprites and {len(band_ids)} sections"
          f" into '{SPRITES_DIR}' folder.")


def verify_sprites(out, atlas):
    """Reload each sprite PNG and compare it with the atlas pixel grid.
    Returns the number of sprites that don't match (or can't be read).
    Sprites whose write already failed are skipped, they're counted once."""
    bad = 0
    for spr in atlas["sprites"]:
        path = out.path(SPRITES_DIR, spr["filename"])
        if path in out.failed_paths:
            continue
        try:
            with Image.open(path) as img:
                pixels = image_indices(img)
        except OSError as e:
            print(f"  {spr['filename']}: unreadable ({e})")
            bad += 1
            continue
        if pixels != spr["pixels"]:
            print(f"  {spr['filename']}: pixels differ from {SHEET_JSON}")
            bad += 1
    return bad


def export_cart(content, root, use3=False, use4=False, name="map", verify=False):
    """Run the full export for one cart's text. Returns the number of
    artifacts that failed to write or verify. Raises CartError when
    __gfx__ or __map__ is missing."""
    gfx, map_lines, gff = parse_cart(content)
    print(f"  __gfx__: {len(gfx)} lines, __map__: {len(map_lines)} lines,"
          f" __gff__: {len(gff)} lines")

    sheet = reconstruct_sheet(gfx)
    flags = decode_flags(gff)
    out = Outputs(root)

    print("\nRendering map...")
    map_img, map_model = build_map(gfx, map_lines, sheet, use3, use4, name)
    print(f"  Map size: {map_model['width']}x{map_model['height']}"
          f" ({len(map_model['cells'])} cells)")
    out.write(save_png, map_img, MAP_PNG)
    out.write(save_json, map_model, MAP_JSON)

    print("\nExporting sprites...")
    atlas = build_atlas_model(sheet, flags, use3, use4)
    avail = atlas["metadata"]["availableSprites"]
    for r in avail["ranges"]:
        print(f"    {r['start']:3d}..{r['end']:3d}  {r['description']}"
              f"{'' if r['used'] else ' (empty)'}")
    print(f"  Available: {avail['total']} sprites,"
          f" {sum(1 for s in atlas['sprites'] if s['used'])} used")
    export_sprites(out, sheet, atlas, use3, use4)
    out.write(save_json, atlas, SHEET_JSON)

    composed = compose_sheet(sheet, use3, use4)
    if out.write(save_png, composed, SHEET_PNG):
        print(f"  Created {SHEET_PNG} with {len(sprite_bands(use3, use4))} sections.")

    failed = out.failed
    if verify:
        print("\nVerifying sprite PNGs...")
        bad = verify_sprites(out, atlas)
        print(f"  {len(atlas['sprites']) - bad}/{len(atlas['sprites'])} match")
        failed += bad

    print(f"\nWrote {out.written} files to {os.path.abspath(root)}")
    return failed


# ── Main ─────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Export a PICO-8 cart's sprites and map to PNG + JSON.")
    ap.add_argument("--cart", default=DEFAULT_CART, help="Path to the PICO-8 cartridge file (.p8)")
    ap.add_argument("--3", dest="section3", action="store_true",
                    help="Include dual-purpose section 3 (sprites 128..191) as map rows")
    ap.add_argument("--4", dest="section4", action="store_true",
                    help="Include dual-purpose section 4 (sprites 192..255) as map rows")
    ap.add_argument("--clean", action="store_true",
                    help="Remove old sprites/, map and spritesheet outputs first")
    ap.add_argument("--out", default=".", help="Output directory (default: current directory)")
    ap.add_argument("--verify", action="store_true",
                    help="Re-read exported sprite PNGs and check them against the JSON")
    return ap.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    clean_failed = 0
    if args.clean:
        print("Cleaning old outputs...")
        clean_failed = clean_outputs(args.out)

    print(f"Reading cart: {args.cart}")
    try:
        content = read_p8(args.cart)
    except OSError as e:
        print(f"Failed to open cart file: {e}", file=sys.stderr)
        return 1

    name = os.path.splitext(os.path.basename(args.cart))[0]
    try:
        failed = export_cart(content, args.out, args.section3, args.section4,
                             name, args.verify)
    except CartError as e:
        print(f"{e}. Exiting.", file=sys.stderr)
        return 1

    failed += clean_failed
    if failed:
        print(f"  {failed} output(s) failed", file=sys.stderr)
        return 1
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
