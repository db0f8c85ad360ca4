#!/usr/bin/env python3
"""
Frame renderer
--------------
- GlyphAtlas: every ramp glyph pre-drawn once with cv.putText into a
  fixed cell, kept as an alpha mask.
- Surface: the BGR pixel buffer that is both the visible output and
  the capture source. Resized only when the grid dimensions change.
- FrameRenderer: sample grid -> glyph indices -> masks composited onto
  the surface, monochrome (one foreground color) or per-cell color.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import cv2 as cv
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ascii_deck.config import AsciiConfig, Settings
from ascii_deck.errors import SurfaceBusyError
from ascii_deck.transform import adjust_colors, glyph_indices

log = logging.getLogger(__name__)

PHOSPHOR_GREEN = (51, 255, 0)  # RGB, #33ff00

# Shade blocks are drawn as flat coverage; Hershey fonts have no such glyphs
SHADE_COVERAGE = {"░": 0.25, "▒": 0.5, "▓": 0.75, "█": 1.0}


def rgb_to_bgr(color: Sequence[int]) -> Tuple[int, int, int]:
    r, g, b = (int(c) for c in color)
    return b, g, r


class GlyphAtlas:
    """Alpha masks (len(ramp), cell_h, cell_w) for one ramp."""

    def __init__(self, ramp: str, font_scale: float = 0.4, thickness: int = 1,
                 cell_ratio: float = 0.6, font_face: int = cv.FONT_HERSHEY_SIMPLEX,
                 font_path: Optional[str] = None):
        self.ramp = ramp
        self.font_scale = font_scale
        self.thickness = thickness
        self.font_face = font_face
        self.font_path = font_path

        # Use 'M' as a tall reference glyph to size cells
        (_, h), baseline = cv.getTextSize("M", font_face, font_scale, thickness)
        pad_h = max(1, int(round(h * 0.10)))
        self.glyph_h = h
        self.cell_h = h + pad_h + baseline
        self.cell_w = max(1, int(round(self.cell_h * cell_ratio)))

        self._pil_font = None
        if font_path:
            try:
                self._pil_font = ImageFont.truetype(font_path, self.cell_h - baseline)
            except OSError as e:
                log.warning("Could not load font %s (%s); using Hershey glyphs", font_path, e)

        self.masks = np.stack([self._draw(ch) for ch in ramp])

    @property
    def cell_size(self) -> Tuple[int, int]:
        return self.cell_w, self.cell_h

    def _draw(self, ch: str) -> np.ndarray:
        if ch in SHADE_COVERAGE:
            return np.full((self.cell_h, self.cell_w), SHADE_COVERAGE[ch], dtype=np.float32)

        if self._pil_font is not None and not (ch.isascii() and ch.isprintable()):
            canvas = self._draw_pil(ch)
        else:
            if not ch.isascii():
                log.warning("Glyph %r has no Hershey form; set render.font_path for it", ch)
            (tw, _), _ = cv.getTextSize(ch, self.font_face, self.font_scale, self.thickness)
            canvas = np.zeros((self.cell_h, max(self.cell_w, tw + 1)), dtype=np.uint8)
            # Baseline sits glyph_h below the cell top so rows pack without gaps
            cv.putText(canvas, ch, (0, self.glyph_h), self.font_face, self.font_scale,
                       255, self.thickness, lineType=cv.LINE_AA)

        # Squeeze wide glyphs into the monospace cell
        if canvas.shape[1] != self.cell_w:
            canvas = cv.resize(canvas, (self.cell_w, self.cell_h), interpolation=cv.INTER_AREA)
        return canvas.astype(np.float32) / 255.0

    def _draw_pil(self, ch: str) -> np.ndarray:
        left, _, right, _ = self._pil_font.getbbox(ch)
        img = Image.new("L", (max(self.cell_w, right - min(0, left) + 1), self.cell_h), 0)
        ImageDraw.Draw(img).text((0, 0), ch, font=self._pil_font, fill=255)
        return np.asarray(img, dtype=np.uint8)


class Surface:
    """
    Output pixel buffer (BGR). Owned by at most one driver at a time;
    capture sinks only read it.
    """

    def __init__(self):
        self.pixels = np.zeros((0, 0, 3), dtype=np.uint8)
        self.resize_count = 0
        self._owner = None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def ensure_size(self, width: int, height: int) -> bool:
        """Reallocate only on a dimension change. Returns True when resized."""
        if (width, height) == self.size:
            return False
        log.debug("Surface resize %dx%d -> %dx%d", self.width, self.height, width, height)
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.resize_count += 1
        return True

    def clear(self, bgr: Sequence[int]) -> None:
        self.pixels[:] = bgr

    @property
    def owner(self):
        return self._owner

    def acquire(self, owner) -> None:
        if self._owner is not None and self._owner is not owner:
            raise SurfaceBusyError(
                f"Output surface is in use by {type(self._owner).__name__}")
        self._owner = owner

    def release(self, owner) -> None:
        if self._owner is owner:
            self._owner = None

    def to_png(self) -> bytes:
        if self.width == 0 or self.height == 0:
            raise ValueError("Nothing has been rendered yet")
        ok, buf = cv.imencode(".png", self.pixels)
        if not ok:
            raise ValueError("PNG encoding failed")
        return buf.tobytes()


@dataclass
class RenderedFrame:
    """Glyph grid of the last pass; the pixels live on the Surface."""

    indices: np.ndarray                 # (chars_y, chars_x) ramp indices
    ramp: str
    colors: Optional[np.ndarray] = None  # (chars_y, chars_x, 3) BGR, color mode only

    @property
    def chars_x(self) -> int:
        return self.indices.shape[1]

    @property
    def chars_y(self) -> int:
        return self.indices.shape[0]

    def glyph_at(self, x: int, y: int) -> str:
        return self.ramp[int(self.indices[y, x])]

    def text(self) -> str:
        glyphs = np.array(list(self.ramp))
        return "\n".join("".join(row) for row in glyphs[self.indices].tolist())


class FrameRenderer:
    def __init__(self, font_scale: float = 0.4, thickness: int = 1, cell_ratio: float = 0.6,
                 foreground: Sequence[int] = PHOSPHOR_GREEN,
                 background: Sequence[int] = (0, 0, 0),
                 font_path: Optional[str] = None):
        self.font_scale = font_scale
        self.thickness = thickness
        self.cell_ratio = cell_ratio
        self.font_path = font_path
        self.foreground = rgb_to_bgr(foreground)
        self.background = rgb_to_bgr(background)
        self._atlases: Dict[str, GlyphAtlas] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "FrameRenderer":
        r = settings["render"]
        return cls(font_scale=float(r["font_scale"]), thickness=int(r["thickness"]),
                   cell_ratio=float(r.get("cell_ratio", 0.6)),
                   foreground=r["foreground"], background=r["background"],
                   font_path=r.get("font_path"))

    def atlas_for(self, ramp: str) -> GlyphAtlas:
        atlas = self._atlases.get(ramp)
        if atlas is None:
            atlas = GlyphAtlas(ramp, self.font_scale, self.thickness,
                               self.cell_ratio, font_path=self.font_path)
            self._atlases[ramp] = atlas
        return atlas

    def cell_size(self, ramp: str) -> Tuple[int, int]:
        return self.atlas_for(ramp).cell_size

    def render(self, grid: np.ndarray, config: AsciiConfig, surface: Surface) -> RenderedFrame:
        atlas = self.atlas_for(config.ramp)
        cell_w, cell_h = atlas.cell_size
        rows, cols = grid.shape[:2]
        idx = glyph_indices(grid, config.contrast, config.inverted, len(config.ramp))

        out_w, out_h = cols * cell_w, rows * cell_h
        surface.ensure_size(out_w, out_h)
        # Clear first so glyph edges never accumulate across frames
        surface.clear(self.background)

        # (rows, cols, cell_h, cell_w) -> (rows*cell_h, cols*cell_w)
        alpha = atlas.masks[idx].transpose(0, 2, 1, 3).reshape(out_h, out_w)[..., None]

        colors = None
        if config.color:
            colors = adjust_colors(grid, config.contrast)
            fill = np.repeat(np.repeat(colors, cell_h, axis=0), cell_w, axis=1).astype(np.float32)
        else:
            fill = np.array(self.foreground, dtype=np.float32)

        blended = surface.pixels * (1.0 - alpha) + fill * alpha
        np.copyto(surface.pixels, np.rint(blended).astype(np.uint8))
        return RenderedFrame(indices=idx, ramp=config.ramp, colors=colors)
