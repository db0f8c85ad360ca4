#!/usr/bin/env python3
"""
Grid sampler: downsample a decoded video frame to one pixel per character cell.
"""

import logging
import math
from typing import Optional, Tuple

import cv2 as cv
import numpy as np

from ascii_deck.config import ASPECT_CORRECTION

log = logging.getLogger(__name__)


def grid_size(src_w: int, src_h: int, chars_x: int,
              aspect_correction: float = ASPECT_CORRECTION) -> Tuple[int, int]:
    """(chars_x, chars_y) for a source frame; chars_y is at least 1."""
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Invalid source dimensions {src_w}x{src_h}")
    if chars_x < 1:
        raise ValueError("chars_x must be positive")
    chars_y = int(math.floor(chars_x * (src_h / src_w) * aspect_correction))
    return chars_x, max(1, chars_y)


def as_bgr(frame: np.ndarray) -> np.ndarray:
    """Drop alpha / expand grayscale so the frame is (h, w, 3)."""
    if frame.ndim == 2:
        return cv.cvtColor(frame, cv.COLOR_GRAY2BGR)
    if frame.shape[2] == 4:
        return cv.cvtColor(frame, cv.COLOR_BGRA2BGR)
    return frame


class GridSampler:
    """
    Area-average downsampling into a reused (chars_y, chars_x, 3) buffer.
    The buffer is reallocated only when the grid dimensions change.
    """

    def __init__(self, aspect_correction: float = ASPECT_CORRECTION,
                 interpolation: int = cv.INTER_AREA):
        self.aspect_correction = aspect_correction
        self.interpolation = interpolation
        self._buffer: Optional[np.ndarray] = None
        self.grid_changes = 0

    @property
    def size(self) -> Optional[Tuple[int, int]]:
        if self._buffer is None:
            return None
        h, w = self._buffer.shape[:2]
        return w, h

    def sample(self, frame: np.ndarray, chars_x: int) -> np.ndarray:
        if frame is None or frame.size == 0:
            raise ValueError("Invalid or empty frame.")
        frame = as_bgr(frame)
        h, w = frame.shape[:2]
        cols, rows = grid_size(w, h, chars_x, self.aspect_correction)

        if self.size != (cols, rows):
            log.debug("Sample grid %s -> %dx%d (source %dx%d)", self.size, cols, rows, w, h)
            self._buffer = np.empty((rows, cols, 3), dtype=np.uint8)
            self.grid_changes += 1

        out = cv.resize(frame, (cols, rows), dst=self._buffer, interpolation=self.interpolation)
        if out is not self._buffer:
            self._buffer[...] = out
        return self._buffer
