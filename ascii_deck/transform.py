#!/usr/bin/env python3
"""
Luminance / contrast transfer and character ramp quantization.

One canonical transfer is used by every path (live and batch):

    Y      = 0.2126 R + 0.7152 G + 0.0722 B          (Rec. 709 luma)
    factor = 259 (255c + 255) / (255 (259 - 255c))   (c = contrast)
    Y'     = clamp(factor (Y - 128) + 128, 0, 255)   rounded to an integer level
    Y''    = 255 - Y'  when inverted
    index  = floor(Y'' (L - 1) / 255)                 clamped to [0, L - 1]

Luma is always taken before contrast. contrast = 0 gives factor 1 (identity).

All functions accept scalars or numpy arrays. Pixel arrays are BGR, as
decoded by OpenCV.
"""

from typing import Tuple, Union

import numpy as np

from ascii_deck.config import CONTRAST_RANGE

ArrayLike = Union[float, int, np.ndarray]

# Rec. 709 weights, (R, G, B)
LUMA_WEIGHTS: Tuple[float, float, float] = (0.2126, 0.7152, 0.0722)


def luminance(bgr: np.ndarray) -> np.ndarray:
    """Per-pixel luma of a (..., 3) BGR array, as float64 in [0, 255]."""
    bgr = np.asarray(bgr, dtype=np.float64)
    wr, wg, wb = LUMA_WEIGHTS
    return wr * bgr[..., 2] + wg * bgr[..., 1] + wb * bgr[..., 0]


def contrast_factor(contrast: float) -> float:
    lo, hi = CONTRAST_RANGE
    if not lo <= contrast <= hi:
        raise ValueError(f"contrast {contrast} outside [{lo}, {hi}]")
    c = contrast * 255.0
    return (259.0 * (c + 255.0)) / (255.0 * (259.0 - c))


def apply_contrast(values: ArrayLike, contrast: float) -> ArrayLike:
    """Slope around mid-gray; result clamped to [0, 255]."""
    factor = contrast_factor(contrast)
    out = factor * (np.asarray(values, dtype=np.float64) - 128.0) + 128.0
    return np.clip(out, 0.0, 255.0)


def invert(brightness: ArrayLike) -> ArrayLike:
    return 255 - brightness


def adjust(bgr: np.ndarray, contrast: float, inverted: bool = False) -> np.ndarray:
    """
    Adjusted brightness levels (uint8) for a BGR sample array.
    Luma -> contrast -> inversion, in that order.
    """
    levels = np.rint(apply_contrast(luminance(bgr), contrast)).astype(np.uint8)
    if inverted:
        levels = invert(levels)
    return levels


def adjust_colors(bgr: np.ndarray, contrast: float) -> np.ndarray:
    """Per-channel contrast for color mode fills. Returns uint8 BGR."""
    return np.rint(apply_contrast(bgr, contrast)).astype(np.uint8)


def quantize(brightness: ArrayLike, ramp_length: int) -> ArrayLike:
    """Ramp index for brightness in [0, 255]. Monotonic non-decreasing."""
    if ramp_length < 2:
        raise ValueError("Ramp must have at least 2 characters")
    b = np.asarray(brightness, dtype=np.float64)
    idx = np.floor(b * (ramp_length - 1) / 255.0).astype(np.int64)
    idx = np.clip(idx, 0, ramp_length - 1)
    if idx.ndim == 0:
        return int(idx)
    return idx


def glyph_for(brightness: float, ramp: str) -> str:
    return ramp[quantize(brightness, len(ramp))]


def glyph_indices(bgr: np.ndarray, contrast: float, inverted: bool, ramp_length: int) -> np.ndarray:
    """Full per-cell pipeline: adjusted brightness quantized to ramp indices."""
    return quantize(adjust(bgr, contrast, inverted), ramp_length)
