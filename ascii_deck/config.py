#!/usr/bin/env python3
"""
ASCII Deck configuration
------------------------
- AsciiConfig: immutable per-frame snapshot of the user controls
  (width, contrast, invert, color, ramp).
- Character ramps, ordered from visually sparse to dense.
- Settings: JSON-backed application settings (render, capture,
  playback, logging) deep-merged over DEFAULT_SETTINGS.

Usage:
    from ascii_deck.config import AsciiConfig, Settings
    cfg = AsciiConfig(width=120).with_changes(inverted=True)
    settings = Settings.load()
    fps = settings["capture"]["export_fps"]
"""

from __future__ import annotations

import copy
import json
import logging
import os
import platform
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

# Character sets ordered by visual density (sparse to dense)
ASCII_RAMPS: Dict[str, str] = {
    "SHORT": " .:-=+*#%@",
    "STANDARD": " .'`^\",:;Il!i~+_-?][}{1)(|\\/tfjrxnuvczXYUJCLQ0OZmwqpdbkhao*#MW&8%B@$",
    "BLOCKS": " ░▒▓█",
    "SIMPLE": " .-=+*#@",
}
DEFAULT_RAMP = ASCII_RAMPS["STANDARD"]

DEFAULT_WIDTH = 120
MIN_WIDTH = 40
MAX_WIDTH = 200
CONTRAST_RANGE: Tuple[float, float] = (-0.5, 0.8)

# Glyph cells are about twice as tall as wide
ASPECT_CORRECTION = 0.5


def resolve_ramp(name_or_chars: Optional[str]) -> str:
    """Return a named ramp, or the string itself when it is a custom ramp."""
    if not name_or_chars:
        return DEFAULT_RAMP
    return ASCII_RAMPS.get(name_or_chars.upper(), name_or_chars)


@dataclass(frozen=True)
class AsciiConfig:
    """Read-only snapshot of the controls, taken once per sampling pass."""

    width: int = DEFAULT_WIDTH
    contrast: float = 0.1
    inverted: bool = False
    color: bool = False
    ramp: str = DEFAULT_RAMP

    def __post_init__(self):
        if len(self.ramp) < 2:
            raise ValueError("Ramp must have at least 2 characters")

    def clamped(self) -> "AsciiConfig":
        lo, hi = CONTRAST_RANGE
        width = max(MIN_WIDTH, min(int(self.width), MAX_WIDTH))
        contrast = max(lo, min(float(self.contrast), hi))
        if width == self.width and contrast == self.contrast:
            return self
        return replace(self, width=width, contrast=contrast)

    def with_changes(self, **changes) -> "AsciiConfig":
        return replace(self, **changes).clamped()


# ----------------------------
# Application settings
# ----------------------------

DEFAULT_SETTINGS: Dict[str, Any] = {
    "render": {
        "font_scale": 0.4,               # cv.putText fontScale
        "thickness": 1,
        "cell_ratio": 0.6,               # cell width / cell height
        "font_path": None,               # TTF for glyphs outside Hershey ASCII
        "foreground": [51, 255, 0],      # RGB, phosphor green
        "background": [0, 0, 0],
        "aspect_correction": ASPECT_CORRECTION,
        "ramp": "STANDARD",
    },
    "capture": {
        "stream_fps": 30,
        "export_fps": 15,
        "stream_formats": ["mp4", "webm"],
        "export_formats": ["webm", "mp4"],
        "seek_timeout_s": 5.0,
        "output_dir": ".",
    },
    "playback": {
        "tick_ms": 16,                   # ~ one display refresh
        "loop": False,
        "width": DEFAULT_WIDTH,
        "contrast": 0.1,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "rotate_bytes": 5 * 1024 * 1024,
        "rotate_keep": 3,
    },
}


def _os_config_home() -> str:
    if platform.system() == "Windows":
        base = os.environ.get("APPDATA") or os.path.expanduser("~\\AppData\\Roaming")
        return os.path.join(base, "AsciiDeck")
    if platform.system() == "Darwin":
        return os.path.join(os.path.expanduser("~/Library/Application Support"), "AsciiDeck")
    return os.path.join(os.path.expanduser("~/.config"), "ascii_deck")


def default_settings_path() -> str:
    """Resolve default settings path, honoring ASCII_DECK_CONFIG."""
    env = os.environ.get("ASCII_DECK_CONFIG")
    if env:
        return os.path.expanduser(env)
    return os.path.join(_os_config_home(), "ascii_deck.json")


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


# ----------------------------
# Coercion helpers
# ----------------------------

def _coerce_num(v: Any, default: float, minmax: Optional[Tuple[float, float]] = None,
                name: str = "value") -> float:
    try:
        x = float(v)
    except (TypeError, ValueError):
        log.warning("Invalid %s=%r, using default", name, v)
        return default
    if x != x:  # NaN
        return default
    if minmax:
        lo, hi = minmax
        x = max(lo, min(x, hi))
    return x


def _coerce_int(v: Any, default: int, minmax: Optional[Tuple[int, int]] = None,
                name: str = "value") -> int:
    try:
        x = int(v)
    except (TypeError, ValueError, OverflowError):
        log.warning("Invalid %s=%r, using default", name, v)
        return default
    if minmax:
        lo, hi = minmax
        x = max(lo, min(x, hi))
    return x


def _coerce_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("1", "true", "yes", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
    return default


def _coerce_color(v: Any, default: List[int], name: str) -> List[int]:
    if isinstance(v, (list, tuple)) and len(v) == 3:
        try:
            return [max(0, min(int(c), 255)) for c in v]
        except (TypeError, ValueError):
            pass
    log.warning("Invalid %s=%r, using default", name, v)
    return list(default)


class Settings:
    """Dict-like settings with section access: settings["capture"]["export_fps"]."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[str] = None):
        self.data = _deep_merge(DEFAULT_SETTINGS, data or {})
        self.path = path
        self._validate()

    def __getitem__(self, key: str) -> Dict[str, Any]:
        return self.data[key]

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        path = path or default_settings_path()
        if not os.path.isfile(path):
            return cls(path=path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                user = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable settings file %s: %s", path, e)
            return cls(path=path)
        if not isinstance(user, dict):
            log.warning("Ignoring settings file %s: top level is not an object", path)
            return cls(path=path)
        return cls(user, path=path)

    def save(self, path: Optional[str] = None) -> str:
        path = path or self.path or default_settings_path()
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)
        os.replace(tmp, path)
        return path

    def initial_config(self) -> AsciiConfig:
        """Build the first AsciiConfig snapshot from the playback/render sections."""
        return AsciiConfig(
            width=int(self["playback"]["width"]),
            contrast=float(self["playback"]["contrast"]),
            ramp=resolve_ramp(self["render"]["ramp"]),
        ).clamped()

    def _validate(self) -> None:
        for name, defaults in DEFAULT_SETTINGS.items():
            if not isinstance(self.data.get(name), dict):
                log.warning("Invalid settings section %r, using defaults", name)
                self.data[name] = copy.deepcopy(defaults)

        r = self.data["render"]
        r["font_scale"] = _coerce_num(r.get("font_scale"), 0.4, (0.1, 5.0), "render.font_scale")
        r["thickness"] = _coerce_int(r.get("thickness"), 1, (1, 10), "render.thickness")
        r["cell_ratio"] = _coerce_num(r.get("cell_ratio"), 0.6, (0.2, 2.0), "render.cell_ratio")
        r["aspect_correction"] = _coerce_num(r.get("aspect_correction"), ASPECT_CORRECTION,
                                             (0.1, 2.0), "render.aspect_correction")
        for key in ("foreground", "background"):
            r[key] = _coerce_color(r.get(key), DEFAULT_SETTINGS["render"][key], f"render.{key}")
        if r.get("font_path") is not None and not isinstance(r["font_path"], str):
            log.warning("Invalid render.font_path=%r, ignoring it", r["font_path"])
            r["font_path"] = None
        if not (isinstance(r.get("ramp"), str) and len(resolve_ramp(r["ramp"])) >= 2):
            log.warning("Invalid render.ramp=%r, using default", r.get("ramp"))
            r["ramp"] = DEFAULT_SETTINGS["render"]["ramp"]

        cap = self.data["capture"]
        for key in ("stream_fps", "export_fps"):
            fps = _coerce_num(cap.get(key), DEFAULT_SETTINGS["capture"][key], (0.0, 240.0), f"capture.{key}")
            if fps <= 0:
                log.warning("Invalid capture.%s=%r, using default", key, cap.get(key))
                fps = DEFAULT_SETTINGS["capture"][key]
            cap[key] = fps
        cap["seek_timeout_s"] = _coerce_num(cap.get("seek_timeout_s"), 5.0, (0.01, 600.0),
                                            "capture.seek_timeout_s")
        for key in ("stream_formats", "export_formats"):
            formats = cap.get(key)
            if not (isinstance(formats, list) and formats and all(isinstance(f, str) for f in formats)):
                log.warning("Invalid capture.%s=%r, using default", key, formats)
                cap[key] = list(DEFAULT_SETTINGS["capture"][key])
        if not isinstance(cap.get("output_dir"), str) or not cap["output_dir"]:
            log.warning("Invalid capture.output_dir=%r, using default", cap.get("output_dir"))
            cap["output_dir"] = DEFAULT_SETTINGS["capture"]["output_dir"]

        pb = self.data["playback"]
        pb["tick_ms"] = _coerce_int(pb.get("tick_ms"), 16, (1, 1000), "playback.tick_ms")
        pb["loop"] = _coerce_bool(pb.get("loop"), False)
        pb["width"] = _coerce_int(pb.get("width"), DEFAULT_WIDTH, (MIN_WIDTH, MAX_WIDTH), "playback.width")
        pb["contrast"] = _coerce_num(pb.get("contrast"), 0.1, CONTRAST_RANGE, "playback.contrast")

        lg = self.data["logging"]
        if not isinstance(lg.get("level"), str):
            lg["level"] = DEFAULT_SETTINGS["logging"]["level"]
        if lg.get("file") is not None and not isinstance(lg["file"], str):
            log.warning("Invalid logging.file=%r, logging to console only", lg["file"])
            lg["file"] = None
        lg["rotate_bytes"] = _coerce_int(lg.get("rotate_bytes"), 5 * 1024 * 1024,
                                         (1024, 1024 ** 3), "logging.rotate_bytes")
        lg["rotate_keep"] = _coerce_int(lg.get("rotate_keep"), 3, (0, 100), "logging.rotate_keep")
