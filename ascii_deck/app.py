#!/usr/bin/env python3
"""
ASCII Deck viewer (tkinter)
---------------------------
Plays a video as live ASCII art. The Tk root is the display-refresh
scheduler for the live driver (root.after / root.after_cancel).

Keys:
    space     - pause/play
    r         - start/stop recording
    s         - save snapshot (PNG)
    t         - save current frame as text
    i         - invert
    c         - color mode
    + / -     - more / fewer columns
    ] / [     - contrast up / down
    q or ESC  - quit
"""

import logging
import os
import tkinter as tk
from datetime import datetime
from typing import Optional

import cv2 as cv
from PIL import Image, ImageTk

from ascii_deck.capture import Artifact
from ascii_deck.config import AsciiConfig, Settings
from ascii_deck.drivers import PlayerState
from ascii_deck.errors import AsciiDeckError, UnsupportedFormatError
from ascii_deck.processor import AsciiProcessor
from ascii_deck.renderer import RenderedFrame
from ascii_deck.source import VideoSource

log = logging.getLogger(__name__)

WIDTH_STEP = 10
CONTRAST_STEP = 0.05


class AsciiDeckApp:
    def __init__(self, root: tk.Tk, source: VideoSource, settings: Settings,
                 config: Optional[AsciiConfig] = None, record: bool = False,
                 max_height: int = 900):
        self.root = root
        self.settings = settings
        self.max_height = max_height
        self.root.title(f"ASCII Deck - {os.path.basename(source.path)}")
        self.root.configure(bg="black")

        self.image_label = tk.Label(root, bg="black")
        self.image_label.pack(fill=tk.BOTH, expand=True)
        self.status_var = tk.StringVar(value="HALTED")
        tk.Label(root, textvariable=self.status_var, bg="black", fg="#33ff00",
                 font=("Courier New", 9), anchor="w").pack(fill=tk.X)

        self.processor = AsciiProcessor(source, settings, scheduler=root, config=config)
        self.processor.on_state_change(self.on_state)
        self.processor.on_frame(self.show_frame)
        self.processor.on_artifact(self.on_artifact)

        root.bind("<Key>", self.on_key)
        root.protocol("WM_DELETE_WINDOW", self.quit)

        self.processor.play()
        if record:
            self.toggle_recording()

    # ---- output ----

    def show_frame(self, rendered: RenderedFrame) -> None:
        pixels = self.processor.surface.pixels
        if pixels.shape[0] > self.max_height:
            scale = self.max_height / pixels.shape[0]
            pixels = cv.resize(pixels, (int(pixels.shape[1] * scale), self.max_height),
                               interpolation=cv.INTER_AREA)
        tk_img = ImageTk.PhotoImage(Image.fromarray(cv.cvtColor(pixels, cv.COLOR_BGR2RGB)))
        self.image_label.configure(image=tk_img)
        self.image_label.image = tk_img  # prevent garbage collection

    def set_status(self, extra: Optional[str] = None) -> None:
        state = "RUNNING" if self.processor.state == PlayerState.PLAYING else "HALTED"
        cfg = self.processor.config
        parts = [state, f"{cfg.width} CHARS", f"CONTRAST {cfg.contrast * 100:.0f}%"]
        if cfg.inverted:
            parts.append("INV")
        if cfg.color:
            parts.append("COLOR")
        if self.processor.is_recording:
            parts.append("REC")
        if extra:
            parts.append(extra)
        self.status_var.set("  ".join(parts))

    def on_state(self, state: PlayerState) -> None:
        self.set_status()

    def on_artifact(self, artifact: Artifact, path: Optional[str]) -> None:
        self.set_status(f"saved {os.path.basename(path)}" if path else "recording not saved")

    # ---- actions ----

    def toggle_recording(self) -> None:
        if self.processor.is_recording:
            try:
                self.processor.stop_live_capture()
            except AsciiDeckError as e:
                log.error("%s", e)
                self.set_status("recording failed")
            return
        try:
            self.processor.start_live_capture()
        except UnsupportedFormatError as e:
            log.error("%s", e)
            self.set_status("recording not supported")
            return
        self.set_status()

    def save_snapshot(self) -> None:
        try:
            png = self.processor.capture_snapshot()
        except ValueError as e:
            self.set_status(str(e))
            return
        path = self._stamped("ascii_frame", ".png")
        with open(path, "wb") as f:
            f.write(png)
        log.info("Saved: %s", path)
        self.set_status(f"saved {os.path.basename(path)}")

    def save_text(self) -> None:
        path = self._stamped("ascii_frame", ".txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.processor.capture_current_text())
        log.info("Saved: %s", path)
        self.set_status(f"saved {os.path.basename(path)}")

    def _stamped(self, prefix: str, ext: str) -> str:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_dir = self.settings["capture"]["output_dir"]
        os.makedirs(out_dir, exist_ok=True)
        return os.path.abspath(os.path.join(out_dir, f"{prefix}_{ts}{ext}"))

    def on_key(self, event) -> None:
        key = event.keysym
        cfg = self.processor.config
        if key in ("q", "Escape"):
            self.quit()
            return
        if key == "space":
            self.processor.toggle_pause()
        elif key == "r":
            self.toggle_recording()
        elif key == "s":
            self.save_snapshot()
            return
        elif key == "t":
            self.save_text()
            return
        elif key == "i":
            self.processor.update_config(inverted=not cfg.inverted)
        elif key == "c":
            self.processor.update_config(color=not cfg.color)
        elif key in ("plus", "equal", "KP_Add"):
            self.processor.update_config(width=cfg.width + WIDTH_STEP)
        elif key in ("minus", "KP_Subtract"):
            self.processor.update_config(width=cfg.width - WIDTH_STEP)
        elif key == "bracketright":
            self.processor.update_config(contrast=round(cfg.contrast + CONTRAST_STEP, 2))
        elif key == "bracketleft":
            self.processor.update_config(contrast=round(cfg.contrast - CONTRAST_STEP, 2))
        self.set_status()

    def quit(self) -> None:
        try:
            self.processor.stop()
        except AsciiDeckError as e:
            log.error("Stopping failed: %s", e)
        self.processor.source.release()
        self.root.destroy()


def run(source: VideoSource, settings: Settings, config: Optional[AsciiConfig] = None,
        record: bool = False) -> None:
    root = tk.Tk()
    AsciiDeckApp(root, source, settings, config=config, record=record)
    root.mainloop()
