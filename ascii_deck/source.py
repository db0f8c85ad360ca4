#!/usr/bin/env python3
"""
Video source adapter over cv.VideoCapture.

Playback follows the wall clock: current_frame() decodes forward to the
frame due at the current playback time, the way a media element keeps
playing between display refreshes. seek() is a coroutine; callers must
await it and use the frame it returns.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, List, Optional

import cv2 as cv
import numpy as np

from ascii_deck.errors import PlaybackError, SeekError, SourceError

log = logging.getLogger(__name__)

DEFAULT_FPS = 25.0


class VideoSource:
    def __init__(self, path: str, clock: Callable[[], float] = time.monotonic, loop: bool = False):
        self.path = path
        self.clock = clock
        self.loop = loop

        self.cap = cv.VideoCapture(path)
        if not self.cap.isOpened():
            raise SourceError(f"Failed to open video: {path}")

        self.width = int(self.cap.get(cv.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv.CAP_PROP_FRAME_HEIGHT))
        if self.width <= 0 or self.height <= 0:
            self.cap.release()
            raise SourceError(f"Not a decodable video: {path}")

        fps = self.cap.get(cv.CAP_PROP_FPS)
        if not fps or fps <= 0 or fps > 240:
            fps = DEFAULT_FPS  # fallback
        self.fps = float(fps)
        frame_count = self.cap.get(cv.CAP_PROP_FRAME_COUNT)
        self.frame_count = int(frame_count) if frame_count and frame_count > 0 else 0
        self.duration = self.frame_count / self.fps

        self.paused = True
        self.ended = False
        self._position = 0.0           # media time at _anchor
        self._anchor: Optional[float] = None
        self._next_index = 0           # index of the next frame read() returns
        self._frame: Optional[np.ndarray] = None
        self._ended_callbacks: List[Callable[[], None]] = []

        log.info("Opened %s: %dx%d @ %.2f fps, %.2fs", path, self.width, self.height,
                 self.fps, self.duration)

    # ---- notifications ----

    def on_ended(self, callback: Callable[[], None]) -> None:
        self._ended_callbacks.append(callback)

    def _fire_ended(self) -> None:
        for cb in list(self._ended_callbacks):
            cb()

    def index_at(self, t: float) -> int:
        """Frame shown at media time t. Clamped to the last frame when the count is known."""
        index = max(0, int(math.floor(t * self.fps + 1e-9)))
        if self.frame_count:
            index = min(index, self.frame_count - 1)
        return index

    # ---- transport ----

    @property
    def current_time(self) -> float:
        if self.paused or self._anchor is None:
            return self._position
        return self._position + (self.clock() - self._anchor)

    def play(self) -> None:
        if self.ended:
            self._rewind()
        if self._frame is None:
            ok, frame = self.cap.read()
            if not ok:
                raise PlaybackError(f"Source refused to start: {self.path}")
            self._frame = frame
            self._next_index += 1
        self.paused = False
        self._anchor = self.clock()

    def pause(self) -> None:
        if not self.paused:
            self._position = self.current_time
        self.paused = True

    def _rewind(self) -> None:
        self.cap.set(cv.CAP_PROP_POS_FRAMES, 0)
        self._next_index = 0
        self._position = 0.0
        self._anchor = self.clock()
        self._frame = None
        self.ended = False

    def current_frame(self) -> Optional[np.ndarray]:
        """Last frame due at the current playback time; None before play()."""
        if self.paused or self.ended:
            return self._frame

        # not clamped, reading past the last frame is how the end is detected
        due = int(math.floor(self.current_time * self.fps + 1e-9))
        missing = due - self._next_index + 1
        if missing <= 0:
            return self._frame

        # Skip frames we are late for, decode only the last one
        for _ in range(missing - 1):
            if not self.cap.grab():
                return self._handle_exhausted()
            self._next_index += 1
        ok, frame = self.cap.read()
        if not ok:
            return self._handle_exhausted()
        self._next_index += 1
        self._frame = frame
        return frame

    def _handle_exhausted(self) -> Optional[np.ndarray]:
        if self.loop:
            log.debug("End of %s, looping", self.path)
            last = self._frame
            self._rewind()
            ok, frame = self.cap.read()
            if ok:
                self._next_index = 1
                self._frame = frame
                return frame
            self._frame = last
        log.info("End of stream: %s", self.path)
        self._position = self.current_time
        self.paused = True
        self.ended = True
        self._fire_ended()
        return self._frame

    async def seek(self, t: float) -> np.ndarray:
        """Move to media time t and return the frame decoded there."""
        self.pause()
        index = self.index_at(t)
        if not self.cap.set(cv.CAP_PROP_POS_FRAMES, index):
            raise SeekError(f"Backend rejected seek to {t:.3f}s")
        await asyncio.sleep(0)
        ok, frame = self.cap.read()
        if not ok:
            raise SeekError(f"No frame decoded at {t:.3f}s")
        self._next_index = index + 1
        self._position = t
        self._frame = frame
        self.ended = False
        return frame

    def release(self) -> None:
        self.cap.release()
