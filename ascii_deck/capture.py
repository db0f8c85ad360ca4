#!/usr/bin/env python3
"""
Capture sinks
-------------
- StreamCapture: records the live surface in real time at a fixed rate.
  Frames are duplicated or dropped so the recording tracks wall time.
- FrameEncoder: accumulates one still per call and compiles them into a
  container on demand (frame-accurate batch export).

Both write through cv.VideoWriter into a temporary file and hand back an
Artifact holding the container bytes. The container/codec pair is
negotiated from a preference list, first one that opens wins.
"""

from __future__ import annotations

import logging
import math
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2 as cv
import numpy as np

from ascii_deck.errors import (CaptureError, EmptyEncoderError, EncoderError,
                               UnsupportedFormatError)
from ascii_deck.renderer import Surface

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoFormat:
    name: str
    fourcc: str
    extension: str
    mime_type: str


VIDEO_FORMATS: Dict[str, VideoFormat] = {
    "mp4": VideoFormat("mp4", "mp4v", ".mp4", "video/mp4"),
    "webm": VideoFormat("webm", "VP80", ".webm", "video/webm"),
    "avi": VideoFormat("avi", "MJPG", ".avi", "video/x-msvideo"),
}

# Longest wall-clock gap a recording fills with repeated frames
MAX_GAP_S = 1.0

_probe_cache: Dict[str, bool] = {}


def _probe(fmt: VideoFormat) -> bool:
    """True if a VideoWriter for fmt opens in this environment."""
    if fmt.name not in _probe_cache:
        with tempfile.TemporaryDirectory(prefix="ascii_deck_probe_") as tmp:
            writer = cv.VideoWriter(os.path.join(tmp, "probe" + fmt.extension),
                                    cv.VideoWriter_fourcc(*fmt.fourcc), 10.0, (64, 64))
            _probe_cache[fmt.name] = writer.isOpened()
            writer.release()
        log.debug("Format %s (%s) available: %s", fmt.name, fmt.fourcc, _probe_cache[fmt.name])
    return _probe_cache[fmt.name]


def negotiate_format(preferred: Sequence[str]) -> VideoFormat:
    for name in preferred:
        fmt = VIDEO_FORMATS.get(name)
        if fmt is None:
            log.warning("Unknown capture format %r ignored", name)
            continue
        if _probe(fmt):
            return fmt
    raise UnsupportedFormatError(
        f"No supported codec/container among {list(preferred)}")


@dataclass
class Artifact:
    data: bytes
    format: VideoFormat
    frame_count: int
    fps: float
    size: Tuple[int, int]

    @property
    def extension(self) -> str:
        return self.format.extension

    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    def filename(self, stem: str) -> str:
        return stem + self.extension

    def save(self, directory: str = ".", stem: str = "ascii-capture", timestamp: bool = False) -> str:
        if timestamp:
            stem = f"{stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, self.filename(stem))
        with open(path, "wb") as f:
            f.write(self.data)
        return os.path.abspath(path)


def _even_size(width: int, height: int) -> Tuple[int, int]:
    return max(2, (width // 2) * 2), max(2, (height // 2) * 2)


class _ContainerWriter:
    """cv.VideoWriter into a temp file; frames are fitted to the opening size."""

    def __init__(self, fmt: VideoFormat, fps: float, size: Tuple[int, int]):
        self.format = fmt
        self.fps = fps
        self.size = _even_size(*size)
        self.frames = 0
        self._tmp = tempfile.TemporaryDirectory(prefix="ascii_deck_")
        self.path = os.path.join(self._tmp.name, "capture" + fmt.extension)
        self._writer = cv.VideoWriter(self.path, cv.VideoWriter_fourcc(*fmt.fourcc),
                                      float(fps), self.size)
        if not self._writer.isOpened():
            self._tmp.cleanup()
            raise UnsupportedFormatError(
                f"Failed to open VideoWriter for {fmt.name} at {self.size[0]}x{self.size[1]}")

    def write(self, image: np.ndarray) -> None:
        h, w = image.shape[:2]
        if (w, h) != self.size:
            image = cv.resize(image, self.size, interpolation=cv.INTER_AREA)
        self._writer.write(image)
        self.frames += 1

    def finish(self) -> Artifact:
        self._writer.release()
        try:
            with open(self.path, "rb") as f:
                data = f.read()
        finally:
            self._tmp.cleanup()
        return Artifact(data=data, format=self.format, frame_count=self.frames,
                        fps=self.fps, size=self.size)

    def discard(self) -> None:
        self._writer.release()
        self._tmp.cleanup()


class StreamCapture:
    """
    Continuous recording of a Surface. start/stop are idempotent; call
    pump() after each rendered frame to feed the recording.
    """

    def __init__(self, surface: Surface, fps: float = 30.0,
                 formats: Sequence[str] = ("mp4", "webm"),
                 clock: Callable[[], float] = time.monotonic,
                 on_artifact: Optional[Callable[[Artifact], None]] = None,
                 max_gap_s: float = MAX_GAP_S):
        self.surface = surface
        self.fps = float(fps)
        self.max_gap_s = max_gap_s
        self.formats = tuple(formats)
        self.clock = clock
        self.on_artifact = on_artifact
        self.format: Optional[VideoFormat] = None
        self._writer: Optional[_ContainerWriter] = None
        self._active = False
        self._started_at = 0.0

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        # Raises UnsupportedFormatError before any state changes
        self.format = negotiate_format(self.formats)
        self._started_at = self.clock()
        self._active = True
        log.info("Stream capture started (%s @ %.0f fps)", self.format.name, self.fps)

    def pump(self) -> int:
        """Write the frames due since start. Returns how many were written."""
        if not self._active or self.surface.width == 0:
            return 0
        try:
            if self._writer is None:
                self._writer = _ContainerWriter(self.format, self.fps, self.surface.size)
            due = int(math.floor((self.clock() - self._started_at) * self.fps)) + 1
            pending = due - self._writer.frames
            if pending > max(1, self.max_gap_s * self.fps):
                # a stall or long pause is held as one frame, not replayed
                log.debug("Capture gap of %d frames held as one", pending)
                self._started_at += (pending - 1) / self.fps
                pending = 1
            for _ in range(pending):
                self._writer.write(self.surface.pixels)
        except (OSError, cv.error, UnsupportedFormatError) as e:
            self._abandon()
            raise CaptureError(f"Recording failed: {e}") from e
        return max(0, pending)

    def _abandon(self) -> None:
        self._active = False
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.discard()

    def stop(self) -> Optional[Artifact]:
        """Finalize the recording. Stopping an inactive capture is a no-op."""
        if not self._active:
            return None
        self._active = False
        writer, self._writer = self._writer, None
        if writer is None:
            if self.surface.width == 0:
                log.warning("Stream capture stopped before anything was rendered")
                return None
            writer = _ContainerWriter(self.format, self.fps, self.surface.size)
        try:
            if writer.frames == 0:
                writer.write(self.surface.pixels)
            artifact = writer.finish()
        except (OSError, cv.error) as e:
            raise CaptureError(f"Failed to finalize recording: {e}") from e
        log.info("Stream capture stopped: %d frames, %d bytes", artifact.frame_count, len(artifact.data))
        if self.on_artifact is not None:
            self.on_artifact(artifact)
        return artifact


class FrameEncoder:
    """Accumulates still frames at a declared rate; compile() builds the container."""

    def __init__(self, fps: float, formats: Sequence[str] = ("webm", "mp4")):
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.fps = float(fps)
        self.formats = tuple(formats)
        self._frames: List[np.ndarray] = []

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def add(self, image: np.ndarray) -> None:
        if image is None or image.size == 0:
            raise EncoderError("Cannot add an empty frame")
        self._frames.append(image.copy())

    def reset(self) -> None:
        self._frames = []

    def compile(self) -> Artifact:
        if not self._frames:
            raise EmptyEncoderError("No frames to compile")
        fmt = negotiate_format(self.formats)
        h, w = self._frames[0].shape[:2]
        writer = _ContainerWriter(fmt, self.fps, (w, h))
        try:
            for frame in self._frames:
                writer.write(frame)
        except cv.error as e:
            writer.discard()
            raise EncoderError(f"Encoding failed: {e}") from e
        artifact = writer.finish()
        log.info("Compiled %d frames into %s (%d bytes)", artifact.frame_count,
                 fmt.name, len(artifact.data))
        return artifact
