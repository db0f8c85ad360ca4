#!/usr/bin/env python3
"""
Frame producers
---------------
Both drivers run the same sampler -> renderer pass over one Surface and
differ only in how they acquire frames:

- LivePlaybackDriver: one pass per display refresh, scheduled through a
  tkinter-style scheduler (``after(ms, fn)`` / ``after_cancel(handle)``).
  States IDLE -> PLAYING <-> PAUSED, PLAYING -> IDLE at end of stream.
- BatchExporter: coroutine that seeks to t = k / fps, awaits the seek,
  renders, hands the surface to a FrameEncoder and yields to the event
  loop between iterations.

Single-threaded and cooperative; the Surface lease keeps the two from
running against the same output at once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

import cv2 as cv
import numpy as np

from ascii_deck.capture import Artifact, FrameEncoder, StreamCapture
from ascii_deck.config import AsciiConfig
from ascii_deck.errors import (AsciiDeckError, CaptureError, ExportError,
                               PlaybackError, SeekTimeoutError)
from ascii_deck.renderer import FrameRenderer, RenderedFrame, Surface
from ascii_deck.sampler import GridSampler

log = logging.getLogger(__name__)

ConfigProvider = Callable[[], AsciiConfig]


class PlayerState(str, Enum):
    IDLE = "IDLE"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"


class Scheduler(Protocol):
    def after(self, ms: int, func: Callable[[], None]) -> Any: ...

    def after_cancel(self, handle: Any) -> None: ...


class FrameSource(Protocol):
    width: int
    height: int
    fps: float
    duration: float
    paused: bool
    ended: bool

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def current_frame(self) -> Optional[np.ndarray]: ...

    async def seek(self, t: float) -> np.ndarray: ...

    def on_ended(self, callback: Callable[[], None]) -> None: ...


class FrameProducer:
    """Shared sampling/render pass. Subclasses decide when frames arrive."""

    def __init__(self, source: FrameSource, config_provider: ConfigProvider,
                 surface: Surface, sampler: Optional[GridSampler] = None,
                 renderer: Optional[FrameRenderer] = None):
        self.source = source
        self.config_provider = config_provider
        self.surface = surface
        self.sampler = sampler or GridSampler()
        self.renderer = renderer or FrameRenderer()
        self.last_frame: Optional[RenderedFrame] = None
        self._frame_listeners: List[Callable[[RenderedFrame], None]] = []

    def on_frame(self, callback: Callable[[RenderedFrame], None]) -> None:
        self._frame_listeners.append(callback)

    def render_frame(self, frame: np.ndarray, config: AsciiConfig) -> RenderedFrame:
        grid = self.sampler.sample(frame, config.width)
        rendered = self.renderer.render(grid, config, self.surface)
        self.last_frame = rendered
        for cb in list(self._frame_listeners):
            cb(rendered)
        return rendered


class LivePlaybackDriver(FrameProducer):
    def __init__(self, source: FrameSource, scheduler: Scheduler,
                 config_provider: ConfigProvider, surface: Surface,
                 sampler: Optional[GridSampler] = None,
                 renderer: Optional[FrameRenderer] = None,
                 tick_ms: int = 16):
        super().__init__(source, config_provider, surface, sampler, renderer)
        self.scheduler = scheduler
        self.tick_ms = tick_ms
        self.state = PlayerState.IDLE
        self.capture: Optional[StreamCapture] = None
        self._pending = None
        self._in_tick = False
        self._state_listeners: List[Callable[[PlayerState], None]] = []
        source.on_ended(self._handle_ended)

    # ---- notifications ----

    def on_state_change(self, callback: Callable[[PlayerState], None]) -> None:
        self._state_listeners.append(callback)

    def _set_state(self, state: PlayerState) -> None:
        if state == self.state:
            return
        log.info("Player %s -> %s", self.state.value, state.value)
        self.state = state
        for cb in list(self._state_listeners):
            cb(state)

    # ---- transport ----

    def play(self) -> bool:
        """Start or resume. Returns False if the source refused to start."""
        if self.state == PlayerState.PLAYING:
            return True
        self.surface.acquire(self)
        try:
            self.source.play()
        except PlaybackError as e:
            log.error("Autoplay prevented: %s", e)
            self._set_state(PlayerState.PAUSED)
            return False
        self._set_state(PlayerState.PLAYING)
        self._schedule()
        return True

    def pause(self) -> None:
        if self.state != PlayerState.PLAYING:
            return
        self._cancel()
        self.source.pause()
        self._set_state(PlayerState.PAUSED)

    def toggle(self) -> bool:
        if self.state == PlayerState.PLAYING:
            self.pause()
            return True
        return self.play()

    def stop(self) -> Optional[Artifact]:
        """Cancel the pending tick, end any stream capture, go IDLE."""
        self._cancel()
        if not self.source.paused:
            self.source.pause()
        artifact = None
        if self.capture is not None and self.capture.is_active:
            try:
                artifact = self.capture.stop()
            except CaptureError as e:
                log.error("%s", e)
        self.surface.release(self)
        self._set_state(PlayerState.IDLE)
        return artifact

    def _handle_ended(self) -> None:
        if self.state != PlayerState.IDLE:
            self.stop()

    # ---- scheduling ----

    def _schedule(self) -> None:
        if self._pending is None:
            self._pending = self.scheduler.after(self.tick_ms, self._tick)

    def _cancel(self) -> None:
        if self._pending is not None:
            self.scheduler.after_cancel(self._pending)
            self._pending = None

    def _tick(self) -> None:
        self._pending = None
        if self.state != PlayerState.PLAYING or self._in_tick:
            return
        if self.source.paused or self.source.ended:
            if self.source.ended:
                self._handle_ended()
            else:
                self._set_state(PlayerState.PAUSED)
            return

        self._in_tick = True
        try:
            frame = self.source.current_frame()
            # current_frame() may hit end of stream and stop us
            if self.state != PlayerState.PLAYING or frame is None:
                return
            try:
                self.render_frame(frame, self.config_provider())
            except (cv.error, ValueError) as e:
                log.error("Rendering failed, pausing playback: %s", e)
                self.pause()
                return
            if self.capture is not None:
                try:
                    self.capture.pump()
                except CaptureError as e:
                    # playback goes on without the recording
                    log.error("%s", e)
        finally:
            self._in_tick = False
        self._schedule()


@dataclass
class ExportResult:
    artifact: Optional[Artifact] = None
    error: Optional[Exception] = None
    frames: int = 0
    timestamps: Optional[List[float]] = None
    path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.artifact is not None


class BatchExporter(FrameProducer):
    def __init__(self, source: FrameSource, config_provider: ConfigProvider,
                 surface: Surface, sampler: Optional[GridSampler] = None,
                 renderer: Optional[FrameRenderer] = None,
                 seek_timeout: float = 5.0):
        super().__init__(source, config_provider, surface, sampler, renderer)
        self.seek_timeout = seek_timeout
        self._abort = False

    def abort(self) -> None:
        """Stop issuing seeks; the run ends with an ExportError."""
        self._abort = True

    async def seek_frame(self, t: float) -> np.ndarray:
        try:
            return await asyncio.wait_for(self.source.seek(t), self.seek_timeout)
        except asyncio.TimeoutError:
            raise SeekTimeoutError(
                f"Seek to {t:.3f}s did not complete within {self.seek_timeout}s") from None

    async def run(self, fps: float, char_width: Optional[int] = None,
                  encoder: Optional[FrameEncoder] = None,
                  progress: Optional[Callable[[float], None]] = None) -> ExportResult:
        if fps <= 0:
            return ExportResult(error=ExportError(f"Invalid target fps {fps}"))
        duration = self.source.duration
        if duration <= 0:
            return ExportResult(error=ExportError("Source has no known duration"))

        encoder = encoder or FrameEncoder(fps)
        timestamps: List[float] = []
        self._abort = False
        self.surface.acquire(self)
        self.source.pause()
        log.info("Batch export: %.2fs @ %s fps", duration, fps)
        started = time.monotonic()
        try:
            k = 0
            t = 0.0
            while t < duration:
                if self._abort:
                    raise ExportError(f"Export aborted at {t:.3f}s")
                frame = await self.seek_frame(t)
                config = self.config_provider()
                if char_width is not None:
                    config = config.with_changes(width=char_width)
                self.render_frame(frame, config)
                encoder.add(self.surface.pixels)
                timestamps.append(t)
                if progress is not None:
                    progress(min(100.0, 100.0 * t / duration))
                await asyncio.sleep(0)
                k += 1
                t = k / fps
            artifact = encoder.compile()
        except (AsciiDeckError, cv.error, ValueError, OSError) as e:
            log.error("Batch export failed after %d frames: %s", len(timestamps), e)
            encoder.reset()
            return ExportResult(error=e, frames=len(timestamps), timestamps=timestamps)
        finally:
            self.surface.release(self)

        if progress is not None:
            progress(100.0)
        log.info("Batch export done: %d frames in %.1fs", len(timestamps), time.monotonic() - started)
        return ExportResult(artifact=artifact, frames=len(timestamps), timestamps=timestamps)
