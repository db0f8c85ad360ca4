#!/usr/bin/env python3
"""
AsciiProcessor: the operations the UI layer talks to.

    proc = AsciiProcessor(VideoSource("clip.mp4"), settings, scheduler=root)
    proc.on_state_change(print)
    proc.play()
    proc.start_live_capture()
    ...
    artifact = proc.stop_live_capture()      # saved to capture.output_dir
    png = proc.capture_snapshot()
    text = proc.capture_current_text()
    result = asyncio.run(proc.run_batch_export(15, 120))
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from ascii_deck.capture import Artifact, FrameEncoder, StreamCapture
from ascii_deck.config import AsciiConfig, Settings
from ascii_deck.drivers import (BatchExporter, ExportResult, FrameSource,
                                LivePlaybackDriver, PlayerState, Scheduler)
from ascii_deck.errors import AsciiDeckError, ExportError
from ascii_deck.renderer import FrameRenderer, RenderedFrame, Surface
from ascii_deck.sampler import GridSampler

log = logging.getLogger(__name__)

CAPTURE_STEM = "ascii-capture"
EXPORT_STEM = "ascii_video"


class AsciiProcessor:
    def __init__(self, source: FrameSource, settings: Optional[Settings] = None,
                 scheduler: Optional[Scheduler] = None,
                 config: Optional[AsciiConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 save_artifacts: bool = True):
        self.source = source
        self.settings = settings or Settings()
        self.clock = clock
        self.save_artifacts = save_artifacts
        self._config = (config or self.settings.initial_config()).clamped()

        self.surface = Surface()
        self.sampler = GridSampler(float(self.settings["render"]["aspect_correction"]))
        self.renderer = FrameRenderer.from_settings(self.settings)
        self.last_frame: Optional[RenderedFrame] = None
        self.last_artifact_path: Optional[str] = None
        self._artifact_listeners: List[Callable[[Artifact, Optional[str]], None]] = []

        cap = self.settings["capture"]
        self.stream_capture = StreamCapture(self.surface, fps=cap["stream_fps"],
                                            formats=cap["stream_formats"], clock=clock,
                                            on_artifact=self._deliver_capture)
        self.live: Optional[LivePlaybackDriver] = None
        if scheduler is not None:
            self.live = LivePlaybackDriver(source, scheduler, self.current_config, self.surface,
                                           self.sampler, self.renderer,
                                           tick_ms=int(self.settings["playback"]["tick_ms"]))
            self.live.capture = self.stream_capture
            self.live.on_frame(self._remember)
        self.exporter = BatchExporter(source, self.current_config, self.surface,
                                      self.sampler, self.renderer,
                                      seek_timeout=float(cap["seek_timeout_s"]))
        self.exporter.on_frame(self._remember)

    # ---- configuration ----

    def current_config(self) -> AsciiConfig:
        return self._config

    @property
    def config(self) -> AsciiConfig:
        return self._config

    def set_config(self, config: AsciiConfig) -> None:
        """Takes effect on the next sampling pass."""
        self._config = config.clamped()

    def update_config(self, **changes) -> AsciiConfig:
        self._config = self._config.with_changes(**changes)
        return self._config

    # ---- state ----

    @property
    def state(self) -> PlayerState:
        return self.live.state if self.live is not None else PlayerState.IDLE

    def on_state_change(self, callback: Callable[[PlayerState], None]) -> None:
        self._require_live().on_state_change(callback)

    def on_frame(self, callback: Callable[[RenderedFrame], None]) -> None:
        if self.live is not None:
            self.live.on_frame(callback)
        self.exporter.on_frame(callback)

    def on_artifact(self, callback: Callable[[Artifact, Optional[str]], None]) -> None:
        self._artifact_listeners.append(callback)

    def _remember(self, rendered: RenderedFrame) -> None:
        self.last_frame = rendered

    def _require_live(self) -> LivePlaybackDriver:
        if self.live is None:
            raise AsciiDeckError("Live playback needs a scheduler")
        return self.live

    # ---- live playback ----

    def play(self) -> bool:
        return self._require_live().play()

    def pause(self) -> None:
        self._require_live().pause()

    def toggle_pause(self) -> bool:
        return self._require_live().toggle()

    def stop(self) -> Optional[Artifact]:
        return self._require_live().stop()

    # ---- capture ----

    def start_live_capture(self) -> None:
        """Idempotent. Raises UnsupportedFormatError when nothing can record."""
        self.stream_capture.start()

    def stop_live_capture(self) -> Optional[Artifact]:
        """Idempotent. Finalizes and saves the recording; None if none was running."""
        return self.stream_capture.stop()

    @property
    def is_recording(self) -> bool:
        return self.stream_capture.is_active

    def _deliver_capture(self, artifact: Artifact) -> None:
        # stop_live_capture still returns the artifact; listeners get path None
        try:
            self._deliver(artifact, CAPTURE_STEM)
        except OSError as e:
            log.error("Could not save recording: %s", e)
            self._notify(artifact, None)

    def _deliver(self, artifact: Artifact, stem: str) -> Optional[str]:
        """Save to capture.output_dir (when enabled) and notify listeners. Raises OSError."""
        path = None
        if self.save_artifacts:
            path = artifact.save(self.settings["capture"]["output_dir"], stem, timestamp=True)
            log.info("Saved %s", path)
            self.last_artifact_path = path
        self._notify(artifact, path)
        return path

    def _notify(self, artifact: Artifact, path: Optional[str]) -> None:
        for cb in list(self._artifact_listeners):
            cb(artifact, path)

    def capture_snapshot(self) -> bytes:
        """PNG bytes of the current output surface."""
        return self.surface.to_png()

    def capture_current_text(self) -> str:
        """Current glyph grid as plain text, rows separated by newlines."""
        if self.last_frame is None:
            return ""
        return self.last_frame.text()

    # ---- batch ----

    async def render_at(self, t: float) -> RenderedFrame:
        """Seek to t and render a single frame (used for stills)."""
        self.surface.acquire(self.exporter)
        try:
            frame = await self.exporter.seek_frame(t)
            return self.exporter.render_frame(frame, self._config)
        finally:
            self.surface.release(self.exporter)

    async def run_batch_export(self, target_fps: Optional[float] = None,
                               char_width: Optional[int] = None,
                               progress: Optional[Callable[[float], None]] = None) -> ExportResult:
        """
        Frame-accurate export. Live playback is stopped first; the two never
        share the surface. Failures come back in ExportResult.error.
        """
        cap = self.settings["capture"]
        fps = target_fps or cap["export_fps"]
        if self.live is not None and self.live.state != PlayerState.IDLE:
            self.live.stop()
        encoder = FrameEncoder(fps, formats=cap["export_formats"])
        try:
            result = await self.exporter.run(fps, char_width, encoder, progress)
        except AsciiDeckError as e:
            return ExportResult(error=e)
        if result.ok:
            try:
                result.path = self._deliver(result.artifact, EXPORT_STEM)
            except OSError as e:
                log.error("Could not save export: %s", e)
                result.error = ExportError(f"Could not save export: {e}")
        return result
