import asyncio
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest

from ascii_deck.config import Settings
from ascii_deck.errors import PlaybackError, SeekError


def solid_frame(width: int, height: int, rgb=(255, 255, 255)) -> np.ndarray:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    r, g, b = rgb
    frame[:] = (b, g, r)
    return frame


class ManualClock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class FakeScheduler:
    """tkinter-style after/after_cancel; callbacks run only on run_pending()."""

    def __init__(self):
        self.pending: Dict[int, Callable[[], None]] = {}
        self.cancelled: List[int] = []
        self._next = 0

    def after(self, ms: int, func: Callable[[], None]) -> int:
        self._next += 1
        self.pending[self._next] = func
        return self._next

    def after_cancel(self, handle: int) -> None:
        self.pending.pop(handle, None)
        self.cancelled.append(handle)

    def run_pending(self, times: int = 1) -> None:
        for _ in range(times):
            items = list(self.pending.items())
            self.pending.clear()
            for _, func in items:
                func()


class FakeSource:
    """In-memory video source with scriptable playback and seek behaviour."""

    def __init__(self, width: int = 64, height: int = 36, fps: float = 30.0,
                 duration: float = 2.0, rgb=(255, 255, 255), refuse_play: bool = False,
                 frames_before_end: Optional[int] = None,
                 hang_at_seek: Optional[int] = None, fail_at_seek: Optional[int] = None):
        self.width = width
        self.height = height
        self.fps = fps
        self.duration = duration
        self.frame = solid_frame(width, height, rgb)
        self.refuse_play = refuse_play
        self.frames_before_end = frames_before_end
        self.hang_at_seek = hang_at_seek
        self.fail_at_seek = fail_at_seek
        self.paused = True
        self.ended = False
        self.seeks: List[float] = []
        self.frames_served = 0
        self.released = False
        self._ended_callbacks: List[Callable[[], None]] = []

    def on_ended(self, callback):
        self._ended_callbacks.append(callback)

    def play(self):
        if self.refuse_play:
            raise PlaybackError("autoplay blocked")
        self.paused = False
        self.ended = False

    def pause(self):
        self.paused = True

    def end(self):
        self.ended = True
        self.paused = True
        for cb in list(self._ended_callbacks):
            cb()

    def current_frame(self):
        if self.frames_before_end is not None and self.frames_served >= self.frames_before_end:
            self.end()
            return self.frame
        self.frames_served += 1
        return self.frame

    async def seek(self, t: float):
        index = len(self.seeks)
        self.seeks.append(t)
        if self.hang_at_seek is not None and index == self.hang_at_seek:
            await asyncio.Event().wait()
        await asyncio.sleep(0)
        if self.fail_at_seek is not None and index == self.fail_at_seek:
            raise SeekError(f"no frame at {t}")
        return self.frame

    def release(self):
        self.released = True


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings(tmp_path):
    return Settings({
        "capture": {
            "stream_formats": ["avi"],
            "export_formats": ["avi"],
            "output_dir": str(tmp_path),
            "seek_timeout_s": 0.5,
        },
        "playback": {"width": 40, "contrast": 0.0},
    })
