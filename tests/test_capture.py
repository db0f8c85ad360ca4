import os

import cv2 as cv
import numpy as np
import pytest

from ascii_deck import capture
from ascii_deck.capture import (VIDEO_FORMATS, Artifact, FrameEncoder, StreamCapture,
                                negotiate_format)
from ascii_deck.errors import EmptyEncoderError, EncoderError, UnsupportedFormatError
from ascii_deck.renderer import Surface

from conftest import ManualClock, solid_frame


def painted_surface(width=64, height=48, rgb=(0, 255, 0)):
    surface = Surface()
    surface.ensure_size(width, height)
    surface.clear(rgb[::-1])
    return surface


def read_back(artifact, tmp_path):
    path = artifact.save(str(tmp_path), "readback")
    cap = cv.VideoCapture(path)
    frames = 0
    while True:
        ok, _ = cap.read()
        if not ok:
            break
        frames += 1
    cap.release()
    return frames


def test_empty_encoder_refuses_to_compile():
    with pytest.raises(EmptyEncoderError):
        FrameEncoder(15, ["avi"]).compile()


def test_empty_encoder_error_is_an_encoder_error():
    assert issubclass(EmptyEncoderError, EncoderError)


def test_encoder_rejects_bad_rate_and_empty_frames():
    with pytest.raises(ValueError):
        FrameEncoder(0)
    with pytest.raises(EncoderError):
        FrameEncoder(15, ["avi"]).add(np.zeros((0, 0, 3), dtype=np.uint8))


def test_encoder_compiles_one_frame_per_add(tmp_path):
    encoder = FrameEncoder(15, ["avi"])
    frame = solid_frame(64, 48, (200, 40, 40))
    for _ in range(3):
        encoder.add(frame)
    frame[:] = 0  # encoder keeps its own copy
    assert encoder.frame_count == 3

    artifact = encoder.compile()
    assert artifact.frame_count == 3
    assert artifact.fps == 15.0
    assert artifact.mime_type == "video/x-msvideo"
    assert artifact.data[:4] == b"RIFF"
    assert read_back(artifact, tmp_path) == 3


def test_encoder_reset_drops_frames():
    encoder = FrameEncoder(10, ["avi"])
    encoder.add(solid_frame(32, 32))
    encoder.reset()
    with pytest.raises(EmptyEncoderError):
        encoder.compile()


def test_odd_frame_size_is_made_even():
    encoder = FrameEncoder(10, ["avi"])
    encoder.add(solid_frame(65, 47))
    assert encoder.compile().size == (64, 46)


def test_negotiation_skips_unknown_and_unavailable(monkeypatch):
    monkeypatch.setattr(capture, "_probe", lambda fmt: fmt.name == "avi")
    assert negotiate_format(["mkv", "webm", "avi"]) is VIDEO_FORMATS["avi"]
    with pytest.raises(UnsupportedFormatError):
        negotiate_format(["webm", "mp4"])
    with pytest.raises(UnsupportedFormatError):
        negotiate_format(["flv"])


def test_artifact_save_names(tmp_path):
    artifact = Artifact(b"abc", VIDEO_FORMATS["webm"], 1, 15.0, (2, 2))
    assert artifact.filename("ascii_video") == "ascii_video.webm"
    plain = artifact.save(str(tmp_path), "ascii_video")
    assert os.path.basename(plain) == "ascii_video.webm"
    stamped = os.path.basename(artifact.save(str(tmp_path), "ascii_video", timestamp=True))
    assert stamped.startswith("ascii_video_") and stamped.endswith(".webm")
    with open(plain, "rb") as f:
        assert f.read() == b"abc"


def test_stopping_inactive_capture_is_noop():
    stream = StreamCapture(painted_surface(), formats=["avi"])
    assert stream.stop() is None
    assert not stream.is_active


def test_stream_start_is_idempotent():
    stream = StreamCapture(painted_surface(), formats=["avi"], clock=ManualClock())
    stream.start()
    stream.start()
    assert stream.is_active
    assert stream.format is VIDEO_FORMATS["avi"]
    stream.stop()


def test_stream_tracks_wall_clock(tmp_path):
    clock = ManualClock()
    delivered = []
    stream = StreamCapture(painted_surface(), fps=30, formats=["avi"], clock=clock,
                           on_artifact=delivered.append)
    stream.start()
    assert stream.pump() == 1
    assert stream.pump() == 0  # same instant, nothing new due
    clock.advance(0.5)
    assert stream.pump() == 15

    artifact = stream.stop()
    assert artifact.frame_count == 16
    assert delivered == [artifact]
    assert not stream.is_active
    assert read_back(artifact, tmp_path) == 16


def test_stream_follows_surface_resize():
    surface = painted_surface(64, 48)
    clock = ManualClock()
    stream = StreamCapture(surface, fps=10, formats=["avi"], clock=clock)
    stream.start()
    stream.pump()
    surface.ensure_size(80, 60)
    clock.advance(0.2)
    stream.pump()
    artifact = stream.stop()
    assert artifact.size == (64, 48)
    assert artifact.frame_count == 3


def test_stream_stop_without_pump_still_yields_a_frame():
    stream = StreamCapture(painted_surface(), formats=["avi"], clock=ManualClock())
    stream.start()
    artifact = stream.stop()
    assert artifact.frame_count == 1


def test_unsupported_stream_start_stays_inactive(monkeypatch):
    monkeypatch.setattr(capture, "_probe", lambda fmt: False)
    stream = StreamCapture(painted_surface(), formats=["mp4", "webm"])
    with pytest.raises(UnsupportedFormatError):
        stream.start()
    assert not stream.is_active
    assert stream.stop() is None


def test_long_stall_is_held_as_one_frame():
    clock = ManualClock()
    stream = StreamCapture(painted_surface(), fps=30, formats=["avi"], clock=clock)
    stream.start()
    assert stream.pump() == 1
    clock.advance(60.0)
    assert stream.pump() == 1
    clock.advance(0.5)
    assert 0 < stream.pump() <= 16
    clock.advance(0.5)
    assert 14 <= stream.pump() <= 16
    assert stream.stop().frame_count < 40
