import json

import cv2 as cv
import numpy as np
import pytest

from ascii_deck import cli
from ascii_deck.config import ASCII_RAMPS, Settings


@pytest.fixture
def clip(tmp_path):
    path = str(tmp_path / "clip.avi")
    writer = cv.VideoWriter(path, cv.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    for _ in range(5):
        writer.write(np.full((48, 64, 3), 255, dtype=np.uint8))
    writer.release()
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "capture": {"export_formats": ["avi"], "stream_formats": ["avi"],
                    "output_dir": str(tmp_path / "out")},
        "playback": {"contrast": 0.0},
    }), encoding="utf-8")
    return str(path)


def test_parser_options():
    args = cli.build_parser().parse_args(
        ["export", "clip.mp4", "--fps", "12", "--width", "90", "--invert", "--ramp", "blocks"])
    assert args.command == "export"
    assert args.fps == 12.0
    assert args.width == 90
    assert args.invert and not args.color


def test_config_from_args():
    args = cli.build_parser().parse_args(
        ["snapshot", "clip.mp4", "--width", "500", "--contrast", "0.3", "--color", "--ramp", "blocks"])
    cfg = cli.config_from_args(args, Settings())
    assert cfg.width == 200
    assert cfg.contrast == 0.3
    assert cfg.color
    assert cfg.ramp == ASCII_RAMPS["BLOCKS"]


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_missing_video(tmp_path, capsys):
    assert cli.main(["snapshot", str(tmp_path / "nope.mp4")]) == 1
    assert "Video not found" in capsys.readouterr().err


def test_snapshot_png_and_text(clip, config_file, tmp_path):
    png = tmp_path / "frame.png"
    assert cli.main(["--config", config_file, "snapshot", clip, "--width", "40",
                     "--at", "0.2", "--out", str(png)]) == 0
    assert png.read_bytes().startswith(b"\x89PNG")

    txt = tmp_path / "frame.txt"
    assert cli.main(["--config", config_file, "snapshot", clip, "--width", "40",
                     "--contrast", "0.5", "--ramp", "SHORT", "--text",
                     "--out", str(txt)]) == 0
    lines = txt.read_text(encoding="utf-8").split("\n")
    assert len(lines) == 15
    assert all(line == "@" * 40 for line in lines)


def test_export_to_explicit_path(clip, config_file, tmp_path, capsys):
    out = tmp_path / "result.avi"
    assert cli.main(["--config", config_file, "export", clip, "--fps", "10",
                     "--width", "40", "--out", str(out)]) == 0
    assert out.read_bytes()[:4] == b"RIFF"
    assert "5 frames" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()


def test_export_failure_exit_code(clip, tmp_path, monkeypatch):
    from ascii_deck import capture

    monkeypatch.setattr(capture, "_probe", lambda fmt: False)
    assert cli.main(["export", clip, "--fps", "10"]) == 1


def test_wrong_typed_settings_do_not_stop_the_cli(clip, tmp_path):
    config = tmp_path / "odd.json"
    config.write_text(json.dumps({"playback": {"tick_ms": "16"}, "capture": []}), encoding="utf-8")
    png = tmp_path / "frame.png"
    assert cli.main(["--config", str(config), "snapshot", clip, "--out", str(png)]) == 0
    assert png.read_bytes().startswith(b"\x89PNG")
