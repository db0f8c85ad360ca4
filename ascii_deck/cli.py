#!/usr/bin/env python3
"""
ASCII Deck command line
-----------------------
Usage:
    ascii-deck play clip.mp4 --width 120 --color
    ascii-deck play clip.mp4 --record
    ascii-deck export clip.mp4 --fps 15 --width 120 --out ascii_video.webm
    ascii-deck snapshot clip.mp4 --at 3.5 --out frame.png
    ascii-deck snapshot clip.mp4 --at 3.5 --text
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

from ascii_deck import __version__
from ascii_deck.config import (ASCII_RAMPS, AsciiConfig, MAX_WIDTH, MIN_WIDTH,
                               Settings, resolve_ramp)
from ascii_deck.errors import AsciiDeckError
from ascii_deck.logging_conf import setup_logging
from ascii_deck.processor import AsciiProcessor
from ascii_deck.source import VideoSource

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ascii-deck",
                                description="Play and export videos as ASCII art")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", type=str, default=None, help="Settings JSON path")
    p.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING, ...")

    render = argparse.ArgumentParser(add_help=False)
    render.add_argument("video", type=str, help="Path to a video file")
    render.add_argument("--width", type=int, default=None,
                        help=f"Character columns ({MIN_WIDTH}..{MAX_WIDTH})")
    render.add_argument("--contrast", type=float, default=None,
                        help="Contrast, -0.5..0.8 (0 = unchanged)")
    render.add_argument("--invert", action="store_true", help="Invert luminance mapping")
    render.add_argument("--color", action="store_true", help="Per-cell color instead of phosphor green")
    render.add_argument("--ramp", type=str, default=None,
                        help=f"Ramp name ({', '.join(ASCII_RAMPS)}) or custom characters")

    sub = p.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", parents=[render], help="Live playback window")
    play.add_argument("--loop", action="store_true", help="Restart at end of stream")
    play.add_argument("--record", action="store_true", help="Start recording immediately")

    export = sub.add_parser("export", parents=[render], help="Frame-accurate video export")
    export.add_argument("--fps", type=float, default=None, help="Target frame rate")
    export.add_argument("--out", type=str, default=None, help="Output file path")

    snap = sub.add_parser("snapshot", parents=[render], help="Render one frame")
    snap.add_argument("--at", type=float, default=0.0, help="Timestamp in seconds")
    snap.add_argument("--out", type=str, default=None, help="Output file path")
    snap.add_argument("--text", action="store_true", help="Write plain text instead of PNG")
    return p


def config_from_args(args, settings: Settings) -> AsciiConfig:
    cfg = settings.initial_config()
    changes = {"inverted": args.invert, "color": args.color}
    if args.width is not None:
        changes["width"] = args.width
    if args.contrast is not None:
        changes["contrast"] = args.contrast
    if args.ramp:
        changes["ramp"] = resolve_ramp(args.ramp)
    return cfg.with_changes(**changes)


def cmd_play(args, settings: Settings, config: AsciiConfig) -> int:
    from ascii_deck import app

    source = VideoSource(args.video, loop=args.loop or settings["playback"]["loop"])
    app.run(source, settings, config=config, record=args.record)
    return 0


def cmd_export(args, settings: Settings, config: AsciiConfig) -> int:
    source = VideoSource(args.video)
    processor = AsciiProcessor(source, settings, config=config, save_artifacts=args.out is None)
    bar = tqdm(total=100, desc="Exporting", unit="%", bar_format="{l_bar}{bar}| {n:.0f}/{total}%")

    def progress(pct: float) -> None:
        bar.update(pct - bar.n)

    try:
        result = asyncio.run(processor.run_batch_export(args.fps, config.width, progress))
    finally:
        bar.close()
        source.release()

    if not result.ok:
        print(f"Export failed: {result.error}", file=sys.stderr)
        return 1
    path = result.path
    if args.out:
        out_dir = os.path.dirname(os.path.abspath(args.out))
        stem, _ = os.path.splitext(os.path.basename(args.out))
        path = result.artifact.save(out_dir, stem)
    print(f"Saved: {path} ({result.frames} frames)")
    return 0


def cmd_snapshot(args, settings: Settings, config: AsciiConfig) -> int:
    source = VideoSource(args.video)
    processor = AsciiProcessor(source, settings, config=config)
    try:
        asyncio.run(processor.render_at(args.at))
    finally:
        source.release()

    if args.text:
        out = args.out or "ascii_frame.txt"
        with open(out, "w", encoding="utf-8") as f:
            f.write(processor.capture_current_text())
    else:
        out = args.out or "ascii_frame.png"
        with open(out, "wb") as f:
            f.write(processor.capture_snapshot())
    print(f"Saved: {os.path.abspath(out)}")
    return 0


COMMANDS = {"play": cmd_play, "export": cmd_export, "snapshot": cmd_snapshot}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.load(args.config)
    setup_logging(settings, args.log_level)

    if not os.path.isfile(args.video):
        print(f"Video not found: {args.video}", file=sys.stderr)
        return 1
    try:
        config = config_from_args(args, settings)
        return COMMANDS[args.command](args, settings, config)
    except (AsciiDeckError, ValueError) as e:
        log.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
