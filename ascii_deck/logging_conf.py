#!/usr/bin/env python3
"""
Central logging setup for ASCII Deck.
Console output plus an optional rotating log file.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from ascii_deck.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(settings: Settings, level_override: Optional[str] = None) -> None:
    section = settings["logging"]
    level_name = (level_override or section.get("level") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    log_file = section.get("file")
    if log_file:
        handler = RotatingFileHandler(
            log_file,
            maxBytes=int(section.get("rotate_bytes", 5 * 1024 * 1024)),
            backupCount=int(section.get("rotate_keep", 3)),
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
