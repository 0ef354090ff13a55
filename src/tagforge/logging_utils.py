from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from platformdirs import user_log_dir
from rich.console import Console
from rich.logging import RichHandler

APP_NAME = "tagforge"
DEFAULT_LEVEL = logging.WARNING


def default_log_path() -> Path:
    return Path(user_log_dir(APP_NAME)) / "tagforge.log"


def configure_logging(
    level: int | str = DEFAULT_LEVEL,
    log_file: Optional[Path] = None,
    console: Optional[Console] = None,
) -> Optional[Path]:
    """Install console (rich) and optional file handlers on the ``tagforge`` logger.

    Unknown level names fall back to WARNING. Calling it again only adjusts
    the level. Returns the log file in use.
    """
    logger = logging.getLogger(APP_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = DEFAULT_LEVEL
    logger.setLevel(level)

    if getattr(logger, "_tagforge_configured", False):
        return getattr(logger, "_tagforge_log_file", None)

    rich_handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=False)
    rich_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(rich_handler)

    chosen: Optional[Path] = None
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open log file %s: %s", log_file, e)
        else:
            fh.setFormatter(logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            ))
            logger.addHandler(fh)
            chosen = log_file

    logger.propagate = False
    setattr(logger, "_tagforge_configured", True)
    setattr(logger, "_tagforge_log_file", chosen)
    return chosen
