# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
import sys


class _ThirdPartyFilter(logging.Filter):
    """Keep top5 logs; let other libraries through only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "top5" or record.name.startswith("top5."):
            return True
        # uvicorn access/error lines stay visible.
        if record.name.startswith("uvicorn"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str | int | None = None) -> None:
    """Install a single formatted stderr handler on the root logger.

    Call this once, before the server starts.
    """
    if level is None:
        level = os.getenv("TOP5_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyFilter())
    root.addHandler(ch)

    logging.captureWarnings(True)
