# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Console logging setup built on rich."""

import logging

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["setup_rich_logging"]

_LOG_FORMAT = "%(message)s"
_DATE_FORMAT = "[%X]"


def setup_rich_logging(level: int | str = logging.INFO, console: Console | None = None) -> None:
    """Route the root logger through a single RichHandler.

    Safe to call more than once; existing handlers are replaced so repeated CLI
    invocations in one process do not duplicate output.

    Args:
        level: Logging level name or number
        console: Optional console to log to (defaults to stderr)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
