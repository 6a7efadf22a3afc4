# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run timestamp helpers."""

import re
from datetime import datetime
from pathlib import Path

from gpusweep.common.constants import (
    HUMAN_TIMESTAMP_FORMAT,
    RUN_TIMESTAMP_FORMAT,
    RUN_TIMESTAMP_PATTERN,
)

__all__ = [
    "humanize_run_timestamp",
    "new_run_timestamp",
    "run_timestamp_from_path",
]

_RUN_TS_RE = re.compile(RUN_TIMESTAMP_PATTERN)


def new_run_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(RUN_TIMESTAMP_FORMAT)


def run_timestamp_from_path(path: Path | str) -> str | None:
    """Extract the ``YYYYMMDD_HHMMSS`` stamp embedded in a run file name."""
    match = _RUN_TS_RE.search(Path(path).name)
    return match.group(0) if match else None


def humanize_run_timestamp(run_ts: str) -> str:
    """``20250101_120000`` -> ``2025-01-01 12:00:00``; unparseable input is returned as-is."""
    try:
        return datetime.strptime(run_ts, RUN_TIMESTAMP_FORMAT).strftime(HUMAN_TIMESTAMP_FORMAT)
    except ValueError:
        return run_ts
