# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Append-only aggregate store."""

import csv
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from gpusweep.metrics.records import AGGREGATE_COLUMNS, AggregateRecord
from gpusweep.orchestrator.aggregation.sources import AggregateCsvSource

logger = logging.getLogger(__name__)

__all__ = ["AggregateStore"]


class AggregateStore:
    """The aggregate CSV: one row per (run, stack, model), never rewritten.

    Appending a record whose key is already stored is a no-op, so collecting
    the same run twice leaves the store unchanged.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self) -> list[AggregateRecord]:
        return AggregateCsvSource(self.path).normalize()

    def append(self, records: Iterable[AggregateRecord]) -> list[AggregateRecord]:
        """Append records not yet stored.

        Returns:
            The records actually appended
        """
        with self._lock:
            keys = {r.key for r in self.read()}
            new = []
            for record in records:
                if record.key in keys:
                    logger.debug(f"Already stored: {record.key}")
                    continue
                keys.add(record.key)
                new.append(record)
            if not new:
                return []

            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            with open(self.path, "a", newline="") as f:
                writer = csv.writer(f, lineterminator="\n")
                if write_header:
                    writer.writerow(AGGREGATE_COLUMNS)
                for record in new:
                    writer.writerow(record.to_row())

        logger.info(f"Appended {len(new)} row(s) to {self.path}")
        return new
