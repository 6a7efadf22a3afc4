# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run sources feeding the aggregation layer.

Raw per-run metrics files and the aggregate store have different shapes.
Everything reaching a best-of reduction goes through
:meth:`RunSource.normalize` first, so a raw metrics file is always
summarized before it is ranked.
"""

import csv
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from gpusweep.common.enums import RunSchemaKind
from gpusweep.common.timestamps import run_timestamp_from_path
from gpusweep.metrics.records import (
    AggregateRecord,
    BenchmarkRecord,
    read_aggregate_csv,
    read_metrics_csv,
)
from gpusweep.orchestrator.aggregation.summarize import summarize_run

__all__ = [
    "AggregateCsvSource",
    "MetricsRunSource",
    "RunSource",
    "detect_schema",
    "merge_current_run",
    "source_for_file",
    "stack_from_metrics_path",
]

_METRICS_MARKER = "_bench_"


@runtime_checkable
class RunSource(Protocol):
    """Anything that can present itself as aggregate records."""

    def normalize(self) -> list[AggregateRecord]: ...


class AggregateCsvSource:
    """The aggregate store (or a best-of snapshot) read back from disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def normalize(self) -> list[AggregateRecord]:
        if not self.path.exists():
            return []
        return read_aggregate_csv(self.path)


class MetricsRunSource:
    """One run's raw benchmark records, summarized on demand."""

    def __init__(
        self,
        records: Sequence[BenchmarkRecord],
        host: str,
        stack: str,
        source_file: str = "",
        run_ts: str | None = None,
    ):
        self.records = list(records)
        self.host = host
        self.stack = stack
        self.source_file = source_file
        self.run_ts = run_ts

    @classmethod
    def from_csv(cls, path: Path, host: str, stack: str | None = None) -> "MetricsRunSource":
        path = Path(path)
        return cls(
            read_metrics_csv(path),
            host=host,
            stack=stack or stack_from_metrics_path(path),
            source_file=path.name,
            run_ts=run_timestamp_from_path(path),
        )

    def normalize(self) -> list[AggregateRecord]:
        return summarize_run(
            self.records,
            host=self.host,
            stack=self.stack,
            source_file=self.source_file,
            run_ts=self.run_ts,
        )


def stack_from_metrics_path(path: Path) -> str:
    """``ollama_bench_20250101_120000.csv`` -> ``ollama``."""
    name = Path(path).name
    return name.split(_METRICS_MARKER, 1)[0] if _METRICS_MARKER in name else ""


def detect_schema(header: Sequence[str]) -> RunSchemaKind:
    """Tell a metrics file from an aggregate-shaped one by its header.

    Raises:
        ValueError: If the header matches neither shape
    """
    if "run_ts" in header:
        return RunSchemaKind.AGGREGATE
    if header and header[0] == "ts":
        return RunSchemaKind.METRICS
    raise ValueError(f"Unrecognized CSV header: {list(header)}")


def source_for_file(path: Path, host: str, stack: str | None = None) -> RunSource:
    """Pick the right source for a CSV file by sniffing its header.

    Raises:
        ValueError: If the file is empty or its header is unrecognized
    """
    path = Path(path)
    with open(path, newline="") as f:
        header = next(csv.reader(f), [])
    if detect_schema(header) == RunSchemaKind.AGGREGATE:
        return AggregateCsvSource(path)
    return MetricsRunSource.from_csv(path, host=host, stack=stack)


def merge_current_run(
    aggregate: Iterable[AggregateRecord],
    current_run_records: Sequence[BenchmarkRecord] | Sequence[AggregateRecord],
    schema_kind: RunSchemaKind,
    *,
    host: str = "",
    stack: str = "",
    source_file: str = "",
) -> list[AggregateRecord]:
    """Add the current run to an aggregate for reporting.

    Raw records are summarized first. Rows whose (run_ts, stack, model) key is
    already present are skipped, so merging the same run twice changes nothing.

    Args:
        aggregate: Existing aggregate records
        current_run_records: The run's records, in the shape named by schema_kind
        schema_kind: RunSchemaKind.METRICS or RunSchemaKind.AGGREGATE
        host: Host of the run (metrics shape only)
        stack: Stack of the run (metrics shape only)
        source_file: Metrics file name (metrics shape only)

    Returns:
        The merged aggregate
    """
    if schema_kind == RunSchemaKind.METRICS:
        source: RunSource = MetricsRunSource(current_run_records, host, stack, source_file)
        normalized = source.normalize()
    else:
        normalized = list(current_run_records)

    merged = list(aggregate)
    keys = {r.key for r in merged}
    for record in normalized:
        if record.key not in keys:
            merged.append(record)
            keys.add(record.key)
    return merged
