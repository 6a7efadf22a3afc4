# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Benchmark and aggregate record schemas and their CSV forms.

Both files always start with a header row. Throughput values are written
with two decimals; missing integers are written as empty cells.
"""

import csv
import io
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from gpusweep.common.constants import TOKPS_DECIMALS
from gpusweep.common.enums import RecordKind

logger = logging.getLogger(__name__)

__all__ = [
    "AGGREGATE_COLUMNS",
    "METRICS_COLUMNS",
    "AggregateRecord",
    "BenchmarkRecord",
    "aggregate_csv_content",
    "format_tokps",
    "read_aggregate_csv",
    "read_metrics_csv",
    "write_aggregate_csv",
]

METRICS_COLUMNS = (
    "ts",
    "endpoint",
    "unit",
    "suffix",
    "base_model",
    "record_kind",
    "served_tag",
    "num_gpu",
    "num_ctx",
    "batch",
    "num_predict",
    "tokens_per_sec",
    "gpu_label",
    "gpu_name",
    "gpu_uuid",
    "gpu_mem_mib",
)

AGGREGATE_COLUMNS = (
    "run_ts",
    "host",
    "stack",
    "model",
    "baseline_tokps",
    "optimal_variant",
    "optimal_tokps",
    "baseline_endpoint",
    "optimal_endpoint",
    "gpu_label",
    "gpu_name",
    "num_gpu",
    "csv_file",
)


def format_tokps(value: float) -> str:
    return f"{value:.{TOKPS_DECIMALS}f}"


def _format_optional_int(value: int | None) -> str:
    return "" if value is None else str(value)


def _parse_optional_int(value: str) -> int | None:
    value = value.strip()
    return int(value) if value else None


def _parse_float(value: str) -> float:
    value = value.strip()
    return float(value) if value else 0.0


class BenchmarkRecord(BaseModel):
    """One throughput measurement.

    Attributes:
        timestamp: Run timestamp shared by every record of a run
        endpoint: host:port of the serving instance measured
        service_name: Supervisor name of that instance
        suffix: Instance suffix (A, B, ...)
        base_model: Model the served tag derives from
        record_kind: base-as-is, optimized or published
        served_tag: Tag the generation request named
        parameter_value: Offload value, None for base-as-is
        context_length: num_ctx sent with the request
        batch_size: num_batch sent with the request
        predict_tokens: num_predict sent with the request
        tokens_per_second: Decode throughput, 0 when unmeasurable
        gpu_label: Short GPU slug (e.g. nvidia-5090)
        gpu_name: Full GPU name
        gpu_uuid: GPU the instance was bound to
        gpu_mem_mib: Total GPU memory
    """

    model_config = ConfigDict(frozen=True)

    timestamp: str
    endpoint: str
    service_name: str
    suffix: str = ""
    base_model: str
    record_kind: RecordKind
    served_tag: str
    parameter_value: int | None = None
    context_length: int | None = None
    batch_size: int | None = None
    predict_tokens: int | None = None
    tokens_per_second: float = 0.0
    gpu_label: str = ""
    gpu_name: str = ""
    gpu_uuid: str = ""
    gpu_mem_mib: int | None = None

    @field_validator("tokens_per_second")
    @classmethod
    def _round_tokps(cls, v: float) -> float:
        return round(v, TOKPS_DECIMALS)

    def to_row(self) -> list[str]:
        return [
            self.timestamp,
            self.endpoint,
            self.service_name,
            self.suffix,
            self.base_model,
            self.record_kind.value,
            self.served_tag,
            _format_optional_int(self.parameter_value),
            _format_optional_int(self.context_length),
            _format_optional_int(self.batch_size),
            _format_optional_int(self.predict_tokens),
            format_tokps(self.tokens_per_second),
            self.gpu_label,
            self.gpu_name,
            self.gpu_uuid,
            _format_optional_int(self.gpu_mem_mib),
        ]

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "BenchmarkRecord":
        """Parse a positional row.

        Raises:
            ValueError: If the row is short or a field does not parse
        """
        if len(row) < len(METRICS_COLUMNS):
            raise ValueError(f"Expected {len(METRICS_COLUMNS)} fields, got {len(row)}")
        return cls(
            timestamp=row[0],
            endpoint=row[1],
            service_name=row[2],
            suffix=row[3],
            base_model=row[4],
            record_kind=RecordKind(row[5]),
            served_tag=row[6],
            parameter_value=_parse_optional_int(row[7]),
            context_length=_parse_optional_int(row[8]),
            batch_size=_parse_optional_int(row[9]),
            predict_tokens=_parse_optional_int(row[10]),
            tokens_per_second=_parse_float(row[11]),
            gpu_label=row[12],
            gpu_name=row[13],
            gpu_uuid=row[14],
            gpu_mem_mib=_parse_optional_int(row[15]),
        )


class AggregateRecord(BaseModel):
    """Best baseline and best tuned throughput for one model in one run."""

    model_config = ConfigDict(frozen=True)

    run_ts: str
    host: str
    stack: str
    model: str
    baseline_tokps: float = 0.0
    optimal_variant: str
    optimal_tokps: float = 0.0
    baseline_endpoint: str = ""
    optimal_endpoint: str = ""
    gpu_label: str = ""
    gpu_name: str = ""
    num_gpu: int | None = None
    csv_file: str = ""

    @field_validator("baseline_tokps", "optimal_tokps")
    @classmethod
    def _round_tokps(cls, v: float) -> float:
        """Keep in-memory values identical to what the CSV stores."""
        return round(v, TOKPS_DECIMALS)

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity in the aggregate store: one row per (run, stack, model)."""
        return (self.run_ts, self.stack, self.model)

    @property
    def gain(self) -> float:
        """Optimal over baseline throughput, 0 when there is no baseline."""
        if self.baseline_tokps <= 0:
            return 0.0
        return self.optimal_tokps / self.baseline_tokps

    def to_dict(self) -> dict[str, str]:
        return {
            "run_ts": self.run_ts,
            "host": self.host,
            "stack": self.stack,
            "model": self.model,
            "baseline_tokps": format_tokps(self.baseline_tokps),
            "optimal_variant": self.optimal_variant,
            "optimal_tokps": format_tokps(self.optimal_tokps),
            "baseline_endpoint": self.baseline_endpoint,
            "optimal_endpoint": self.optimal_endpoint,
            "gpu_label": self.gpu_label,
            "gpu_name": self.gpu_name,
            "num_gpu": _format_optional_int(self.num_gpu),
            "csv_file": self.csv_file,
        }

    def to_row(self, columns: Sequence[str] = AGGREGATE_COLUMNS) -> list[str]:
        values = self.to_dict()
        return [values[column] for column in columns]

    @classmethod
    def from_dict(cls, values: dict[str, str]) -> "AggregateRecord":
        return cls(
            run_ts=values["run_ts"],
            host=values["host"],
            stack=values["stack"],
            model=values["model"],
            baseline_tokps=_parse_float(values["baseline_tokps"]),
            optimal_variant=values["optimal_variant"],
            optimal_tokps=_parse_float(values["optimal_tokps"]),
            baseline_endpoint=values.get("baseline_endpoint", ""),
            optimal_endpoint=values.get("optimal_endpoint", ""),
            gpu_label=values.get("gpu_label", ""),
            gpu_name=values.get("gpu_name", ""),
            num_gpu=_parse_optional_int(values.get("num_gpu", "")),
            csv_file=values.get("csv_file", ""),
        )


def read_metrics_csv(path: Path) -> list[BenchmarkRecord]:
    """Read a per-run metrics file, skipping the header and malformed rows."""
    records = []
    with open(path, newline="") as f:
        for line_no, row in enumerate(csv.reader(f), start=1):
            if not row or (line_no == 1 and row[0] == METRICS_COLUMNS[0]):
                continue
            try:
                records.append(BenchmarkRecord.from_row(row))
            except (ValueError, ValidationError) as e:
                logger.debug(f"{path}:{line_no}: skipping malformed metrics row: {e}")
    return records


def read_aggregate_csv(path: Path) -> list[AggregateRecord]:
    """Read an aggregate-shaped file.

    Column order is taken from the header when present, so the reordered
    best-of snapshots read back the same way as the store itself.
    """
    records = []
    with open(path, newline="") as f:
        reader = csv.reader(f)
        columns: Sequence[str] = AGGREGATE_COLUMNS
        for line_no, row in enumerate(reader, start=1):
            if not row:
                continue
            if line_no == 1 and "run_ts" in row:
                columns = row
                continue
            if len(row) < len(columns):
                logger.debug(f"{path}:{line_no}: skipping short aggregate row")
                continue
            try:
                records.append(AggregateRecord.from_dict(dict(zip(columns, row, strict=False))))
            except (KeyError, ValueError, ValidationError) as e:
                logger.debug(f"{path}:{line_no}: skipping malformed aggregate row: {e}")
    return records


def aggregate_csv_content(records: Iterable[AggregateRecord], columns: Sequence[str] = AGGREGATE_COLUMNS) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        writer.writerow(record.to_row(columns))
    return buf.getvalue()


def write_aggregate_csv(
    path: Path, records: Iterable[AggregateRecord], columns: Sequence[str] = AGGREGATE_COLUMNS
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(aggregate_csv_content(records, columns))
    return path
