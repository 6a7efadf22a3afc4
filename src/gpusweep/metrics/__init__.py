# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from gpusweep.metrics.recorder import (
    MetricsCsvWriter,
    MetricsRecorder,
    build_generate_payload,
    compute_tokens_per_second,
    metrics_file_name,
)
from gpusweep.metrics.records import (
    AGGREGATE_COLUMNS,
    METRICS_COLUMNS,
    AggregateRecord,
    BenchmarkRecord,
    aggregate_csv_content,
    format_tokps,
    read_aggregate_csv,
    read_metrics_csv,
    write_aggregate_csv,
)

__all__ = [
    "AGGREGATE_COLUMNS",
    "METRICS_COLUMNS",
    "AggregateRecord",
    "BenchmarkRecord",
    "MetricsCsvWriter",
    "MetricsRecorder",
    "aggregate_csv_content",
    "build_generate_payload",
    "compute_tokens_per_second",
    "format_tokps",
    "metrics_file_name",
    "read_aggregate_csv",
    "read_metrics_csv",
    "write_aggregate_csv",
]
