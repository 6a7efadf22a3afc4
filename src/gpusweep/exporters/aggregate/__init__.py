# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Aggregate exporters for best-of reports."""

from gpusweep.exporters.aggregate.aggregate_base_exporter import (
    AggregateBaseExporter,
    display_variant,
)
from gpusweep.exporters.aggregate.aggregate_exporter_config import AggregateExporterConfig
from gpusweep.exporters.aggregate.aggregate_store import AggregateStore
from gpusweep.exporters.aggregate.best_of_console_exporter import BestOfConsoleExporter
from gpusweep.exporters.aggregate.best_of_csv_exporter import (
    BEST_OF_FILE_NAMES,
    BestOfCsvExporter,
    best_of_columns,
)
from gpusweep.exporters.aggregate.best_of_json_exporter import BestOfJsonExporter
from gpusweep.exporters.aggregate.run_summary_json_exporter import RunSummaryJsonExporter

__all__ = [
    "BEST_OF_FILE_NAMES",
    "AggregateBaseExporter",
    "AggregateExporterConfig",
    "AggregateStore",
    "BestOfConsoleExporter",
    "BestOfCsvExporter",
    "BestOfJsonExporter",
    "RunSummaryJsonExporter",
    "best_of_columns",
    "display_variant",
]
