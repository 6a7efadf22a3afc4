# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Aggregation of benchmark runs into best-of rankings."""

from gpusweep.orchestrator.aggregation.best_of import (
    BestOfFilters,
    BestOfView,
    best_of,
    build_best_of_view,
    latest_run,
    top_n,
)
from gpusweep.orchestrator.aggregation.sources import (
    AggregateCsvSource,
    MetricsRunSource,
    RunSource,
    detect_schema,
    merge_current_run,
    source_for_file,
    stack_from_metrics_path,
)
from gpusweep.orchestrator.aggregation.summarize import summarize_run

__all__ = [
    "AggregateCsvSource",
    "BestOfFilters",
    "BestOfView",
    "MetricsRunSource",
    "RunSource",
    "best_of",
    "build_best_of_view",
    "detect_schema",
    "latest_run",
    "merge_current_run",
    "source_for_file",
    "stack_from_metrics_path",
    "summarize_run",
    "top_n",
]
