# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Configuration for aggregate exporters."""

from dataclasses import dataclass, field
from pathlib import Path

from gpusweep.metrics.records import AggregateRecord
from gpusweep.orchestrator.aggregation.best_of import BestOfFilters
from gpusweep.orchestrator.models import RunReport


@dataclass(slots=True)
class AggregateExporterConfig:
    """Configuration for aggregate exporters.

    Attributes:
        records: Normalized aggregate records to rank
        output_dir: Directory where export files are written
        filters: Regex filters applied before ranking
        top_n: Size of the overall ranking
        alias_prefix: Variant name prefix used when displaying variants
        alias_suffix: Variant name suffix used when displaying variants
        run_report: Result of the tuning run, for run summary exports
    """

    records: list[AggregateRecord]
    output_dir: Path
    filters: BestOfFilters | None = None
    top_n: int = 10
    alias_prefix: str = ""
    alias_suffix: str = ""
    run_report: RunReport | None = field(default=None)
