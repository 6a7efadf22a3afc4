# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""CSV snapshots of best-of rankings."""

from gpusweep.common.enums import GroupKey
from gpusweep.exporters.aggregate.aggregate_base_exporter import AggregateBaseExporter
from gpusweep.exporters.aggregate.aggregate_exporter_config import AggregateExporterConfig
from gpusweep.metrics.records import AGGREGATE_COLUMNS, aggregate_csv_content
from gpusweep.orchestrator.aggregation.best_of import best_of

__all__ = [
    "BEST_OF_FILE_NAMES",
    "BestOfCsvExporter",
    "best_of_columns",
]

BEST_OF_FILE_NAMES = {
    GroupKey.STACK_MODEL: "benchmarks.best.csv",
    GroupKey.STACK_MODEL_GPU: "benchmarks.best.by_gpu.csv",
    GroupKey.HOST_MODEL: "benchmarks.best.by_host_model.csv",
    GroupKey.MODEL: "benchmarks.best.by_model.csv",
}


def best_of_columns(group_key: GroupKey) -> list[str]:
    """Aggregate columns with the grouping keys moved to the front."""
    keys = list(group_key.fields)
    return keys + [c for c in AGGREGATE_COLUMNS if c not in keys]


class BestOfCsvExporter(AggregateBaseExporter):
    """Writes the best record per group as an aggregate-shaped CSV.

    The snapshot is an output only; it is regenerated from the aggregate on
    every report and reads back with the aggregate reader.
    """

    def __init__(self, config: AggregateExporterConfig, group_key: GroupKey):
        super().__init__(config)
        self.group_key = group_key

    def get_file_name(self) -> str:
        return BEST_OF_FILE_NAMES[self.group_key]

    def _generate_content(self) -> str:
        rows = best_of(self._config.records, self.group_key, self._config.filters)
        return aggregate_csv_content(rows, best_of_columns(self.group_key))
