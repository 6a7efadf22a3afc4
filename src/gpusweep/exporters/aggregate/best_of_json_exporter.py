# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""JSON snapshot of every best-of ranking."""

import orjson

from gpusweep.exporters.aggregate.aggregate_base_exporter import AggregateBaseExporter, display_variant
from gpusweep.metrics.records import AggregateRecord
from gpusweep.orchestrator.aggregation.best_of import build_best_of_view


class BestOfJsonExporter(AggregateBaseExporter):
    """Exports the full best-of view to JSON.

    Output structure:
    {
        "num_records": 42,
        "filters": {"stack": null, "model": "gemma", ...},
        "top": [...],
        "by_stack_model": [...],
        "by_stack_model_gpu": [...],
        "by_host_model": [...],
        "by_model": [...],
        "latest": [...]
    }
    """

    def get_file_name(self) -> str:
        return "benchmarks.best.json"

    def _entry(self, record: AggregateRecord) -> dict:
        return {
            **record.model_dump(mode="json"),
            "display_variant": display_variant(
                record, self._config.alias_prefix, self._config.alias_suffix
            ),
            "gain": round(record.gain, 3),
        }

    def _generate_content(self) -> str:
        view = build_best_of_view(self._config.records, self._config.filters, self._config.top_n)
        filters = self._config.filters
        output = {
            "num_records": len(self._config.records),
            "filters": {
                "stack": filters.stack if filters else None,
                "model": filters.model if filters else None,
                "gpu": filters.gpu if filters else None,
                "host": filters.host if filters else None,
            },
        }
        for section in ("top", "by_stack_model", "by_stack_model_gpu", "by_host_model", "by_model", "latest"):
            output[section] = [self._entry(r) for r in getattr(view, section)]

        return orjson.dumps(output, option=orjson.OPT_INDENT_2).decode("utf-8")
