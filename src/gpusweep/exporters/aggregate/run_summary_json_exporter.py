# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""JSON summary of a single tuning run."""

import orjson

from gpusweep.exporters.aggregate.aggregate_base_exporter import AggregateBaseExporter


class RunSummaryJsonExporter(AggregateBaseExporter):
    """Exports the best result per (endpoint, model) of one run.

    Requires ``run_report`` on the exporter config.
    """

    def get_file_name(self) -> str:
        return f"run_summary_{self._report.run_ts}.json"

    @property
    def _report(self):
        if self._config.run_report is None:
            raise ValueError("RunSummaryJsonExporter requires a run_report")
        return self._config.run_report

    def _generate_content(self) -> str:
        report = self._report
        endpoints = []
        for run in report.endpoint_runs:
            entry = {
                "model": run.base_model,
                "endpoint": run.endpoint,
                "gpu_label": run.gpu_label,
                "baseline_tokps": run.baseline_tokps,
                "best_variant": run.tune.best_variant if run.tune else None,
                "best_value": run.tune.best_value if run.tune else None,
                "best_tokps": run.tune.best_tokps if run.tune else None,
                "published_tokps": run.published_tokps,
                "error": run.error,
            }
            endpoints.append(entry)

        measured = [
            (c.tokens_per_second, c.variant_name, run.endpoint)
            for run in report.endpoint_runs
            if run.tune
            for c in run.tune.candidates
            if c.succeeded
        ]
        measured.sort(key=lambda m: m[0], reverse=True)

        output = {
            "run_ts": report.run_ts,
            "metrics_csv": str(report.metrics_csv),
            "models": report.models,
            "endpoints": endpoints,
            "top_measurements": [
                {"variant": name, "endpoint": endpoint, "tokens_per_second": tokps}
                for tokps, name, endpoint in measured[:5]
            ],
            "removed_variants": report.removed_variants,
        }
        return orjson.dumps(output, option=orjson.OPT_INDENT_2).decode("utf-8")
