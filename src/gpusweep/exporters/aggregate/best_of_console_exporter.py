# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Console tables for best-of rankings."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

from rich.console import Console
from rich.table import Table

from gpusweep.common.timestamps import humanize_run_timestamp
from gpusweep.exporters.aggregate.aggregate_base_exporter import display_variant
from gpusweep.exporters.aggregate.aggregate_exporter_config import AggregateExporterConfig
from gpusweep.metrics.records import AggregateRecord
from gpusweep.orchestrator.aggregation.best_of import build_best_of_view


class BestOfConsoleExporter:
    """Renders every best-of ranking as a rich table."""

    def __init__(self, config: AggregateExporterConfig) -> None:
        self._config = config

    def _table(self, title: str, records: list[AggregateRecord]) -> Table:
        table = Table(title=title, title_justify="left", show_lines=False)
        table.add_column("Timestamp", no_wrap=True)
        table.add_column("Variant")
        table.add_column("Host:Endpoint", no_wrap=True)
        table.add_column("tok/s", justify="right")
        table.add_column("Base tok/s", justify="right")
        table.add_column("Gain", justify="right")
        for record in records:
            table.add_row(
                humanize_run_timestamp(record.run_ts),
                display_variant(record, self._config.alias_prefix, self._config.alias_suffix),
                f"{record.host}:{record.optimal_endpoint}",
                f"{record.optimal_tokps:.2f}",
                f"{record.baseline_tokps:.2f}",
                f"{record.gain:.3f}x",
            )
        return table

    def build_tables(self) -> list[Table]:
        view = build_best_of_view(self._config.records, self._config.filters, self._config.top_n)
        return [
            self._table(f"Top {self._config.top_n} overall", view.top),
            self._table("Best per stack and model", view.by_stack_model),
            self._table("Best per stack, model and GPU", view.by_stack_model_gpu),
            self._table("Best per host and model", view.by_host_model),
            self._table("Best per model", view.by_model),
            self._table("Latest run", view.latest),
        ]

    async def export(self, console: Console) -> None:
        if not self._config.records:
            console.print("[yellow]No aggregate records to report.[/yellow]")
            return
        for table in self.build_tables():
            console.print(table)
            console.print()

    def render_text(self, width: int = 160) -> str:
        console = Console(record=True, width=width, file=io.StringIO(), color_system=None)
        for table in self.build_tables():
            console.print(table)
            console.print()
        return console.export_text()

    async def export_text(self, path: Path) -> Path:
        """Write a plain-text copy of the tables (usable as a Markdown code block)."""
        content = self.render_text()
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_text, content)
        return path
