# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import csv
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from gpusweep.common.config import SweepConfig
from gpusweep.common.enums import GroupKey, RunSchemaKind
from gpusweep.common.exceptions import ConfigurationError
from gpusweep.common.timestamps import run_timestamp_from_path
from gpusweep.exporters.aggregate import (
    AggregateExporterConfig,
    AggregateStore,
    BestOfConsoleExporter,
    BestOfCsvExporter,
    BestOfJsonExporter,
    RunSummaryJsonExporter,
)
from gpusweep.metrics.records import AggregateRecord, read_aggregate_csv, read_metrics_csv
from gpusweep.orchestrator.aggregation import (
    BestOfFilters,
    MetricsRunSource,
    detect_schema,
    merge_current_run,
    stack_from_metrics_path,
)
from gpusweep.orchestrator.models import RunReport
from gpusweep.orchestrator.orchestrator import SweepOrchestrator

logger = logging.getLogger(__name__)

__all__ = [
    "build_filters",
    "collect_runs",
    "find_metrics_files",
    "run_report",
    "run_tune",
]


def _banner(title: str) -> None:
    logger.info("=" * 80)
    logger.info(title)
    logger.info("=" * 80)


def find_metrics_files(log_dir: Path) -> list[Path]:
    """Per-run metrics files in ``log_dir``, oldest run first."""
    if not log_dir.is_dir():
        return []
    files = [p for p in log_dir.glob("*_bench_*.csv") if run_timestamp_from_path(p)]
    return sorted(files, key=lambda p: (run_timestamp_from_path(p), p.name))


def build_filters(
    stack: str | None = None,
    model: str | None = None,
    gpu: str | None = None,
    host: str | None = None,
) -> BestOfFilters:
    """Build report filters, rejecting invalid regexes up front.

    Raises:
        ConfigurationError: If any filter is not a valid regex
    """
    for name, pattern in (("stack", stack), ("model", model), ("gpu", gpu), ("host", host)):
        if pattern:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid --{name} regex '{pattern}': {e}") from e
    return BestOfFilters(stack=stack or None, model=model or None, gpu=gpu or None, host=host or None)


def run_tune(config: SweepConfig, models: Sequence[str] | None = None, collect: bool = True) -> RunReport:
    """Run a full tuning pass and write its summary.

    Raises:
        ConfigurationError: If the environment cannot support a run
    """
    _banner("gpusweep tuning run")
    orchestrator = SweepOrchestrator.from_config(config)
    try:
        report = orchestrator.execute(models)
    finally:
        orchestrator.client.close()

    exporter_config = AggregateExporterConfig(
        records=[],
        output_dir=config.report.log_dir,
        run_report=report,
    )
    summary_path = asyncio.run(RunSummaryJsonExporter(exporter_config).export())
    logger.info(f"Metrics CSV: {report.metrics_csv}")
    logger.info(f"Run summary written to: {summary_path}")

    if collect:
        collect_runs(config, [report.metrics_csv])
    return report


def collect_runs(
    config: SweepConfig, paths: Sequence[Path] | None = None, all_runs: bool = False
) -> list[AggregateRecord]:
    """Summarize run files into the aggregate store.

    Args:
        config: Run configuration
        paths: Metrics files to collect; defaults to the latest (or every) run in the log dir
        all_runs: With no explicit paths, collect every run instead of the latest

    Returns:
        Records newly appended to the store
    """
    if paths is None:
        found = find_metrics_files(config.report.log_dir)
        paths = found if all_runs else found[-1:]
    if not paths:
        logger.warning(f"No run files found in {config.report.log_dir}")
        return []

    store = AggregateStore(config.report.aggregate_path)
    appended = []
    for path in paths:
        summaries = MetricsRunSource.from_csv(path, host=config.report.host).normalize()
        if not summaries:
            logger.warning(f"{path.name}: no positive measurements to collect")
            continue
        appended.extend(store.append(summaries))
    logger.info(f"Collected {len(appended)} new aggregate row(s) into {store.path}")
    return appended


def _load_current_run(
    aggregate: list[AggregateRecord], path: Path, host: str
) -> list[AggregateRecord]:
    with open(path, newline="") as f:
        header = next(csv.reader(f), [])
    try:
        kind = detect_schema(header)
    except ValueError as e:
        raise ConfigurationError(f"{path}: {e}") from e

    if kind == RunSchemaKind.METRICS:
        return merge_current_run(
            aggregate,
            read_metrics_csv(path),
            kind,
            host=host,
            stack=stack_from_metrics_path(path),
            source_file=path.name,
        )
    return merge_current_run(aggregate, read_aggregate_csv(path), kind)


def run_report(
    config: SweepConfig,
    filters: BestOfFilters | None = None,
    current_run: Path | None = None,
    output_dir: Path | None = None,
    text_out: Path | None = None,
    top_n: int | None = None,
    console: Console | None = None,
) -> list[AggregateRecord]:
    """Print best-of tables and write snapshot files.

    Args:
        config: Run configuration
        filters: Regex filters for every ranking
        current_run: Extra run file (metrics or aggregate shaped) to include
        output_dir: Where snapshots go; defaults to the aggregate's directory
        text_out: Optional plain-text copy of the tables
        top_n: Size of the overall ranking; defaults to configuration
        console: Console to print to

    Returns:
        The aggregate records the report was computed from
    """
    records = AggregateStore(config.report.aggregate_path).read()
    if current_run is not None:
        records = _load_current_run(records, Path(current_run), config.report.host)

    exporter_config = AggregateExporterConfig(
        records=records,
        output_dir=output_dir or config.report.aggregate_path.parent,
        filters=filters,
        top_n=top_n or config.report.top_n,
        alias_prefix=config.sweep.alias_prefix,
        alias_suffix=config.sweep.alias_suffix,
    )
    console_exporter = BestOfConsoleExporter(exporter_config)

    async def export_artifacts() -> list[Path]:
        exporters = [BestOfCsvExporter(exporter_config, key) for key in GroupKey]
        exporters.append(BestOfJsonExporter(exporter_config))
        tasks = [e.export() for e in exporters]
        if text_out is not None:
            tasks.append(console_exporter.export_text(text_out))
        await console_exporter.export(console or Console())
        return list(await asyncio.gather(*tasks))

    paths = asyncio.run(export_artifacts())
    for path in paths:
        logger.info(f"Wrote {path}")
    return records
