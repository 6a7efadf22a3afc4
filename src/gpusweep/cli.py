# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Command line entry point."""

import logging
import sys
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from gpusweep import __version__
from gpusweep.common.config import SweepConfig
from gpusweep.common.enums import SweepMode
from gpusweep.common.exceptions import GpuSweepError
from gpusweep.common.logging import setup_rich_logging

logger = logging.getLogger(__name__)

app = App(
    name="gpusweep",
    help="Tune GPU offload of LLM inference servers and report the best results.",
    version=__version__,
)


def _load_config(verbose: bool, **overrides) -> SweepConfig:
    setup_rich_logging(logging.DEBUG if verbose else logging.INFO)
    return SweepConfig.load(**overrides)


def _exit_on_error(e: GpuSweepError) -> None:
    logger.error(str(e))
    sys.exit(1)


@app.command
def tune(
    models: Annotated[
        list[str] | None,
        Parameter(help="Base models to tune. Defaults to every model on the shared instance."),
    ] = None,
    *,
    mode: Annotated[
        SweepMode | None, Parameter(help="Sweep mode: early_stop or exhaustive.")
    ] = None,
    candidates: Annotated[
        str | None,
        Parameter(help="Offload values to try, in order, e.g. '80 64 48' or '80,64,48'."),
    ] = None,
    collect: Annotated[
        bool, Parameter(help="Append this run's summary to the aggregate store.")
    ] = True,
    verbose: Annotated[bool, Parameter(name=["--verbose", "-v"])] = False,
) -> None:
    """Baseline and sweep every model on every test endpoint."""
    from gpusweep.cli_runner import run_tune

    sweep_overrides = {}
    if mode is not None:
        sweep_overrides["mode"] = mode
    if candidates is not None:
        sweep_overrides["candidates"] = candidates
    try:
        config = _load_config(verbose, sweep=sweep_overrides)
        run_tune(config, models, collect=collect)
    except GpuSweepError as e:
        _exit_on_error(e)


@app.command
def collect(
    files: Annotated[
        list[Path] | None,
        Parameter(help="Metrics files to collect. Defaults to the latest run in the log dir."),
    ] = None,
    *,
    all_runs: Annotated[
        bool, Parameter(name=["--all"], help="Collect every run in the log dir.")
    ] = False,
    verbose: Annotated[bool, Parameter(name=["--verbose", "-v"])] = False,
) -> None:
    """Summarize run files into the aggregate store."""
    from gpusweep.cli_runner import collect_runs

    try:
        config = _load_config(verbose)
        collect_runs(config, files, all_runs=all_runs)
    except GpuSweepError as e:
        _exit_on_error(e)


@app.command
def report(
    *,
    stack: Annotated[str | None, Parameter(help="Regex on the stack name.")] = None,
    model: Annotated[str | None, Parameter(help="Regex on the model name.")] = None,
    gpu: Annotated[str | None, Parameter(help="Regex on the GPU label or name.")] = None,
    host: Annotated[str | None, Parameter(help="Regex on the host name.")] = None,
    top: Annotated[int | None, Parameter(help="Size of the overall ranking.")] = None,
    current_run: Annotated[
        Path | None, Parameter(help="Also include this run file (metrics or aggregate CSV).")
    ] = None,
    output_dir: Annotated[Path | None, Parameter(help="Directory for snapshot files.")] = None,
    text_out: Annotated[Path | None, Parameter(help="Write a plain-text copy of the tables.")] = None,
    verbose: Annotated[bool, Parameter(name=["--verbose", "-v"])] = False,
) -> None:
    """Print best-of rankings and write best-of snapshots."""
    from gpusweep.cli_runner import build_filters, run_report

    try:
        config = _load_config(verbose)
        run_report(
            config,
            filters=build_filters(stack, model, gpu, host),
            current_run=current_run,
            output_dir=output_dir,
            text_out=text_out,
            top_n=top,
        )
    except GpuSweepError as e:
        _exit_on_error(e)


if __name__ == "__main__":
    app()
