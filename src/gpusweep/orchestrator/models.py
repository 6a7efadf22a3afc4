# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Data models for sweeps and runs."""

from pathlib import Path

from pydantic import BaseModel, Field

from gpusweep.common.enums import SweepMode


class CandidateResult(BaseModel):
    """Outcome of evaluating one candidate value.

    Attributes:
        parameter_value: Offload value tried
        variant_name: Tag the value was baked into
        built: Whether the bake succeeded
        visible: Whether the serving instance listed the variant in time
        tokens_per_second: Measured throughput, None when not measured or no data
    """

    parameter_value: int
    variant_name: str
    built: bool = False
    visible: bool = False
    tokens_per_second: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.tokens_per_second is not None and self.tokens_per_second > 0


class TuneResult(BaseModel):
    """Best candidate found for one (model, endpoint) sweep.

    Attributes:
        base_model: Model that was tuned
        endpoint: host:port the sweep ran against
        gpu_label: GPU slug of that endpoint
        mode: Sweep mode used
        best_variant: Tag of the winning variant
        best_value: Offload value of the winning variant
        best_tokps: Its measured throughput
        candidates: Every candidate evaluated, in order
    """

    base_model: str
    endpoint: str
    gpu_label: str
    mode: SweepMode
    best_variant: str
    best_value: int
    best_tokps: float
    candidates: list[CandidateResult] = Field(default_factory=list)


class EndpointRun(BaseModel):
    """Everything that happened for one model on one endpoint."""

    base_model: str
    endpoint: str
    gpu_label: str = ""
    baseline_tokps: float | None = None
    tune: TuneResult | None = None
    published_tokps: float | None = None
    error: str | None = None


class RunReport(BaseModel):
    """Result of a full tuning run across models and endpoints."""

    run_ts: str
    metrics_csv: Path
    models: list[str] = Field(default_factory=list)
    endpoint_runs: list[EndpointRun] = Field(default_factory=list)
    removed_variants: list[str] = Field(default_factory=list)
