# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Validated run configuration.

All settings are read from ``GPUSWEEP_*`` environment variables exactly once,
when :meth:`SweepConfig.load` is called at startup. The resulting object is
frozen and handed to every component; nothing re-reads the environment
mid-run.

Example:
    GPUSWEEP_SWEEP_CANDIDATES="80 64 48" GPUSWEEP_SWEEP_MODE=exhaustive gpusweep tune
"""

import re
import socket
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from gpusweep.common.enums import SupervisorKind, SweepMode
from gpusweep.common.exceptions import ConfigurationError

__all__ = [
    "GenerationConfig",
    "ReportSettings",
    "ServiceSettings",
    "SweepConfig",
    "SweepSettings",
]

DEFAULT_CANDIDATES = [80, 72, 64, 56, 48, 40, 32, 24, 16]
DEFAULT_CANDIDATE_PERCENTS = [100, 90, 75, 60, 50, 40, 30, 20, 10]


def _parse_int_list(v: str | int | list[int] | None, field_name: str) -> list[int] | None:
    """Parse a comma- or whitespace-separated integer list.

    Args:
        v: Raw value from the environment or a Python caller
        field_name: Name used in error messages

    Returns:
        List of integers, or None if input is None

    Raises:
        ValueError: If any entry is not an integer
    """
    if v is None or isinstance(v, list):
        return v
    if isinstance(v, int):
        return [v]

    parts = [p for p in re.split(r"[,\s]+", str(v).strip()) if p]
    try:
        return [int(p) for p in parts]
    except ValueError as e:
        raise ValueError(
            f"Invalid {field_name} value: '{v}'. "
            f"Must be a list of integers separated by commas or spaces (e.g., '80 64 48'). "
            f"Error: {e}"
        ) from e


class ServiceSettings(BaseSettings):
    """Serving instances and how they are supervised."""

    model_config = SettingsConfigDict(env_prefix="GPUSWEEP_SERVICE_", frozen=True)

    host: str = "127.0.0.1"
    persistent_port: int = Field(default=11434, ge=1, le=65535)
    test_ports: Annotated[list[int], NoDecode] = Field(default_factory=lambda: [11435, 11436])
    serve_binary: Path = Path("/usr/local/bin/ollama")
    models_dir: Path | None = None
    supervisor: SupervisorKind = SupervisorKind.SYSTEMD
    unit_dir: Path = Path("/etc/systemd/system")
    unit_prefix: str = "ollama"
    run_as_user: str | None = None
    provision_shared: bool = False
    poll_interval: float = Field(default=1.0, gt=0)
    reclaim_grace: float = Field(default=5.0, ge=0)
    gpu_match: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["5090", "3090 Ti"])

    @field_validator("test_ports", mode="before")
    @classmethod
    def parse_test_ports(cls, v):
        return _parse_int_list(v, "test_ports")

    @field_validator("gpu_match", mode="before")
    @classmethod
    def parse_gpu_match(cls, v):
        """GPU name substrings are comma separated since names contain spaces."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @model_validator(mode="after")
    def validate_ports(self) -> "ServiceSettings":
        if not self.test_ports:
            raise ValueError("At least one test port is required.")
        if len(set(self.test_ports)) != len(self.test_ports):
            raise ValueError(f"Duplicate test ports: {self.test_ports}")
        if self.persistent_port in self.test_ports:
            raise ValueError(
                f"Persistent port {self.persistent_port} cannot also be a test port. "
                f"The shared instance is never restarted."
            )
        for port in self.test_ports:
            if not 1 <= port <= 65535:
                raise ValueError(f"Invalid test port {port}: must be between 1 and 65535.")
        return self


class SweepSettings(BaseSettings):
    """Sweep behavior, generation parameters and variant policy."""

    model_config = SettingsConfigDict(env_prefix="GPUSWEEP_SWEEP_", frozen=True)

    stack: str = "ollama"
    candidates: Annotated[list[int], NoDecode] = Field(default_factory=lambda: list(DEFAULT_CANDIDATES))
    mode: SweepMode = SweepMode.EARLY_STOP
    auto_candidates: bool = False
    candidate_percents: Annotated[list[int], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_CANDIDATE_PERCENTS)
    )

    context_length: int = Field(default=4096, ge=1)
    batch_size: int = Field(default=32, ge=1)
    predict_tokens: int = Field(default=64, ge=1)
    prompt: str = "Write ok repeatedly for benchmarking."
    seed: int = 1

    ready_timeout: float = Field(default=60.0, gt=0)
    generate_timeout: float = Field(default=90.0, gt=0)
    tags_timeout: float = Field(default=10.0, gt=0)
    visible_timeout: float = Field(default=12.0, gt=0)
    pull_timeout: float = Field(default=1800.0, gt=0)

    keep_failed_variants: bool = False
    gc_after_run: bool = True
    publish_best: bool = False
    warmup_publish: bool = True
    pull_missing: bool = True
    parallel_endpoints: bool = False
    debug_capture: bool = False

    include_models: str | None = None
    exclude_models: str | None = None
    alias_prefix: str = "tuned-"
    alias_suffix: str = ""

    @field_validator("candidates", "candidate_percents", mode="before")
    @classmethod
    def parse_int_lists(cls, v, info):
        return _parse_int_list(v, info.field_name)

    @field_validator("candidates")
    @classmethod
    def validate_candidates(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("Candidate list must not be empty.")
        negatives = [c for c in v if c < 0]
        if negatives:
            raise ValueError(f"Candidate values must be non-negative, got: {negatives}")
        return v

    @field_validator("candidate_percents")
    @classmethod
    def validate_percents(cls, v: list[int]) -> list[int]:
        bad = [p for p in v if not 0 < p <= 100]
        if bad:
            raise ValueError(f"Candidate percents must be in (0, 100], got: {bad}")
        return v

    @field_validator("include_models", "exclude_models")
    @classmethod
    def validate_regex(cls, v: str | None) -> str | None:
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid model filter regex '{v}': {e}") from e
        return v or None

    def generation_config(self) -> "GenerationConfig":
        return GenerationConfig(
            context_length=self.context_length,
            batch_size=self.batch_size,
            predict_tokens=self.predict_tokens,
            prompt=self.prompt,
            seed=self.seed,
            timeout=self.generate_timeout,
        )


class ReportSettings(BaseSettings):
    """Where run artifacts live and how reports are shaped."""

    model_config = SettingsConfigDict(env_prefix="GPUSWEEP_REPORT_", frozen=True)

    log_dir: Path = Path("logs")
    aggregate_csv: Path | None = None
    top_n: int = Field(default=10, ge=1)
    host: str = Field(default_factory=socket.gethostname)

    @property
    def aggregate_path(self) -> Path:
        return self.aggregate_csv or self.log_dir / "benchmarks.csv"


class GenerationConfig(BaseModel):
    """Parameters for one benchmark generation request."""

    model_config = ConfigDict(frozen=True)

    context_length: int = 4096
    batch_size: int = 32
    predict_tokens: int = 64
    prompt: str = "Write ok repeatedly for benchmarking."
    seed: int = 1
    timeout: float = 90.0


class SweepConfig(BaseModel):
    """The complete, immutable configuration for one process."""

    model_config = ConfigDict(frozen=True)

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)

    @classmethod
    def load(cls, **overrides) -> "SweepConfig":
        """Build the configuration from the environment.

        Args:
            **overrides: Per-group keyword overrides, e.g. ``sweep={"mode": "exhaustive"}``

        Returns:
            Validated SweepConfig

        Raises:
            ConfigurationError: If any setting fails validation
        """
        try:
            return cls(
                service=ServiceSettings(**overrides.get("service", {})),
                sweep=SweepSettings(**overrides.get("sweep", {})),
                report=ReportSettings(**overrides.get("report", {})),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration:\n{e}") from e
