# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Enumerations shared across gpusweep components."""

from enum import Enum

__all__ = [
    "BakeOutcome",
    "GroupKey",
    "InstanceState",
    "ReadyOutcome",
    "RecordKind",
    "RunSchemaKind",
    "SupervisorKind",
    "SweepMode",
    "VisibilityOutcome",
]


class SweepMode(str, Enum):
    """How the sweep walks the candidate list."""

    EARLY_STOP = "early_stop"  # Return the first candidate with positive throughput
    EXHAUSTIVE = "exhaustive"  # Evaluate every candidate, return the global max


class RecordKind(str, Enum):
    """Kind of served model a benchmark record was measured against."""

    BASE_AS_IS = "base-as-is"
    OPTIMIZED = "optimized"
    PUBLISHED = "published"


class InstanceState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


class ReadyOutcome(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


class BakeOutcome(Enum):
    OK = "ok"
    BUILD_FAILED = "build_failed"


class VisibilityOutcome(Enum):
    VISIBLE = "visible"
    NOT_VISIBLE = "not_visible"


class SupervisorKind(str, Enum):
    """Process supervision backend used to run serving instances."""

    SYSTEMD = "systemd"
    SUBPROCESS = "subprocess"


class RunSchemaKind(str, Enum):
    """Shape of a CSV file fed to the aggregation layer."""

    METRICS = "metrics"  # Raw per-run benchmark records
    AGGREGATE = "aggregate"  # One summarized row per (run, stack, model)


class GroupKey(Enum):
    """Grouping used by best-of reductions.

    The value is the tuple of AggregateRecord field names forming the key.
    """

    STACK_MODEL = ("stack", "model")
    STACK_MODEL_GPU = ("stack", "model", "gpu_label")
    HOST_MODEL = ("host", "model")
    MODEL = ("model",)

    @property
    def fields(self) -> tuple[str, ...]:
        return self.value
