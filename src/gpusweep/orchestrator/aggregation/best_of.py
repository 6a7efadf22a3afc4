# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Best-of reductions over the aggregate store.

All functions here are pure: they take aggregate records and return new
lists, so reports are always recomputed from the store.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from gpusweep.common.enums import GroupKey
from gpusweep.metrics.records import AggregateRecord

__all__ = [
    "BestOfFilters",
    "BestOfView",
    "best_of",
    "build_best_of_view",
    "latest_run",
    "top_n",
]


@dataclass(frozen=True, slots=True)
class BestOfFilters:
    """Regex filters; each is searched anywhere in its field. None means no filter.

    Attributes:
        stack: Matched against the stack
        model: Matched against the model
        gpu: Matched against the GPU label or the GPU name
        host: Matched against the host
    """

    stack: str | None = None
    model: str | None = None
    gpu: str | None = None
    host: str | None = None

    def matches(self, record: AggregateRecord) -> bool:
        if self.stack and not re.search(self.stack, record.stack):
            return False
        if self.model and not re.search(self.model, record.model):
            return False
        if self.host and not re.search(self.host, record.host):
            return False
        if self.gpu and not (re.search(self.gpu, record.gpu_label) or re.search(self.gpu, record.gpu_name)):
            return False
        return True


def _eligible(records: Iterable[AggregateRecord], filters: BestOfFilters | None) -> list[AggregateRecord]:
    return [r for r in records if r.optimal_tokps > 0 and (filters is None or filters.matches(r))]


def best_of(
    records: Iterable[AggregateRecord],
    group_key: GroupKey,
    filters: BestOfFilters | None = None,
) -> list[AggregateRecord]:
    """Highest optimal throughput per group.

    Records with non-positive optimal throughput are ignored. Within a group
    the first record seen wins ties. Groups come out in first-seen order.
    Applying the same reduction to its own output returns it unchanged.
    """
    best: dict[tuple[str, ...], AggregateRecord] = {}
    for record in _eligible(records, filters):
        key = tuple(getattr(record, name) for name in group_key.fields)
        current = best.get(key)
        if current is None or record.optimal_tokps > current.optimal_tokps:
            best[key] = record
    return list(best.values())


def top_n(
    records: Iterable[AggregateRecord], n: int, filters: BestOfFilters | None = None
) -> list[AggregateRecord]:
    """The n highest optimal throughputs overall, without duplicate rows."""
    ranked = sorted(_eligible(records, filters), key=lambda r: r.optimal_tokps, reverse=True)
    unique = []
    for record in ranked:
        if record not in unique:
            unique.append(record)
        if len(unique) >= n:
            break
    return unique


def latest_run(records: Sequence[AggregateRecord]) -> list[AggregateRecord]:
    """Records of the most recent run timestamp."""
    if not records:
        return []
    newest = max(r.run_ts for r in records)
    return [r for r in records if r.run_ts == newest]


@dataclass(slots=True)
class BestOfView:
    """Every ranking shown in a report, recomputed from the aggregate each time."""

    top: list[AggregateRecord] = field(default_factory=list)
    by_stack_model: list[AggregateRecord] = field(default_factory=list)
    by_stack_model_gpu: list[AggregateRecord] = field(default_factory=list)
    by_host_model: list[AggregateRecord] = field(default_factory=list)
    by_model: list[AggregateRecord] = field(default_factory=list)
    latest: list[AggregateRecord] = field(default_factory=list)


def build_best_of_view(
    records: Sequence[AggregateRecord], filters: BestOfFilters | None = None, n: int = 10
) -> BestOfView:
    records = list(records)
    return BestOfView(
        top=top_n(records, n, filters),
        by_stack_model=best_of(records, GroupKey.STACK_MODEL, filters),
        by_stack_model_gpu=best_of(records, GroupKey.STACK_MODEL_GPU, filters),
        by_host_model=best_of(records, GroupKey.HOST_MODEL, filters),
        by_model=best_of(records, GroupKey.MODEL, filters),
        latest=best_of(latest_run(records), GroupKey.STACK_MODEL, filters),
    )
