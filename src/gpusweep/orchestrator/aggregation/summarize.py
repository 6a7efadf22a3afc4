# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Per-run summarization of benchmark records."""

from collections.abc import Iterable

from gpusweep.common.enums import RecordKind
from gpusweep.metrics.records import AggregateRecord, BenchmarkRecord

__all__ = ["summarize_run"]

_TUNED_KINDS = (RecordKind.OPTIMIZED, RecordKind.PUBLISHED)


def _max_record(records: Iterable[BenchmarkRecord]) -> BenchmarkRecord | None:
    """Highest positive throughput; the first one wins ties."""
    best = None
    for record in records:
        if record.tokens_per_second <= 0:
            continue
        if best is None or record.tokens_per_second > best.tokens_per_second:
            best = record
    return best


def summarize_run(
    records: Iterable[BenchmarkRecord],
    *,
    host: str,
    stack: str,
    source_file: str = "",
    run_ts: str | None = None,
) -> list[AggregateRecord]:
    """Reduce one run's records to one AggregateRecord per base model.

    Baseline is the best base-as-is measurement, optimal the best optimized
    or published one. A model without a tuned measurement reports its
    baseline as optimal, with the base model as the optimal variant. Models
    with no positive measurement at all are left out.

    Args:
        records: Every record of a single run
        host: Host the run executed on
        stack: Serving stack name
        source_file: Metrics file the records came from
        run_ts: Run timestamp; taken from the records when omitted

    Returns:
        Aggregate records in first-seen model order
    """
    by_model: dict[str, list[BenchmarkRecord]] = {}
    for record in records:
        by_model.setdefault(record.base_model, []).append(record)

    summaries = []
    for model, model_records in by_model.items():
        baseline = _max_record(r for r in model_records if r.record_kind == RecordKind.BASE_AS_IS)
        optimal = _max_record(r for r in model_records if r.record_kind in _TUNED_KINDS)
        if baseline is None and optimal is None:
            continue

        reference = optimal or baseline
        summaries.append(
            AggregateRecord(
                run_ts=run_ts or reference.timestamp,
                host=host,
                stack=stack,
                model=model,
                baseline_tokps=baseline.tokens_per_second if baseline else 0.0,
                optimal_variant=optimal.served_tag if optimal else model,
                optimal_tokps=reference.tokens_per_second,
                baseline_endpoint=baseline.endpoint if baseline else "",
                optimal_endpoint=reference.endpoint,
                gpu_label=reference.gpu_label,
                gpu_name=reference.gpu_name,
                num_gpu=optimal.parameter_value if optimal else None,
                csv_file=source_file,
            )
        )
    return summaries
