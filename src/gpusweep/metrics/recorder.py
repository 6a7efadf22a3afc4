# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Throughput measurement and the per-run metrics file."""

import csv
import itertools
import logging
import re
import threading
from pathlib import Path
from typing import Any

import orjson

from gpusweep.common.config import GenerationConfig
from gpusweep.common.constants import NANOS_PER_SECOND, TOKPS_DECIMALS
from gpusweep.common.enums import RecordKind
from gpusweep.gpu.inventory import GpuDevice, gpu_label_from_name
from gpusweep.metrics.records import METRICS_COLUMNS, BenchmarkRecord
from gpusweep.service.client import ServingClient
from gpusweep.service.models import ServiceInstance

logger = logging.getLogger(__name__)

__all__ = [
    "MetricsCsvWriter",
    "MetricsRecorder",
    "build_generate_payload",
    "compute_tokens_per_second",
    "metrics_file_name",
]


def metrics_file_name(stack: str, run_ts: str) -> str:
    return f"{stack}_bench_{run_ts}.csv"


def compute_tokens_per_second(response: dict[str, Any]) -> float:
    """Decode throughput from a final generate response.

    Returns 0.0 when the response is not marked done or reports no positive
    duration.
    """
    if response.get("done") is not True:
        return 0.0
    try:
        eval_count = float(response.get("eval_count") or 0)
        eval_duration = float(response.get("eval_duration") or 0)
    except (TypeError, ValueError):
        return 0.0
    if eval_duration <= 0:
        return 0.0
    return round(eval_count / (eval_duration / NANOS_PER_SECOND), TOKPS_DECIMALS)


def build_generate_payload(
    served_tag: str, parameter_value: int | None, gen_config: GenerationConfig
) -> dict[str, Any]:
    options: dict[str, Any] = {
        "num_ctx": gen_config.context_length,
        "num_batch": gen_config.batch_size,
        "num_predict": gen_config.predict_tokens,
        "temperature": 0,
        "seed": gen_config.seed,
        "mirostat": 0,
    }
    if parameter_value is not None:
        options["num_gpu"] = parameter_value
    return {
        "model": served_tag,
        "prompt": gen_config.prompt,
        "stream": False,
        "options": options,
    }


class MetricsCsvWriter:
    """Append-only writer for one run's metrics file.

    The header is written when the file is created. Appends are serialized so
    concurrent endpoint sweeps never interleave rows.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            with open(self.path, "w", newline="") as f:
                csv.writer(f, lineterminator="\n").writerow(METRICS_COLUMNS)

    def append(self, record: BenchmarkRecord) -> None:
        with self._lock, open(self.path, "a", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow(record.to_row())


class MetricsRecorder:
    """Runs one generation request per measurement and records the result."""

    def __init__(
        self,
        client: ServingClient,
        writer: MetricsCsvWriter,
        run_ts: str,
        debug_dir: Path | None = None,
    ):
        self.client = client
        self.writer = writer
        self.run_ts = run_ts
        self.debug_dir = debug_dir
        self._debug_seq = itertools.count(1)

    def measure(
        self,
        instance: ServiceInstance,
        served_tag: str,
        parameter_value: int | None,
        gen_config: GenerationConfig,
        *,
        base_model: str,
        record_kind: RecordKind,
        gpu: GpuDevice | None = None,
    ) -> float | None:
        """Measure decode throughput of ``served_tag`` on ``instance``.

        Args:
            instance: Serving instance to send the request to
            served_tag: Model tag to generate with
            parameter_value: Offload value sent as num_gpu, None to omit it
            gen_config: Generation parameters and timeout
            base_model: Base model recorded with the measurement
            record_kind: Kind recorded with the measurement
            gpu: Device the instance is bound to, for the record's GPU columns

        Returns:
            Tokens per second (possibly 0.0), or None when no response arrived
        """
        payload = build_generate_payload(served_tag, parameter_value, gen_config)
        response = self.client.generate(instance.endpoint, payload, gen_config.timeout)
        self._capture(served_tag, payload, response)

        if response is None:
            logger.warning(f"No data for {served_tag} on {instance.endpoint}")
            return None

        tokps = compute_tokens_per_second(response)
        record = BenchmarkRecord(
            timestamp=self.run_ts,
            endpoint=instance.endpoint,
            service_name=instance.unit_name,
            suffix=instance.suffix,
            base_model=base_model,
            record_kind=record_kind,
            served_tag=served_tag,
            parameter_value=parameter_value,
            context_length=gen_config.context_length,
            batch_size=gen_config.batch_size,
            predict_tokens=gen_config.predict_tokens,
            tokens_per_second=tokps,
            gpu_label=gpu.label if gpu else gpu_label_from_name(""),
            gpu_name=gpu.name if gpu else "",
            gpu_uuid=gpu.uuid if gpu else "",
            gpu_mem_mib=gpu.total_memory_mib if gpu else None,
        )
        self.writer.append(record)
        logger.info(f"{served_tag} on {instance.endpoint}: {tokps:.2f} tok/s")
        return tokps

    def _capture(self, served_tag: str, payload: dict[str, Any], response: dict[str, Any] | None) -> None:
        if self.debug_dir is None:
            return
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        stem = f"{next(self._debug_seq):04d}_{re.sub(r'[^A-Za-z0-9_.-]', '_', served_tag)}"
        (self.debug_dir / f"{stem}_request.json").write_bytes(
            orjson.dumps(payload, option=orjson.OPT_INDENT_2)
        )
        (self.debug_dir / f"{stem}_response.json").write_bytes(
            orjson.dumps(response, option=orjson.OPT_INDENT_2)
        )
