# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Shared fakes for unit tests."""

from pathlib import Path

import httpx
import pytest

from gpusweep.common.config import ReportSettings, ServiceSettings, SweepConfig, SweepSettings
from gpusweep.common.enums import RecordKind
from gpusweep.metrics.records import AggregateRecord, BenchmarkRecord
from gpusweep.service.models import ServiceInstance


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeServingClient:
    """In-memory stand-in for ServingClient.

    Attributes:
        tags: Served tags per endpoint
        down: Endpoints that refuse connections
        throughput: tok/s reported per served tag; None means no response
        failing_builds: Variant names whose create fails
        invisible: Variant names never listed by test endpoints
    """

    def __init__(self):
        self.tags: dict[str, list[str]] = {}
        self.down: set[str] = set()
        self.throughput: dict[str, float | None] = {}
        self.failing_builds: set[str] = set()
        self.invisible: set[str] = set()
        self.layer_counts: dict[str, int] = {}
        self.generate_calls: list[tuple[str, dict]] = []
        self.created: list[tuple[str, str, dict]] = []
        self.deleted: list[str] = []
        self.pulled: list[str] = []

    def list_models(self, endpoint: str, timeout: float | None = None) -> list[str]:
        if endpoint in self.down:
            raise httpx.ConnectError("connection refused")
        listed = list(self.tags.get(endpoint, []))
        listed += [f"{name}:latest" for name, _, _ in self.created if name not in self.invisible and name not in self.deleted]
        return listed

    def is_alive(self, endpoint: str, timeout: float = 2.0) -> bool:
        return endpoint not in self.down

    def generate(self, endpoint: str, payload: dict, timeout: float) -> dict | None:
        self.generate_calls.append((endpoint, payload))
        tokps = self.throughput.get(payload["model"], 10.0)
        if tokps is None:
            return None
        if tokps <= 0:
            return {"done": True, "eval_count": 0, "eval_duration": 0}
        return {"done": True, "eval_count": round(tokps * 100), "eval_duration": 100 * 1_000_000_000}

    def create(self, endpoint: str, name: str, base: str, parameters: dict, timeout: float = 600.0):
        if name in self.failing_builds:
            return False, "HTTP 500: out of memory"
        self.created.append((name, base, parameters))
        return True, '{"status":"success"}'

    def delete(self, endpoint: str, name: str, timeout: float = 30.0) -> bool:
        self.deleted.append(name)
        return True

    def pull(self, endpoint: str, name: str, timeout: float = 1800.0) -> bool:
        self.pulled.append(name)
        self.tags.setdefault(endpoint, []).append(name)
        return True

    def show(self, endpoint: str, name: str, timeout: float | None = None) -> dict | None:
        if name not in self.layer_counts:
            return None
        return {"model_info": {"llama.block_count": self.layer_counts[name]}}

    def close(self) -> None:
        pass


class FakeSupervisor:
    """Records supervisor calls and reports every process as running once started."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.running: set[str] = set()

    def render(self, instance: ServiceInstance) -> str:
        return f"OLLAMA_HOST={instance.endpoint}"

    def start(self, instance: ServiceInstance) -> bool:
        self.calls.append(("start", instance.name))
        self.running.add(instance.name)
        return True

    def stop(self, instance: ServiceInstance) -> bool:
        self.calls.append(("stop", instance.name))
        self.running.discard(instance.name)
        return True

    def restart(self, instance: ServiceInstance) -> bool:
        self.calls.append(("restart", instance.name))
        self.running.add(instance.name)
        return True

    def is_ready(self, instance: ServiceInstance) -> bool:
        return instance.name in self.running


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeServingClient:
    return FakeServingClient()


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def sweep_config(tmp_path: Path) -> SweepConfig:
    """Configuration isolated from the environment, logging into tmp_path."""
    return SweepConfig(
        service=ServiceSettings(
            test_ports=[11435, 11436],
            supervisor="subprocess",
            poll_interval=1.0,
            reclaim_grace=0.0,
        ),
        sweep=SweepSettings(
            candidates=[80, 64, 48],
            alias_prefix="",
            visible_timeout=4.0,
            ready_timeout=5.0,
        ),
        report=ReportSettings(log_dir=tmp_path / "logs", host="rig1"),
    )


@pytest.fixture
def shared_instance() -> ServiceInstance:
    return ServiceInstance(name="ollama-persist", port=11434, suffix="PERSIST", shared=True)


@pytest.fixture
def test_instance() -> ServiceInstance:
    return ServiceInstance(name="ollama-test-a", port=11435, suffix="A")


def make_benchmark_record(
    base_model: str = "llama3:8b",
    record_kind: RecordKind = RecordKind.OPTIMIZED,
    tokens_per_second: float = 10.0,
    served_tag: str | None = None,
    parameter_value: int | None = 64,
    endpoint: str = "127.0.0.1:11435",
    timestamp: str = "20250101_120000",
    gpu_label: str = "nvidia-5090",
    gpu_name: str = "NVIDIA GeForce RTX 5090",
) -> BenchmarkRecord:
    if record_kind == RecordKind.BASE_AS_IS:
        parameter_value = None
    return BenchmarkRecord(
        timestamp=timestamp,
        endpoint=endpoint,
        service_name="ollama-test-a.service",
        suffix="A",
        base_model=base_model,
        record_kind=record_kind,
        served_tag=served_tag or (base_model if parameter_value is None else f"{base_model}-ng{parameter_value}"),
        parameter_value=parameter_value,
        context_length=4096,
        batch_size=32,
        predict_tokens=64,
        tokens_per_second=tokens_per_second,
        gpu_label=gpu_label,
        gpu_name=gpu_name,
        gpu_uuid="GPU-aaaa",
        gpu_mem_mib=32607,
    )


def make_aggregate_record(
    model: str = "llama3:8b",
    optimal_tokps: float = 10.0,
    baseline_tokps: float = 8.0,
    run_ts: str = "20250101_120000",
    stack: str = "ollama",
    host: str = "rig1",
    gpu_label: str = "nvidia-5090",
    gpu_name: str = "NVIDIA GeForce RTX 5090",
    num_gpu: int | None = 64,
) -> AggregateRecord:
    return AggregateRecord(
        run_ts=run_ts,
        host=host,
        stack=stack,
        model=model,
        baseline_tokps=baseline_tokps,
        optimal_variant=f"{model}-ng{num_gpu}" if num_gpu is not None else model,
        optimal_tokps=optimal_tokps,
        baseline_endpoint="127.0.0.1:11435",
        optimal_endpoint="127.0.0.1:11435",
        gpu_label=gpu_label,
        gpu_name=gpu_name,
        num_gpu=num_gpu,
        csv_file=f"{stack}_bench_{run_ts}.csv",
    )


@pytest.fixture
def benchmark_record_factory():
    return make_benchmark_record


@pytest.fixture
def aggregate_record_factory():
    return make_aggregate_record
