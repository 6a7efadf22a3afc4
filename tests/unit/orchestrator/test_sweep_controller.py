# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for SweepController."""

from unittest.mock import Mock

import pytest

from gpusweep.common.config import SweepSettings
from gpusweep.common.enums import RecordKind, SweepMode
from gpusweep.exporters.aggregate.aggregate_base_exporter import display_variant
from gpusweep.gpu.inventory import GpuDevice
from gpusweep.metrics.recorder import MetricsCsvWriter, MetricsRecorder
from gpusweep.metrics.records import read_metrics_csv
from gpusweep.orchestrator.aggregation.summarize import summarize_run
from gpusweep.orchestrator.sweep_controller import (
    SweepController,
    derive_candidates,
    layer_count_from_show,
)
from gpusweep.service.manager import ServiceInstanceManager
from gpusweep.service.models import ServiceInstance
from gpusweep.variants.lifecycle import VariantLifecycleManager
from gpusweep.variants.naming import VariantNameParts, is_variant_tag, variant_name

MODEL = "llama3:8b"
GPU_LABEL = "nvidia-5090"


def _name(value: int | None) -> str:
    return variant_name(
        VariantNameParts(base_model=MODEL, stack="ollama", gpu_label=GPU_LABEL, parameter_value=value)
    )


@pytest.fixture
def metrics_path(tmp_path):
    return tmp_path / "ollama_bench_20250101_120000.csv"


@pytest.fixture
def make_controller(fake_client, fake_supervisor, fake_clock, sweep_config, shared_instance, metrics_path):
    def factory(settings: SweepSettings | None = None) -> SweepController:
        settings = settings or sweep_config.sweep
        services = ServiceInstanceManager(
            fake_supervisor,
            fake_client,
            sweep_config.service,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            reclaim=Mock(return_value=[]),
        )
        variants = VariantLifecycleManager(
            fake_client, services, shared_instance, settings, clock=fake_clock, sleep=fake_clock.sleep
        )
        recorder = MetricsRecorder(fake_client, MetricsCsvWriter(metrics_path), "20250101_120000")
        return SweepController(variants, recorder, fake_client, settings)

    return factory


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def sweep_throughput(fake_client):
    fake_client.throughput.update({_name(80): 0.0, _name(64): 12.5, _name(48): 9.0})
    return fake_client


class TestCandidateDerivation:
    @pytest.mark.parametrize(
        "layers,percents,expected",
        [
            (41, [100, 75, 50], [41, 31, 21]),
            (33, [100, 50, 50, 1], [33, 17, 1]),
            (10, [100, 50, 5], [10, 5, 1]),
            (2, [10, 0], [1]),
        ],
    )
    def test_derive_candidates(self, layers, percents, expected):
        assert derive_candidates(layers, percents) == expected

    @pytest.mark.parametrize(
        "info,expected",
        [
            ({"model_info": {"general.architecture": "llama", "llama.block_count": 32}}, 33),
            ({"model_info": {"gemma3.block_count": 62}}, 63),
            ({"model_info": {}}, None),
            (None, None),
        ],
    )
    def test_layer_count_from_show(self, info, expected):
        assert layer_count_from_show(info) == expected

    def test_resolve_uses_layer_count_when_enabled(self, make_controller, fake_client):
        fake_client.layer_counts[MODEL] = 32
        controller = make_controller(SweepSettings(auto_candidates=True, candidate_percents="100 50"))
        assert controller.resolve_candidates(MODEL) == [33, 17]

    def test_resolve_falls_back_when_layer_count_unknown(self, make_controller):
        controller = make_controller(SweepSettings(auto_candidates=True, candidates="40 20"))
        assert controller.resolve_candidates(MODEL) == [40, 20]

    def test_resolve_uses_configured_candidates_by_default(self, controller):
        assert controller.resolve_candidates(MODEL) == [80, 64, 48]


class TestTune:
    """The sweep over [80, 64, 48] where 80 yields nothing, 64 is best."""

    def test_early_stop_returns_first_positive(self, controller, sweep_throughput, test_instance, metrics_path):
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EARLY_STOP)

        assert (result.best_value, result.best_tokps) == (64, 12.5)
        assert result.best_variant == _name(64)
        assert [c.parameter_value for c in result.candidates] == [80, 64]
        assert _name(48) not in [name for name, _, _ in sweep_throughput.created]
        assert [r.parameter_value for r in read_metrics_csv(metrics_path)] == [80, 64]

    def test_exhaustive_returns_global_max(self, controller, sweep_throughput, test_instance, metrics_path):
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EXHAUSTIVE)

        assert (result.best_value, result.best_tokps) == (64, 12.5)
        assert [c.parameter_value for c in result.candidates] == [80, 64, 48]
        records = read_metrics_csv(metrics_path)
        assert [(r.parameter_value, r.tokens_per_second) for r in records] == [(80, 0.0), (64, 12.5), (48, 9.0)]
        assert all(r.record_kind == RecordKind.OPTIMIZED for r in records)

    def test_zero_throughput_candidate_is_discarded(self, controller, sweep_throughput, test_instance):
        controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EXHAUSTIVE)
        assert sweep_throughput.deleted == [_name(80)]
        ledger = {v.tag: v.succeeded for v in controller.variants.ledger}
        assert ledger == {_name(64): True, _name(48): True}

    def test_failed_build_is_skipped(self, controller, sweep_throughput, test_instance, metrics_path):
        sweep_throughput.failing_builds.add(_name(64))
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EARLY_STOP)

        assert (result.best_value, result.best_tokps) == (48, 9.0)
        assert not result.candidates[1].built
        assert [r.parameter_value for r in read_metrics_csv(metrics_path)] == [80, 48]

    def test_invisible_variant_is_not_measured(self, controller, sweep_throughput, test_instance):
        sweep_throughput.invisible.add(_name(64))
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [64, 48], SweepMode.EARLY_STOP)

        assert result.best_value == 48
        assert result.candidates[0].built and not result.candidates[0].visible
        assert _name(64) not in [payload["model"] for _, payload in sweep_throughput.generate_calls]
        assert _name(64) in sweep_throughput.deleted

    def test_no_data_writes_no_record(self, controller, fake_client, test_instance, metrics_path):
        fake_client.throughput[_name(64)] = None
        fake_client.throughput[_name(48)] = 9.0
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [64, 48], SweepMode.EARLY_STOP)

        assert result.best_value == 48
        assert result.candidates[0].tokens_per_second is None
        assert [r.parameter_value for r in read_metrics_csv(metrics_path)] == [48]

    def test_no_working_candidate_returns_none(self, controller, fake_client, test_instance):
        fake_client.throughput.update({_name(80): 0.0, _name(64): None})
        assert controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64], SweepMode.EXHAUSTIVE) is None

    def test_failed_candidates_kept_without_gc(self, make_controller, sweep_throughput, test_instance):
        controller = make_controller(SweepSettings(candidates="80 64 48", alias_prefix="", gc_after_run=False))
        controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EXHAUSTIVE)
        assert sweep_throughput.deleted == []

    def test_empty_candidates_raise(self, controller, test_instance):
        with pytest.raises(ValueError):
            controller.tune(test_instance, MODEL, GPU_LABEL, [], SweepMode.EARLY_STOP)


class TestBaseline:
    def test_baseline_runs_once_per_endpoint_and_model(
        self, controller, fake_client, test_instance, shared_instance, metrics_path
    ):
        assert controller.benchmark_base_as_is(test_instance, MODEL) == 10.0
        assert controller.benchmark_base_as_is(test_instance, MODEL) is None
        assert controller.benchmark_base_as_is(shared_instance, MODEL) == 10.0

        records = read_metrics_csv(metrics_path)
        assert [r.endpoint for r in records] == [test_instance.endpoint, shared_instance.endpoint]
        assert all(r.record_kind == RecordKind.BASE_AS_IS and r.parameter_value is None for r in records)
        assert "num_gpu" not in fake_client.generate_calls[0][1]["options"]


class TestSharedGpuLabel:
    """Two endpoints whose GPUs share a label bake identically named variants."""

    def test_failure_on_second_endpoint_keeps_first_endpoints_winner(
        self, controller, sweep_throughput, test_instance
    ):
        other = ServiceInstance(name="ollama-test-b", port=11436, suffix="B")
        first = controller.tune(test_instance, MODEL, GPU_LABEL, [64], SweepMode.EARLY_STOP)
        assert first.best_variant == _name(64)

        sweep_throughput.throughput[_name(64)] = 0.0
        assert controller.tune(other, MODEL, GPU_LABEL, [64], SweepMode.EARLY_STOP) is None

        assert sweep_throughput.deleted == []
        assert {v.tag: v.succeeded for v in controller.variants.ledger} == {_name(64): True}
        assert controller.variants.collect_garbage() == []


class TestPublish:
    def test_publish_rebakes_winner_and_records(self, controller, sweep_throughput, test_instance, metrics_path):
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64, 48], SweepMode.EARLY_STOP)
        sweep_throughput.throughput[_name(64)] = 12.7

        assert controller.publish(test_instance, result) == 12.7
        assert [c for c in sweep_throughput.created if c[0] == _name(64)] == [(_name(64), MODEL, {"num_gpu": 64})] * 2

        warmup, measured = sweep_throughput.generate_calls[-2:]
        assert warmup[1]["options"] == {"num_predict": 1}
        assert measured[1]["model"] == _name(64)
        published = [r for r in read_metrics_csv(metrics_path) if r.record_kind == RecordKind.PUBLISHED]
        assert [(r.served_tag, r.parameter_value) for r in published] == [(_name(64), 64)]

    def test_published_row_displays_the_served_name(self, make_controller, fake_client, test_instance, metrics_path):
        controller = make_controller(SweepSettings(candidates="80 64 48", alias_prefix="tuned-"))
        tag = variant_name(
            VariantNameParts(
                base_model=MODEL, stack="ollama", gpu_label=GPU_LABEL, parameter_value=64, prefix="tuned-"
            )
        )
        fake_client.throughput.update({MODEL: 8.0, tag: 12.5})
        gpu = GpuDevice(index=0, uuid="GPU-aaaa", name="NVIDIA GeForce RTX 5090", total_memory_mib=32607)
        controller.benchmark_base_as_is(test_instance, MODEL, gpu)
        result = controller.tune(test_instance, MODEL, gpu.label, [64], SweepMode.EARLY_STOP, gpu)
        fake_client.throughput[tag] = 12.7
        controller.publish(test_instance, result, gpu)

        [summary] = summarize_run(read_metrics_csv(metrics_path), host="rig1", stack="ollama")
        assert (summary.optimal_variant, summary.optimal_tokps, summary.num_gpu) == (tag, 12.7, 64)
        assert display_variant(summary, prefix="tuned-") == summary.optimal_variant
        assert is_variant_tag(summary.optimal_variant)

    def test_publish_without_warmup(self, make_controller, sweep_throughput, test_instance):
        controller = make_controller(
            SweepSettings(candidates="80 64 48", alias_prefix="", warmup_publish=False)
        )
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [80, 64], SweepMode.EARLY_STOP)
        calls_before = len(sweep_throughput.generate_calls)
        controller.publish(test_instance, result)
        assert len(sweep_throughput.generate_calls) == calls_before + 1

    def test_failed_publish_build_returns_none_and_keeps_winner(self, controller, sweep_throughput, test_instance):
        result = controller.tune(test_instance, MODEL, GPU_LABEL, [64], SweepMode.EARLY_STOP)
        sweep_throughput.failing_builds.add(_name(64))
        assert controller.publish(test_instance, result) is None
        assert sweep_throughput.deleted == []
