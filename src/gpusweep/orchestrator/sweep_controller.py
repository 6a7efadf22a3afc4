# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Empirical search for the fastest GPU-offload value of a model on one endpoint."""

import logging
import threading
from collections.abc import Sequence

from gpusweep.common.config import SweepSettings
from gpusweep.common.enums import BakeOutcome, RecordKind, SweepMode, VisibilityOutcome
from gpusweep.gpu.inventory import GpuDevice
from gpusweep.metrics.recorder import MetricsRecorder
from gpusweep.orchestrator.models import CandidateResult, TuneResult
from gpusweep.orchestrator.strategies import create_strategy
from gpusweep.service.client import ServingClient
from gpusweep.service.models import ServiceInstance
from gpusweep.variants.lifecycle import VariantLifecycleManager
from gpusweep.variants.naming import VariantNameParts, variant_name

logger = logging.getLogger(__name__)

__all__ = [
    "SweepController",
    "derive_candidates",
    "layer_count_from_show",
]


def derive_candidates(layer_count: int, percents: Sequence[int]) -> list[int]:
    """Candidate values as percentages of a model's offloadable layers.

    Percentages round up and never go below one layer. Returns a descending
    list without duplicates.

    Example:
        >>> derive_candidates(41, [100, 75, 50])
        [41, 31, 21]
    """
    values = {max((layer_count * p + 99) // 100, 1) for p in percents}
    return sorted(values, reverse=True)


def layer_count_from_show(info: dict | None) -> int | None:
    """Offloadable layer count from a model ``show`` response.

    The output layer is offloaded too, hence one more than the block count.
    """
    model_info = (info or {}).get("model_info") or {}
    for key, value in model_info.items():
        if key.endswith(".block_count") and isinstance(value, int):
            return value + 1
    return None


class SweepController:
    """Walks candidate offload values for one (model, endpoint).

    For every candidate: bake a variant, wait until the endpoint lists it,
    measure it. Failures at any step skip the candidate; they never abort the
    sweep.
    """

    def __init__(
        self,
        variants: VariantLifecycleManager,
        recorder: MetricsRecorder,
        client: ServingClient,
        settings: SweepSettings,
    ):
        self.variants = variants
        self.recorder = recorder
        self.client = client
        self.settings = settings
        self._baselined: set[tuple[str, str]] = set()
        self._baseline_lock = threading.Lock()

    def name_parts(self, base_model: str, gpu_label: str, parameter_value: int | None) -> VariantNameParts:
        return VariantNameParts(
            base_model=base_model,
            stack=self.settings.stack,
            gpu_label=gpu_label,
            parameter_value=parameter_value,
            suffix=self.settings.alias_suffix,
            prefix=self.settings.alias_prefix,
        )

    def resolve_candidates(self, base_model: str) -> list[int]:
        """Configured candidates, or ones derived from the layer count when enabled."""
        if not self.settings.auto_candidates:
            return list(self.settings.candidates)
        info = self.client.show(self.variants.builder.endpoint, base_model)
        layers = layer_count_from_show(info)
        if layers is None:
            logger.info(f"Layer count of {base_model} unknown; using configured candidates")
            return list(self.settings.candidates)
        candidates = derive_candidates(layers, self.settings.candidate_percents)
        logger.info(f"{base_model}: {layers} offloadable layers, candidates {candidates}")
        return candidates or list(self.settings.candidates)

    def benchmark_base_as_is(
        self, instance: ServiceInstance, base_model: str, gpu: GpuDevice | None = None
    ) -> float | None:
        """Measure the untuned base model, once per (endpoint, model).

        Returns:
            Throughput, or None if already measured this run or no data arrived
        """
        key = (instance.endpoint, base_model)
        with self._baseline_lock:
            if key in self._baselined:
                logger.debug(f"Baseline for {base_model} on {instance.endpoint} already recorded")
                return None
            self._baselined.add(key)

        logger.info(f"Baseline {base_model} on {instance.endpoint}")
        return self.recorder.measure(
            instance,
            base_model,
            None,
            self.settings.generation_config(),
            base_model=base_model,
            record_kind=RecordKind.BASE_AS_IS,
            gpu=gpu,
        )

    def tune(
        self,
        instance: ServiceInstance,
        base_model: str,
        gpu_label: str,
        candidates: Sequence[int],
        mode: SweepMode,
        gpu: GpuDevice | None = None,
    ) -> TuneResult | None:
        """Find the best offload value for ``base_model`` on ``instance``.

        Args:
            instance: Serving instance to measure on
            base_model: Model to derive variants from
            gpu_label: GPU slug used in variant names
            candidates: Values to try, in order
            mode: early_stop or exhaustive
            gpu: Bound device, recorded with each measurement

        Returns:
            TuneResult for the best candidate, or None when none produced
            positive throughput
        """
        strategy = create_strategy(mode)
        strategy.validate_candidates(candidates)
        gen_config = self.settings.generation_config()
        results: list[CandidateResult] = []

        logger.info(
            f"Tuning {base_model} on {instance.endpoint} ({gpu_label}) with "
            f"{strategy.__class__.__name__}: {list(candidates)}"
        )

        for i, value in enumerate(candidates):
            if not strategy.should_continue(results):
                break

            name = variant_name(self.name_parts(base_model, gpu_label, value))
            result = CandidateResult(parameter_value=value, variant_name=name)
            results.append(result)
            logger.info(f"[{i + 1}/{len(candidates)}] Trying {name}...")

            if self.variants.bake(base_model, name, value) != BakeOutcome.OK:
                continue
            result.built = True

            if self.variants.wait_visible(instance, name, self.settings.visible_timeout) != VisibilityOutcome.VISIBLE:
                self._discard(name)
                continue
            result.visible = True

            result.tokens_per_second = self.recorder.measure(
                instance,
                name,
                value,
                gen_config,
                base_model=base_model,
                record_kind=RecordKind.OPTIMIZED,
                gpu=gpu,
            )
            if result.succeeded:
                self.variants.mark_succeeded(name)
            else:
                logger.warning(f"{name} produced no throughput on {instance.endpoint}")
                self._discard(name)

        best = strategy.select_best(results)
        if best is None:
            logger.warning(f"No working candidate for {base_model} on {instance.endpoint}")
            return None

        logger.info(
            f"Best for {base_model} on {instance.endpoint}: num_gpu={best.parameter_value} "
            f"at {best.tokens_per_second:.2f} tok/s"
        )
        return TuneResult(
            base_model=base_model,
            endpoint=instance.endpoint,
            gpu_label=gpu_label,
            mode=mode,
            best_variant=best.variant_name,
            best_value=best.parameter_value,
            best_tokps=best.tokens_per_second,
            candidates=results,
        )

    def publish(self, instance: ServiceInstance, result: TuneResult, gpu: GpuDevice | None = None) -> float | None:
        """Re-bake the winning candidate under its own name and record it as published.

        Returns:
            Measured throughput of the published variant, or None on failure
        """
        name = variant_name(self.name_parts(result.base_model, result.gpu_label, result.best_value))
        logger.info(f"Publishing {name} (num_gpu={result.best_value})")

        if self.variants.bake(result.base_model, name, result.best_value) != BakeOutcome.OK:
            return None
        if self.variants.wait_visible(instance, name, self.settings.visible_timeout) != VisibilityOutcome.VISIBLE:
            self._discard(name)
            return None

        gen_config = self.settings.generation_config()
        if self.settings.warmup_publish:
            # Loads the weights so the recorded request measures steady state
            self.client.generate(
                instance.endpoint,
                {"model": name, "prompt": "ok", "stream": False, "options": {"num_predict": 1}},
                gen_config.timeout,
            )

        tokps = self.recorder.measure(
            instance,
            name,
            result.best_value,
            gen_config,
            base_model=result.base_model,
            record_kind=RecordKind.PUBLISHED,
            gpu=gpu,
        )
        if tokps:
            self.variants.mark_succeeded(name)
        else:
            self._discard(name)
        return tokps

    def _discard(self, name: str) -> None:
        if self.settings.gc_after_run:
            self.variants.remove(name)
