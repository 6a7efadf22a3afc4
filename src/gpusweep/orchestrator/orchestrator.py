# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tuning run orchestrator: every model on every test endpoint."""

import logging
import re
import shutil
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx

from gpusweep.common.config import SweepConfig
from gpusweep.common.enums import ReadyOutcome, SupervisorKind
from gpusweep.common.exceptions import ConfigurationError, ServiceError
from gpusweep.common.timestamps import new_run_timestamp
from gpusweep.gpu.inventory import (
    GpuDevice,
    find_by_uuid,
    gpu_label_from_name,
    nvidia_smi_available,
    query_gpus,
    select_gpus,
)
from gpusweep.metrics.recorder import MetricsCsvWriter, MetricsRecorder, metrics_file_name
from gpusweep.orchestrator.models import EndpointRun, RunReport
from gpusweep.orchestrator.sweep_controller import SweepController
from gpusweep.service.client import ServingClient
from gpusweep.service.manager import ServiceInstanceManager, build_instances
from gpusweep.service.models import ServiceInstance
from gpusweep.service.supervisor import create_supervisor
from gpusweep.variants.lifecycle import VariantLifecycleManager
from gpusweep.variants.naming import is_variant_tag, strip_latest

logger = logging.getLogger(__name__)

__all__ = [
    "SweepOrchestrator",
    "filter_models",
]


def filter_models(
    tags: Sequence[str],
    include: str | None = None,
    exclude: str | None = None,
    variant_prefix: str = "",
) -> list[str]:
    """Base models worth tuning from a served tag list.

    Our own variants are skipped; ``include``/``exclude`` are regexes searched
    anywhere in the tag. Order is preserved and duplicates dropped.
    """
    models = []
    for tag in tags:
        if is_variant_tag(tag, variant_prefix):
            continue
        if include and not re.search(include, tag):
            continue
        if exclude and re.search(exclude, tag):
            continue
        if tag not in models:
            models.append(tag)
    return models


class SweepOrchestrator:
    """Runs baseline, sweep and optional publish for each (model, test endpoint).

    The shared instance builds every variant and is never restarted. Each test
    instance is bound to its own GPU. A failure on one endpoint is logged and
    recorded; it never stops the rest of the run.
    """

    def __init__(
        self,
        config: SweepConfig,
        client: ServingClient,
        services: ServiceInstanceManager,
        variants: VariantLifecycleManager,
        controller: SweepController,
        shared: ServiceInstance,
        test_instances: Sequence[ServiceInstance],
        run_ts: str,
        metrics_csv: Path,
        gpu_query: Callable[[], list[GpuDevice]] = query_gpus,
    ):
        self.config = config
        self.client = client
        self.services = services
        self.variants = variants
        self.controller = controller
        self.shared = shared
        self.test_instances = list(test_instances)
        self.run_ts = run_ts
        self.metrics_csv = metrics_csv
        self._gpu_query = gpu_query

    @classmethod
    def from_config(cls, config: SweepConfig, run_ts: str | None = None) -> "SweepOrchestrator":
        """Wire up every component of a run from configuration."""
        run_ts = run_ts or new_run_timestamp()
        log_dir = config.report.log_dir
        cls.preflight(config)

        client = ServingClient(tags_timeout=config.sweep.tags_timeout)
        services = ServiceInstanceManager(create_supervisor(config.service), client, config.service)
        shared, tests = build_instances(config.service)
        services.register_all([shared, *tests])

        metrics_csv = log_dir / metrics_file_name(config.sweep.stack, run_ts)
        recorder = MetricsRecorder(
            client,
            MetricsCsvWriter(metrics_csv),
            run_ts,
            debug_dir=log_dir / f"debug_{run_ts}" if config.sweep.debug_capture else None,
        )
        variants = VariantLifecycleManager(
            client,
            services,
            shared,
            config.sweep,
            create_log=log_dir / f"create_{run_ts}.log",
        )
        controller = SweepController(variants, recorder, client, config.sweep)
        return cls(config, client, services, variants, controller, shared, tests, run_ts, metrics_csv)

    @staticmethod
    def preflight(config: SweepConfig) -> None:
        """Fail fast on problems that would doom the whole run.

        Raises:
            ConfigurationError: If a required tool or directory is unusable
        """
        binary = config.service.serve_binary
        if not (binary.exists() or shutil.which(str(binary))):
            raise ConfigurationError(f"Serving binary not found: {binary}")
        if not nvidia_smi_available():
            raise ConfigurationError("nvidia-smi not found; GPU inventory unavailable")
        try:
            config.report.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Log directory {config.report.log_dir} is not writable: {e}") from e

    def prepare(self) -> None:
        """Ensure the shared instance and bind test instances to GPUs."""
        self.services.ensure_shared(
            self.shared, self.config.service.provision_shared, self.config.sweep.ready_timeout
        )
        devices = self._gpu_query()
        selected = select_gpus(devices, self.config.service.gpu_match, len(self.test_instances))
        for i, instance in enumerate(self.test_instances):
            if i < len(selected):
                device = selected[i]
                self.services.bind_gpu(instance, device.uuid)
                logger.info(f"{instance.name} ({instance.endpoint}) -> GPU {device.index} {device.name}")
            else:
                logger.warning(f"No GPU left for {instance.name}; it runs unbound")

    def discover_models(self) -> list[str]:
        """Base models available on the shared instance, filtered by configuration."""
        try:
            tags = self.client.list_models(self.shared.endpoint)
        except httpx.HTTPError as e:
            raise ServiceError(f"Cannot list models on {self.shared.endpoint}: {e}") from e
        sweep = self.config.sweep
        return filter_models(tags, sweep.include_models, sweep.exclude_models, sweep.alias_prefix)

    def ensure_base_available(self, base_model: str) -> bool:
        """Make sure the shared instance has ``base_model``, pulling it when allowed."""
        try:
            tags = self.client.list_models(self.shared.endpoint)
        except httpx.HTTPError as e:
            logger.warning(f"Cannot list models on {self.shared.endpoint}: {e}")
            return False
        if strip_latest(base_model) in {strip_latest(t) for t in tags}:
            return True
        if not self.config.sweep.pull_missing:
            logger.warning(f"{base_model} is not present and pulling is disabled")
            return False
        logger.info(f"Pulling {base_model} via {self.shared.endpoint}")
        return self.client.pull(self.shared.endpoint, base_model, self.config.sweep.pull_timeout)

    def execute(self, models: Sequence[str] | None = None) -> RunReport:
        """Run the whole tuning pass.

        Args:
            models: Base models to tune; discovered from the shared instance if None

        Returns:
            RunReport with one EndpointRun per (model, endpoint) attempted
        """
        self.prepare()
        try:
            report = self._execute_models(models)
        finally:
            self.stop_test_instances()

        tuned = sum(1 for r in report.endpoint_runs if r.tune is not None)
        logger.info(f"Run {self.run_ts} complete: {tuned}/{len(report.endpoint_runs)} sweeps found a best value")
        return report

    def _execute_models(self, models: Sequence[str] | None) -> RunReport:
        models = list(models) if models else self.discover_models()
        logger.info(f"Run {self.run_ts}: {len(models)} model(s) x {len(self.test_instances)} endpoint(s)")

        report = RunReport(run_ts=self.run_ts, metrics_csv=self.metrics_csv, models=models)
        for i, model in enumerate(models):
            logger.info(f"[{i + 1}/{len(models)}] Model {model}")
            if not self.ensure_base_available(model):
                logger.warning(f"Skipping {model}: base model unavailable")
                continue
            report.endpoint_runs.extend(self._run_model(model))

        if self.config.sweep.gc_after_run:
            report.removed_variants = self.variants.collect_garbage()
        return report

    def stop_test_instances(self) -> None:
        """Stop test instances this process spawned.

        Subprocess-backed servers run in their own session and would outlive
        the run. Units managed by systemd are left to their supervisor.
        """
        if self.config.service.supervisor != SupervisorKind.SUBPROCESS:
            return
        for instance in self.test_instances:
            self.services.stop(instance)

    def _run_model(self, model: str) -> list[EndpointRun]:
        if self.config.sweep.parallel_endpoints and len(self.test_instances) > 1:
            with ThreadPoolExecutor(max_workers=len(self.test_instances)) as pool:
                return list(pool.map(lambda inst: self._run_endpoint(model, inst), self.test_instances))
        return [self._run_endpoint(model, instance) for instance in self.test_instances]

    def _run_endpoint(self, model: str, instance: ServiceInstance) -> EndpointRun:
        """Baseline, sweep and publish one model on one endpoint.

        Unexpected errors are logged and recorded in the returned EndpointRun.
        """
        run = EndpointRun(base_model=model, endpoint=instance.endpoint)
        try:
            gpu = find_by_uuid(self._gpu_query(), instance.gpu_uuid)
            run.gpu_label = gpu.label if gpu else gpu_label_from_name("")

            self.services.restart(instance)
            if self.services.ensure_ready(instance, self.config.sweep.ready_timeout) != ReadyOutcome.READY:
                run.error = f"{instance.endpoint} not ready"
                return run

            run.baseline_tokps = self.controller.benchmark_base_as_is(instance, model, gpu)
            candidates = self.controller.resolve_candidates(model)
            run.tune = self.controller.tune(
                instance, model, run.gpu_label, candidates, self.config.sweep.mode, gpu
            )
            if run.tune is not None and self.config.sweep.publish_best:
                run.published_tokps = self.controller.publish(instance, run.tune, gpu)
        except Exception as e:
            logger.exception(f"Unexpected error tuning {model} on {instance.endpoint}")
            run.error = str(e)
        return run
