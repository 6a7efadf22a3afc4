# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Lifecycle of serving instances: GPU binding, restarts and readiness."""

import logging
import string
import time
from collections.abc import Callable, Sequence

from gpusweep.common.config import ServiceSettings
from gpusweep.common.enums import InstanceState, ReadyOutcome
from gpusweep.common.exceptions import ConfigurationError
from gpusweep.service.client import ServingClient
from gpusweep.service.models import ServiceInstance
from gpusweep.service.ports import reclaim_port
from gpusweep.service.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

__all__ = [
    "ServiceInstanceManager",
    "build_instances",
]


def build_instances(settings: ServiceSettings) -> tuple[ServiceInstance, list[ServiceInstance]]:
    """Create the shared instance and one test instance per configured port.

    Test instances get letter suffixes (A, B, ...) in port order; beyond 26
    the port number is used.
    """
    shared = ServiceInstance(
        name=f"{settings.unit_prefix}-persist",
        host=settings.host,
        port=settings.persistent_port,
        suffix="PERSIST",
        shared=True,
    )
    tests = []
    for i, port in enumerate(settings.test_ports):
        suffix = string.ascii_uppercase[i] if i < len(string.ascii_uppercase) else str(port)
        tests.append(
            ServiceInstance(
                name=f"{settings.unit_prefix}-test-{suffix.lower()}",
                host=settings.host,
                port=port,
                suffix=suffix,
            )
        )
    return shared, tests


class ServiceInstanceManager:
    """Owns every serving instance of a run.

    The shared instance is never stopped, restarted or port-reclaimed here.
    At most one registered instance may use a given port or GPU.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        client: ServingClient,
        settings: ServiceSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        reclaim: Callable[[int, float], list[int]] = reclaim_port,
    ):
        self.supervisor = supervisor
        self.client = client
        self.settings = settings
        self._clock = clock
        self._sleep = sleep
        self._reclaim = reclaim
        self._instances: dict[str, ServiceInstance] = {}

    @property
    def instances(self) -> list[ServiceInstance]:
        return list(self._instances.values())

    def register(self, instance: ServiceInstance) -> ServiceInstance:
        """Track an instance, rejecting port or GPU conflicts.

        Raises:
            ConfigurationError: If the port or GPU is already taken
        """
        for other in self._instances.values():
            if other.name == instance.name:
                continue
            if other.port == instance.port:
                raise ConfigurationError(
                    f"Port {instance.port} is used by both {other.name} and {instance.name}"
                )
            if instance.gpu_uuid and other.gpu_uuid == instance.gpu_uuid:
                raise ConfigurationError(
                    f"GPU {instance.gpu_uuid} is bound to both {other.name} and {instance.name}"
                )
        self._instances[instance.name] = instance
        return instance

    def register_all(self, instances: Sequence[ServiceInstance]) -> None:
        for instance in instances:
            self.register(instance)

    def bind_gpu(self, instance: ServiceInstance, gpu_uuid: str | None) -> None:
        """Restrict an instance to one GPU.

        The binding is part of the launch environment, so a running instance
        only picks it up at its next restart.

        Raises:
            ConfigurationError: For the shared instance or a GPU already bound elsewhere
        """
        if instance.shared:
            raise ConfigurationError(f"Refusing to bind a GPU to shared instance {instance.name}")
        for other in self._instances.values():
            if other.name != instance.name and gpu_uuid and other.gpu_uuid == gpu_uuid:
                raise ConfigurationError(f"GPU {gpu_uuid} is already bound to {other.name}")
        if instance.state != InstanceState.STOPPED:
            logger.info(f"{instance.name}: GPU binding {gpu_uuid} applies at next restart")
        instance.gpu_uuid = gpu_uuid

    def start(self, instance: ServiceInstance) -> bool:
        """Launch an instance with its current binding."""
        if not instance.shared:
            self._reclaim(instance.port, self.settings.reclaim_grace)
        if not self.supervisor.start(instance):
            instance.state = InstanceState.FAILED
            return False
        instance.state = InstanceState.STARTING
        return True

    def stop(self, instance: ServiceInstance) -> None:
        if instance.shared:
            logger.debug(f"Not stopping shared instance {instance.name}")
            return
        self.supervisor.stop(instance)
        instance.state = InstanceState.STOPPED

    def restart(self, instance: ServiceInstance) -> bool:
        """Stop, reclaim the port, and start again.

        A no-op for the shared instance.
        """
        if instance.shared:
            logger.debug(f"Not restarting shared instance {instance.name}")
            return True
        logger.info(f"Restarting {instance.name} on {instance.endpoint}")
        self.supervisor.stop(instance)
        instance.state = InstanceState.STOPPED
        return self.start(instance)

    def ensure_ready(self, instance: ServiceInstance, timeout: float) -> ReadyOutcome:
        """Poll the API until it answers or ``timeout`` seconds pass.

        Never raises; a timeout marks the instance failed.
        """
        deadline = self._clock() + timeout
        while True:
            if self.client.is_alive(instance.endpoint):
                instance.state = InstanceState.READY
                return ReadyOutcome.READY
            if self._clock() >= deadline:
                break
            self._sleep(self.settings.poll_interval)

        process_state = "running" if self.supervisor.is_ready(instance) else "not running"
        logger.warning(
            f"{instance.name} on {instance.endpoint} not ready after {timeout}s (process {process_state})"
        )
        instance.state = InstanceState.FAILED
        return ReadyOutcome.TIMED_OUT

    def ensure_shared(self, shared: ServiceInstance, provision: bool, timeout: float) -> None:
        """Make sure the shared instance answers, provisioning it only on opt-in.

        Raises:
            ConfigurationError: If it is absent and may not or could not be provisioned
        """
        if self.client.is_alive(shared.endpoint):
            shared.state = InstanceState.READY
            logger.info(f"Using shared instance at {shared.endpoint}")
            return
        if not provision:
            raise ConfigurationError(
                f"Shared instance at {shared.endpoint} is not reachable. "
                f"Start it, or set GPUSWEEP_SERVICE_PROVISION_SHARED=true to let gpusweep provision it."
            )
        logger.info(f"Provisioning shared instance {shared.name} on {shared.endpoint}")
        self.start(shared)
        if self.ensure_ready(shared, timeout) != ReadyOutcome.READY:
            raise ConfigurationError(f"Provisioned shared instance at {shared.endpoint} never became ready")
