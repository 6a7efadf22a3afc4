# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Baking, visibility checks and cleanup of tuned model variants."""

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import httpx
import orjson
from pydantic import BaseModel

from gpusweep.common.config import SweepSettings
from gpusweep.common.enums import BakeOutcome, VisibilityOutcome
from gpusweep.service.client import ServingClient
from gpusweep.service.manager import ServiceInstanceManager
from gpusweep.service.models import ServiceInstance
from gpusweep.variants.naming import strip_latest

logger = logging.getLogger(__name__)

__all__ = [
    "Variant",
    "VariantLifecycleManager",
]


class Variant(BaseModel):
    """A derived model created during this run.

    Attributes:
        tag: Served tag of the variant
        base_model: Model it was derived from
        parameter_value: GPU-offload value baked into it
        created_at: When the bake was requested
        succeeded: Whether it produced a positive measurement
    """

    tag: str
    base_model: str
    parameter_value: int | None = None
    created_at: datetime
    succeeded: bool = False


class VariantLifecycleManager:
    """Creates variants on the build-capable instance and tracks them until cleanup.

    Only one bake is in flight at a time, even when endpoints are swept from
    several threads. Every bake is recorded in an in-memory ledger so failed
    variants can be removed at the end of the run.
    """

    def __init__(
        self,
        client: ServingClient,
        services: ServiceInstanceManager,
        builder: ServiceInstance,
        settings: SweepSettings,
        create_log: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.services = services
        self.builder = builder
        self.settings = settings
        self.create_log = create_log
        self._clock = clock
        self._sleep = sleep
        self._bake_lock = threading.Lock()
        self._ledger_lock = threading.Lock()
        self._ledger: dict[str, Variant] = {}

    @property
    def ledger(self) -> list[Variant]:
        with self._ledger_lock:
            return list(self._ledger.values())

    def bake(self, base_model: str, variant_name: str, parameter_value: int | None) -> BakeOutcome:
        """Create ``variant_name`` from ``base_model`` with the parameter baked in.

        Args:
            base_model: Existing model to derive from
            variant_name: Tag for the new variant
            parameter_value: GPU-offload value, None to inherit the base's

        Returns:
            BakeOutcome.OK or BakeOutcome.BUILD_FAILED
        """
        parameters = {} if parameter_value is None else {"num_gpu": parameter_value}
        with self._bake_lock:
            ok, detail = self.client.create(self.builder.endpoint, variant_name, base_model, parameters)

        with self._ledger_lock:
            previous = self._ledger.get(variant_name)
            # Rebaking the same tag from another endpoint keeps an earlier success
            self._ledger[variant_name] = Variant(
                tag=variant_name,
                base_model=base_model,
                parameter_value=parameter_value,
                created_at=datetime.now(),
                succeeded=previous is not None and previous.succeeded,
            )
        self._log_create(variant_name, base_model, parameter_value, ok, detail)

        if not ok:
            logger.warning(f"Build of {variant_name} from {base_model} failed: {detail[:200]}")
            return BakeOutcome.BUILD_FAILED
        logger.info(f"Built {variant_name} (num_gpu={parameter_value})")
        return BakeOutcome.OK

    def _log_create(
        self, name: str, base_model: str, parameter_value: int | None, ok: bool, detail: str
    ) -> None:
        if self.create_log is None:
            return
        entry = {
            "ts": datetime.now().isoformat(timespec="seconds"),
            "name": name,
            "base_model": base_model,
            "num_gpu": parameter_value,
            "ok": ok,
            "detail": detail,
        }
        self.create_log.parent.mkdir(parents=True, exist_ok=True)
        with open(self.create_log, "ab") as f:
            f.write(orjson.dumps(entry) + b"\n")

    def _is_listed(self, instance: ServiceInstance, variant_name: str) -> bool:
        try:
            tags = self.client.list_models(instance.endpoint)
        except httpx.HTTPError:
            return False
        wanted = strip_latest(variant_name)
        return any(strip_latest(tag) == wanted for tag in tags)

    def wait_visible(self, instance: ServiceInstance, variant_name: str, timeout: float) -> VisibilityOutcome:
        """Wait until ``instance`` lists the variant.

        If it is still missing at the halfway point, the instance is restarted
        exactly once (shared instances are left running) and polling continues
        until the deadline.
        """
        start = self._clock()
        deadline = start + timeout
        midpoint = start + timeout / 2
        restarted = False

        while True:
            if self._is_listed(instance, variant_name):
                return VisibilityOutcome.VISIBLE
            now = self._clock()
            if now >= deadline:
                break
            if not restarted and now >= midpoint:
                restarted = True
                logger.info(f"{variant_name} not yet visible on {instance.endpoint}; restarting once")
                self.services.restart(instance)
                self.services.ensure_ready(instance, max(deadline - self._clock(), 0.0))
                continue
            self._sleep(self.services.settings.poll_interval)

        logger.warning(f"{variant_name} not visible on {instance.endpoint} after {timeout}s")
        return VisibilityOutcome.NOT_VISIBLE

    def mark_succeeded(self, variant_name: str) -> None:
        with self._ledger_lock:
            variant = self._ledger.get(variant_name)
            if variant is not None:
                variant.succeeded = True

    def remove(self, variant_name: str) -> bool:
        """Delete a variant from the build-capable instance.

        A no-op when failed variants are kept for inspection, and for a
        variant that already produced a positive measurement. Variant names do
        not include the endpoint, so two endpoints with the same GPU label share
        them.

        Returns:
            True if the variant was deleted
        """
        if self.settings.keep_failed_variants:
            logger.info(f"Keeping {variant_name} (keep_failed_variants is set)")
            return False
        with self._ledger_lock:
            variant = self._ledger.get(variant_name)
            if variant is not None and variant.succeeded:
                logger.info(f"Keeping {variant_name}: it already succeeded in this run")
                return False
        deleted = self.client.delete(self.builder.endpoint, variant_name)
        with self._ledger_lock:
            self._ledger.pop(variant_name, None)
        if deleted:
            logger.info(f"Removed {variant_name}")
        return deleted

    def collect_garbage(self) -> list[str]:
        """Remove every variant of this run that never produced a positive measurement."""
        removed = []
        for variant in self.ledger:
            if not variant.succeeded and self.remove(variant.tag):
                removed.append(variant.tag)
        if removed:
            logger.info(f"Garbage-collected {len(removed)} variant(s)")
        return removed
