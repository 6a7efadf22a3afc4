# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Serving instance model."""

from pydantic import BaseModel, Field

from gpusweep.common.enums import InstanceState

__all__ = ["ServiceInstance"]


class ServiceInstance(BaseModel):
    """A supervised inference server process listening on one port.

    Attributes:
        name: Supervisor-level name (systemd unit name without suffix)
        host: Address the instance listens on
        port: Listen port; unique across instances
        suffix: Short tag recorded with benchmark records (e.g. "A", "B")
        shared: The long-lived instance that builds variants; never stopped
        gpu_uuid: GPU the process is restricted to, None for no restriction
        state: Last observed lifecycle state
    """

    name: str
    host: str = "127.0.0.1"
    port: int = Field(ge=1, le=65535)
    suffix: str = ""
    shared: bool = False
    gpu_uuid: str | None = None
    state: InstanceState = InstanceState.STOPPED

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"http://{self.endpoint}"

    @property
    def unit_name(self) -> str:
        return f"{self.name}.service"
