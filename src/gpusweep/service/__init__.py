# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from gpusweep.service.client import ServingClient
from gpusweep.service.manager import ServiceInstanceManager, build_instances
from gpusweep.service.models import ServiceInstance
from gpusweep.service.ports import listeners_on_port, reclaim_port
from gpusweep.service.supervisor import (
    ProcessSupervisor,
    SubprocessSupervisor,
    SystemdSupervisor,
    create_supervisor,
    render_environment,
)

__all__ = [
    "ProcessSupervisor",
    "ServiceInstance",
    "ServiceInstanceManager",
    "ServingClient",
    "SubprocessSupervisor",
    "SystemdSupervisor",
    "build_instances",
    "create_supervisor",
    "listeners_on_port",
    "reclaim_port",
    "render_environment",
]
