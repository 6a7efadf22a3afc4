# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from gpusweep.gpu.inventory import (
    GpuDevice,
    find_by_uuid,
    gpu_label_from_name,
    nvidia_smi_available,
    parse_inventory,
    query_gpus,
    select_gpus,
)

__all__ = [
    "GpuDevice",
    "find_by_uuid",
    "gpu_label_from_name",
    "nvidia_smi_available",
    "parse_inventory",
    "query_gpus",
    "select_gpus",
]
