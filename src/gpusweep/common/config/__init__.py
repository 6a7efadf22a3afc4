# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from gpusweep.common.config.sweep_config import (
    GenerationConfig,
    ReportSettings,
    ServiceSettings,
    SweepConfig,
    SweepSettings,
)

__all__ = [
    "GenerationConfig",
    "ReportSettings",
    "ServiceSettings",
    "SweepConfig",
    "SweepSettings",
]
