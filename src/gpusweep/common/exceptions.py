# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for gpusweep.

Only configuration problems are fatal. Expected runtime failures (timeouts,
failed builds, missing measurements) are reported as outcome values and never
raised past the sweep.
"""

__all__ = [
    "ConfigurationError",
    "GpuSweepError",
    "ServiceError",
]


class GpuSweepError(Exception):
    """Base class for all gpusweep errors."""


class ConfigurationError(GpuSweepError):
    """Invalid or unusable configuration detected at startup."""


class ServiceError(GpuSweepError):
    """A serving instance could not be managed as requested."""
