# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""gpusweep - GPU offload auto-tuning and best-of reporting for LLM servers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gpusweep")
except PackageNotFoundError:
    __version__ = "unknown"
