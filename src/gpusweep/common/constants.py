# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Constants shared across gpusweep components."""

NANOS_PER_SECOND = 1_000_000_000

RUN_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
"""Run timestamps are wall-clock strings like 20250101_120000."""

RUN_TIMESTAMP_PATTERN = r"\d{8}_\d{6}"

HUMAN_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

TOKPS_DECIMALS = 2

LATEST_TAG_SUFFIX = ":latest"
