# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GPU inventory read from nvidia-smi.

The inventory is never cached: every call re-runs the query so that a device
that disappears or changes mid-run is seen by the next caller.
"""

import logging
import re
import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "GpuDevice",
    "find_by_uuid",
    "gpu_label_from_name",
    "nvidia_smi_available",
    "parse_inventory",
    "query_gpus",
    "select_gpus",
]

NVIDIA_SMI = "nvidia-smi"
QUERY_ARGS = [
    "--query-gpu=index,uuid,name,memory.total",
    "--format=csv,noheader",
]

_LABEL_NOISE = re.compile(r"nvidia|geforce|rtx|[\s\-_]+")


@dataclass(frozen=True, slots=True)
class GpuDevice:
    """One physical GPU as reported by the driver."""

    index: int
    uuid: str
    name: str
    total_memory_mib: int | None

    @property
    def label(self) -> str:
        return gpu_label_from_name(self.name)


def gpu_label_from_name(name: str) -> str:
    """Normalize a marketing name into a short slug.

    Examples:
        >>> gpu_label_from_name("NVIDIA GeForce RTX 5090")
        'nvidia-5090'
        >>> gpu_label_from_name("NVIDIA GeForce RTX 3090 Ti")
        'nvidia-3090ti'
    """
    slug = _LABEL_NOISE.sub("", (name or "").lower())
    return f"nvidia-{slug or 'unknown'}"


def parse_inventory(output: str) -> list[GpuDevice]:
    """Parse ``index, uuid, name, memory.total`` CSV lines.

    Lines that do not have four fields or a numeric index are skipped.
    """
    devices = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = [f.strip() for f in line.split(",")]
        if len(fields) < 4:
            logger.debug(f"Skipping malformed inventory line: {line!r}")
            continue
        # GPU names may contain commas; memory is always last
        index_str, uuid, *name_parts, memory = fields
        try:
            index = int(index_str)
        except ValueError:
            logger.debug(f"Skipping inventory line with bad index: {line!r}")
            continue
        memory = memory.replace("MiB", "").strip()
        devices.append(
            GpuDevice(
                index=index,
                uuid=uuid,
                name=", ".join(name_parts),
                total_memory_mib=int(memory) if memory.isdigit() else None,
            )
        )
    return devices


def query_gpus(run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> list[GpuDevice]:
    """Enumerate GPUs fresh from the driver.

    Args:
        run: Command runner, replaceable in tests

    Returns:
        Devices in driver index order; empty if the tool is missing or fails
    """
    try:
        result = run(
            [NVIDIA_SMI, *QUERY_ARGS],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except FileNotFoundError:
        logger.warning(f"{NVIDIA_SMI} not found; no GPUs available")
        return []
    except subprocess.TimeoutExpired:
        logger.warning(f"{NVIDIA_SMI} timed out; no GPUs available")
        return []

    if result.returncode != 0:
        logger.warning(f"{NVIDIA_SMI} exited with {result.returncode}: {result.stderr.strip()}")
        return []

    return parse_inventory(result.stdout)


def nvidia_smi_available() -> bool:
    return shutil.which(NVIDIA_SMI) is not None


def find_by_uuid(devices: Sequence[GpuDevice], uuid: str | None) -> GpuDevice | None:
    if not uuid:
        return None
    for device in devices:
        if device.uuid == uuid:
            return device
    return None


def select_gpus(devices: Sequence[GpuDevice], match: Sequence[str], count: int) -> list[GpuDevice]:
    """Pick ``count`` distinct GPUs, preferring name matches.

    Each entry of ``match`` is a case-insensitive substring of the wanted GPU's
    name, in the same order as the endpoints being bound. If any lookup fails
    or two lookups land on the same device, the whole selection falls back to
    driver index order.

    Args:
        devices: Current inventory
        match: Name substrings, one per endpoint (may be shorter than count)
        count: Number of endpoints needing a GPU

    Returns:
        Up to ``count`` devices; fewer only when the host has fewer GPUs
    """
    ordered = sorted(devices, key=lambda d: d.index)
    if count <= 0:
        return []

    picked: list[GpuDevice] = []
    for pattern in list(match)[:count]:
        found = next((d for d in ordered if pattern.lower() in d.name.lower()), None)
        if found is None or found in picked:
            logger.info(
                f"GPU match '{pattern}' failed or collided; falling back to index order"
            )
            return ordered[:count]
        picked.append(found)

    # Fill endpoints without a match pattern from the remaining devices
    for device in ordered:
        if len(picked) >= count:
            break
        if device not in picked:
            picked.append(device)
    return picked
