# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Reclaiming listen ports from stray processes."""

import logging

import psutil

logger = logging.getLogger(__name__)

__all__ = ["listeners_on_port", "reclaim_port"]


def listeners_on_port(port: int) -> list[int]:
    """Return PIDs of processes listening on a TCP port.

    Returns an empty list when connection info is not accessible.
    """
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied:
        logger.warning(f"Not permitted to inspect listeners on port {port}")
        return []

    pids = []
    for conn in connections:
        if (
            conn.status == psutil.CONN_LISTEN
            and conn.laddr
            and conn.laddr.port == port
            and conn.pid
            and conn.pid not in pids
        ):
            pids.append(conn.pid)
    return pids


def reclaim_port(port: int, grace: float = 5.0) -> list[int]:
    """Terminate whatever listens on port, then kill survivors after grace seconds.

    Args:
        port: TCP port to free
        grace: Seconds to wait after SIGTERM before SIGKILL

    Returns:
        PIDs that were signalled
    """
    pids = listeners_on_port(port)
    if not pids:
        return []

    procs = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            procs.append(proc)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning(f"Not permitted to terminate pid {pid} on port {port}")

    _, alive = psutil.wait_procs(procs, timeout=grace)
    for proc in alive:
        logger.warning(f"pid {proc.pid} ignored SIGTERM on port {port}; killing")
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass

    logger.info(f"Reclaimed port {port} from pids {pids}")
    return pids
