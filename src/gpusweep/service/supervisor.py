# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Process supervision backends for serving instances.

The rest of the code only talks to :class:`ProcessSupervisor`. Unit file
layout and systemctl calls stay in :class:`SystemdSupervisor`; the
:class:`SubprocessSupervisor` runs the server directly for hosts without
systemd (and for development).
"""

import logging
import os
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from gpusweep.common.config import ServiceSettings
from gpusweep.common.enums import SupervisorKind
from gpusweep.service.models import ServiceInstance

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessSupervisor",
    "SubprocessSupervisor",
    "SystemdSupervisor",
    "create_supervisor",
    "render_environment",
]


@runtime_checkable
class ProcessSupervisor(Protocol):
    """Starts and stops serving processes.

    Each method returns True when the supervisor accepted the request. A
    start that returns True does not mean the API is answering yet; callers
    poll readiness separately.
    """

    def render(self, instance: ServiceInstance) -> str:
        """Return the launch description for the instance's current settings."""
        ...

    def start(self, instance: ServiceInstance) -> bool: ...

    def stop(self, instance: ServiceInstance) -> bool: ...

    def restart(self, instance: ServiceInstance) -> bool: ...

    def is_ready(self, instance: ServiceInstance) -> bool:
        """Whether the supervised process is running (not whether its API answers)."""
        ...


def render_environment(instance: ServiceInstance, settings: ServiceSettings) -> dict[str, str]:
    """Environment the server process is launched with.

    GPU binding is expressed only here, so it applies at the next start.
    """
    env = {"OLLAMA_HOST": instance.endpoint}
    if settings.models_dir is not None:
        env["OLLAMA_MODELS"] = str(settings.models_dir)
    if instance.gpu_uuid:
        env["CUDA_VISIBLE_DEVICES"] = instance.gpu_uuid
    return env


class SystemdSupervisor:
    """Runs each instance as a systemd service unit."""

    def __init__(
        self,
        settings: ServiceSettings,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.settings = settings
        self._run = run

    def unit_path(self, instance: ServiceInstance) -> Path:
        return self.settings.unit_dir / instance.unit_name

    def render(self, instance: ServiceInstance) -> str:
        env = render_environment(instance, self.settings)
        lines = [
            "[Unit]",
            f"Description=Inference server ({instance.name}) on {instance.endpoint}",
            "After=network-online.target",
            "Wants=network-online.target",
            "",
            "[Service]",
            "Type=simple",
        ]
        if self.settings.run_as_user:
            lines.append(f"User={self.settings.run_as_user}")
        lines.extend(f"Environment={key}={value}" for key, value in env.items())
        lines.extend(
            [
                f"ExecStart={self.settings.serve_binary} serve",
                "Restart=always",
                "RestartSec=2s",
                "",
                "[Install]",
                "WantedBy=multi-user.target",
                "",
            ]
        )
        return "\n".join(lines)

    def _install(self, instance: ServiceInstance) -> bool:
        """Write the unit file if it changed and reload systemd."""
        path = self.unit_path(instance)
        content = self.render(instance)
        try:
            if path.exists() and path.read_text() == content:
                return True
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            logger.error(f"Cannot write unit file {path}: {e}")
            return False
        logger.debug(f"Wrote {path}")
        return self._systemctl("daemon-reload")

    def _systemctl(self, *args: str) -> bool:
        try:
            result = self._run(
                ["systemctl", *args],
                capture_output=True,
                text=True,
                timeout=60,
            )
        except FileNotFoundError:
            logger.error("systemctl not found")
            return False
        except subprocess.TimeoutExpired:
            logger.warning(f"systemctl {' '.join(args)} timed out")
            return False

        if result.returncode != 0:
            # is-active reports "inactive" via exit code; not worth a warning
            if args[0] != "is-active":
                logger.warning(
                    f"systemctl {' '.join(args)} failed ({result.returncode}): {result.stderr.strip()}"
                )
            return False
        return True

    def start(self, instance: ServiceInstance) -> bool:
        if not self._install(instance):
            return False
        return self._systemctl("start", instance.unit_name)

    def stop(self, instance: ServiceInstance) -> bool:
        return self._systemctl("stop", instance.unit_name)

    def restart(self, instance: ServiceInstance) -> bool:
        if not self._install(instance):
            return False
        return self._systemctl("restart", instance.unit_name)

    def is_ready(self, instance: ServiceInstance) -> bool:
        return self._systemctl("is-active", "--quiet", instance.unit_name)


class SubprocessSupervisor:
    """Runs each instance as a child process of this program."""

    def __init__(
        self,
        settings: ServiceSettings,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.settings = settings
        self._popen = popen
        self._procs: dict[str, subprocess.Popen] = {}

    def render(self, instance: ServiceInstance) -> str:
        env = render_environment(instance, self.settings)
        lines = [f"{key}={value}" for key, value in env.items()]
        lines.append(f"{self.settings.serve_binary} serve")
        return "\n".join(lines)

    def start(self, instance: ServiceInstance) -> bool:
        if self.is_ready(instance):
            return True
        env = os.environ.copy()
        env.pop("CUDA_VISIBLE_DEVICES", None)
        env.update(render_environment(instance, self.settings))
        try:
            self._procs[instance.name] = self._popen(
                [str(self.settings.serve_binary), "serve"],
                env=env,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Cannot start {instance.name}: {e}")
            return False
        return True

    def stop(self, instance: ServiceInstance) -> bool:
        proc = self._procs.pop(instance.name, None)
        if proc is None or proc.poll() is not None:
            return True
        proc.terminate()
        try:
            proc.wait(timeout=self.settings.reclaim_grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"{instance.name} ignored SIGTERM; killing")
            proc.kill()
            proc.wait()
        return True

    def restart(self, instance: ServiceInstance) -> bool:
        self.stop(instance)
        return self.start(instance)

    def is_ready(self, instance: ServiceInstance) -> bool:
        proc = self._procs.get(instance.name)
        return proc is not None and proc.poll() is None


def create_supervisor(settings: ServiceSettings) -> ProcessSupervisor:
    if settings.supervisor == SupervisorKind.SUBPROCESS:
        return SubprocessSupervisor(settings)
    return SystemdSupervisor(settings)
