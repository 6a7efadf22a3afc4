# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for the process supervision backends."""

import subprocess
from unittest.mock import Mock

import pytest

from gpusweep.common.config import ServiceSettings
from gpusweep.service.models import ServiceInstance
from gpusweep.service.supervisor import (
    ProcessSupervisor,
    SubprocessSupervisor,
    SystemdSupervisor,
    create_supervisor,
    render_environment,
)


def _completed(returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr="")


@pytest.fixture
def settings(tmp_path):
    return ServiceSettings(unit_dir=tmp_path / "units", serve_binary="/opt/ollama/bin/ollama")


@pytest.fixture
def instance():
    return ServiceInstance(name="ollama-test-a", port=11435, suffix="A", gpu_uuid="GPU-2222")


class TestRenderEnvironment:
    def test_gpu_binding_sets_visible_devices(self, settings, instance):
        env = render_environment(instance, settings)
        assert env == {"OLLAMA_HOST": "127.0.0.1:11435", "CUDA_VISIBLE_DEVICES": "GPU-2222"}

    def test_unbound_instance_has_no_visible_devices(self, settings):
        env = render_environment(ServiceInstance(name="x", port=11436), settings)
        assert "CUDA_VISIBLE_DEVICES" not in env

    def test_models_dir_is_passed(self, tmp_path, instance):
        settings = ServiceSettings(models_dir=tmp_path / "models")
        assert render_environment(instance, settings)["OLLAMA_MODELS"] == str(tmp_path / "models")


class TestSystemdSupervisor:
    """Tests for unit rendering and systemctl calls."""

    def test_render_contains_binding_and_restart_policy(self, settings, instance):
        text = SystemdSupervisor(settings).render(instance)
        assert "Environment=OLLAMA_HOST=127.0.0.1:11435" in text
        assert "Environment=CUDA_VISIBLE_DEVICES=GPU-2222" in text
        assert "ExecStart=/opt/ollama/bin/ollama serve" in text
        assert "Restart=always" in text
        assert "RestartSec=2s" in text

    def test_render_includes_user_when_configured(self, tmp_path, instance):
        settings = ServiceSettings(unit_dir=tmp_path, run_as_user="ollama")
        assert "User=ollama" in SystemdSupervisor(settings).render(instance)

    def test_start_writes_unit_and_reloads(self, settings, instance):
        run = Mock(return_value=_completed())
        supervisor = SystemdSupervisor(settings, run=run)

        assert supervisor.start(instance)
        assert supervisor.unit_path(instance).read_text() == supervisor.render(instance)
        commands = [c.args[0] for c in run.call_args_list]
        assert commands == [
            ["systemctl", "daemon-reload"],
            ["systemctl", "start", "ollama-test-a.service"],
        ]

    def test_unchanged_unit_skips_reload(self, settings, instance):
        run = Mock(return_value=_completed())
        supervisor = SystemdSupervisor(settings, run=run)
        supervisor.start(instance)
        run.reset_mock()

        supervisor.restart(instance)
        assert [c.args[0] for c in run.call_args_list] == [["systemctl", "restart", "ollama-test-a.service"]]

    def test_binding_change_rewrites_unit(self, settings, instance):
        run = Mock(return_value=_completed())
        supervisor = SystemdSupervisor(settings, run=run)
        supervisor.start(instance)

        instance.gpu_uuid = "GPU-1111"
        supervisor.restart(instance)
        assert "CUDA_VISIBLE_DEVICES=GPU-1111" in supervisor.unit_path(instance).read_text()

    @pytest.mark.parametrize("returncode,expected", [(0, True), (3, False)])
    def test_is_ready_uses_is_active(self, settings, instance, returncode, expected):
        run = Mock(return_value=_completed(returncode))
        assert SystemdSupervisor(settings, run=run).is_ready(instance) is expected
        assert run.call_args.args[0] == ["systemctl", "is-active", "--quiet", "ollama-test-a.service"]

    def test_missing_systemctl_returns_false(self, settings, instance):
        run = Mock(side_effect=FileNotFoundError())
        assert SystemdSupervisor(settings, run=run).stop(instance) is False


class TestSubprocessSupervisor:
    """Tests for running servers as child processes."""

    def test_start_launches_with_binding(self, settings, instance):
        proc = Mock()
        proc.poll.return_value = None
        popen = Mock(return_value=proc)
        supervisor = SubprocessSupervisor(settings, popen=popen)

        assert supervisor.start(instance)
        env = popen.call_args.kwargs["env"]
        assert env["CUDA_VISIBLE_DEVICES"] == "GPU-2222"
        assert env["OLLAMA_HOST"] == "127.0.0.1:11435"
        assert supervisor.is_ready(instance)

    def test_start_when_running_does_not_relaunch(self, settings, instance):
        proc = Mock()
        proc.poll.return_value = None
        popen = Mock(return_value=proc)
        supervisor = SubprocessSupervisor(settings, popen=popen)
        supervisor.start(instance)
        supervisor.start(instance)
        assert popen.call_count == 1

    def test_stop_terminates_then_kills(self, settings, instance):
        proc = Mock()
        proc.poll.return_value = None
        proc.wait.side_effect = [subprocess.TimeoutExpired(cmd="ollama", timeout=5), 0]
        supervisor = SubprocessSupervisor(settings, popen=Mock(return_value=proc))
        supervisor.start(instance)

        assert supervisor.stop(instance)
        proc.terminate.assert_called_once()
        proc.kill.assert_called_once()
        assert not supervisor.is_ready(instance)

    def test_popen_failure_returns_false(self, settings, instance):
        supervisor = SubprocessSupervisor(settings, popen=Mock(side_effect=OSError("no such file")))
        assert supervisor.start(instance) is False


class TestCreateSupervisor:
    @pytest.mark.parametrize(
        "kind,expected",
        [("systemd", SystemdSupervisor), ("subprocess", SubprocessSupervisor)],
    )
    def test_create_supervisor(self, kind, expected):
        supervisor = create_supervisor(ServiceSettings(supervisor=kind))
        assert isinstance(supervisor, expected)
        assert isinstance(supervisor, ProcessSupervisor)
