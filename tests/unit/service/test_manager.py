# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for ServiceInstanceManager."""

from unittest.mock import Mock

import pytest

from gpusweep.common.config import ServiceSettings
from gpusweep.common.enums import InstanceState, ReadyOutcome
from gpusweep.common.exceptions import ConfigurationError
from gpusweep.service.manager import ServiceInstanceManager, build_instances
from gpusweep.service.models import ServiceInstance


@pytest.fixture
def reclaim():
    return Mock(return_value=[])


@pytest.fixture
def manager(fake_supervisor, fake_client, sweep_config, fake_clock, reclaim):
    return ServiceInstanceManager(
        fake_supervisor,
        fake_client,
        sweep_config.service,
        clock=fake_clock,
        sleep=fake_clock.sleep,
        reclaim=reclaim,
    )


class TestBuildInstances:
    def test_shared_and_lettered_test_instances(self):
        shared, tests = build_instances(ServiceSettings(test_ports=[11435, 11436, 11437]))
        assert shared.shared
        assert shared.port == 11434
        assert [t.suffix for t in tests] == ["A", "B", "C"]
        assert [t.name for t in tests] == ["ollama-test-a", "ollama-test-b", "ollama-test-c"]
        assert not any(t.shared for t in tests)


class TestRegistration:
    def test_port_conflict_rejected(self, manager, test_instance):
        manager.register(test_instance)
        with pytest.raises(ConfigurationError, match="Port 11435"):
            manager.register(ServiceInstance(name="other", port=11435))

    def test_gpu_conflict_rejected(self, manager):
        manager.register(ServiceInstance(name="a", port=11435, gpu_uuid="GPU-1"))
        with pytest.raises(ConfigurationError, match="GPU-1"):
            manager.register(ServiceInstance(name="b", port=11436, gpu_uuid="GPU-1"))

    def test_bind_gpu_conflict_rejected(self, manager):
        a = manager.register(ServiceInstance(name="a", port=11435))
        b = manager.register(ServiceInstance(name="b", port=11436))
        manager.bind_gpu(a, "GPU-1")
        with pytest.raises(ConfigurationError, match="already bound"):
            manager.bind_gpu(b, "GPU-1")
        assert a.gpu_uuid == "GPU-1"
        assert b.gpu_uuid is None

    def test_bind_gpu_refuses_shared(self, manager, shared_instance):
        manager.register(shared_instance)
        with pytest.raises(ConfigurationError):
            manager.bind_gpu(shared_instance, "GPU-1")


class TestRestart:
    """The shared instance is never touched; test instances are reclaimed."""

    def test_shared_instance_is_never_restarted(self, manager, fake_supervisor, shared_instance, reclaim):
        assert manager.restart(shared_instance)
        manager.stop(shared_instance)
        assert fake_supervisor.calls == []
        reclaim.assert_not_called()

    def test_restart_stops_reclaims_and_starts(self, manager, fake_supervisor, test_instance, reclaim):
        assert manager.restart(test_instance)
        assert fake_supervisor.calls == [("stop", "ollama-test-a"), ("start", "ollama-test-a")]
        reclaim.assert_called_once_with(11435, 0.0)
        assert test_instance.state == InstanceState.STARTING

    def test_failed_start_marks_failed(self, manager, fake_supervisor, test_instance):
        fake_supervisor.start = Mock(return_value=False)
        assert manager.start(test_instance) is False
        assert test_instance.state == InstanceState.FAILED


class TestEnsureReady:
    def test_ready_immediately(self, manager, test_instance, fake_clock):
        assert manager.ensure_ready(test_instance, timeout=5) == ReadyOutcome.READY
        assert test_instance.state == InstanceState.READY
        assert fake_clock.sleeps == []

    def test_timeout_returns_outcome_without_raising(self, manager, fake_client, test_instance, fake_clock):
        fake_client.down.add(test_instance.endpoint)
        assert manager.ensure_ready(test_instance, timeout=5) == ReadyOutcome.TIMED_OUT
        assert test_instance.state == InstanceState.FAILED
        assert fake_clock.now == pytest.approx(5.0)

    def test_becomes_ready_while_polling(self, manager, fake_client, test_instance, fake_clock):
        fake_client.down.add(test_instance.endpoint)
        original_sleep = fake_clock.sleep

        def sleep_then_come_up(seconds):
            original_sleep(seconds)
            if fake_clock.now >= 2:
                fake_client.down.discard(test_instance.endpoint)

        manager._sleep = sleep_then_come_up
        assert manager.ensure_ready(test_instance, timeout=5) == ReadyOutcome.READY
        assert fake_clock.now == pytest.approx(2.0)


class TestEnsureShared:
    def test_running_shared_is_used_as_is(self, manager, fake_supervisor, shared_instance):
        manager.ensure_shared(shared_instance, provision=False, timeout=5)
        assert shared_instance.state == InstanceState.READY
        assert fake_supervisor.calls == []

    def test_absent_shared_without_provisioning_raises(self, manager, fake_client, shared_instance):
        fake_client.down.add(shared_instance.endpoint)
        with pytest.raises(ConfigurationError, match="not reachable"):
            manager.ensure_shared(shared_instance, provision=False, timeout=5)

    def test_absent_shared_is_provisioned_on_opt_in(
        self, manager, fake_client, fake_supervisor, shared_instance, reclaim
    ):
        fake_client.down.add(shared_instance.endpoint)
        fake_supervisor.start = Mock(side_effect=lambda inst: fake_client.down.discard(inst.endpoint) or True)

        manager.ensure_shared(shared_instance, provision=True, timeout=5)
        fake_supervisor.start.assert_called_once_with(shared_instance)
        reclaim.assert_not_called()
        assert shared_instance.state == InstanceState.READY
