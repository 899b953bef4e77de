"""
Tests for backend readiness: wake-up decisions, idle shutdown, the watchdog
loop and the Azure power controller.
"""

import asyncio
import inspect
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from compute_stubs import FakeVMController
from geomcore.errors import ConfigurationMissing, InfraCapacityError
from geomcore.infra.vm_power import AzureVMController, PowerState, power_state_from_statuses
from geomcore.ops.readiness import (
    STATUS_RUNNING,
    STATUS_STARTING,
    BackendState,
    IdleWatchdog,
    ReadinessController,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestBackendState:
    """Activity clock."""

    def test_fresh_state_is_not_idle(self):
        clock = FakeClock()
        state = BackendState(clock=clock)

        assert state.idle_seconds() == 0
        assert not state.wakeup_in_progress
        assert not state.shutdown_in_progress

    def test_touch_resets_idle_time(self):
        clock = FakeClock()
        state = BackendState(clock=clock)
        clock.advance(120)
        assert state.idle_seconds() == 120

        state.touch()

        assert state.idle_seconds() == 0
        assert state.snapshot()["last_activity"] == clock.now


class TestEnsureRunning:
    """Wake-up decisions."""

    @pytest.mark.asyncio
    async def test_healthy_backend_is_running(self, pipeline, stub, vm):
        pipeline.state.last_activity = 0.0

        assert await pipeline.readiness.ensure_running() == STATUS_RUNNING
        assert vm.power_calls == 0
        assert vm.start_calls == 0
        assert pipeline.state.last_activity > 0.0

    @pytest.mark.asyncio
    async def test_unhealthy_5xx_counts_as_down(self, pipeline, stub, vm):
        stub.health_status = 503

        assert await pipeline.readiness.ensure_running() == STATUS_STARTING
        assert vm.start_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("power", [PowerState.RUNNING, PowerState.STARTING])
    async def test_active_vm_is_not_started_again(self, pipeline, stub, vm, power):
        stub.healthy = False
        vm.state = power

        assert await pipeline.readiness.ensure_running() == STATUS_STARTING
        assert vm.start_calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("power", [PowerState.DEALLOCATED, PowerState.STOPPED, PowerState.UNKNOWN])
    async def test_inactive_vm_is_started_once(self, pipeline, stub, vm, power):
        stub.healthy = False
        vm.state = power

        assert await pipeline.readiness.ensure_running() == STATUS_STARTING
        assert vm.start_calls == 1
        assert pipeline.state.wakeup_in_progress is False

    @pytest.mark.asyncio
    async def test_start_in_flight_is_not_repeated(self, pipeline, stub, vm):
        stub.healthy = False
        pipeline.state.wakeup_in_progress = True

        assert await pipeline.readiness.ensure_running() == STATUS_STARTING
        assert vm.start_calls == 0

    @pytest.mark.asyncio
    async def test_capacity_error_propagates_and_clears_flag(self, pipeline, stub, vm):
        stub.healthy = False
        vm.start_error = InfraCapacityError()

        with pytest.raises(InfraCapacityError):
            await pipeline.readiness.ensure_running()

        assert pipeline.state.wakeup_in_progress is False

    @pytest.mark.asyncio
    async def test_missing_configuration_propagates(self, pipeline, stub, vm):
        stub.healthy = False
        vm.power_error = ConfigurationMissing(["AZURE_VM_NAME"])

        with pytest.raises(ConfigurationMissing) as exc_info:
            await pipeline.readiness.ensure_running()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_wake_wait_polls_until_healthy(self, pipeline, stub, vm):
        stub.healthy = False
        readiness = ReadinessController(pipeline.compute, vm, pipeline.state, wake_wait_s=1.0, wake_poll_s=0.01)

        async def recover():
            await asyncio.sleep(0.03)
            stub.healthy = True

        recovery = asyncio.create_task(recover())
        status = await readiness.ensure_running()
        await recovery

        assert status == STATUS_RUNNING
        assert vm.start_calls == 1


class TestIdleShutdown:
    """Deallocation after the idle limit."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def controller(self, pipeline, clock):
        state = BackendState(clock=clock)
        return ReadinessController(pipeline.compute, pipeline.vm, state, idle_limit_s=30 * 60)

    @pytest.mark.asyncio
    async def test_not_idle_does_nothing(self, controller, clock, vm):
        clock.advance(29 * 60)

        assert await controller.check_idle_and_shutdown() is None
        assert vm.power_calls == 0

    @pytest.mark.asyncio
    async def test_idle_running_vm_is_deallocated(self, controller, clock, vm):
        vm.state = PowerState.RUNNING
        clock.advance(31 * 60)

        assert await controller.check_idle_and_shutdown() == "deallocated"
        assert vm.deallocate_calls == 1
        assert controller.state.shutdown_in_progress is False

    @pytest.mark.asyncio
    async def test_idle_stopped_vm_is_left_alone(self, controller, clock, vm):
        vm.state = PowerState.DEALLOCATED
        clock.advance(31 * 60)

        assert await controller.check_idle_and_shutdown() is None
        assert vm.deallocate_calls == 0

    @pytest.mark.asyncio
    async def test_recent_activity_prevents_shutdown(self, controller, clock, vm):
        vm.state = PowerState.RUNNING
        clock.advance(31 * 60)
        controller.state.touch()

        assert await controller.check_idle_and_shutdown() is None
        assert vm.deallocate_calls == 0

    @pytest.mark.asyncio
    async def test_skipped_while_wakeup_in_progress(self, controller, clock, vm):
        vm.state = PowerState.RUNNING
        clock.advance(31 * 60)
        controller.state.wakeup_in_progress = True

        assert await controller.check_idle_and_shutdown() is None
        assert vm.power_calls == 0

    @pytest.mark.asyncio
    async def test_infra_failure_is_swallowed(self, controller, clock, vm):
        vm.power_error = RuntimeError("control plane down")
        clock.advance(31 * 60)

        assert await controller.check_idle_and_shutdown() is None
        assert controller.state.shutdown_in_progress is False

    @pytest.mark.asyncio
    async def test_missing_configuration_is_swallowed(self, controller, clock, vm):
        vm.power_error = ConfigurationMissing(["AZURE_SUBSCRIPTION_ID"])
        clock.advance(31 * 60)

        assert await controller.check_idle_and_shutdown() is None


class TestIdleWatchdog:
    """Periodic loop."""

    @pytest.mark.asyncio
    async def test_runs_checks_until_stopped(self):
        controller = MagicMock()
        controller.idle_limit_s = 1800
        controller.check_idle_and_shutdown = AsyncMock(return_value=None)
        watchdog = IdleWatchdog(controller, interval_s=0.01)

        await watchdog.start()
        assert watchdog.is_running()
        await asyncio.sleep(0.05)
        await watchdog.stop()

        assert controller.check_idle_and_shutdown.await_count >= 1
        assert not watchdog.is_running()

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self):
        controller = MagicMock()
        controller.idle_limit_s = 1800
        controller.check_idle_and_shutdown = AsyncMock(side_effect=RuntimeError("boom"))
        watchdog = IdleWatchdog(controller, interval_s=0.01)

        await watchdog.start()
        await asyncio.sleep(0.05)
        assert watchdog.is_running()
        await watchdog.stop()

        assert controller.check_idle_and_shutdown.await_count >= 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        controller = MagicMock()
        controller.idle_limit_s = 1800
        controller.check_idle_and_shutdown = AsyncMock(return_value=None)
        watchdog = IdleWatchdog(controller, interval_s=10)

        await watchdog.start()
        task = watchdog._loop_task
        await watchdog.start()

        assert watchdog._loop_task is task
        await watchdog.stop()


class TestPowerStateParsing:
    """Instance-view status codes."""

    def test_reads_power_state_from_objects(self):
        statuses = [
            SimpleNamespace(code="ProvisioningState/succeeded"),
            SimpleNamespace(code="PowerState/deallocated"),
        ]

        assert power_state_from_statuses(statuses) is PowerState.DEALLOCATED

    def test_reads_power_state_from_dicts(self):
        assert power_state_from_statuses([{"code": "PowerState/running"}]) is PowerState.RUNNING

    def test_unknown_when_absent(self):
        assert power_state_from_statuses([]) is PowerState.UNKNOWN
        assert power_state_from_statuses(None) is PowerState.UNKNOWN
        assert power_state_from_statuses([{"code": "PowerState/hibernated"}]) is PowerState.UNKNOWN


class TestAzureVMController:
    """Azure control-plane wrapper with a mocked management client."""

    @pytest.fixture
    def controller(self):
        controller = AzureVMController("sub-id", "rg", "compute-vm")
        controller._client = MagicMock()
        controller._client.virtual_machines.instance_view = AsyncMock(
            return_value=SimpleNamespace(statuses=[SimpleNamespace(code="PowerState/running")])
        )
        controller._client.virtual_machines.begin_start = AsyncMock()
        controller._client.virtual_machines.begin_deallocate = AsyncMock()
        controller._client.close = AsyncMock()
        return controller

    def test_missing_settings(self):
        assert AzureVMController(None, "rg", "").missing_settings == ["AZURE_SUBSCRIPTION_ID", "AZURE_VM_NAME"]

    @pytest.mark.asyncio
    async def test_unconfigured_controller_raises(self):
        controller = AzureVMController(None, None, None)

        with pytest.raises(ConfigurationMissing) as exc_info:
            await controller.power_state()

        assert exc_info.value.missing == ["AZURE_SUBSCRIPTION_ID", "AZURE_RESOURCE_GROUP", "AZURE_VM_NAME"]

    @pytest.mark.asyncio
    async def test_power_state(self, controller):
        assert await controller.power_state() is PowerState.RUNNING
        controller._client.virtual_machines.instance_view.assert_awaited_once_with("rg", "compute-vm")

    @pytest.mark.asyncio
    async def test_start_and_deallocate(self, controller):
        await controller.start()
        await controller.deallocate()

        controller._client.virtual_machines.begin_start.assert_awaited_once_with("rg", "compute-vm")
        controller._client.virtual_machines.begin_deallocate.assert_awaited_once_with("rg", "compute-vm")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("marker", ["OverconstrainedAllocationRequest", "SkuNotAvailable", "ZonalAllocationFailed"])
    async def test_capacity_errors_are_mapped(self, controller, marker):
        controller._client.virtual_machines.begin_start.side_effect = Exception(f"(Conflict) {marker}: no capacity")

        with pytest.raises(InfraCapacityError) as exc_info:
            await controller.start()

        assert exc_info.value.status_code == 503
        assert "capacity" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_other_start_errors_propagate(self, controller):
        controller._client.virtual_machines.begin_start.side_effect = PermissionError("AuthorizationFailed")

        with pytest.raises(PermissionError):
            await controller.start()

    @pytest.mark.asyncio
    async def test_close(self, controller):
        await controller.close()

        controller._client.close.assert_awaited_once()


def test_fake_vm_matches_protocol():
    vm = FakeVMController()

    for name in ("power_state", "start", "deallocate", "close"):
        assert inspect.iscoroutinefunction(getattr(vm, name))
