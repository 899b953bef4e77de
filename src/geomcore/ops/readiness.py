# Copyright 2024 GeomCore Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Backend readiness: wake the compute VM on demand, deallocate it when idle.

``BackendState`` is built once at startup and handed to the solve pipeline,
the readiness controller and the idle watchdog. It is never persisted; a
fresh process starts with ``last_activity = now`` so a reboot is never
mistaken for idleness.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from ..errors import ConfigurationMissing
from ..infra.vm_power import PowerState, VMPowerController
from ..serve.compute_client import ComputeClient
from .metrics import BACKEND_SHUTDOWNS, BACKEND_WAKEUPS

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_STARTING = "starting"


class BackendState:
    """Process-wide activity clock and in-progress guards."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.last_activity: float = clock()
        self.wakeup_in_progress: bool = False
        self.shutdown_in_progress: bool = False

    def touch(self) -> None:
        self.last_activity = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self.last_activity

    def snapshot(self) -> dict:
        return {
            "last_activity": self.last_activity,
            "idle_seconds": round(self.idle_seconds(), 1),
            "wakeup_in_progress": self.wakeup_in_progress,
            "shutdown_in_progress": self.shutdown_in_progress,
        }


class ReadinessController:
    """
    Decides whether the compute backend needs waking, and wakes it.

    ``ensure_running`` never issues a start command while the VM reports
    running or starting; in that case the server process inside is still
    booting and a second start would only waste a control-plane call.
    """

    def __init__(self,
                 compute: ComputeClient,
                 vm: VMPowerController,
                 state: BackendState,
                 idle_limit_s: float = 30 * 60,
                 wake_wait_s: float = 0.0,
                 wake_poll_s: float = 5.0):
        self.compute = compute
        self.vm = vm
        self.state = state
        self.idle_limit_s = idle_limit_s
        self.wake_wait_s = wake_wait_s
        self.wake_poll_s = wake_poll_s

    async def ensure_running(self) -> str:
        """Return ``"running"`` if the backend answers, else ``"starting"`` after nudging the VM."""
        if await self.compute.is_healthy():
            self.state.touch()
            BACKEND_WAKEUPS.labels(STATUS_RUNNING).inc()
            return STATUS_RUNNING

        logger.info("Service not responding. Checking VM power state...")
        power = await self.vm.power_state()

        if power.is_active:
            logger.info("VM is %s but service is not ready yet", power.value)
            status = STATUS_STARTING
        elif self.state.wakeup_in_progress:
            logger.info("Start command already in flight; not issuing another")
            status = STATUS_STARTING
        else:
            logger.warning("VM is %s. Sending start command...", power.value)
            self.state.wakeup_in_progress = True
            try:
                await self.vm.start()
            finally:
                self.state.wakeup_in_progress = False
            status = STATUS_STARTING

        BACKEND_WAKEUPS.labels(status).inc()
        if self.wake_wait_s > 0:
            return await self._wait_until_healthy(self.wake_wait_s)
        return status

    async def _wait_until_healthy(self, timeout_s: float) -> str:
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            await asyncio.sleep(self.wake_poll_s)
            if await self.compute.is_healthy():
                self.state.touch()
                logger.info("Compute backend became healthy")
                return STATUS_RUNNING
        logger.warning("Compute backend still not healthy after %.0fs", timeout_s)
        return STATUS_STARTING

    async def check_idle_and_shutdown(self) -> Optional[str]:
        """
        Deallocate the VM if nothing has touched the backend for ``idle_limit_s``.

        Returns ``"deallocated"`` when a stop was issued, else ``None``. Infra
        failures are logged and the cycle is skipped.
        """
        idle = self.state.idle_seconds()
        if idle <= self.idle_limit_s:
            return None
        if self.state.wakeup_in_progress or self.state.shutdown_in_progress:
            logger.debug("[Watchdog] Power action in progress; skipping cycle")
            return None

        logger.info("[Watchdog] Idle for %dm. Checking status...", int(idle // 60))
        self.state.shutdown_in_progress = True
        try:
            power = await self.vm.power_state()
            if power != PowerState.RUNNING:
                return None
            logger.warning("[Watchdog] Stopping VM to save costs...")
            await self.vm.deallocate()
            BACKEND_SHUTDOWNS.inc()
            return "deallocated"
        except ConfigurationMissing as e:
            logger.warning("[Watchdog] %s", e.message)
            return None
        except Exception as e:
            logger.error("[Watchdog] Error during shutdown check: %s", e)
            return None
        finally:
            self.state.shutdown_in_progress = False


class IdleWatchdog:
    """Runs ``check_idle_and_shutdown`` on a fixed period."""

    def __init__(self, controller: ReadinessController, interval_s: float = 60.0):
        self.controller = controller
        self.interval_s = interval_s
        self._loop_task: Optional[asyncio.Task] = None

    async def start(self):
        if self._loop_task is None or self._loop_task.done():
            logger.info(f"Starting idle watchdog (interval: {self.interval_s}s, "
                        f"idle limit: {self.controller.idle_limit_s}s)")
            self._loop_task = asyncio.create_task(self._poll_loop())

    async def stop(self):
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Idle watchdog stopped.")

    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _poll_loop(self):
        while True:
            try:
                await asyncio.sleep(self.interval_s)
                await self.controller.check_idle_and_shutdown()
            except asyncio.CancelledError:
                logger.info("Idle watchdog loop cancelled.")
                break
            except Exception as e:
                logger.error(f"Error in idle watchdog loop: {e}")
