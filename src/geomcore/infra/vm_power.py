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
Power control for the VM that hosts the compute server.

The compute server runs on an Azure spot VM that is deallocated when idle.
``AzureVMController`` wraps the three control-plane calls the readiness
controller needs: instance view, start and deallocate. The Azure client is
created lazily, so a process without Azure settings still boots and only the
infra operations report ``ConfigurationMissing``.
"""

import logging
from enum import Enum
from typing import Any, Iterable, List, Optional, Protocol

from ..errors import ConfigurationMissing, InfraCapacityError

logger = logging.getLogger(__name__)

# Azure error codes meaning the region has no capacity for the VM size right now.
CAPACITY_ERROR_MARKERS = ("OverconstrainedAllocationRequest", "SkuNotAvailable", "ZonalAllocationFailed")


class PowerState(str, Enum):
    RUNNING = "running"
    STARTING = "starting"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DEALLOCATING = "deallocating"
    DEALLOCATED = "deallocated"
    UNKNOWN = "unknown"

    @property
    def is_active(self) -> bool:
        return self in (PowerState.RUNNING, PowerState.STARTING)


def power_state_from_statuses(statuses: Optional[Iterable[Any]]) -> PowerState:
    """Read ``PowerState/<x>`` out of an instance-view status list."""
    codes: List[str] = []
    for status in statuses or []:
        code = getattr(status, "code", None)
        if code is None and isinstance(status, dict):
            code = status.get("code")
        if code:
            codes.append(code)

    for code in codes:
        if not code.startswith("PowerState/"):
            continue
        value = code.split("/", 1)[1].lower()
        try:
            return PowerState(value)
        except ValueError:
            logger.debug("Unrecognised power state code %s", code)
    return PowerState.UNKNOWN


class VMPowerController(Protocol):
    async def power_state(self) -> PowerState: ...

    async def start(self) -> None: ...

    async def deallocate(self) -> None: ...

    async def close(self) -> None: ...


class AzureVMController:
    """VM power control through ``azure-mgmt-compute``'s async client."""

    def __init__(self, subscription_id: Optional[str], resource_group: Optional[str], vm_name: Optional[str]):
        self.subscription_id = subscription_id
        self.resource_group = resource_group
        self.vm_name = vm_name
        self._credential = None
        self._client = None

    @property
    def missing_settings(self) -> List[str]:
        pairs = [
            ("AZURE_SUBSCRIPTION_ID", self.subscription_id),
            ("AZURE_RESOURCE_GROUP", self.resource_group),
            ("AZURE_VM_NAME", self.vm_name),
        ]
        return [name for name, value in pairs if not value]

    def _get_client(self):
        if self._client is None:
            missing = self.missing_settings
            if missing:
                raise ConfigurationMissing(missing)
            from azure.identity.aio import DefaultAzureCredential
            from azure.mgmt.compute.aio import ComputeManagementClient

            self._credential = DefaultAzureCredential()
            self._client = ComputeManagementClient(self._credential, self.subscription_id)
            logger.info("Azure compute client created for VM %s/%s", self.resource_group, self.vm_name)
        return self._client

    async def power_state(self) -> PowerState:
        client = self._get_client()
        view = await client.virtual_machines.instance_view(self.resource_group, self.vm_name)
        return power_state_from_statuses(getattr(view, "statuses", None))

    async def start(self) -> None:
        client = self._get_client()
        try:
            # fire the long-running operation; readiness is tracked via healthchecks
            await client.virtual_machines.begin_start(self.resource_group, self.vm_name)
        except Exception as e:
            if any(marker in str(e) for marker in CAPACITY_ERROR_MARKERS):
                raise InfraCapacityError() from e
            raise

    async def deallocate(self) -> None:
        client = self._get_client()
        await client.virtual_machines.begin_deallocate(self.resource_group, self.vm_name)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._credential is not None:
            await self._credential.close()
