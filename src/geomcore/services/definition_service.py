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
Definition lookup and parameter introspection.

``describe`` calls the compute server's ``/io`` once per definition and
memoizes the normalized result on the ``Definition``. Failures surface
immediately as ``DescribeError`` and are never retried: a bad definition file
should be visible right away, not masked by a wake-and-retry cycle.
"""

import logging
from typing import Dict, List

from ..compute.normalizer import normalize_io_response
from ..compute.payload import build_compute_body
from ..errors import DefinitionNotFound, DescribeError, DownstreamLogicError, DownstreamUnreachable
from ..models import Definition, DefinitionInfo
from ..ops.metrics import DOWNSTREAM_CALLS, outcome_of
from ..registry import DefinitionRegistry, read_definition_bytes
from ..serve.compute_client import ComputeClient

logger = logging.getLogger(__name__)


class DefinitionService:
    def __init__(self, registry: DefinitionRegistry, compute: ComputeClient):
        self.registry = registry
        self.compute = compute

    def list_definitions(self) -> List[Dict[str, str]]:
        return [d.summary() for d in self.registry.definitions()]

    def resolve(self, name: str) -> Definition:
        definition = self.registry.lookup_by_name(name)
        if definition is None:
            raise DefinitionNotFound(name)
        return self.registry.revalidate(definition)

    def resolve_id(self, definition_id: str) -> Definition:
        definition = self.registry.lookup_by_id(definition_id)
        if definition is None:
            raise DefinitionNotFound(definition_id)
        return definition

    def resolve_name_or_path(self, name_or_path: str) -> Definition:
        """Registered name first, then a file path inside the definitions directory."""
        definition = self.registry.lookup_by_name(name_or_path)
        if definition is None:
            definition = self.registry.register_path(name_or_path)
        if definition is None:
            raise DefinitionNotFound(name_or_path)
        return self.registry.revalidate(definition)

    async def describe(self, definition: Definition) -> DefinitionInfo:
        if definition.info is not None:
            return definition.info

        try:
            content = await read_definition_bytes(definition)
        except OSError as e:
            raise DescribeError(f"Cannot read definition {definition.name}: {e}") from e

        body = build_compute_body(content, definition.pointer)
        try:
            raw = await self.compute.io(body)
        except DownstreamLogicError as e:
            DOWNSTREAM_CALLS.labels("io", outcome_of(e)).inc()
            logger.error("Error getting params for %s: %s", definition.name, e.message)
            raise DescribeError(e.message, status=e.status, body=e.body) from e
        except DownstreamUnreachable as e:
            DOWNSTREAM_CALLS.labels("io", outcome_of(e)).inc()
            logger.error("Error getting params for %s: %s", definition.name, e.message)
            raise DescribeError(f"Compute Server unreachable: {e.message}") from e
        DOWNSTREAM_CALLS.labels("io", "ok").inc()

        info = normalize_io_response(raw)
        definition.info = info
        logger.info("Described %s: %d inputs, %d outputs, view=%s",
                    definition.name, len(info.inputs), len(info.outputs), info.view)
        return info
