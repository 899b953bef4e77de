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
Solve pipeline.

    COLLECT -> CHECK_CACHE -> HIT  -> respond
                           -> MISS -> CALL_BACKEND -> OK -> STORE -> respond
                                                   -> unreachable -> WAKE -> CALL_BACKEND (final)
                                                   -> logic error -> fail

The compute VM is a spot instance that is deallocated when idle, so a
connection failure usually means "asleep", not "broken". ``RetryPolicy``
allows exactly one wake-and-retry, and only for transport failures. A
non-2xx answer from compute is the definition's own error and is surfaced as
is.

Identical solves that arrive while one is already in flight share its
result instead of calling compute again.
"""

import asyncio
import hashlib
import json
import logging
import time
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..caching.redis_cache import SolveCache, compute_key, serialize_result
from ..compute.encoder import encode_inputs
from ..compute.payload import build_compute_body
from ..errors import DefinitionNotFound, DownstreamLogicError, DownstreamUnreachable
from ..models import Definition, SolveRequest
from ..ops.metrics import DOWNSTREAM_CALLS, SOLVE_CACHE, SOLVE_INFLIGHT_JOINS, SOLVE_LATENCY, outcome_of
from ..ops.readiness import BackendState, ReadinessController
from ..registry import DefinitionRegistry, read_definition_bytes
from ..serve.compute_client import ComputeClient

logger = logging.getLogger(__name__)

# Fields compute echoes back that callers must never see.
INTERNAL_RESPONSE_FIELDS = ("pointer", "Pointer")


class RetryPhase(str, Enum):
    FIRST_ATTEMPT = "first_attempt"
    FINAL_ATTEMPT = "final_attempt"
    EXHAUSTED = "exhausted"


class RetryAction(str, Enum):
    WAKE_AND_RETRY = "wake_and_retry"
    FAIL = "fail"


class RetryPolicy:
    """
    One wake-and-retry after a transport failure, then give up.

    FIRST_ATTEMPT --unreachable--> FINAL_ATTEMPT --any error--> EXHAUSTED
    FIRST_ATTEMPT --logic error--> EXHAUSTED
    """

    def __init__(self):
        self.phase = RetryPhase.FIRST_ATTEMPT

    @property
    def attempt(self) -> int:
        return 1 if self.phase == RetryPhase.FIRST_ATTEMPT else 2

    def on_failure(self, error: BaseException) -> RetryAction:
        if self.phase == RetryPhase.FIRST_ATTEMPT and isinstance(error, DownstreamUnreachable):
            self.phase = RetryPhase.FINAL_ATTEMPT
            return RetryAction.WAKE_AND_RETRY
        self.phase = RetryPhase.EXHAUSTED
        return RetryAction.FAIL


def strip_internal_fields(result: Any) -> Any:
    if isinstance(result, dict):
        return {k: v for k, v in result.items() if k not in INTERNAL_RESPONSE_FIELDS}
    return result


class SolveService:
    def __init__(self,
                 registry: DefinitionRegistry,
                 cache: SolveCache,
                 compute: ComputeClient,
                 readiness: ReadinessController,
                 state: BackendState):
        self.registry = registry
        self.cache = cache
        self.compute = compute
        self.readiness = readiness
        self.state = state
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    def collect(self, definition_name: str, inputs: Optional[Mapping[str, Any]]) -> SolveRequest:
        definition = self.registry.lookup_by_name(definition_name)
        if definition is None:
            raise DefinitionNotFound(definition_name)
        # the key must carry the current content hash, not the one from the last scan
        definition = self.registry.revalidate(definition)
        return SolveRequest(definition=definition, inputs=dict(inputs or {}))

    async def solve(self, definition_name: str, inputs: Optional[Mapping[str, Any]]) -> Any:
        # counts as activity even if it fails, so a misbehaving backend is not mistaken for idle
        self.state.touch()
        started = time.perf_counter()

        request = self.collect(definition_name, inputs)
        key = compute_key(request.definition, request.inputs)

        cached = await self.cache.get(key)
        if cached is not None:
            SOLVE_CACHE.labels("hit").inc()
            SOLVE_LATENCY.labels("cache").observe(time.perf_counter() - started)
            logger.debug("Cache hit for %s", request.definition.name)
            return json.loads(cached)
        SOLVE_CACHE.labels("miss").inc()

        task = self._inflight.get(key)
        if task is not None:
            SOLVE_INFLIGHT_JOINS.inc()
            logger.debug("Joining in-flight solve for %s", request.definition.name)
        else:
            task = asyncio.ensure_future(self._solve_uncached(request, key))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))

        # shielded: a client disconnect must not abort a solve others may be waiting on
        result = await asyncio.shield(task)
        SOLVE_LATENCY.labels("compute").observe(time.perf_counter() - started)
        return result

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark retrieved; every waiter re-raises it on its own
            task.exception()

    async def _solve_uncached(self, request: SolveRequest, key: str) -> Any:
        definition = request.definition
        policy = RetryPolicy()
        while True:
            logger.info("Solving %s (Attempt %d)...", definition.name, policy.attempt)
            try:
                result = await self._call_backend(definition, request.inputs)
                break
            except (DownstreamUnreachable, DownstreamLogicError) as e:
                DOWNSTREAM_CALLS.labels("grasshopper", outcome_of(e)).inc()
                if policy.on_failure(e) is not RetryAction.WAKE_AND_RETRY:
                    raise
                logger.warning("Compute Server unreachable. Attempting to wake up VM...")
                status = await self.readiness.ensure_running()
                logger.info("Backend wake-up returned %s; retrying solve once", status)
        DOWNSTREAM_CALLS.labels("grasshopper", "ok").inc()

        result = strip_internal_fields(result)
        await self.cache.put(key, serialize_result(result))
        return result

    async def _call_backend(self, definition: Definition, inputs: Mapping[str, Any]) -> Any:
        values = encode_inputs(inputs)
        # read fresh every time so definitions can be edited without a restart
        try:
            content = await read_definition_bytes(definition)
        except FileNotFoundError as e:
            raise DefinitionNotFound(definition.name) from e
        pointer = "md5_" + hashlib.md5(content).hexdigest()
        body = build_compute_body(content, pointer, values)
        return await self.compute.grasshopper(body)
