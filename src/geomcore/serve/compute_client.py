#!/usr/bin/env python3
"""
Compute Service Client for GeomCore

Thin client for the Rhino Compute endpoints the facade depends on:
- POST /io           parameter introspection
- POST /grasshopper  solve
- GET  /healthcheck  liveness, used by the readiness controller
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..config.security import compute_auth_headers, mask_secret
from ..errors import DownstreamUnreachable
from .base_client import BaseServiceClient

logger = logging.getLogger(__name__)


class ComputeClient(BaseServiceClient):
    """Client for the downstream geometry compute server."""

    def __init__(self,
                 base_url: str,
                 api_key: Optional[str] = None,
                 solve_timeout: Optional[float] = None,
                 health_timeout: float = 2.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            service_name="compute",
            base_url=base_url,
            timeout=solve_timeout,
            headers=compute_auth_headers(api_key),
            transport=transport,
        )
        self.health_timeout = health_timeout
        logger.info("Compute client configured for %s (key=%s)", self.base_url, mask_secret(api_key))

    async def io(self, body: Dict[str, Any]) -> Any:
        return await self.post_json("/io", json=body)

    async def grasshopper(self, body: Dict[str, Any]) -> Any:
        return await self.post_json("/grasshopper", json=body)

    async def healthcheck(self, timeout: Optional[float] = None) -> httpx.Response:
        """Raw healthcheck response. Transport failures raise DownstreamUnreachable."""
        return await self.request(
            "GET", "/healthcheck",
            timeout=timeout if timeout is not None else self.health_timeout,
        )

    async def is_healthy(self) -> bool:
        try:
            response = await self.healthcheck()
        except DownstreamUnreachable:
            return False
        return response.is_success
