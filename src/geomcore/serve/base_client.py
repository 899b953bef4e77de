#!/usr/bin/env python3
"""
Base Service Client for GeomCore

This module provides a base async HTTP client with standardized error
classification for downstream services:

- transport failures (refused, reset, timeout)  -> DownstreamUnreachable
- non-2xx responses                             -> DownstreamLogicError

Retries are deliberately NOT done here; the solve pipeline owns its own
wake-and-retry-once policy.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import DownstreamLogicError, DownstreamUnreachable

logger = logging.getLogger(__name__)

_UNSET = object()


class BaseServiceClient:
    """Base HTTP client shared by all GeomCore downstream clients."""

    def __init__(self,
                 service_name: str,
                 base_url: str,
                 timeout: Optional[float] = 10.0,
                 connect_timeout: float = 5.0,
                 headers: Optional[Dict[str, str]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.service_name = service_name
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        # read timeout may be None (unbounded) for slow solves; connect stays short
        self.http = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout,
                connect=connect_timeout if timeout is None else min(timeout, connect_timeout),
            ),
            headers=headers or {},
            transport=transport,
        )

    async def request(self, method: str, endpoint: str, timeout: Any = _UNSET, **kwargs) -> httpx.Response:
        """Send a request; raise DownstreamUnreachable on transport failure."""
        url = f"{self.base_url}{endpoint}"
        if timeout is not _UNSET:
            kwargs["timeout"] = timeout
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"HTTP timeout for {self.service_name} {method} {endpoint}: {e.__class__.__name__}: {e}")
            raise DownstreamUnreachable(f"{self.service_name} timed out: {e.__class__.__name__}", cause=e) from e
        except httpx.TransportError as e:
            logger.warning(f"HTTP transport error for {self.service_name} {method} {endpoint}: {e.__class__.__name__}: {e}")
            raise DownstreamUnreachable(f"{self.service_name} unreachable: {e}", cause=e) from e

    async def post_json(self, endpoint: str, json: Optional[dict] = None, **kwargs) -> Any:
        """POST and return the parsed JSON body; non-2xx raises DownstreamLogicError."""
        response = await self.request("POST", endpoint, json=json, **kwargs)
        return self._json_or_raise(response)

    def _json_or_raise(self, response: httpx.Response) -> Any:
        if not response.is_success:
            raise DownstreamLogicError(response.status_code, response.text)
        try:
            return response.json()
        except ValueError:
            raise DownstreamLogicError(502, f"Invalid JSON from {self.service_name}: {response.text[:200]}")

    async def close(self):
        """Close the HTTP client."""
        await self.http.aclose()

    def __del__(self):
        """Cleanup on deletion."""
        try:
            if hasattr(self, 'http') and not self.http.is_closed:
                asyncio.get_running_loop().create_task(self.http.aclose())
        except RuntimeError:
            pass
