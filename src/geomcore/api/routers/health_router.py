# src/geomcore/api/routers/health_router.py
# Copyright 2024 GeomCore Contributors
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # pyright: ignore[reportMissingImports]

from ... import __version__
from ...caching.redis_cache import SolveCache
from ...config.settings import Settings
from ...errors import DownstreamUnreachable, GeomCoreError
from ...ops.readiness import BackendState, ReadinessController
from ...registry import DefinitionRegistry
from ...serve.compute_client import ComputeClient
from ..deps import (
    get_backend_state,
    get_cache,
    get_compute,
    get_readiness,
    get_registry,
    get_settings,
)

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/healthcheck")
async def healthcheck(compute: ComputeClient = Depends(get_compute)):
    """Proxy the compute server's own health check."""
    upstream = await compute.healthcheck()
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "text/plain"),
    )


@router.post("/wakeup")
async def wakeup(
    readiness: ReadinessController = Depends(get_readiness),
    state: BackendState = Depends(get_backend_state),
) -> Dict[str, str]:
    state.touch()
    status = await readiness.ensure_running()
    return {"status": status}


@router.get("/version")
async def version(
    settings: Settings = Depends(get_settings),
    cache: SolveCache = Depends(get_cache),
    state: BackendState = Depends(get_backend_state),
) -> Dict[str, Any]:
    return {
        "service": "geomcore",
        "version": __version__,
        "compute_url": settings.compute_base,
        "cache": cache.stats(),
        "backend": state.snapshot(),
        "infra_configured": settings.azure_configured,
    }


@router.get("/api/health/files", response_model=List[str])
async def definition_files(registry: DefinitionRegistry = Depends(get_registry)):
    """Every definition file on disk, including ones shadowed by a preferred extension."""
    try:
        entries = sorted(os.listdir(registry.directory))
    except OSError as e:
        raise GeomCoreError("Unable to scan files") from e
    return [f for f in entries if os.path.splitext(f)[1].lower() in registry.extensions]


@router.get("/api/health/check-auth")
async def check_auth(compute: ComputeClient = Depends(get_compute)) -> Dict[str, str]:
    """Verify the configured API key against the compute server, without exposing the key."""
    try:
        upstream = await compute.healthcheck()
    except DownstreamUnreachable as e:
        return {"status": "fail", "message": e.message}
    if upstream.status_code == 200:
        return {"status": "pass", "message": "API Key accepted by Compute Server"}
    return {"status": "fail", "message": f"Server returned {upstream.status_code}"}


@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
