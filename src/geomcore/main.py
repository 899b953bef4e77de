"""
Main GeomCore FastAPI application.

The lifespan builds every component once and passes them to each other
explicitly: registry, solve cache, backend state, compute client, VM
controller, readiness controller, services and the idle watchdog. Routes
reach them through ``app.state``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from . import __version__
from .api.errors import install_error_handlers
from .api.routers import definition_router, health_router, solve_router
from .caching.redis_cache import SolveCache
from .config.settings import Settings
from .infra.vm_power import AzureVMController, VMPowerController
from .ops.readiness import BackendState, IdleWatchdog, ReadinessController
from .registry import DefinitionRegistry
from .serve.compute_client import ComputeClient
from .services import DefinitionService, SolveService

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               *,
               compute_transport: Optional[httpx.AsyncBaseTransport] = None,
               vm_controller: Optional[VMPowerController] = None,
               cache: Optional[SolveCache] = None) -> FastAPI:
    """
    Build the app. The keyword arguments replace the real collaborators
    (compute HTTP transport, Azure controller, cache) and exist for tests.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting GeomCore API application...")
        logger.info("RHINO_COMPUTE_URL: %s", settings.compute_base)

        registry = DefinitionRegistry(settings.definitions_dir)
        registry.refresh()

        solve_cache = cache or SolveCache(settings.redis_url, max_entries=settings.cache_max_entries)
        logger.info("Solve cache mode: %s", solve_cache.mode)

        state = BackendState()
        compute = ComputeClient(
            settings.compute_base,
            api_key=settings.compute_key,
            solve_timeout=settings.solve_timeout_s,
            health_timeout=settings.health_timeout_s,
            transport=compute_transport,
        )
        vm = vm_controller or AzureVMController(
            settings.azure_subscription_id,
            settings.azure_resource_group,
            settings.azure_vm_name,
        )
        if not settings.azure_configured and vm_controller is None:
            logger.warning("Azure settings missing (%s); backend wake-up and idle shutdown are unavailable",
                           ", ".join(settings.missing_azure_settings))

        readiness = ReadinessController(
            compute, vm, state,
            idle_limit_s=settings.idle_limit_s,
            wake_wait_s=settings.wake_wait_s,
        )

        app.state.settings = settings
        app.state.registry = registry
        app.state.cache = solve_cache
        app.state.backend_state = state
        app.state.compute = compute
        app.state.vm = vm
        app.state.readiness = readiness
        app.state.definition_service = DefinitionService(registry, compute)
        app.state.solve_service = SolveService(registry, solve_cache, compute, readiness, state)

        watchdog = IdleWatchdog(readiness, interval_s=settings.idle_check_interval_s)
        app.state.watchdog = watchdog
        if settings.enable_watchdog and (settings.azure_configured or vm_controller is not None):
            await watchdog.start()

        logger.info("GeomCore API application startup complete")
        yield

        logger.info("Shutting down GeomCore API application...")
        await watchdog.stop()
        await compute.close()
        await vm.close()
        await solve_cache.close()
        logger.info("GeomCore API application shutdown complete")

    app = FastAPI(
        title="GeomCore API",
        description="Caching facade for Grasshopper definitions solved on Rhino Compute",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app, production=settings.is_production)

    app.include_router(health_router)
    app.include_router(solve_router)
    app.include_router(definition_router)
    return app


app = create_app()
