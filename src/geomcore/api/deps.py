"""FastAPI dependencies resolving the components built in the app lifespan."""

from fastapi import Request

from ..caching.redis_cache import SolveCache
from ..config.settings import Settings
from ..ops.readiness import BackendState, ReadinessController
from ..registry import DefinitionRegistry
from ..serve.compute_client import ComputeClient
from ..services import DefinitionService, SolveService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> DefinitionRegistry:
    return request.app.state.registry


def get_cache(request: Request) -> SolveCache:
    return request.app.state.cache


def get_compute(request: Request) -> ComputeClient:
    return request.app.state.compute


def get_backend_state(request: Request) -> BackendState:
    return request.app.state.backend_state


def get_readiness(request: Request) -> ReadinessController:
    return request.app.state.readiness


def get_definition_service(request: Request) -> DefinitionService:
    return request.app.state.definition_service


def get_solve_service(request: Request) -> SolveService:
    return request.app.state.solve_service
