from .definition_router import router as definition_router
from .solve_router import router as solve_router
from .health_router import router as health_router

__all__ = ["definition_router", "solve_router", "health_router"]
