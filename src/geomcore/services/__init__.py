"""
Request-path services.

Import Guide:
    from geomcore.services import DefinitionService, SolveService
"""

from .definition_service import DefinitionService
from .solve_service import SolveService, RetryPolicy, RetryAction, RetryPhase, strip_internal_fields

__all__ = [
    "DefinitionService",
    "SolveService",
    "RetryPolicy",
    "RetryAction",
    "RetryPhase",
    "strip_internal_fields",
]
