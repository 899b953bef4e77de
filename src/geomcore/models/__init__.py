"""
Data models for GeomCore.

Plain dataclasses for registry records and requests; pydantic models for
anything that crosses the HTTP boundary.
"""

from .definition import (
    Definition,
    DefinitionInfo,
    ParameterDescriptor,
    ParamType,
    SolveRequest,
    NON_VIEWABLE_TYPES,
)

__all__ = [
    "Definition",
    "DefinitionInfo",
    "ParameterDescriptor",
    "ParamType",
    "SolveRequest",
    "NON_VIEWABLE_TYPES",
]
