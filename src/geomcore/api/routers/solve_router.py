from __future__ import annotations

import math
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from ...services import SolveService
from ..deps import get_solve_service

router = APIRouter(tags=["solve"])


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(_has_non_finite(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(_has_non_finite(v) for v in value)
    return False


class SolveBody(BaseModel):
    definition: str = Field(..., description="Definition file name, e.g. 'box.gh'")
    inputs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("inputs")
    @classmethod
    def inputs_must_be_finite(cls, inputs: Dict[str, Any]) -> Dict[str, Any]:
        # NaN/Infinity parse from the request body but cannot be sent on as JSON
        bad = sorted(name for name, value in inputs.items() if _has_non_finite(value))
        if bad:
            raise ValueError(f"non-finite number for {', '.join(bad)}")
        return inputs


@router.post("/solve")
async def solve(body: SolveBody, service: SolveService = Depends(get_solve_service)):
    return await service.solve(body.definition, body.inputs)
