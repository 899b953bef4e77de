# src/geomcore/api/routers/definition_router.py
# Copyright 2024 GeomCore Contributors
from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from ...services import DefinitionService
from ..deps import get_definition_service

router = APIRouter(tags=["definitions"])
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[Dict[str, str]])
async def list_definitions(service: DefinitionService = Depends(get_definition_service)):
    """Names that can be passed to /solve and /definition/{name}/info."""
    return service.list_definitions()


@router.get("/definition/{name}/info")
async def definition_info(name: str, service: DefinitionService = Depends(get_definition_service)) -> Dict[str, Any]:
    definition = service.resolve(name)
    info = await service.describe(definition)
    return info.to_response()


@router.get("/definition_description")
async def definition_description(
    path: str = Query(..., description="Registered definition name, or a file path inside the definitions directory"),
    service: DefinitionService = Depends(get_definition_service),
) -> Dict[str, Any]:
    definition = service.resolve_name_or_path(path)
    info = await service.describe(definition)
    return {"name": definition.name, **info.to_response()}


@router.get("/definition/{definition_id}")
async def definition_file(definition_id: str, service: DefinitionService = Depends(get_definition_service)):
    """
    Raw definition file by content hash.

    The hash keeps URLs hard to guess and stable until the file changes, so a
    compute server fetching by URL can cache it.
    """
    definition = service.resolve_id(definition_id)
    return FileResponse(definition.path, filename=definition.name, media_type="application/octet-stream")


@router.get("/{name}")
async def describe_definition(name: str, service: DefinitionService = Depends(get_definition_service)) -> Dict[str, Any]:
    """Short form of /definition/{name}/info that also echoes the name. Registered last."""
    definition = service.resolve(name)
    info = await service.describe(definition)
    return {"name": definition.name, **info.to_response()}
