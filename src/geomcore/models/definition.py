# Copyright 2024 GeomCore Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Definition and parameter models.

``Definition`` is the registry record for one Grasshopper file. Its ``id`` is
the MD5 of the file content, so it changes whenever the file is edited; the
solve cache key includes it for exactly that reason.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ParamType(str, Enum):
    NUMBER = "Number"
    DOUBLE = "Double"
    INTEGER = "Integer"
    BOOLEAN = "Boolean"
    TEXT = "Text"
    GEOMETRY = "Geometry"
    POINT = "Point"
    CURVE = "Curve"


# Inputs of these types need a specialised viewer; the client hides its 3D view.
NON_VIEWABLE_TYPES = frozenset({ParamType.GEOMETRY.value, ParamType.POINT.value, ParamType.CURVE.value})


class ParameterDescriptor(BaseModel):
    """Canonical description of one definition input."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    param_type: Optional[str] = Field(default=None, alias="paramType")
    default: Any = None
    minimum: Any = None
    maximum: Any = None


class DefinitionInfo(BaseModel):
    """Normalized result of the downstream ``/io`` call."""

    description: str = ""
    inputs: List[ParameterDescriptor] = Field(default_factory=list)
    outputs: List[Any] = Field(default_factory=list)
    view: bool = True

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class Definition:
    name: str
    id: str
    path: str
    # memoized describe result; filled lazily by DefinitionService
    info: Optional[DefinitionInfo] = field(default=None, compare=False, repr=False)
    # file stat at hashing time; a mismatch means the content may have changed
    mtime_ns: Optional[int] = field(default=None, compare=False, repr=False)
    size: Optional[int] = field(default=None, compare=False, repr=False)

    def stat_matches(self, stat_result: os.stat_result) -> bool:
        return self.mtime_ns == stat_result.st_mtime_ns and self.size == stat_result.st_size

    @property
    def pointer(self) -> str:
        """Content-derived handle the compute server uses for its own cache."""
        return f"md5_{self.id}"

    def summary(self) -> Dict[str, str]:
        return {"name": self.name}


@dataclass
class SolveRequest:
    definition: Definition
    inputs: Dict[str, Any] = field(default_factory=dict)
