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
Encode flat client inputs into the compute DataTree wire format.

Each named value becomes one parameter with a single branch ``{0}`` holding a
single ``{type, data}`` leaf:

    {"ParamName": "width", "InnerTree": {"{0}": [{"type": "System.Int32", "data": 10}]}}
"""

import numbers
from typing import Any, Dict, List, Mapping

ROOT_BRANCH = "{0}"

WIRE_BOOLEAN = "System.Boolean"
WIRE_INTEGER = "System.Int32"
WIRE_DOUBLE = "System.Double"
WIRE_STRING = "System.String"


def _is_integral(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return True
    return isinstance(value, float) and value.is_integer()


def normalize_scalar(value: Any) -> Any:
    """Collapse integral floats (``10.0``) to ints so equal numbers format the same way."""
    if isinstance(value, float) and _is_integral(value):
        return int(value)
    return value


def infer_wire_type(value: Any) -> str:
    # bool is an int subclass; check it first
    if isinstance(value, bool):
        return WIRE_BOOLEAN
    if _is_integral(value):
        return WIRE_INTEGER
    if isinstance(value, numbers.Real):
        return WIRE_DOUBLE
    return WIRE_STRING


def encode_value(name: str, value: Any) -> Dict[str, Any]:
    return {
        "ParamName": name,
        "InnerTree": {
            ROOT_BRANCH: [
                {"type": infer_wire_type(value), "data": normalize_scalar(value)},
            ]
        },
    }


def encode_inputs(inputs: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Encode inputs in the order given. Wire order does not matter to compute."""
    return [encode_value(name, value) for name, value in (inputs or {}).items()]


def canonical_inputs(inputs: Mapping[str, Any]) -> Dict[str, Any]:
    """Name-sorted copy of ``inputs`` with normalized numbers, for cache keys."""
    return {name: normalize_scalar(inputs[name]) for name in sorted(inputs or {})}
