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
Normalize ``/io`` responses from the compute server.

Different compute releases answer ``/io`` with different shapes: PascalCase
keys (``Inputs``, ``Name``, ``Default``), camelCase keys (``inputs``,
``name``), or only name lists (``inputNames`` / ``outputNames``). Defaults come
either as bare scalars or wrapped in a DataTree. Each known shape is one
``IoShape`` entry; supporting a new release means adding an entry to
``KNOWN_SHAPES``, not another conditional.

Range constraints are read from ``Minimum``/``Maximum`` only. The legacy
``AtLeast``/``AtMost`` fields are item-count constraints, not value ranges,
and are ignored.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from ..errors import DescribeError
from ..models import DefinitionInfo, ParameterDescriptor, ParamType, NON_VIEWABLE_TYPES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IoShape:
    """One known layout of an ``/io`` response."""

    name: str
    inputs_key: str
    outputs_key: str
    description_key: str


PASCAL_SHAPE = IoShape("pascal", "Inputs", "Outputs", "Description")
CAMEL_SHAPE = IoShape("camel", "inputs", "outputs", "description")
LEGACY_NAMES_SHAPE = IoShape("legacy_names", "inputNames", "outputNames", "description")

KNOWN_SHAPES = (CAMEL_SHAPE, PASCAL_SHAPE, LEGACY_NAMES_SHAPE)


def detect_shape(raw: Mapping[str, Any]) -> IoShape:
    for shape in KNOWN_SHAPES:
        if shape.inputs_key in raw:
            return shape
    return CAMEL_SHAPE


def _pascal(key: str) -> str:
    return key[:1].upper() + key[1:]


def _field(record: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read ``key`` in camelCase, falling back to PascalCase."""
    if key in record and record[key] is not None:
        return record[key]
    return record.get(_pascal(key), default)


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _unquote(value: Any) -> Any:
    # DataTree leaves carry JSON-encoded text, e.g. '"hello"' or '10'
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def extract_tree_value(value: Any) -> Any:
    """Return the first leaf ``data`` if ``value`` is a DataTree, else ``value`` unchanged."""
    if not isinstance(value, Mapping):
        return value
    tree = _field(value, "innerTree")
    if not isinstance(tree, Mapping):
        return value
    for branch in tree.values():
        if isinstance(branch, list) and branch:
            leaf = branch[0]
            if isinstance(leaf, Mapping):
                return _unquote(_field(leaf, "data"))
            return leaf
    return None


def cast_value(value: Any, param_type: Optional[str]) -> Any:
    if value is None:
        return None
    try:
        if param_type == ParamType.INTEGER.value:
            return int(float(value)) if isinstance(value, str) else int(value)
        if param_type in (ParamType.NUMBER.value, ParamType.DOUBLE.value):
            return float(value)
        if param_type == ParamType.BOOLEAN.value:
            return str(value).lower() == "true"
    except (TypeError, ValueError):
        logger.warning("Could not cast %r to %s; passing through", value, param_type)
        return value
    if isinstance(value, (Mapping, list)):
        return value
    return str(value)


def normalize_input(raw_input: Any) -> ParameterDescriptor:
    if isinstance(raw_input, str):
        # legacy_names shape: bare parameter names
        return ParameterDescriptor(name=raw_input)
    if not isinstance(raw_input, Mapping):
        raise DescribeError(f"Unexpected input entry in /io response: {raw_input!r}")

    param_type = _field(raw_input, "paramType")
    return ParameterDescriptor(
        name=_field(raw_input, "name"),
        description=_field(raw_input, "description"),
        param_type=param_type,
        default=cast_value(extract_tree_value(_field(raw_input, "default")), param_type),
        minimum=cast_value(extract_tree_value(_field(raw_input, "minimum")), param_type),
        maximum=cast_value(extract_tree_value(_field(raw_input, "maximum")), param_type),
    )


def _output_name(raw_output: Any) -> Any:
    if isinstance(raw_output, Mapping):
        return _field(raw_output, "name")
    return raw_output


def normalize_io_response(raw: Any) -> DefinitionInfo:
    """Map any known ``/io`` response shape onto a ``DefinitionInfo``."""
    if not isinstance(raw, Mapping):
        raise DescribeError(f"Unexpected /io response type: {type(raw).__name__}")

    shape = detect_shape(raw)
    logger.debug("Normalizing /io response using %s shape", shape.name)

    raw_inputs = _first_present(raw, shape.inputs_key, "inputs", "Inputs", "inputNames") or []
    raw_outputs = _first_present(raw, shape.outputs_key, "outputs", "Outputs", "outputNames") or []
    description = _first_present(raw, shape.description_key, "description", "Description") or ""

    inputs: List[ParameterDescriptor] = [normalize_input(item) for item in raw_inputs]
    outputs = [_output_name(item) for item in raw_outputs]
    view = not any(i.param_type in NON_VIEWABLE_TYPES for i in inputs)

    return DefinitionInfo(description=description, inputs=inputs, outputs=outputs, view=view)
