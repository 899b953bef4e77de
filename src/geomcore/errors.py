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
Error taxonomy for GeomCore.

Every failure that can reach a client is one of these types. The terminal
exception handler in ``geomcore.api.errors`` maps ``status_code`` onto the
HTTP response; nothing else in the request path builds error bodies.
"""

from typing import Optional


class GeomCoreError(Exception):
    """Base class for all GeomCore errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class DefinitionNotFound(GeomCoreError):
    """The named (or hashed) definition is not in the registry."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Definition not found: {name}")
        self.name = name


class DownstreamUnreachable(GeomCoreError):
    """Transport-level failure talking to the compute backend (refused, timeout, DNS)."""

    status_code = 503

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class DownstreamLogicError(GeomCoreError):
    """The compute backend answered, but with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Compute Server returned {status}: {body}", status_code=status)
        self.status = status
        self.body = body


class DescribeError(GeomCoreError):
    """Parameter introspection (``/io``) failed. Never retried."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message, status_code=status if status and status >= 400 else None)
        self.status = status
        self.body = body


class InfraCapacityError(GeomCoreError):
    """The cloud provider has no capacity to start the compute VM right now."""

    status_code = 503

    def __init__(self, message: str = "Spot VM capacity unavailable. Please try again later."):
        super().__init__(message)


class ConfigurationMissing(GeomCoreError):
    """Infra operations were requested but the infra settings are absent."""

    status_code = 503

    def __init__(self, missing: list):
        super().__init__(f"Azure environment variables missing: {', '.join(missing)}")
        self.missing = list(missing)


__all__ = [
    "GeomCoreError",
    "DefinitionNotFound",
    "DownstreamUnreachable",
    "DownstreamLogicError",
    "DescribeError",
    "InfraCapacityError",
    "ConfigurationMissing",
]
