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
Environment-driven settings for GeomCore.

All knobs are read once from the process environment by ``Settings.from_env()``
and then passed explicitly to the components that need them.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

DEFAULT_COMPUTE_URL = "http://localhost:6500/"
DEFAULT_DEFINITIONS_DIR = str(Path(__file__).resolve().parent.parent / "files")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    if raw.lower() in ("none", "0", "off"):
        return None
    return float(raw)


@dataclass
class Settings:
    """Runtime configuration for the facade server."""

    compute_url: str = DEFAULT_COMPUTE_URL
    compute_key: Optional[str] = None

    azure_subscription_id: Optional[str] = None
    azure_resource_group: Optional[str] = None
    azure_vm_name: Optional[str] = None

    redis_url: Optional[str] = None
    cache_max_entries: int = 1024

    idle_limit_s: float = 30 * 60
    idle_check_interval_s: float = 60.0
    health_timeout_s: float = 2.0
    wake_wait_s: float = 0.0  # how long a solve waits for a woken backend before its retry
    solve_timeout_s: Optional[float] = None  # None -> no read timeout

    definitions_dir: str = DEFAULT_DEFINITIONS_DIR
    env: str = "development"
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    enable_watchdog: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            compute_url=os.getenv("RHINO_COMPUTE_URL") or DEFAULT_COMPUTE_URL,
            compute_key=os.getenv("RHINO_COMPUTE_KEY") or None,
            azure_subscription_id=os.getenv("AZURE_SUBSCRIPTION_ID") or None,
            azure_resource_group=os.getenv("AZURE_RESOURCE_GROUP") or None,
            azure_vm_name=os.getenv("AZURE_VM_NAME") or None,
            redis_url=os.getenv("REDIS_URL") or None,
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "1024")),
            idle_limit_s=float(os.getenv("IDLE_LIMIT_MINUTES", "30")) * 60,
            idle_check_interval_s=float(os.getenv("IDLE_CHECK_INTERVAL_S", "60")),
            health_timeout_s=float(os.getenv("HEALTH_TIMEOUT_S", "2")),
            wake_wait_s=float(os.getenv("WAKE_WAIT_S", "0")),
            solve_timeout_s=_env_float("SOLVE_TIMEOUT_S", None),
            definitions_dir=os.getenv("DEFINITIONS_DIR") or DEFAULT_DEFINITIONS_DIR,
            env=os.getenv("ENV", os.getenv("NODE_ENV", "development")),
            cors_allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
            enable_watchdog=_env_bool("ENABLE_IDLE_WATCHDOG", "true"),
        )

    def with_overrides(self, **overrides) -> "Settings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def compute_base(self) -> str:
        """Backend base URL, always with a trailing slash."""
        return self.compute_url if self.compute_url.endswith("/") else self.compute_url + "/"

    @property
    def missing_azure_settings(self) -> List[str]:
        pairs = [
            ("AZURE_SUBSCRIPTION_ID", self.azure_subscription_id),
            ("AZURE_RESOURCE_GROUP", self.azure_resource_group),
            ("AZURE_VM_NAME", self.azure_vm_name),
        ]
        return [name for name, value in pairs if not value]

    @property
    def azure_configured(self) -> bool:
        return not self.missing_azure_settings
