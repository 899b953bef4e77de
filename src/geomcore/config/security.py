"""
Secret handling for GeomCore.

The compute API key is forwarded on every downstream call and must never
appear in full in the logs.
"""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

COMPUTE_KEY_HEADER = "RhinoComputeKey"
VISIBLE_CHARS = 4


def mask_secret(value: Optional[str], visible: int = VISIBLE_CHARS) -> str:
    """Mask all but the first ``visible`` characters of a secret."""
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)


def compute_auth_headers(api_key: Optional[str]) -> Dict[str, str]:
    """Headers carrying the shared secret expected by the compute backend."""
    if not api_key:
        logger.warning("RHINO_COMPUTE_KEY is not set; compute requests will be unauthenticated")
        return {}
    return {COMPUTE_KEY_HEADER: api_key}
