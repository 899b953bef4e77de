"""Request bodies for the compute server's ``/io`` and ``/grasshopper`` endpoints."""

import base64
from typing import Any, Dict, List, Optional

# Model settings sent with every request; definitions are authored in inches.
ABSOLUTE_TOLERANCE = 0.01
ANGLE_TOLERANCE = 1.0
MODEL_UNITS = "Inches"


def build_compute_body(content: bytes, pointer: str, values: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Build the body shared by ``/io`` and ``/grasshopper``.

    The full file is always sent as ``algo`` so a compute server with a cold
    cache can still solve; ``pointer`` lets a warm one skip re-parsing it.
    """
    return {
        "absolutetolerance": ABSOLUTE_TOLERANCE,
        "angletolerance": ANGLE_TOLERANCE,
        "modelunits": MODEL_UNITS,
        "algo": base64.b64encode(content).decode("ascii"),
        "pointer": pointer,
        "cachesolve": False,
        "values": values or [],
    }
