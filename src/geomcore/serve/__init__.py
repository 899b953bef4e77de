"""
Downstream HTTP clients.
"""

from .base_client import BaseServiceClient
from .compute_client import ComputeClient

__all__ = ["BaseServiceClient", "ComputeClient"]
