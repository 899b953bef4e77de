from .settings import Settings
from .security import mask_secret, compute_auth_headers, COMPUTE_KEY_HEADER

__all__ = ["Settings", "mask_secret", "compute_auth_headers", "COMPUTE_KEY_HEADER"]
