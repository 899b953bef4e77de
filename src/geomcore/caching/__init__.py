from .redis_cache import SolveCache, compute_key, serialize_result

__all__ = ["SolveCache", "compute_key", "serialize_result"]
