"""
Wire-format helpers for the compute server: input encoding, request bodies
and ``/io`` response normalization.
"""

from .encoder import encode_inputs, canonical_inputs, infer_wire_type
from .normalizer import normalize_io_response, IoShape, KNOWN_SHAPES
from .payload import build_compute_body

__all__ = [
    "encode_inputs",
    "canonical_inputs",
    "infer_wire_type",
    "normalize_io_response",
    "IoShape",
    "KNOWN_SHAPES",
    "build_compute_body",
]
