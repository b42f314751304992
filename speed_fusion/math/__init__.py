"""
Linear algebra kernel and numeric utilities for velocity fusion.
"""

from .linalg3 import (
    IDENTITY3, vec_add, vec_scale, mat_add, mat_mul, mat_vec,
    transpose, outer, dot, norm, trace, skew, inverse3
)
from .utils import clamp, is_finite, haversine_distance

__all__ = [
    "IDENTITY3", "vec_add", "vec_scale", "mat_add", "mat_mul", "mat_vec",
    "transpose", "outer", "dot", "norm", "trace", "skew", "inverse3",
    "clamp", "is_finite", "haversine_distance"
]
