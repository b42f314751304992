"""
Fixed-size linear algebra for the velocity filter.

Vectors are numpy arrays of shape (3,) and matrices are row-major arrays of
shape (3, 3). Nothing here resizes; any other shape is rejected. NaN and
infinity are propagated untouched.
"""

import numpy as np
from typing import Optional

from .constants import SINGULAR_DETERMINANT

IDENTITY3 = np.eye(3)


def _vec(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    if v.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {v.shape}")
    return v


def _mat(m) -> np.ndarray:
    m = np.asarray(m, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 matrix, got shape {m.shape}")
    return m


def vec_add(a, b) -> np.ndarray:
    return _vec(a) + _vec(b)


def vec_scale(v, s: float) -> np.ndarray:
    return _vec(v) * s


def mat_add(A, B) -> np.ndarray:
    return _mat(A) + _mat(B)


def mat_mul(A, B) -> np.ndarray:
    return _mat(A) @ _mat(B)


def mat_vec(A, v) -> np.ndarray:
    return _mat(A) @ _vec(v)


def transpose(A) -> np.ndarray:
    return _mat(A).T.copy()


def outer(a, b) -> np.ndarray:
    """Outer product a * b^T as a 3x3 matrix."""
    return np.outer(_vec(a), _vec(b))


def dot(a, b) -> float:
    return float(_vec(a) @ _vec(b))


def norm(v) -> float:
    return float(np.sqrt(dot(v, v)))


def trace(A) -> float:
    return float(np.trace(_mat(A)))


def skew(w) -> np.ndarray:
    """
    Cross-product matrix of w, so that skew(w) @ v == cross(w, v).

    Args:
        w: 3-vector [p, q, r]

    Returns:
        3x3 skew-symmetric matrix
    """
    p, q, r = _vec(w)
    return np.array([
        [0.0,  -r,   q],
        [r,   0.0,  -p],
        [-q,    p, 0.0]
    ])


def inverse3(A) -> Optional[np.ndarray]:
    """
    Closed-form inverse of a 3x3 matrix via cofactors.

    Args:
        A: 3x3 matrix

    Returns:
        Inverse matrix, or None when the determinant is numerically zero
    """
    a = _mat(A)

    # Cofactors of the first row give the determinant
    c00 = a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1]
    c01 = a[1, 2] * a[2, 0] - a[1, 0] * a[2, 2]
    c02 = a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0]
    det = a[0, 0] * c00 + a[0, 1] * c01 + a[0, 2] * c02

    if abs(det) < SINGULAR_DETERMINANT:
        return None

    c10 = a[0, 2] * a[2, 1] - a[0, 1] * a[2, 2]
    c11 = a[0, 0] * a[2, 2] - a[0, 2] * a[2, 0]
    c12 = a[0, 1] * a[2, 0] - a[0, 0] * a[2, 1]
    c20 = a[0, 1] * a[1, 2] - a[0, 2] * a[1, 1]
    c21 = a[0, 2] * a[1, 0] - a[0, 0] * a[1, 2]
    c22 = a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0]

    # Adjugate is the transposed cofactor matrix
    adj = np.array([
        [c00, c10, c20],
        [c01, c11, c21],
        [c02, c12, c22]
    ])
    return adj / det
