#!/usr/bin/env python3
"""
Unit tests for the fixed-size linear algebra helpers.
"""

import unittest
import numpy as np
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from speed_fusion.math import linalg3
from speed_fusion.math.utils import clamp, is_finite, haversine_distance

class TestLinalg3(unittest.TestCase):
    """Test 3-vector and 3x3 matrix operations."""

    def setUp(self):
        self.A = np.array([[2.0, 1.0, 0.0],
                           [0.0, 3.0, 1.0],
                           [1.0, 0.0, 4.0]])

    def test_vector_operations(self):
        """Test add, scale, dot and norm."""
        a = np.array([1.0, 2.0, 2.0])
        b = np.array([0.5, 0.0, -1.0])

        np.testing.assert_array_equal(linalg3.vec_add(a, b), [1.5, 2.0, 1.0])
        np.testing.assert_array_equal(linalg3.vec_scale(a, 2.0), [2.0, 4.0, 4.0])
        self.assertEqual(linalg3.dot(a, b), -1.5)
        self.assertEqual(linalg3.norm(a), 3.0)

    def test_matrix_operations(self):
        """Test matrix products, transpose, outer product and trace."""
        v = np.array([1.0, 1.0, 1.0])

        np.testing.assert_array_equal(linalg3.mat_vec(self.A, v), [3.0, 4.0, 5.0])
        np.testing.assert_array_equal(linalg3.mat_mul(self.A, linalg3.IDENTITY3), self.A)
        np.testing.assert_array_equal(linalg3.transpose(self.A), self.A.T)
        np.testing.assert_array_equal(linalg3.mat_add(self.A, -self.A), np.zeros((3, 3)))
        self.assertEqual(linalg3.trace(self.A), 9.0)

        outer = linalg3.outer([1.0, 0.0, 0.0], [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(outer[0], [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(outer[1:], np.zeros((2, 3)))

    def test_skew_is_cross_product(self):
        """skew(w) @ v equals w x v."""
        w = np.array([0.3, -1.2, 2.0])
        v = np.array([4.0, 0.5, -1.0])

        np.testing.assert_array_almost_equal(linalg3.skew(w) @ v, np.cross(w, v))
        np.testing.assert_array_equal(linalg3.skew(w).T, -linalg3.skew(w))

    def test_inverse(self):
        """Closed-form inverse agrees with the identity."""
        inverse = linalg3.inverse3(self.A)

        self.assertIsNotNone(inverse)
        np.testing.assert_array_almost_equal(inverse @ self.A, np.eye(3))
        np.testing.assert_array_almost_equal(self.A @ inverse, np.eye(3))

    def test_inverse_singular(self):
        """A singular matrix has no inverse."""
        singular = np.array([[1.0, 2.0, 3.0],
                             [2.0, 4.0, 6.0],
                             [0.0, 1.0, 1.0]])
        self.assertIsNone(linalg3.inverse3(singular))
        self.assertIsNone(linalg3.inverse3(np.zeros((3, 3))))

    def test_shape_mismatch_rejected(self):
        """Only 3-vectors and 3x3 matrices are accepted."""
        with self.assertRaises(ValueError):
            linalg3.vec_add([1.0, 2.0], [1.0, 2.0])
        with self.assertRaises(ValueError):
            linalg3.mat_mul(np.eye(2), np.eye(2))
        with self.assertRaises(ValueError):
            linalg3.mat_vec(np.eye(3), [1.0, 2.0, 3.0, 4.0])

    def test_nan_propagates(self):
        """Non-finite values pass through untouched."""
        result = linalg3.vec_add([np.nan, 0.0, 0.0], [1.0, 1.0, 1.0])
        self.assertTrue(np.isnan(result[0]))
        self.assertEqual(result[1], 1.0)

class TestUtils(unittest.TestCase):
    """Test numeric helpers."""

    def test_clamp(self):
        self.assertEqual(clamp(5, 0, 3), 3)
        self.assertEqual(clamp(-1, 0, 3), 0)
        self.assertEqual(clamp(2, 0, 3), 2)

    def test_is_finite(self):
        self.assertTrue(is_finite(1.5))
        self.assertFalse(is_finite(float('nan')))
        self.assertFalse(is_finite(float('inf')))
        self.assertFalse(is_finite(None))

    def test_haversine(self):
        """One thousandth of a degree of latitude is about 111 m."""
        distance = haversine_distance(37.0, -122.0, 37.001, -122.0)
        self.assertAlmostEqual(distance, 111.19, places=1)

if __name__ == '__main__':
    unittest.main()
