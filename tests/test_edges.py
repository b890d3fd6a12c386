from __future__ import annotations

import unittest

import numpy as np

from bodyscan.vision.edges import detect_edges, edge_density, gradient_magnitude


class EdgeDetectorTests(unittest.TestCase):
    def test_uniform_image_has_no_edges(self) -> None:
        edges = detect_edges(np.full((20, 20), 128, dtype=np.uint8))
        self.assertEqual(int(edges.max()), 0)
        self.assertEqual(edge_density(edges), 0.0)

    def test_vertical_step_marks_both_sides(self) -> None:
        gray = np.zeros((10, 10), dtype=np.uint8)
        gray[:, 5:] = 255
        mag = gradient_magnitude(gray)
        self.assertAlmostEqual(mag[5, 4], 1020.0)
        self.assertAlmostEqual(mag[5, 5], 1020.0)
        self.assertEqual(mag[5, 3], 0.0)

        edges = detect_edges(gray, threshold=100)
        self.assertEqual(set(np.unique(edges).tolist()), {0, 255})
        cols = sorted(set(np.nonzero(edges)[1].tolist()))
        self.assertEqual(cols, [4, 5])

    def test_border_pixels_are_zero(self) -> None:
        gray = np.zeros((10, 10), dtype=np.uint8)
        gray[:, 5:] = 255
        edges = detect_edges(gray)
        self.assertEqual(int(edges[0].max()), 0)
        self.assertEqual(int(edges[-1].max()), 0)
        self.assertEqual(int(edges[:, 0].max()), 0)
        self.assertEqual(int(edges[:, -1].max()), 0)

    def test_threshold_is_strict(self) -> None:
        gray = np.zeros((10, 10), dtype=np.uint8)
        gray[:, 5:] = 255
        self.assertEqual(int(detect_edges(gray, threshold=1020).max()), 0)

    def test_repeated_runs_are_byte_identical(self) -> None:
        rng = np.random.default_rng(7)
        gray = rng.integers(0, 256, size=(64, 48), dtype=np.uint8)
        a = detect_edges(gray)
        b = detect_edges(gray.copy())
        self.assertEqual(a.tobytes(), b.tobytes())

    def test_tiny_image(self) -> None:
        self.assertEqual(detect_edges(np.zeros((2, 2), dtype=np.uint8)).shape, (2, 2))


if __name__ == "__main__":
    unittest.main()
