from __future__ import annotations

import unittest

import numpy as np

from bodyscan.errors import ErrorKind
from bodyscan.vision.contours import find_contours, trace_contours
from bodyscan.vision.edges import detect_edges


def _body_image() -> np.ndarray:
    gray = np.full((200, 100), 255, dtype=np.uint8)
    gray[40:161, 20:81] = 0
    return gray


def _line_map(lengths: list[int], width: int = 120) -> np.ndarray:
    edges = np.zeros((4 * len(lengths) + 2, width), dtype=np.uint8)
    for i, n in enumerate(lengths):
        edges[2 + 4 * i, 1:1 + n] = 255
    return edges


class ContourTracerTests(unittest.TestCase):
    def test_rectangle_yields_single_contour_around_it(self) -> None:
        res = trace_contours(detect_edges(_body_image()))
        self.assertTrue(res.ok)
        self.assertEqual(len(res.value), 1)
        box = res.value[0].bounding_box()
        self.assertLessEqual(abs(box.min_x - 20), 2)
        self.assertLessEqual(abs(box.max_x - 80), 2)
        self.assertLessEqual(abs(box.min_y - 40), 2)
        self.assertLessEqual(abs(box.max_y - 160), 2)
        self.assertGreater(res.value[0].aspect_ratio, 1.5)

    def test_min_points_is_inclusive(self) -> None:
        kept = find_contours(_line_map([50]), min_points=50)
        self.assertEqual([c.size for c in kept], [50])
        self.assertEqual(find_contours(_line_map([49]), min_points=50), [])

    def test_no_qualifying_contour_is_insufficient(self) -> None:
        res = trace_contours(_line_map([49]))
        self.assertFalse(res.ok)
        self.assertEqual(res.error.kind, ErrorKind.INSUFFICIENT_CONTOUR)

    def test_keeps_three_largest(self) -> None:
        res = trace_contours(_line_map([60, 80, 70, 100]))
        self.assertEqual([c.size for c in res.value], [100, 80, 70])

    def test_equal_sizes_keep_raster_order(self) -> None:
        contours = find_contours(_line_map([60, 60]))
        self.assertEqual([c.bounding_box().min_y for c in contours], [2, 6])

    def test_diagonal_pixels_are_connected(self) -> None:
        edges = np.zeros((60, 60), dtype=np.uint8)
        for i in range(55):
            edges[i, i] = 255
        contours = find_contours(edges)
        self.assertEqual(len(contours), 1)
        self.assertEqual(contours[0].size, 55)

    def test_tracing_is_deterministic(self) -> None:
        edges = detect_edges(_body_image())
        a = trace_contours(edges).value
        b = trace_contours(edges.copy()).value
        self.assertEqual([c.points.tobytes() for c in a], [c.points.tobytes() for c in b])

    def test_component_box_matches_its_points(self) -> None:
        dominant = find_contours(detect_edges(_body_image()))[0]
        xs, ys = dominant.points[:, 0], dominant.points[:, 1]
        box = dominant.bounding_box()
        self.assertEqual((box.min_x, box.max_x), (int(xs.min()), int(xs.max())))
        self.assertEqual((box.min_y, box.max_y), (int(ys.min()), int(ys.max())))
        self.assertEqual(dominant.points.dtype, np.int32)
        self.assertGreater(dominant.fill_ratio, 0.0)
        self.assertLess(dominant.fill_ratio, 0.3)

    def test_limit_caps_components(self) -> None:
        self.assertEqual([c.size for c in find_contours(_line_map([60, 80, 70]), limit=1)], [80])

    def test_empty_edge_map(self) -> None:
        self.assertEqual(trace_contours(None).error.kind, ErrorKind.INSUFFICIENT_CONTOUR)


if __name__ == "__main__":
    unittest.main()
