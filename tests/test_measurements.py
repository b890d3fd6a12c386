from __future__ import annotations

import unittest

from bodyscan.errors import ErrorKind
from bodyscan.metrics.measurements import (
    CaptureStep,
    Measurement,
    MeasurementSet,
    calculate_measurements,
    combine_views,
    pixel_distances,
    pixel_to_cm_ratio,
    resolve_height,
)
from bodyscan.metrics.units import cm_to_feet_inches, cm_to_inches, inches_to_cm, measurement_set_in_inches
from bodyscan.vision.contours import BoundingBox
from bodyscan.vision.landmarks import BodyLandmarks, Landmark, extract_landmarks


def _shoulder_landmarks() -> BodyLandmarks:
    base = extract_landmarks(BoundingBox(min_x=70, max_x=170, min_y=0, max_y=250), 1.0)
    points = {name: p for name, p in base.items()}
    points["left_shoulder"] = Landmark(x=100.0, y=50.0, confidence=0.9)
    points["right_shoulder"] = Landmark(x=140.0, y=50.0, confidence=0.9)
    return BodyLandmarks(**points)


class PixelScaleTests(unittest.TestCase):
    def test_reference_shoulder_width_maps_to_forty_cm(self) -> None:
        res = calculate_measurements(_shoulder_landmarks(), CaptureStep.FRONT, height_cm=175, scale_factor=1.0)
        self.assertTrue(res.ok)
        self.assertAlmostEqual(round(res.value.shoulders.value, 1), 40.0)
        self.assertFalse(res.value.validated)
        self.assertEqual(res.value.shoulders.confidence, 0.0)

    def test_ratio_scales_with_height_and_calibration(self) -> None:
        self.assertAlmostEqual(pixel_to_cm_ratio(40, 175), 1.0)
        self.assertAlmostEqual(pixel_to_cm_ratio(40, 350), 2.0)
        self.assertAlmostEqual(pixel_to_cm_ratio(40, 175, scale_factor=1.2), 1.2)
        self.assertEqual(pixel_to_cm_ratio(0, 175), 0.0)

    def test_pixel_distances(self) -> None:
        d = pixel_distances(_shoulder_landmarks())
        self.assertAlmostEqual(d.shoulder_width, 40.0)
        self.assertGreater(d.left_arm, 0.0)
        self.assertAlmostEqual(d.left_inseam, d.right_inseam)


class CalculatorTests(unittest.TestCase):
    def test_side_view_adds_body_depth(self) -> None:
        lm = _shoulder_landmarks()
        front = calculate_measurements(lm, CaptureStep.FRONT, 175).value
        side = calculate_measurements(lm, CaptureStep.SIDE, 175).value
        self.assertGreater(side.chest.value, front.chest.value)
        self.assertEqual(front.step, CaptureStep.FRONT)
        self.assertEqual(side.step, CaptureStep.SIDE)
        self.assertAlmostEqual(front.shoulders.value, side.shoulders.value)

    def test_circumferences_follow_chest(self) -> None:
        m = calculate_measurements(_shoulder_landmarks(), CaptureStep.FRONT, 175).value
        # At the reference height the waist/hip height adjustment is exactly 1.
        self.assertAlmostEqual(m.waist.value, m.chest.value * 0.85)
        self.assertAlmostEqual(m.hips.value, m.chest.value * 0.95)
        self.assertGreater(m.chest.value, 2.5 * 40.0 * 0.95)

    def test_collapsed_shoulders_fail_with_zero_set(self) -> None:
        res = calculate_measurements(BodyLandmarks.empty())
        self.assertFalse(res.ok)
        self.assertEqual(res.error.kind, ErrorKind.LANDMARK_QUALITY)
        self.assertTrue(all(m.value == 0.0 for _, m in res.value.items()))

    def test_default_and_clamped_height(self) -> None:
        self.assertEqual(resolve_height(None), (175.0, None))
        height, event = resolve_height(300)
        self.assertEqual(height, 250.0)
        self.assertEqual(event.kind, ErrorKind.OUT_OF_RANGE)

        res = calculate_measurements(_shoulder_landmarks(), height_cm=300)
        self.assertEqual(res.value.height.value, 250.0)
        self.assertEqual([e.kind for e in res.events], [ErrorKind.OUT_OF_RANGE])

    def test_combine_views_builds_new_set(self) -> None:
        front = MeasurementSet(chest=Measurement(100.0, 0.8), height=Measurement(175.0, 1.0), step=CaptureStep.FRONT)
        side = MeasurementSet(chest=Measurement(110.0, 0.6), height=Measurement(175.0, 1.0), step=CaptureStep.SIDE)
        merged = combine_views(front, side)
        self.assertEqual(merged.chest.value, 105.0)
        self.assertAlmostEqual(merged.chest.confidence, 0.7)
        self.assertIsNone(merged.step)
        self.assertEqual(front.chest.value, 100.0)
        self.assertEqual(side.chest.value, 110.0)


class UnitTests(unittest.TestCase):
    def test_conversions(self) -> None:
        self.assertEqual(cm_to_inches(2.54), 1.0)
        self.assertEqual(cm_to_inches(100), 39.4)
        self.assertEqual(inches_to_cm(10), 25.4)
        self.assertEqual(cm_to_feet_inches(182.88), (6, 0.0))
        self.assertEqual(cm_to_feet_inches(175), (5, 8.9))

    def test_set_in_inches(self) -> None:
        out = measurement_set_in_inches(MeasurementSet(chest=Measurement(254.0, 0.5)))
        self.assertEqual(out["chest"], {"value": 100.0, "confidence": 0.5})


if __name__ == "__main__":
    unittest.main()
