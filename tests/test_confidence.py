from __future__ import annotations

import unittest

import numpy as np

from bodyscan.config import ValidationConfig
from bodyscan.errors import ErrorKind
from bodyscan.metrics.confidence import (
    measurement_confidences,
    overall_confidence,
    proportion_warnings,
    quality_grade,
    symmetry,
    validate_measurements,
)
from bodyscan.metrics.measurements import CaptureStep, Measurement, MeasurementSet
from bodyscan.vision.contours import BoundingBox
from bodyscan.vision.landmarks import BodyLandmarks, extract_landmarks


def _landmarks(confidence: float = 1.0) -> BodyLandmarks:
    return extract_landmarks(BoundingBox(min_x=20, max_x=80, min_y=40, max_y=160), confidence)


def _raw(**values: float) -> MeasurementSet:
    base = {
        "height": 175.0,
        "chest": 100.0,
        "waist": 85.0,
        "hips": 95.0,
        "shoulders": 40.0,
        "inseam": 80.0,
        "arm_length": 60.0,
        "neck": 35.0,
    }
    base.update(values)
    return MeasurementSet(**{k: Measurement(v) for k, v in base.items()}, step=CaptureStep.FRONT)


class ValidationTests(unittest.TestCase):
    def test_out_of_range_chest_is_clamped_not_dropped(self) -> None:
        lm = _landmarks()
        res = validate_measurements(_raw(chest=200.0), lm)
        self.assertTrue(res.ok)
        self.assertEqual(res.value.chest.value, 150.0)
        expected = measurement_confidences(lm, calibration_confidence=0.5)["chest"]
        self.assertLess(res.value.chest.confidence, expected)
        self.assertAlmostEqual(res.value.chest.confidence, round(expected * 0.7, 4))
        kinds = [(e.kind, e.details.get("measurement")) for e in res.events]
        self.assertIn((ErrorKind.OUT_OF_RANGE, "chest"), kinds)

    def test_in_range_values_are_rounded_only(self) -> None:
        res = validate_measurements(_raw(chest=100.04, waist=85.06), _landmarks())
        self.assertEqual(res.value.chest.value, 100.0)
        self.assertEqual(res.value.waist.value, 85.1)
        self.assertTrue(res.value.validated)
        self.assertEqual(res.events, ())

    def test_every_value_lands_in_range_for_any_raw_input(self) -> None:
        cfg = ValidationConfig()
        rng = np.random.default_rng(42)
        lm = _landmarks()
        names = ["height", "chest", "waist", "hips", "shoulders", "inseam", "arm_length", "neck"]
        for _ in range(200):
            raw = _raw(**{n: float(v) for n, v in zip(names, rng.uniform(-200.0, 600.0, size=len(names)))})
            validated = validate_measurements(raw, lm, cfg=cfg).value
            for name, m in validated.items():
                rng_ = cfg.height.acceptable if name == "height" else cfg.ranges[name]
                self.assertGreaterEqual(m.value, rng_.min, name)
                self.assertLessEqual(m.value, rng_.max, name)
                self.assertGreaterEqual(m.confidence, 0.0)
                self.assertLessEqual(m.confidence, 1.0)

    def test_calibration_confidence_raises_scores(self) -> None:
        lm = _landmarks()
        uncal = validate_measurements(_raw(), lm).value
        cal = validate_measurements(_raw(), lm, calibration_confidence=1.0).value
        self.assertGreater(cal.chest.confidence, uncal.chest.confidence)
        self.assertEqual(cal.height.confidence, 1.0)

    def test_poor_landmarks_downgrade_confidence(self) -> None:
        res = validate_measurements(_raw(), _landmarks(confidence=0.2))
        kinds = [e.kind for e in res.events]
        self.assertIn(ErrorKind.LANDMARK_QUALITY, kinds)
        self.assertEqual(res.value.chest.confidence, 0.0)
        self.assertEqual(res.value.height.confidence, 1.0)

    def test_symmetry(self) -> None:
        self.assertEqual(symmetry(10.0, 10.0), 1.0)
        self.assertAlmostEqual(symmetry(5.0, 10.0), 0.5)
        self.assertEqual(symmetry(0.0, 0.0), 0.0)


class ReportingTests(unittest.TestCase):
    def test_proportion_warnings(self) -> None:
        self.assertEqual(proportion_warnings(_raw(shoulders=45.0)), [])
        warnings = proportion_warnings(_raw(waist=110.0, hips=100.0, shoulders=30.0))
        self.assertEqual(
            warnings,
            ["waist_larger_than_chest", "hips_smaller_than_waist", "shoulder_width_disproportionate"],
        )

    def test_overall_confidence_ignores_height(self) -> None:
        mset = MeasurementSet(height=Measurement(175.0, 1.0), chest=Measurement(100.0, 0.5))
        self.assertAlmostEqual(overall_confidence(mset), 0.5 / 7)

    def test_quality_grade(self) -> None:
        self.assertEqual(quality_grade(0.95), "excellent")
        self.assertEqual(quality_grade(0.8), "good")
        self.assertEqual(quality_grade(0.5), "fair")
        self.assertEqual(quality_grade(0.2), "poor")


if __name__ == "__main__":
    unittest.main()
