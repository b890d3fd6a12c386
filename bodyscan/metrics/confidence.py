from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from ..config import ValidationConfig
from ..errors import ErrorEvent, ErrorKind, StageResult
from ..vision.landmarks import BodyLandmarks, landmark_quality
from .measurements import Measurement, MeasurementSet, PixelDistances, pixel_distances


logger = logging.getLogger(__name__)


def _safe_mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def _clamp01(v: float) -> float:
    return float(np.clip(v, 0.0, 1.0))


def symmetry(left: float, right: float) -> float:
    """1 for identical left/right lengths, falling towards 0 as they diverge."""
    denom = max(left, right)
    if denom <= 0:
        return 0.0
    return _clamp01(1.0 - abs(left - right) / denom)


def measurement_confidences(
    lm: BodyLandmarks,
    distances: Optional[PixelDistances] = None,
    calibration_confidence: float = 0.5,
) -> Dict[str, float]:
    d = distances or pixel_distances(lm)
    cal = _clamp01(calibration_confidence)
    shoulder = _safe_mean([lm.left_shoulder.confidence, lm.right_shoulder.confidence])
    arm = _safe_mean([lm.left_elbow.confidence, lm.right_elbow.confidence,
                      lm.left_wrist.confidence, lm.right_wrist.confidence])
    hip = _safe_mean([lm.left_hip.confidence, lm.right_hip.confidence])
    leg = _safe_mean([lm.left_knee.confidence, lm.right_knee.confidence,
                      lm.left_ankle.confidence, lm.right_ankle.confidence])
    head = lm.nose.confidence
    arm_sym = symmetry(d.left_arm, d.right_arm)
    leg_sym = symmetry(d.left_inseam, d.right_inseam)

    scores = {
        # User-supplied height is treated as ground truth.
        "height": 1.0,
        "chest": shoulder * 0.7 + cal * 0.3,
        "waist": shoulder * 0.6 + cal * 0.4,
        "hips": hip * 0.7 + cal * 0.3,
        "shoulders": shoulder * 0.8 + cal * 0.2,
        "inseam": leg * 0.6 + leg_sym * 0.2 + cal * 0.2,
        "arm_length": arm * 0.6 + arm_sym * 0.2 + cal * 0.2,
        "neck": head * 0.7 + cal * 0.3,
    }
    return {k: _clamp01(v) for k, v in scores.items()}


def validate_measurements(
    raw: MeasurementSet,
    lm: BodyLandmarks,
    calibration_confidence: Optional[float] = None,
    cfg: Optional[ValidationConfig] = None,
    landmark_threshold: float = 0.3,
) -> StageResult[MeasurementSet]:
    """Assign confidences and clamp every value into its anthropometric range.

    Out-of-range values are rescaled by height / average configured height,
    then clamped, and their confidence is penalised. Nothing is dropped.
    """
    cfg = cfg or ValidationConfig()
    cal = cfg.uncalibrated_confidence if calibration_confidence is None else calibration_confidence
    confidences = measurement_confidences(lm, calibration_confidence=cal)
    height = raw.height.value
    height_factor = height / cfg.height.average if cfg.height.average > 0 else 1.0
    events: List[ErrorEvent] = []

    quality = landmark_quality(lm, landmark_threshold)
    quality_factor = 1.0
    if quality < cfg.min_landmark_quality:
        quality_factor = quality
        events.append(
            ErrorEvent(
                kind=ErrorKind.LANDMARK_QUALITY,
                stage="validation",
                message="Too few reliable landmarks; confidence downgraded",
                details={"quality": round(quality, 4), "required": cfg.min_landmark_quality},
            )
        )

    out: Dict[str, Measurement] = {}
    for name, m in raw.items():
        value = float(m.value)
        conf = confidences[name]
        if name == "height":
            rng = cfg.height.acceptable
        else:
            rng = cfg.ranges.get(name)
            conf *= quality_factor
        if rng is not None and not rng.contains(value):
            corrected = rng.clamp(value * height_factor)
            logger.warning(
                "%s %.1f cm outside [%.0f, %.0f]; corrected to %.1f",
                name, value, rng.min, rng.max, corrected,
            )
            events.append(
                ErrorEvent(
                    kind=ErrorKind.OUT_OF_RANGE,
                    stage="validation",
                    message=f"{name} outside anthropometric range",
                    details={"measurement": name, "raw": round(value, 3), "corrected": round(corrected, 3),
                             "range": [rng.min, rng.max]},
                )
            )
            value = corrected
            if name != "height":
                conf *= cfg.out_of_range_penalty
        value = round(value, cfg.round_digits)
        if rng is not None:
            value = rng.clamp(value)
        out[name] = Measurement(value=value, confidence=round(_clamp01(conf), 4))

    validated = MeasurementSet(**out, step=raw.step, validated=True)
    return StageResult.success(validated, events=tuple(events))


def proportion_warnings(mset: MeasurementSet, cfg: Optional[ValidationConfig] = None) -> List[str]:
    cfg = cfg or ValidationConfig()
    warnings: List[str] = []
    if mset.waist.value > mset.chest.value:
        warnings.append("waist_larger_than_chest")
    if mset.hips.value < mset.waist.value:
        warnings.append("hips_smaller_than_waist")
    if mset.height.value > 0:
        ratio = mset.shoulders.value / mset.height.value
        lo, hi = cfg.shoulder_to_height
        if ratio < lo or ratio > hi:
            warnings.append("shoulder_width_disproportionate")
    return warnings


def overall_confidence(mset: MeasurementSet) -> float:
    return _safe_mean([m.confidence for name, m in mset.items() if name != "height"])


def quality_grade(confidence: float) -> str:
    if confidence >= 0.9:
        return "excellent"
    if confidence >= 0.75:
        return "good"
    if confidence >= 0.5:
        return "fair"
    return "poor"
