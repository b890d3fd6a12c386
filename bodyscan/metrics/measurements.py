"""Pixel distances to real-world lengths and circumferences.

The circumference formulas are fixed anthropometric ratios off the shoulder
width, nudged by torso/head proportions and by the capture step (a side view
adds a body-depth factor). They are heuristics for sizing, not clinical
measurements.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
import logging
import math
from typing import Dict, Iterator, Optional, Tuple

from ..config import MeasurementConfig, ValidationConfig
from ..errors import ErrorEvent, ErrorKind, StageResult
from ..vision.landmarks import BodyLandmarks, Landmark


logger = logging.getLogger(__name__)


class CaptureStep(str, Enum):
    FRONT = "front"
    SIDE = "side"


@dataclass(frozen=True)
class Measurement:
    value: float = 0.0  # cm
    confidence: float = 0.0


@dataclass(frozen=True)
class MeasurementSet:
    height: Measurement = Measurement()
    chest: Measurement = Measurement()
    waist: Measurement = Measurement()
    hips: Measurement = Measurement()
    shoulders: Measurement = Measurement()
    inseam: Measurement = Measurement()
    arm_length: Measurement = Measurement()
    neck: Measurement = Measurement()
    step: Optional[CaptureStep] = None
    validated: bool = False

    def items(self) -> Iterator[Tuple[str, Measurement]]:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Measurement):
                yield f.name, value

    def get(self, name: str) -> Measurement:
        value = getattr(self, name)
        if not isinstance(value, Measurement):
            raise KeyError(name)
        return value

    def values(self) -> Dict[str, float]:
        return {name: m.value for name, m in self.items()}

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {name: {"value": m.value, "confidence": m.confidence} for name, m in self.items()}
        out["step"] = self.step.value if self.step is not None else None
        out["validated"] = bool(self.validated)
        return out


@dataclass(frozen=True)
class PixelDistances:
    shoulder_width: float
    left_arm: float
    right_arm: float
    left_inseam: float
    right_inseam: float
    torso_height: float
    head_height: float


def _dist(a: Landmark, b: Landmark) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def pixel_distances(lm: BodyLandmarks) -> PixelDistances:
    return PixelDistances(
        shoulder_width=abs(lm.right_shoulder.x - lm.left_shoulder.x),
        left_arm=_dist(lm.left_shoulder, lm.left_wrist),
        right_arm=_dist(lm.right_shoulder, lm.right_wrist),
        left_inseam=_dist(lm.left_hip, lm.left_ankle),
        right_inseam=_dist(lm.right_hip, lm.right_ankle),
        torso_height=abs(lm.left_shoulder.y - lm.left_hip.y),
        head_height=abs(lm.nose.y - lm.left_shoulder.y),
    )


def pixel_to_cm_ratio(
    shoulder_width_px: float,
    height_cm: float,
    scale_factor: float = 1.0,
    cfg: Optional[MeasurementConfig] = None,
) -> float:
    """cm per pixel, anchored on the average adult shoulder width.

    Returns 0 when the shoulder width is not positive.
    """
    cfg = cfg or MeasurementConfig()
    if shoulder_width_px <= 0:
        return 0.0
    base = cfg.reference_shoulder_cm / float(shoulder_width_px)
    return base * float(scale_factor) * (float(height_cm) / cfg.reference_height_cm)


def _chest(shoulder_cm: float, torso_cm: float, height_cm: float, step: CaptureStep, cfg: MeasurementConfig) -> float:
    base = shoulder_cm * cfg.chest_to_shoulder
    torso_ratio = torso_cm / height_cm
    if step == CaptureStep.SIDE:
        return base * cfg.side_depth_factor * (0.9 + torso_ratio * 0.2)
    return base * (0.95 + torso_ratio * 0.1)


def _height_adjusted(base: float, height_cm: float, step: CaptureStep, cfg: MeasurementConfig) -> float:
    height_ratio = height_cm / cfg.reference_height_cm
    if step == CaptureStep.SIDE:
        return base * (0.9 + height_ratio * 0.1)
    return base * (0.95 + height_ratio * 0.05)


def _neck(shoulder_cm: float, head_cm: float, cfg: MeasurementConfig) -> float:
    head_ratio = head_cm / cfg.reference_head_cm
    return shoulder_cm * cfg.neck_to_shoulder * (0.9 + head_ratio * 0.2)


def resolve_height(height_cm: Optional[float], cfg: Optional[MeasurementConfig] = None,
                   validation: Optional[ValidationConfig] = None) -> Tuple[float, Optional[ErrorEvent]]:
    cfg = cfg or MeasurementConfig()
    validation = validation or ValidationConfig()
    if height_cm is None or not math.isfinite(float(height_cm)) or float(height_cm) <= 0:
        return cfg.reference_height_cm, None
    band = validation.height.acceptable
    h = float(height_cm)
    if band.contains(h):
        return h, None
    clamped = band.clamp(h)
    logger.warning("user height %.1f cm outside [%.0f, %.0f]; using %.1f", h, band.min, band.max, clamped)
    event = ErrorEvent(
        kind=ErrorKind.OUT_OF_RANGE,
        stage="measurement",
        message="User height outside the acceptable band",
        details={"measurement": "height", "raw": h, "corrected": clamped},
    )
    return clamped, event


def calculate_measurements(
    landmarks: BodyLandmarks,
    step: CaptureStep = CaptureStep.FRONT,
    height_cm: Optional[float] = None,
    scale_factor: float = 1.0,
    cfg: Optional[MeasurementConfig] = None,
    validation: Optional[ValidationConfig] = None,
) -> StageResult[MeasurementSet]:
    """Raw (pre-validation) measurement set for one capture step.

    Confidences are left at zero; the validation engine assigns them.
    """
    cfg = cfg or MeasurementConfig()
    step = CaptureStep(step)
    height, height_event = resolve_height(height_cm, cfg, validation)
    events = (height_event,) if height_event is not None else ()

    d = pixel_distances(landmarks)
    ratio = pixel_to_cm_ratio(d.shoulder_width, height, scale_factor, cfg)
    if ratio <= 0:
        return StageResult.failure(
            ErrorKind.LANDMARK_QUALITY,
            "measurement",
            "Shoulder landmarks collapsed; cannot derive a pixel scale",
            value=MeasurementSet(step=step),
            shoulder_width_px=d.shoulder_width,
        )

    shoulder_cm = d.shoulder_width * ratio
    arm_cm = (d.left_arm + d.right_arm) / 2.0 * ratio
    inseam_cm = (d.left_inseam + d.right_inseam) / 2.0 * ratio
    torso_cm = d.torso_height * ratio
    head_cm = d.head_height * ratio

    chest = _chest(shoulder_cm, torso_cm, height, step, cfg)
    waist = _height_adjusted(chest * cfg.waist_to_chest, height, step, cfg)
    hips = _height_adjusted(chest * cfg.hips_to_chest, height, step, cfg)
    neck = _neck(shoulder_cm, head_cm, cfg)

    logger.debug("measurement: step=%s ratio=%.4f shoulder=%.1fcm", step.value, ratio, shoulder_cm)
    raw = MeasurementSet(
        height=Measurement(height),
        chest=Measurement(chest),
        waist=Measurement(waist),
        hips=Measurement(hips),
        shoulders=Measurement(shoulder_cm),
        inseam=Measurement(inseam_cm),
        arm_length=Measurement(arm_cm),
        neck=Measurement(neck),
        step=step,
        validated=False,
    )
    return StageResult.success(raw, events=events)


def combine_views(front: MeasurementSet, side: MeasurementSet, digits: int = 1) -> MeasurementSet:
    """Average two emitted sets into a new one; the inputs are left untouched."""
    merged: Dict[str, Measurement] = {}
    for name, a in front.items():
        b = side.get(name)
        merged[name] = Measurement(
            value=round((a.value + b.value) / 2.0, digits),
            confidence=round((a.confidence + b.confidence) / 2.0, 4),
        )
    return replace(MeasurementSet(**merged), step=None, validated=front.validated and side.validated)
