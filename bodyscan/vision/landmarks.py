from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Dict, Iterator, Optional, Tuple, Union

from ..config import LandmarkConfig
from .contours import BoundingBox, Contour


LANDMARK_NAMES = (
    "nose",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)


@dataclass(frozen=True)
class Landmark:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0  # placeholder, single-frame 2-D estimation
    confidence: float = 0.0


_ZERO = Landmark()


@dataclass(frozen=True)
class BodyLandmarks:
    """All thirteen landmarks, or the all-zero sentinel. Never partial."""

    nose: Landmark = _ZERO
    left_shoulder: Landmark = _ZERO
    right_shoulder: Landmark = _ZERO
    left_elbow: Landmark = _ZERO
    right_elbow: Landmark = _ZERO
    left_wrist: Landmark = _ZERO
    right_wrist: Landmark = _ZERO
    left_hip: Landmark = _ZERO
    right_hip: Landmark = _ZERO
    left_knee: Landmark = _ZERO
    right_knee: Landmark = _ZERO
    left_ankle: Landmark = _ZERO
    right_ankle: Landmark = _ZERO

    @staticmethod
    def empty() -> "BodyLandmarks":
        return BodyLandmarks()

    @property
    def is_empty(self) -> bool:
        return all(lm == _ZERO for _, lm in self.items())

    def items(self) -> Iterator[Tuple[str, Landmark]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def get(self, name: str) -> Landmark:
        return getattr(self, name)

    def points(self) -> Dict[str, Tuple[float, float]]:
        return {name: (lm.x, lm.y) for name, lm in self.items()}

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {name: asdict(lm) for name, lm in self.items()}


def landmark_quality(landmarks: BodyLandmarks, min_confidence: float = 0.3) -> float:
    """Fraction of landmarks whose confidence exceeds `min_confidence`."""
    total = len(LANDMARK_NAMES)
    valid = sum(1 for _, lm in landmarks.items() if lm.confidence > min_confidence)
    return float(valid) / float(total)


def _clamp01(v: float) -> float:
    return float(max(0.0, min(1.0, v)))


def extract_landmarks(
    source: Union[Contour, BoundingBox, None],
    confidence: float,
    cfg: Optional[LandmarkConfig] = None,
) -> BodyLandmarks:
    """Place the skeleton on a body bounding box using fixed body proportions.

    Each landmark's confidence is the presence confidence scaled by the
    part's reliability factor.
    """
    cfg = cfg or LandmarkConfig()
    if isinstance(source, Contour):
        box = source.bounding_box()
    else:
        box = source
    if box is None or box.width <= 0 or box.height <= 0:
        return BodyLandmarks.empty()

    base = _clamp01(confidence)
    props = cfg.proportions
    body_w = float(box.width)
    body_h = float(box.height)
    cx = box.center_x

    def at(part: str, side: int) -> Landmark:
        p = props[part]
        return Landmark(
            x=cx + side * p.spread * body_w,
            y=box.min_y + p.y_frac * body_h,
            z=0.0,
            confidence=_clamp01(base * p.reliability),
        )

    # Image-left is the subject's right in a front-facing capture; "left" here
    # means the smaller x coordinate.
    return BodyLandmarks(
        nose=at("nose", 0),
        left_shoulder=at("shoulder", -1),
        right_shoulder=at("shoulder", 1),
        left_elbow=at("elbow", -1),
        right_elbow=at("elbow", 1),
        left_wrist=at("wrist", -1),
        right_wrist=at("wrist", 1),
        left_hip=at("hip", -1),
        right_hip=at("hip", 1),
        left_knee=at("knee", -1),
        right_knee=at("knee", 1),
        left_ankle=at("ankle", -1),
        right_ankle=at("ankle", 1),
    )
