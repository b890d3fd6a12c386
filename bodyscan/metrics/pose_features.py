from __future__ import annotations

import math
from typing import Dict

import numpy as np

from ..vision.landmarks import BodyLandmarks


POSE_STANDING = "standing"
POSE_LEANING = "leaning"
POSE_UNKNOWN = "unknown"

_POSE_KEYPOINTS = ("nose", "left_shoulder", "right_shoulder", "left_hip", "right_hip", "left_ankle", "right_ankle")
_ESSENTIAL = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")


def _present(lm: BodyLandmarks, name: str) -> bool:
    return lm.get(name).confidence > 0.0


def classify_pose(lm: BodyLandmarks, tilt_ratio: float = 0.1) -> str:
    # Shoulders roughly level => standing.
    if not (_present(lm, "left_shoulder") and _present(lm, "right_shoulder")):
        return POSE_UNKNOWN
    ls = lm.left_shoulder
    rs = lm.right_shoulder
    height_diff = abs(ls.y - rs.y)
    width = abs(rs.x - ls.x)
    if height_diff < width * tilt_ratio:
        return POSE_STANDING
    return POSE_LEANING


def pose_confidence(lm: BodyLandmarks) -> float:
    confs = [lm.get(k).confidence for k in _POSE_KEYPOINTS if _present(lm, k)]
    if not confs:
        return 0.0
    avg = float(np.mean(confs))
    bonus = 0.2 if all(_present(lm, k) for k in _ESSENTIAL) else 0.0
    return float(min(avg + bonus, 1.0))


def compute_features(lm: BodyLandmarks) -> Dict[str, float]:
    """Geometric pose descriptors in pixel space (empty for the sentinel)."""
    if lm.is_empty:
        return {}

    def pt(name: str) -> np.ndarray:
        p = lm.get(name)
        return np.array([p.x, p.y], dtype=float)

    ls, rs = pt("left_shoulder"), pt("right_shoulder")
    lh, rh = pt("left_hip"), pt("right_hip")

    shoulder_angle = math.degrees(math.atan2(rs[1] - ls[1], rs[0] - ls[0]))
    hip_angle = math.degrees(math.atan2(rh[1] - lh[1], rh[0] - lh[0]))
    ang_diff = abs(shoulder_angle - hip_angle) % 180.0
    if ang_diff > 90.0:
        ang_diff = 180.0 - ang_diff

    # Torso upright: angle between mid-hip->mid-shoulder and the image vertical.
    v = 0.5 * (ls + rs) - 0.5 * (lh + rh)
    v_norm = np.linalg.norm(v)
    if v_norm < 1e-8:
        torso_upright = 0.0
    else:
        vert = np.array([0.0, -1.0])
        torso_upright = math.degrees(math.acos(float(np.clip(np.dot(v / v_norm, vert), -1.0, 1.0))))

    return {
        "shoulder_tilt_deg": shoulder_angle,
        "hip_to_shoulder_parallel": ang_diff,
        "torso_upright": torso_upright,
        "shoulder_width_px": float(abs(rs[0] - ls[0])),
        "hip_width_px": float(abs(rh[0] - lh[0])),
        "stance_width_px": float(abs(pt("right_ankle")[0] - pt("left_ankle")[0])),
    }
