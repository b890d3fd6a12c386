"""Multi-frame calibration pass.

Samples ~30 frames, keeps those with a confident detection, and turns pose
consistency across them into a scale factor and an overall confidence. A
result is only published when the pass succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from ..config import CalibrationConfig
from ..errors import ErrorKind, StageResult
from ..metrics.pose_features import classify_pose, pose_confidence
from ..vision.frame import Frame
from ..vision.landmarks import BodyLandmarks


logger = logging.getLogger(__name__)

FrameSupplier = Union[Iterable[Optional[Frame]], Callable[[], Optional[Frame]]]
Detector = Callable[[Frame], Any]


@dataclass(frozen=True)
class CameraParams:
    focal_length: float
    principal_point: Tuple[float, float]
    distortion: Tuple[float, ...] = (0.0, 0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class CalibrationSample:
    timestamp: float
    landmarks: BodyLandmarks
    confidence: float
    pose: str


@dataclass(frozen=True)
class CalibrationResult:
    scale_factor: float
    confidence: float
    pose_stability: float
    avg_pose_confidence: float
    camera_params: CameraParams
    sample_count: int = 0
    frames_seen: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scale_factor": round(self.scale_factor, 4),
            "confidence": round(self.confidence, 4),
            "pose_stability": round(self.pose_stability, 4),
            "avg_pose_confidence": round(self.avg_pose_confidence, 4),
            "camera_params": {
                "focal_length": self.camera_params.focal_length,
                "principal_point": list(self.camera_params.principal_point),
                "distortion": list(self.camera_params.distortion),
            },
            "sample_count": self.sample_count,
            "frames_seen": self.frames_seen,
        }


def pose_stability(poses: List[str]) -> float:
    """1 when every sample shares one pose class, lower as classes multiply."""
    poses = [p for p in poses if p]
    if len(poses) < 2:
        return 0.0
    unique = len(set(poses))
    stability = 1.0 - (unique - 1) / max(len(poses) - 1, 1)
    return float(np.clip(stability, 0.0, 1.0))


def _iter_frames(
    source: FrameSupplier, limit: int, cancel: Optional[threading.Event] = None
) -> Iterator[Optional[Frame]]:
    grab = source if callable(source) else iter(source).__next__
    for _ in range(limit):
        # Checked before grabbing so a cancelled pass reads no further frame.
        if cancel is not None and cancel.is_set():
            return
        try:
            frame = grab()
        except StopIteration:
            return
        yield frame


@dataclass
class CalibrationEngine:
    detect: Detector
    config: CalibrationConfig = field(default_factory=CalibrationConfig)

    def collect(
        self,
        frames: FrameSupplier,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[List[CalibrationSample], int, Optional[Frame], bool]:
        cfg = self.config
        samples: List[CalibrationSample] = []
        seen = 0
        first: Optional[Frame] = None
        for frame in _iter_frames(frames, cfg.sample_count, cancel):
            if cancel is not None and cancel.is_set():
                return samples, seen, first, True
            seen += 1
            if frame is None:
                continue
            if first is None:
                first = frame
            result = self.detect(frame)
            analysis = result.analysis
            landmarks = result.landmarks
            if not analysis.has_human or analysis.confidence <= cfg.min_sample_confidence or landmarks.is_empty:
                continue
            samples.append(
                CalibrationSample(
                    timestamp=float(frame.timestamp),
                    landmarks=landmarks,
                    confidence=pose_confidence(landmarks),
                    pose=classify_pose(landmarks, cfg.standing_shoulder_tilt),
                )
            )
        cancelled = cancel is not None and cancel.is_set()
        return samples, seen, first, cancelled

    def run(
        self,
        frames: FrameSupplier,
        cancel: Optional[threading.Event] = None,
    ) -> StageResult[CalibrationResult]:
        cfg = self.config
        samples, seen, first, cancelled = self.collect(frames, cancel)
        if cancelled:
            logger.info("calibration cancelled after %d frames", seen)
            return StageResult.failure(
                ErrorKind.CALIBRATION_FAILURE, "calibration", "Calibration cancelled", cancelled=True, frames_seen=seen
            )
        if len(samples) < cfg.min_valid_samples:
            logger.warning("calibration failed: %d/%d valid samples", len(samples), seen)
            return StageResult.failure(
                ErrorKind.CALIBRATION_FAILURE,
                "calibration",
                "Insufficient valid frames for calibration",
                valid_samples=len(samples),
                required=cfg.min_valid_samples,
                frames_seen=seen,
            )

        avg_conf = float(np.mean([s.confidence for s in samples]))
        stability = pose_stability([s.pose for s in samples])
        scale = float(np.clip(stability, cfg.scale_min, cfg.scale_max))
        confidence = (avg_conf + stability) / 2.0
        if confidence <= cfg.min_confidence:
            logger.warning("calibration failed: confidence %.3f <= %.2f", confidence, cfg.min_confidence)
            return StageResult.failure(
                ErrorKind.CALIBRATION_FAILURE,
                "calibration",
                "Calibration confidence too low",
                confidence=round(confidence, 4),
                required=cfg.min_confidence,
                frames_seen=seen,
            )

        assert first is not None
        params = CameraParams(
            focal_length=float(first.width) * cfg.focal_length_ratio,
            principal_point=(float(first.width) / 2.0, float(first.height) / 2.0),
        )
        result = CalibrationResult(
            scale_factor=scale,
            confidence=float(confidence),
            pose_stability=stability,
            avg_pose_confidence=avg_conf,
            camera_params=params,
            sample_count=len(samples),
            frames_seen=seen,
        )
        logger.info("calibration ok: scale=%.3f confidence=%.3f", scale, confidence)
        return StageResult.success(result)
