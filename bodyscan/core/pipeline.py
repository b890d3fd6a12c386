from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Optional, Tuple

from ..config import EstimationConfig
from ..errors import ErrorEvent, ErrorKind, StageResult
from ..metrics.confidence import validate_measurements
from ..metrics.measurements import CaptureStep, MeasurementSet, calculate_measurements
from ..vision.contours import BoundingBox, trace_contours
from ..vision.edges import detect_edges, edge_density
from ..vision.frame import Frame, ImageStatistics, image_statistics, to_grayscale
from ..vision.landmarks import BodyLandmarks, extract_landmarks, landmark_quality
from ..vision.presence import BodyAnalysis, check_body_shape, classify_presence
from .calibration import CalibrationEngine, CalibrationResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    analysis: BodyAnalysis
    landmarks: BodyLandmarks
    bounding_box: Optional[BoundingBox] = None
    contour_sizes: Tuple[int, ...] = ()
    statistics: Optional[ImageStatistics] = None
    error: Optional[ErrorEvent] = None
    events: Tuple[ErrorEvent, ...] = ()

    @property
    def detected(self) -> bool:
        return self.error is None and self.analysis.has_human and not self.landmarks.is_empty


@dataclass(frozen=True)
class EstimationResult:
    detection: DetectionResult
    measurements: Optional[MeasurementSet]
    error: Optional[ErrorEvent]
    events: Tuple[ErrorEvent, ...]


class EstimationPipeline:
    """Frame -> presence -> landmarks -> measurements, one cycle per call.

    Holds configuration only; nothing from one cycle survives into the next.
    """

    def __init__(self, config: Optional[EstimationConfig] = None) -> None:
        self.config = config or EstimationConfig()

    def detect(self, frame: Optional[Frame]) -> DetectionResult:
        cfg = self.config
        gray_res = to_grayscale(frame)
        if not gray_res.ok:
            analysis = BodyAnalysis(has_human=False, confidence=0.0, error_reason=ErrorKind.NO_FRAME.value)
            return DetectionResult(analysis, BodyLandmarks.empty(), error=gray_res.error, events=gray_res.events)
        gray = gray_res.value
        stats = image_statistics(gray)

        analysis = classify_presence(gray, cfg.presence)
        if not analysis.has_human:
            err = ErrorEvent(
                kind=ErrorKind.NO_HUMAN,
                stage="presence",
                message="No human detected",
                details={"confidence": round(analysis.confidence, 4)},
            )
            return DetectionResult(analysis, BodyLandmarks.empty(), statistics=stats, error=err, events=(err,))

        edges = detect_edges(gray, cfg.edges.threshold)
        density = edge_density(edges)
        logger.debug("edges: density=%.4f", density)
        analysis = replace(analysis, features={**analysis.features, "edge_density": round(density, 4)})
        contour_res = trace_contours(edges, cfg.contours.min_points, cfg.contours.max_contours)
        if not contour_res.ok:
            analysis = replace(analysis, error_reason=ErrorKind.INSUFFICIENT_CONTOUR.value)
            return DetectionResult(
                analysis, BodyLandmarks.empty(), statistics=stats, error=contour_res.error, events=contour_res.events
            )
        contours = contour_res.value
        dominant = contours[0]
        shape_ok, shape = check_body_shape(dominant, cfg.presence)
        analysis = replace(analysis, features={**analysis.features, **shape})
        if not shape_ok:
            analysis = replace(analysis, has_human=False, error_reason=ErrorKind.NO_HUMAN.value)
            err = ErrorEvent(
                kind=ErrorKind.NO_HUMAN,
                stage="shape",
                message="Edge outline does not have human proportions",
                details=dict(shape),
            )
            return DetectionResult(
                analysis,
                BodyLandmarks.empty(),
                bounding_box=dominant.bounding_box(),
                contour_sizes=tuple(c.size for c in contours),
                statistics=stats,
                error=err,
                events=(err,),
            )
        landmarks = extract_landmarks(dominant, analysis.confidence, cfg.landmarks)

        events: Tuple[ErrorEvent, ...] = ()
        quality = landmark_quality(landmarks, cfg.landmarks.valid_confidence)
        if quality < cfg.validation.min_landmark_quality:
            events = (
                ErrorEvent(
                    kind=ErrorKind.LANDMARK_QUALITY,
                    stage="landmarks",
                    message="Landmark confidence below acceptable ratio",
                    details={"quality": round(quality, 4)},
                ),
            )
        return DetectionResult(
            analysis=analysis,
            landmarks=landmarks,
            bounding_box=dominant.bounding_box(),
            contour_sizes=tuple(c.size for c in contours),
            statistics=stats,
            events=events,
        )

    def measure(
        self,
        landmarks: BodyLandmarks,
        step: CaptureStep = CaptureStep.FRONT,
        height_cm: Optional[float] = None,
        calibration: Optional[CalibrationResult] = None,
    ) -> StageResult[MeasurementSet]:
        cfg = self.config
        # Without a calibration pass the default scale applies, flagged by the
        # lower uncalibrated confidence.
        scale = calibration.scale_factor if calibration is not None else 1.0
        cal_conf = calibration.confidence if calibration is not None else None
        raw = calculate_measurements(landmarks, step, height_cm, scale, cfg.measurement, cfg.validation)
        if not raw.ok:
            return raw
        validated = validate_measurements(raw.value, landmarks, cal_conf, cfg.validation, cfg.landmarks.valid_confidence)
        return StageResult.success(validated.value, events=raw.events + validated.events)

    def estimate(
        self,
        frame: Optional[Frame],
        step: CaptureStep = CaptureStep.FRONT,
        height_cm: Optional[float] = None,
        calibration: Optional[CalibrationResult] = None,
    ) -> EstimationResult:
        detection = self.detect(frame)
        if not detection.detected:
            return EstimationResult(detection, None, detection.error, detection.events)
        measured = self.measure(detection.landmarks, step, height_cm, calibration)
        events = detection.events + measured.events
        if not measured.ok:
            return EstimationResult(detection, None, measured.error, events)
        return EstimationResult(detection, measured.value, None, events)

    def calibration_engine(self) -> CalibrationEngine:
        return CalibrationEngine(detect=self.detect, config=self.config.calibration)
