from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar


T = TypeVar("T")


class ErrorKind(str, Enum):
    NO_FRAME = "NoFrameError"
    NO_HUMAN = "NoHumanDetected"
    INSUFFICIENT_CONTOUR = "InsufficientContour"
    LANDMARK_QUALITY = "LandmarkQualityError"
    OUT_OF_RANGE = "MeasurementOutOfRange"
    CALIBRATION_FAILURE = "CalibrationFailure"


@dataclass(frozen=True)
class ErrorEvent:
    kind: ErrorKind
    stage: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "stage": self.stage,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Value-or-error returned by every pipeline stage.

    `events` carries non-fatal conditions (clamped measurements, degraded
    landmark quality) alongside a successful value.
    """

    value: Optional[T] = None
    error: Optional[ErrorEvent] = None
    events: tuple[ErrorEvent, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @staticmethod
    def success(value: T, events: tuple[ErrorEvent, ...] = ()) -> "StageResult[T]":
        return StageResult(value=value, error=None, events=tuple(events))

    @staticmethod
    def failure(
        kind: ErrorKind,
        stage: str,
        message: str,
        value: Optional[T] = None,
        **details: Any,
    ) -> "StageResult[T]":
        event = ErrorEvent(kind=kind, stage=stage, message=message, details=details)
        return StageResult(value=value, error=event, events=(event,))


class ConfigError(ValueError):
    """Raised when a configuration file cannot be parsed or validated."""
