from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import threading
from typing import Callable, List, Optional, Tuple

from ..config import EstimationConfig
from ..errors import ErrorEvent, ErrorKind, StageResult
from ..metrics.measurements import CaptureStep, MeasurementSet, combine_views
from ..utils.clock import FrameClock, MonotonicClock, elapsed
from ..vision.frame import Frame
from ..vision.presence import BodyAnalysis
from .calibration import CalibrationResult, FrameSupplier
from .pipeline import EstimationPipeline


logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    TIMEOUT = "timeout"
    DETECTED = "detected"
    TRACKING_FRONT = "tracking_front"
    TRACKING_SIDE = "tracking_side"
    COMPLETE = "complete"


@dataclass(frozen=True)
class CaptureSnapshot:
    state: CaptureState
    status_message: str
    error_reason: Optional[str]
    dwell_seconds: float
    dropped_ticks: int
    analysis: Optional[BodyAnalysis]
    front: Optional[MeasurementSet]
    side: Optional[MeasurementSet]
    calibrated: bool
    events: Tuple[ErrorEvent, ...] = ()


FrameSource = Callable[[], Optional[Frame]]


class CaptureController:
    """Tick-driven capture session: scan, dwell, measure front, measure side.

    One detection cycle runs at a time; a tick that arrives while a cycle is
    in flight is dropped, not queued. `reset()` discards everything in flight.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        pipeline: Optional[EstimationPipeline] = None,
        clock: Optional[FrameClock] = None,
        height_cm: Optional[float] = None,
    ) -> None:
        self.frame_source = frame_source
        self.pipeline = pipeline or EstimationPipeline()
        self.clock = clock or MonotonicClock()
        self.height_cm = height_cm

        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._generation = 0
        self._dropped = 0
        self._calibration: Optional[CalibrationResult] = None
        self._clear_session()

    @property
    def config(self) -> EstimationConfig:
        return self.pipeline.config

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def calibration(self) -> Optional[CalibrationResult]:
        return self._calibration

    def snapshot(self, events: Tuple[ErrorEvent, ...] = ()) -> CaptureSnapshot:
        with self._state_lock:
            return self._snapshot_unlocked(events)

    def _clear_session(self) -> None:
        self._state = CaptureState.IDLE
        self._status_message = "Idle."
        self._error_reason: Optional[str] = None
        self._phase_started: Optional[float] = None
        self._first_seen: Optional[float] = None
        self._last_analysis: Optional[BodyAnalysis] = None
        self._front: Optional[MeasurementSet] = None
        self._side: Optional[MeasurementSet] = None

    def _set_state(self, state: CaptureState, message: str) -> None:
        if state != self._state:
            logger.info("capture: %s -> %s", self._state.value, state.value)
        self._state = state
        self._status_message = message
        if state in (CaptureState.SCANNING, CaptureState.TRACKING_FRONT, CaptureState.TRACKING_SIDE):
            self._phase_started = self.clock.now()

    def start_scan(self) -> CaptureSnapshot:
        with self._state_lock:
            self._generation += 1
            self._clear_session()
            self._set_state(CaptureState.SCANNING, "Step into the frame and hold still.")
        return self.snapshot()

    def reset(self) -> CaptureSnapshot:
        with self._state_lock:
            self._generation += 1
            self._clear_session()
        return self.snapshot()

    def combined(self) -> Optional[MeasurementSet]:
        if self._front is None or self._side is None:
            return None
        return combine_views(self._front, self._side, self.config.validation.round_digits)

    def calibrate(
        self,
        frames: FrameSupplier,
        cancel: Optional[threading.Event] = None,
    ) -> StageResult[CalibrationResult]:
        result = self.pipeline.calibration_engine().run(frames, cancel)
        if result.ok:
            # Replaced as a whole; measurements read whichever result is current.
            with self._state_lock:
                self._calibration = result.value
        return result

    def tick(self) -> CaptureSnapshot:
        if not self._cycle_lock.acquire(blocking=False):
            with self._state_lock:
                self._dropped += 1
            return self.snapshot()
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> CaptureSnapshot:
        with self._state_lock:
            state = self._state
            generation = self._generation
        if state in (CaptureState.IDLE, CaptureState.TIMEOUT, CaptureState.COMPLETE):
            return self.snapshot()
        if state == CaptureState.DETECTED:
            with self._state_lock:
                if generation == self._generation:
                    self._set_state(CaptureState.TRACKING_FRONT, "Face the camera.")
            return self.snapshot()

        frame = self.frame_source()
        detection = self.pipeline.detect(frame)
        events: List[ErrorEvent] = list(detection.events)

        measured: Optional[StageResult[MeasurementSet]] = None
        step: Optional[CaptureStep] = None
        if detection.detected and state in (CaptureState.TRACKING_FRONT, CaptureState.TRACKING_SIDE):
            step = CaptureStep.FRONT if state == CaptureState.TRACKING_FRONT else CaptureStep.SIDE
            measured = self.pipeline.measure(detection.landmarks, step, self.height_cm, self._calibration)
            events.extend(e for e in measured.events if e not in events)

        with self._state_lock:
            if generation != self._generation:
                # Reset while the cycle was in flight; drop its results.
                return self._snapshot_unlocked(())
            self._last_analysis = detection.analysis
            self._error_reason = detection.analysis.error_reason
            if state == CaptureState.SCANNING:
                self._advance_scan(detection.detected)
            elif measured is not None and measured.ok:
                self._store_measurement(step, measured.value)
            else:
                if measured is not None and measured.error is not None:
                    self._error_reason = measured.error.kind.value
                self._check_timeout()
            return self._snapshot_unlocked(tuple(events))

    def _snapshot_unlocked(self, events: Tuple[ErrorEvent, ...]) -> CaptureSnapshot:
        dwell = elapsed(self.clock, self._first_seen) if self._first_seen is not None else 0.0
        return CaptureSnapshot(
            state=self._state,
            status_message=self._status_message,
            error_reason=self._error_reason,
            dwell_seconds=dwell,
            dropped_ticks=self._dropped,
            analysis=self._last_analysis,
            front=self._front,
            side=self._side,
            calibrated=self._calibration is not None,
            events=events,
        )

    def _advance_scan(self, detected: bool) -> None:
        cfg = self.config.capture
        if detected:
            if self._first_seen is None:
                self._first_seen = self.clock.now()
            if elapsed(self.clock, self._first_seen) >= cfg.dwell_seconds:
                self._set_state(CaptureState.DETECTED, "Body detected.")
                return
            self._status_message = "Hold still..."
        else:
            self._first_seen = None
        self._check_timeout()

    def _check_timeout(self) -> None:
        cfg = self.config.capture
        if elapsed(self.clock, self._phase_started) >= cfg.scan_timeout_seconds:
            reason = self._error_reason or ErrorKind.NO_HUMAN.value
            self._first_seen = None
            self._set_state(CaptureState.TIMEOUT, f"Timed out: {reason}")
            self._error_reason = reason

    def _store_measurement(self, step: Optional[CaptureStep], mset: MeasurementSet) -> None:
        self._error_reason = None
        if step == CaptureStep.FRONT:
            self._front = mset
            self._set_state(CaptureState.TRACKING_SIDE, "Turn 90 degrees to your side.")
        else:
            self._side = mset
            self._set_state(CaptureState.COMPLETE, "Measurements complete.")

    def run(self, stop: Optional[threading.Event] = None) -> CaptureSnapshot:
        """Tick at the configured interval until the session ends or `stop` is set."""
        stop = stop or threading.Event()
        snap = self.snapshot()
        while not stop.is_set():
            snap = self.tick()
            if snap.state in (CaptureState.IDLE, CaptureState.TIMEOUT, CaptureState.COMPLETE):
                break
            stop.wait(self.config.capture.tick_interval_seconds)
        return snap
