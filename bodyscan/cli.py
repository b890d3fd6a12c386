from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import load_config
from .errors import ConfigError
from .core.pipeline import EstimationPipeline, EstimationResult
from .metrics.confidence import overall_confidence, proportion_warnings, quality_grade
from .metrics.measurements import CaptureStep, MeasurementSet, combine_views
from .metrics.pose_features import classify_pose, compute_features
from .metrics.units import measurement_set_in_inches
from .vision.frame import load_frame


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bodyscan",
        description="Camera-based body measurement estimation from still frames.",
    )
    p.add_argument("--config", default=None, help="YAML config file (default: config/estimation.yaml).")
    p.add_argument("-v", "--verbose", action="store_true", help="Log pipeline stages at DEBUG level.")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_detect = sub.add_parser("detect", help="Run the human-presence classifier on an image")
    p_detect.add_argument("image", help="Image file")

    p_measure = sub.add_parser("measure", help="Estimate body measurements from an image")
    p_measure.add_argument("image", help="Image file")
    p_measure.add_argument("--step", choices=[s.value for s in CaptureStep], default=CaptureStep.FRONT.value)
    p_measure.add_argument("--height", type=float, default=None, help="User height in cm.")
    p_measure.add_argument(
        "--side-image",
        default=None,
        help="Side-view image; when given, IMAGE is treated as the front view and both are combined.",
    )
    p_measure.add_argument("--units", choices=["cm", "in"], default="cm")

    p_cal = sub.add_parser("calibrate", help="Run a calibration pass over a sequence of images")
    p_cal.add_argument("images", nargs="+", help="Image files, in capture order")

    return p


def _dump(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def _load(path: str):
    frame = load_frame(Path(path))
    if frame is None:
        logger.error("could not read image: %s", path)
    return frame


def _measurement_payload(mset: MeasurementSet, units: str, cfg) -> Dict[str, Any]:
    if units == "in":
        values: Dict[str, Any] = measurement_set_in_inches(mset)
    else:
        values = {name: {"value": m.value, "confidence": m.confidence} for name, m in mset.items()}
    conf = overall_confidence(mset)
    return {
        "units": units,
        "step": mset.step.value if mset.step is not None else "combined",
        "measurements": values,
        "overall_confidence": round(conf, 4),
        "quality": quality_grade(conf),
        "warnings": proportion_warnings(mset, cfg.validation),
    }


def _estimation_payload(result: EstimationResult) -> Dict[str, Any]:
    return {
        "detection": result.detection.analysis.to_dict(),
        "error": result.error.to_dict() if result.error is not None else None,
        "events": [e.to_dict() for e in result.events],
    }


def run_detect(pipeline: EstimationPipeline, image: str) -> int:
    frame = _load(image)
    if frame is None:
        return 1
    detection = pipeline.detect(frame)
    payload = detection.analysis.to_dict()
    payload["bounding_box"] = None
    if detection.bounding_box is not None:
        bb = detection.bounding_box
        payload["bounding_box"] = {"min_x": bb.min_x, "max_x": bb.max_x, "min_y": bb.min_y, "max_y": bb.max_y}
    payload["contour_sizes"] = list(detection.contour_sizes)
    payload["pose"] = {
        "class": classify_pose(detection.landmarks, pipeline.config.calibration.standing_shoulder_tilt),
        "features": compute_features(detection.landmarks),
    }
    payload["events"] = [e.to_dict() for e in detection.events]
    _dump(payload)
    return 0 if detection.detected else 3


def run_measure(
    pipeline: EstimationPipeline,
    image: str,
    step: str,
    height_cm: Optional[float],
    side_image: Optional[str],
    units: str,
) -> int:
    frame = _load(image)
    if frame is None:
        return 1
    first_step = CaptureStep.FRONT if side_image else CaptureStep(step)
    first = pipeline.estimate(frame, first_step, height_cm)
    payload: Dict[str, Any] = {first_step.value: _estimation_payload(first)}
    if first.measurements is None:
        _dump(payload)
        return 3
    payload[first_step.value].update(_measurement_payload(first.measurements, units, pipeline.config))

    if side_image:
        side_frame = _load(side_image)
        if side_frame is None:
            payload["side"] = {"error": f"could not read image: {side_image}"}
            _dump(payload)
            return 1
        side = pipeline.estimate(side_frame, CaptureStep.SIDE, height_cm)
        payload["side"] = _estimation_payload(side)
        if side.measurements is None:
            _dump(payload)
            return 3
        payload["side"].update(_measurement_payload(side.measurements, units, pipeline.config))
        merged = combine_views(first.measurements, side.measurements, pipeline.config.validation.round_digits)
        payload["combined"] = _measurement_payload(merged, units, pipeline.config)

    _dump(payload)
    return 0


def run_calibrate(pipeline: EstimationPipeline, images: list[str]) -> int:
    frames = [load_frame(Path(p)) for p in images]
    missing = [p for p, f in zip(images, frames) if f is None]
    for path in missing:
        logger.warning("skipping unreadable image: %s", path)
    result = pipeline.calibration_engine().run(frames)
    if not result.ok:
        _dump({"calibrated": False, "error": result.error.to_dict()})
        return 3
    payload = result.value.to_dict()
    payload["calibrated"] = True
    _dump(payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(Path(args.config) if args.config else None)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2
    pipeline = EstimationPipeline(cfg)

    if args.cmd == "detect":
        return run_detect(pipeline, args.image)

    if args.cmd == "measure":
        return run_measure(pipeline, args.image, args.step, args.height, args.side_image, args.units)

    if args.cmd == "calibrate":
        return run_calibrate(pipeline, args.images)

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
