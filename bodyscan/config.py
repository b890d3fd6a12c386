from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic.config import ConfigDict

from .errors import ConfigError


# Tunable constants for the classical estimation pipeline. The anthropometric
# ratios and classifier thresholds are empirical, not derived from a dataset.


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class EdgeConfig(_Section):
    threshold: float = 100.0


class ContourConfig(_Section):
    min_points: int = Field(default=50, ge=1)  # inclusive
    max_contours: int = Field(default=3, ge=1)


class PresenceConfig(_Section):
    min_contrast: float = 20.0
    decision_threshold: float = 0.6

    head_band: tuple[float, float] = (0.0, 0.3)
    head_grid_step: int = 10
    head_margin_px: int = 20
    head_radius_px: int = 15
    head_probe_count: int = 12
    head_luminance_diff: int = 30
    head_weight: float = 0.3

    shoulder_band: tuple[float, float] = (0.2, 0.4)
    shoulder_row_step: int = 5
    shoulder_luminance_diff: int = 10
    shoulder_row_fraction: float = 0.6
    shoulder_weight: float = 0.2

    vertical_columns: tuple[float, float] = (0.3, 0.7)
    vertical_column_step: int = 10
    vertical_luminance_diff: int = 15

    torso_band: tuple[float, float] = (0.3, 0.8)
    torso_min_strength: float = 0.5
    torso_weight: float = 0.3

    leg_band: tuple[float, float] = (0.6, 1.0)
    leg_min_strength: float = 0.4
    leg_weight: float = 0.2

    # Dominant edge contour: edge pixels per bounding-box pixel, and height over width.
    shape_min_edge_fill: float = 0.01
    shape_max_edge_fill: float = 0.3
    shape_min_aspect: float = 1.0


class LandmarkProportion(_Section):
    y_frac: float  # from the top of the body bounding box
    spread: float = 0.0  # half-distance between the pair, fraction of body width
    reliability: float = 1.0


def _default_proportions() -> dict[str, LandmarkProportion]:
    return {
        "nose": LandmarkProportion(y_frac=0.075, spread=0.0, reliability=0.95),
        "shoulder": LandmarkProportion(y_frac=0.20, spread=0.40, reliability=0.90),
        "elbow": LandmarkProportion(y_frac=0.40, spread=0.30, reliability=0.85),
        "wrist": LandmarkProportion(y_frac=0.55, spread=0.20, reliability=0.80),
        "hip": LandmarkProportion(y_frac=0.60, spread=0.35, reliability=0.90),
        "knee": LandmarkProportion(y_frac=0.80, spread=0.15, reliability=0.85),
        "ankle": LandmarkProportion(y_frac=0.95, spread=0.10, reliability=0.80),
    }


class LandmarkConfig(_Section):
    proportions: dict[str, LandmarkProportion] = Field(default_factory=_default_proportions)
    valid_confidence: float = 0.3

    @model_validator(mode="after")
    def _check_parts(self) -> "LandmarkConfig":
        missing = {"nose", "shoulder", "elbow", "wrist", "hip", "knee", "ankle"} - set(self.proportions)
        if missing:
            raise ValueError(f"landmark proportions missing: {sorted(missing)}")
        return self


class CalibrationConfig(_Section):
    sample_count: int = 30
    min_valid_samples: int = 5
    min_sample_confidence: float = 0.5
    min_confidence: float = 0.6
    scale_min: float = 0.8
    scale_max: float = 1.2
    standing_shoulder_tilt: float = 0.1
    focal_length_ratio: float = 0.7


class MeasurementConfig(_Section):
    reference_shoulder_cm: float = 40.0
    reference_height_cm: float = 175.0
    reference_head_cm: float = 25.0
    chest_to_shoulder: float = 2.5
    side_depth_factor: float = 1.1
    waist_to_chest: float = 0.85
    hips_to_chest: float = 0.95
    neck_to_shoulder: float = 0.25


class Range(_Section):
    min: float
    max: float

    @model_validator(mode="after")
    def _ordered(self) -> "Range":
        if self.min > self.max:
            raise ValueError(f"range min {self.min} exceeds max {self.max}")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))


class HeightBand(_Section):
    optimal_min: float = 120.0
    optimal_max: float = 220.0
    acceptable_min: float = 100.0
    acceptable_max: float = 250.0

    @property
    def average(self) -> float:
        return (self.optimal_min + self.optimal_max) / 2.0

    @property
    def acceptable(self) -> Range:
        return Range(min=self.acceptable_min, max=self.acceptable_max)


def _default_ranges() -> dict[str, Range]:
    return {
        "chest": Range(min=60, max=150),
        "waist": Range(min=50, max=140),
        "hips": Range(min=60, max=150),
        "shoulders": Range(min=25, max=70),
        "inseam": Range(min=60, max=100),
        "arm_length": Range(min=50, max=80),
        "neck": Range(min=25, max=50),
    }


class ValidationConfig(_Section):
    ranges: dict[str, Range] = Field(default_factory=_default_ranges)
    height: HeightBand = Field(default_factory=HeightBand)
    uncalibrated_confidence: float = 0.5
    out_of_range_penalty: float = 0.7
    min_landmark_quality: float = 0.7
    round_digits: int = 1
    shoulder_to_height: tuple[float, float] = (0.22, 0.30)


class CaptureConfig(_Section):
    dwell_seconds: float = 2.0
    scan_timeout_seconds: float = 15.0
    tick_interval_seconds: float = 0.1


class EstimationConfig(_Section):
    edges: EdgeConfig = Field(default_factory=EdgeConfig)
    contours: ContourConfig = Field(default_factory=ContourConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    landmarks: LandmarkConfig = Field(default_factory=LandmarkConfig)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    measurement: MeasurementConfig = Field(default_factory=MeasurementConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)


def default_config_path() -> Path:
    root = Path(__file__).resolve().parent.parent
    return root / "config" / "estimation.yaml"


def load_config(path: Optional[Path] = None) -> EstimationConfig:
    cfg_path = Path(path) if path is not None else default_config_path()
    if not cfg_path.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {cfg_path}")
        return EstimationConfig()
    try:
        data = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if data is None:
        return EstimationConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path} must contain a mapping at the top level")
    try:
        return EstimationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}:\n{exc}") from exc
