from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..config import PresenceConfig
from ..errors import ErrorKind
from .contours import Contour
from .frame import image_statistics


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeadCandidate:
    x: int
    y: int
    radius: int
    score: float  # fraction of probes that differ from the centre


@dataclass(frozen=True)
class ShoulderLine:
    y: int
    strength: float


@dataclass(frozen=True)
class BodyAnalysis:
    has_human: bool
    confidence: float
    keypoints: Optional[Dict[str, Tuple[float, float]]] = None
    features: Dict[str, Any] = field(default_factory=dict)
    error_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_human": bool(self.has_human),
            "confidence": round(float(self.confidence), 4),
            "keypoints": None if self.keypoints is None else {k: list(v) for k, v in self.keypoints.items()},
            "features": dict(self.features),
            "error_reason": self.error_reason,
        }


def _band_rows(height: int, band: Tuple[float, float]) -> Tuple[int, int]:
    return int(math.floor(height * band[0])), int(math.floor(height * band[1]))


def detect_head_candidates(gray: np.ndarray, cfg: PresenceConfig) -> List[HeadCandidate]:
    """Grid centres in the head band whose ring of probes mostly differs in luminance."""
    h, w = gray.shape[:2]
    y0, y1 = _band_rows(h, cfg.head_band)
    ys = np.arange(y0, y1, cfg.head_grid_step)
    xs = np.arange(cfg.head_margin_px, w - cfg.head_margin_px, cfg.head_grid_step)
    if ys.size == 0 or xs.size == 0:
        return []
    cy, cx = np.meshgrid(ys, xs, indexing="ij")
    cy = cy.ravel()
    cx = cx.ravel()
    g = gray.astype(np.int32)
    centre = g[cy, cx]
    hits = np.zeros(cy.shape, dtype=np.int32)
    step = 360.0 / float(cfg.head_probe_count)
    for k in range(cfg.head_probe_count):
        rad = math.radians(k * step)
        px = np.floor(cx + cfg.head_radius_px * math.cos(rad)).astype(np.int64)
        py = np.floor(cy + cfg.head_radius_px * math.sin(rad)).astype(np.int64)
        inside = (px >= 0) & (px < w) & (py >= 0) & (py < h)
        probe = np.zeros(cy.shape, dtype=np.int32)
        probe[inside] = g[py[inside], px[inside]]
        hits += (inside & (np.abs(centre - probe) > cfg.head_luminance_diff)).astype(np.int32)
    passed = hits > (cfg.head_probe_count // 2)
    return [
        HeadCandidate(x=int(x), y=int(y), radius=int(cfg.head_radius_px), score=float(n) / cfg.head_probe_count)
        for x, y, n in zip(cx[passed], cy[passed], hits[passed])
    ]


def detect_shoulder_lines(gray: np.ndarray, cfg: PresenceConfig) -> List[ShoulderLine]:
    """Rows in the shoulder band where most horizontal neighbours are near-equal."""
    h, w = gray.shape[:2]
    if w < 3:
        return []
    y0, y1 = _band_rows(h, cfg.shoulder_band)
    lines: List[ShoulderLine] = []
    g = gray.astype(np.int32)
    for y in range(y0, y1, cfg.shoulder_row_step):
        row = g[y]
        flat = int(np.count_nonzero(np.abs(row[:-2] - row[2:]) < cfg.shoulder_luminance_diff))
        if flat > w * cfg.shoulder_row_fraction:
            lines.append(ShoulderLine(y=int(y), strength=float(flat) / float(w)))
    return lines


def vertical_structure_strength(gray: np.ndarray, band: Tuple[float, float], cfg: PresenceConfig) -> float:
    """Mean fraction of near-equal vertical neighbours over sampled columns of a band."""
    h, w = gray.shape[:2]
    y0, y1 = _band_rows(h, band)
    x0, x1 = _band_rows(w, cfg.vertical_columns)
    cols = np.arange(x0, x1, cfg.vertical_column_step)
    span = y1 - y0
    if cols.size == 0 or span <= 1:
        return 0.0
    block = gray[y0:y1, :][:, cols].astype(np.int32)
    flat = np.abs(block[1:] - block[:-1]) < cfg.vertical_luminance_diff
    per_column = flat.sum(axis=0) / float(span)
    return float(np.mean(per_column))


def classify_presence(gray: Optional[np.ndarray], cfg: Optional[PresenceConfig] = None) -> BodyAnalysis:
    cfg = cfg or PresenceConfig()
    if gray is None or gray.size == 0:
        return BodyAnalysis(has_human=False, confidence=0.0, error_reason=ErrorKind.NO_FRAME.value)

    stats = image_statistics(gray)
    if stats.contrast < cfg.min_contrast:
        logger.debug("presence: flat frame contrast=%d", stats.contrast)
        return BodyAnalysis(
            has_human=False,
            confidence=0.0,
            features={"contrast": stats.contrast},
            error_reason=ErrorKind.NO_HUMAN.value,
        )

    heads = detect_head_candidates(gray, cfg)
    shoulders = detect_shoulder_lines(gray, cfg)
    torso = vertical_structure_strength(gray, cfg.torso_band, cfg)
    legs = vertical_structure_strength(gray, cfg.leg_band, cfg)

    score = 0.0
    if heads:
        score += cfg.head_weight
    if shoulders:
        score += cfg.shoulder_weight
    if torso > cfg.torso_min_strength:
        score += cfg.torso_weight
    if legs > cfg.leg_min_strength:
        score += cfg.leg_weight
    confidence = float(min(max(score, 0.0), 1.0))
    has_human = confidence > cfg.decision_threshold

    keypoints: Dict[str, Tuple[float, float]] = {}
    if heads:
        best = max(heads, key=lambda c: c.score)
        keypoints["head"] = (float(best.x), float(best.y))
    if shoulders:
        strongest = max(shoulders, key=lambda s: s.strength)
        keypoints["shoulder_line"] = (float(gray.shape[1]) / 2.0, float(strongest.y))

    features = {
        "contrast": stats.contrast,
        "head_candidates": len(heads),
        "shoulder_lines": len(shoulders),
        "torso_strength": round(torso, 4),
        "leg_strength": round(legs, 4),
    }
    logger.debug("presence: confidence=%.2f features=%s", confidence, features)
    return BodyAnalysis(
        has_human=has_human,
        confidence=confidence,
        keypoints=keypoints or None,
        features=features,
        error_reason=None if has_human else ErrorKind.NO_HUMAN.value,
    )


def check_body_shape(contour: Optional[Contour], cfg: Optional[PresenceConfig] = None) -> Tuple[bool, Dict[str, float]]:
    """Proportion gate on the dominant edge contour.

    A standing body gives a sparse outline in a box taller than it is wide;
    dense texture fills its box with edges and a wide flat blob fails the
    aspect test.
    """
    cfg = cfg or PresenceConfig()
    if contour is None or contour.size == 0:
        return False, {"edge_fill": 0.0, "aspect_ratio": 0.0}
    fill = contour.fill_ratio
    aspect = contour.aspect_ratio
    features = {"edge_fill": round(fill, 4), "aspect_ratio": round(aspect, 4)}
    ok = cfg.shape_min_edge_fill < fill < cfg.shape_max_edge_fill and aspect >= cfg.shape_min_aspect
    if not ok:
        logger.debug("shape: rejected %s", features)
    return ok, features
