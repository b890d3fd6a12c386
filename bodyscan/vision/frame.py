"""Frames and luminance.

A Frame is supplied once per detection cycle by the frame-acquisition side.
Everything derived from it (grayscale, edges, contours) is recomputed every
cycle and never cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import time
from typing import Optional, Union

import cv2
import numpy as np

from ..errors import ErrorKind, StageResult


PixelBuffer = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class Frame:
    width: int
    height: int
    pixels: Optional[PixelBuffer]
    timestamp: float = 0.0


@dataclass(frozen=True)
class ImageStatistics:
    mean: float
    variance: float
    min: int
    max: int
    contrast: int
    brightness: float


def _rgba_view(frame: Frame) -> Optional[np.ndarray]:
    w, h = int(frame.width), int(frame.height)
    if w <= 0 or h <= 0 or frame.pixels is None:
        return None
    if isinstance(frame.pixels, np.ndarray):
        arr = frame.pixels
        if arr.ndim == 3 and arr.shape[:2] == (h, w) and arr.shape[2] in (3, 4):
            return arr
        if arr.ndim == 1 and arr.size == w * h * 4:
            return arr.reshape(h, w, 4)
        return None
    buf = np.frombuffer(frame.pixels, dtype=np.uint8)
    if buf.size != w * h * 4:
        return None
    return buf.reshape(h, w, 4)


def to_grayscale(frame: Optional[Frame]) -> StageResult[np.ndarray]:
    if frame is None:
        return StageResult.failure(ErrorKind.NO_FRAME, "grayscale", "No frame supplied")
    rgba = _rgba_view(frame)
    if rgba is None:
        return StageResult.failure(
            ErrorKind.NO_FRAME,
            "grayscale",
            "Pixel buffer missing or does not match frame dimensions",
            width=int(frame.width),
            height=int(frame.height),
        )
    rgb = rgba[:, :, :3].astype(np.float64)
    lum = 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]
    # Equal channels must map back to the same level despite float rounding.
    gray = np.floor(lum + 1e-6).clip(0, 255).astype(np.uint8)
    return StageResult.success(gray)


def image_statistics(gray: Optional[np.ndarray]) -> ImageStatistics:
    if gray is None or gray.size == 0:
        return ImageStatistics(mean=0.0, variance=0.0, min=0, max=0, contrast=0, brightness=0.0)
    values = gray.astype(np.float64)
    mean = float(np.mean(values))
    lo = int(np.min(gray))
    hi = int(np.max(gray))
    return ImageStatistics(
        mean=mean,
        variance=float(np.var(values)),
        min=lo,
        max=hi,
        contrast=hi - lo,
        brightness=mean,
    )


def frame_from_bgr(image_bgr: np.ndarray, timestamp: Optional[float] = None) -> Frame:
    if image_bgr.ndim == 2:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_GRAY2RGBA)
    elif image_bgr.shape[2] == 4:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGBA)
    h, w = rgba.shape[:2]
    ts = time.time() if timestamp is None else float(timestamp)
    return Frame(width=int(w), height=int(h), pixels=np.ascontiguousarray(rgba), timestamp=ts)


def frame_from_gray(gray: np.ndarray, timestamp: float = 0.0) -> Frame:
    """Wrap a single-channel image as an RGBA frame with equal channels."""
    g = np.asarray(gray, dtype=np.uint8)
    alpha = np.full_like(g, 255)
    rgba = np.stack([g, g, g, alpha], axis=-1)
    return Frame(width=int(g.shape[1]), height=int(g.shape[0]), pixels=rgba, timestamp=float(timestamp))


def load_frame(path: Path) -> Optional[Frame]:
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        return None
    return frame_from_bgr(image, timestamp=Path(path).stat().st_mtime)
