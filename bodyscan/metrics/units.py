from __future__ import annotations

import math
from typing import Dict, Tuple

from .measurements import MeasurementSet


CM_PER_INCH = 2.54


def cm_to_inches(value_cm: float) -> float:
    return round(value_cm / CM_PER_INCH, 1)


def inches_to_cm(value_in: float) -> float:
    return round(value_in * CM_PER_INCH, 1)


def cm_to_feet_inches(value_cm: float) -> Tuple[int, float]:
    total_inches = value_cm / CM_PER_INCH
    feet = int(math.floor(total_inches / 12.0))
    inches = round(total_inches - feet * 12.0, 1)
    if inches >= 12.0:
        feet += 1
        inches = 0.0
    return feet, inches


def measurement_set_in_inches(mset: MeasurementSet) -> Dict[str, Dict[str, float]]:
    return {name: {"value": cm_to_inches(m.value), "confidence": m.confidence} for name, m in mset.items()}
