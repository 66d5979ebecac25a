from enum import Enum

import numpy as np


class Decision(str, Enum):
    SHIP = "ship"
    DONT_SHIP = "dont-ship"


def clears_threshold(point_estimate, threshold):
    # Ties go to ship
    return point_estimate >= threshold


def decide(point_estimate: float, threshold: float) -> Decision:
    if clears_threshold(point_estimate, threshold):
        return Decision.SHIP
    return Decision.DONT_SHIP


def ship_mask(point_estimates: np.ndarray, threshold: float) -> np.ndarray:
    """Vectorised ``decide``: True where the estimate leads to shipping."""
    return np.asarray(clears_threshold(np.asarray(point_estimates, dtype=float), threshold))
