"""
Extended Kalman Filter for body-frame velocity estimation.
"""

from .ekf import VelocityEKF, UpdateResult
from .state import VelocityState
from .models import MotionModel, MeasurementModel, Measurement

__all__ = [
    "VelocityEKF", "UpdateResult", "VelocityState",
    "MotionModel", "MeasurementModel", "Measurement"
]
