"""
Vehicle velocity estimation by sensor fusion.

This package provides platform-independent implementations of:
- A 3-state Extended Kalman Filter over body-frame velocity
- OBD-II diagnostic polling, decoding and caching
- GPS and visual odometry speed sources
- A physics fallback for stale diagnostics
- The fixed-rate fusion loop tying them together
"""

__version__ = "1.0.0"
__author__ = "Speed Fusion Team"

from .config import Config
from .ekf import VelocityEKF, VelocityState
from .fusion import FusionOrchestrator, FusedState
from .obd import DiagnosticCache, DiagnosticScheduler
from .sensors import VisualOdometryEstimator, GPSProcessor, PositionFix
from .sim import PhysicsFallback

__all__ = [
    "Config",
    "VelocityEKF",
    "VelocityState",
    "FusionOrchestrator",
    "FusedState",
    "DiagnosticCache",
    "DiagnosticScheduler",
    "VisualOdometryEstimator",
    "GPSProcessor",
    "PositionFix",
    "PhysicsFallback"
]
