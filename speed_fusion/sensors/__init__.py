"""
Speed sources other than the diagnostic bus.
"""

from .vision import VisualOdometryEstimator, VisionResult
from .gps import GPSProcessor, PositionFix
from .nmea import NMEAParser, NMEAFix

__all__ = [
    "VisualOdometryEstimator", "VisionResult",
    "GPSProcessor", "PositionFix", "NMEAParser", "NMEAFix"
]
