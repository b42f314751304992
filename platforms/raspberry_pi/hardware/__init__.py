"""
Hardware drivers for Raspberry Pi platform.
"""

from .elm327_driver import ELM327Driver
from .gps_driver import GPSDriver

__all__ = ["ELM327Driver", "GPSDriver"]
