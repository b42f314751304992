"""
GPS position fixes for velocity fusion.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from .nmea import NMEAParser, NMEAFix
from ..math.utils import haversine_distance

logger = logging.getLogger(__name__)

# User equivalent range error (meters) multiplied by HDOP to estimate accuracy
UERE_M = 5.0
DEFAULT_ACCURACY_M = 10.0
MAX_ACCURACY_M = 50.0

@dataclass(frozen=True)
class PositionFix:
    """Latest GPS fix as consumed by the fusion loop."""

    speed_mps: Optional[float]
    accuracy: float
    lat: float
    lon: float
    timestamp: Optional[float] = None

    def age(self, now: float) -> float:
        """Seconds since the fix was produced."""
        if self.timestamp is None:
            return float('inf')
        return now - self.timestamp

class GPSProcessor:
    """
    Turns NMEA sentences into PositionFix records.
    """

    def __init__(self, clock=time.time):
        """
        Initialize GPS processor.

        Args:
            clock: Time source for fix timestamps
        """
        self.clock = clock
        self.nmea_parser = NMEAParser(clock=clock)

        # Previous fix for derived speed
        self.last_position: Optional[Tuple[float, float]] = None
        self.last_timestamp: Optional[float] = None

        self.fix_count = 0
        self.last_fix: Optional[PositionFix] = None

    @staticmethod
    def estimate_accuracy(hdop: Optional[float]) -> float:
        """Horizontal accuracy in meters from HDOP."""
        if hdop is None or hdop <= 0:
            return DEFAULT_ACCURACY_M
        return min(MAX_ACCURACY_M, hdop * UERE_M)

    def process_nmea_sentence(self, sentence: str) -> Optional[PositionFix]:
        """
        Process a single NMEA sentence.

        Args:
            sentence: NMEA sentence string

        Returns:
            PositionFix if a valid fix was obtained, None otherwise
        """
        nmea_fix = self.nmea_parser.parse_sentence(sentence)
        if nmea_fix is None:
            return None
        return self.convert_fix(nmea_fix)

    def _derived_speed(self, nmea_fix: NMEAFix) -> Optional[float]:
        if self.last_position is None or self.last_timestamp is None:
            return None

        dt = nmea_fix.timestamp - self.last_timestamp
        if dt <= 0:
            return None

        distance = haversine_distance(
            self.last_position[0], self.last_position[1],
            nmea_fix.latitude, nmea_fix.longitude
        )
        return distance / dt

    def convert_fix(self, nmea_fix: NMEAFix) -> PositionFix:
        """
        Convert parsed NMEA data into a PositionFix.

        Reported RMC speed is preferred; without it the speed is derived
        from the distance to the previous fix.
        """
        speed = nmea_fix.speed_ms
        if speed is None:
            speed = self._derived_speed(nmea_fix)

        fix = PositionFix(
            speed_mps=speed,
            accuracy=self.estimate_accuracy(nmea_fix.hdop),
            lat=nmea_fix.latitude,
            lon=nmea_fix.longitude,
            timestamp=nmea_fix.timestamp
        )

        self.last_position = (nmea_fix.latitude, nmea_fix.longitude)
        self.last_timestamp = nmea_fix.timestamp
        self.fix_count += 1
        self.last_fix = fix
        return fix

    def get_statistics(self) -> dict:
        """Get processor statistics."""
        return {
            'fix_count': self.fix_count,
            'last_accuracy': self.last_fix.accuracy if self.last_fix else None,
            'nmea_statistics': self.nmea_parser.get_statistics()
        }
