"""
NMEA 0183 sentence parsing for GPS speed and position.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Optional, Dict, Any, List

from ..math.constants import KNOTS_TO_MPS

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class NMEAFix:
    """Accumulated fix assembled from GGA and RMC sentences."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    fix_quality: int = 0  # 0=invalid, 1=GPS fix, 2=DGPS fix
    satellites_used: int = 0
    hdop: Optional[float] = None
    speed_knots: Optional[float] = None
    timestamp: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return (self.fix_quality > 0 and
                self.latitude is not None and
                self.longitude is not None)

    @property
    def speed_ms(self) -> Optional[float]:
        if self.speed_knots is None:
            return None
        return self.speed_knots * KNOTS_TO_MPS

def nmea_checksum(payload: str) -> str:
    """XOR checksum of the characters between '$' and '*'."""
    checksum = 0
    for char in payload:
        checksum ^= ord(char)
    return f"{checksum:02X}"

def parse_coordinate(value: str, hemisphere: str) -> Optional[float]:
    """
    Convert NMEA (d)ddmm.mmmm plus hemisphere into decimal degrees.

    Returns None for empty or malformed fields.
    """
    if not value or hemisphere not in ('N', 'S', 'E', 'W'):
        return None

    dot = value.find('.')
    head = dot if dot != -1 else len(value)
    if head < 3:
        return None

    try:
        degrees = float(value[:head - 2])
        minutes = float(value[head - 2:])
    except ValueError:
        return None

    decimal = degrees + minutes / 60.0
    return -decimal if hemisphere in ('S', 'W') else decimal

def _float_or_none(value: str) -> Optional[float]:
    return float(value) if value else None

class NMEAParser:
    """
    Incremental parser for GGA and RMC sentences.

    GGA carries fix quality and HDOP, RMC carries ground speed; both carry
    position. Each accepted sentence is merged into the running fix.
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self.fix = NMEAFix()
        self.sentence_count = 0
        self.parse_errors = 0

    def _split(self, sentence: str) -> Optional[List[str]]:
        sentence = sentence.strip()
        if not sentence.startswith('$') or '*' not in sentence:
            return None

        payload, _, checksum = sentence[1:].partition('*')
        if nmea_checksum(payload) != checksum.strip().upper():
            return None
        return payload.split(',')

    def _merge_gga(self, fields: List[str]) -> NMEAFix:
        # $xxGGA,time,lat,N,lon,E,quality,sats,hdop,alt,M,geoid,M,age,station
        if len(fields) < 9:
            raise ValueError("short GGA sentence")
        return replace(
            self.fix,
            latitude=parse_coordinate(fields[2], fields[3]),
            longitude=parse_coordinate(fields[4], fields[5]),
            fix_quality=int(fields[6] or 0),
            satellites_used=int(fields[7] or 0),
            hdop=_float_or_none(fields[8])
        )

    def _merge_rmc(self, fields: List[str]) -> NMEAFix:
        # $xxRMC,time,status,lat,N,lon,E,speed_knots,course,date,...
        if len(fields) < 8:
            raise ValueError("short RMC sentence")
        if fields[2] != 'A':
            return replace(self.fix, fix_quality=0, speed_knots=None)

        return replace(
            self.fix,
            latitude=parse_coordinate(fields[3], fields[4]),
            longitude=parse_coordinate(fields[5], fields[6]),
            fix_quality=self.fix.fix_quality or 1,
            speed_knots=_float_or_none(fields[7])
        )

    def parse_sentence(self, sentence: str) -> Optional[NMEAFix]:
        """
        Parse a single NMEA sentence.

        Args:
            sentence: NMEA sentence string

        Returns:
            Copy of the merged fix if it is valid, None otherwise
        """
        self.sentence_count += 1

        fields = self._split(sentence)
        if fields is None:
            self.parse_errors += 1
            return None

        kind = fields[0][-3:]
        try:
            if kind == 'GGA':
                merged = self._merge_gga(fields)
            elif kind == 'RMC':
                merged = self._merge_rmc(fields)
            else:
                return None
        except (ValueError, IndexError) as e:
            logger.debug("Rejected %s sentence: %s", kind, e)
            self.parse_errors += 1
            return None

        self.fix = replace(merged, timestamp=self.clock())
        return self.fix if self.fix.is_valid else None

    def get_statistics(self) -> Dict[str, Any]:
        """Get parser statistics."""
        return {
            'sentences_processed': self.sentence_count,
            'parse_errors': self.parse_errors,
            'error_rate': self.parse_errors / max(1, self.sentence_count),
            'last_fix_valid': self.fix.is_valid
        }
