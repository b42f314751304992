"""
Freshness-stamped cache of decoded diagnostic signals.

The polling loop writes, the fusion loop reads. Readers only ever receive
immutable snapshots taken under the lock, so a partially updated entry is
never observed.
"""

import threading
import time
from dataclasses import dataclass, fields, replace
from typing import NamedTuple, Optional

from ..math.utils import is_finite

class SignalReading(NamedTuple):
    """Decoded value and the time it was stored."""
    value: float
    timestamp: float

def is_fresh(reading: Optional[SignalReading], now: float, window_s: float) -> bool:
    """
    Single freshness predicate used by every consumer.

    A reading is fresh when it exists and is no older than window_s.
    """
    if reading is None:
        return False
    return now - reading.timestamp <= window_s

@dataclass(frozen=True)
class DiagnosticSnapshot:
    """Latest reading of every polled signal (None until first decoded)."""

    # Tier 1
    engine_rpm: Optional[SignalReading] = None
    vehicle_speed: Optional[SignalReading] = None
    intake_manifold_pressure: Optional[SignalReading] = None
    throttle_position: Optional[SignalReading] = None
    # Tier 2
    coolant_temp: Optional[SignalReading] = None
    intake_air_temp: Optional[SignalReading] = None
    timing_advance: Optional[SignalReading] = None
    maf_rate: Optional[SignalReading] = None
    lambda_ratio: Optional[SignalReading] = None
    engine_load: Optional[SignalReading] = None
    # Tier 3
    control_module_voltage: Optional[SignalReading] = None
    fuel_level: Optional[SignalReading] = None
    barometric_pressure: Optional[SignalReading] = None
    ambient_air_temp: Optional[SignalReading] = None
    fuel_rail_pressure: Optional[SignalReading] = None

    def value(self, name: str) -> Optional[float]:
        reading = getattr(self, name)
        return None if reading is None else reading.value

    def is_fresh(self, name: str, now: float, window_s: float) -> bool:
        return is_fresh(getattr(self, name), now, window_s)

SIGNAL_NAMES = tuple(f.name for f in fields(DiagnosticSnapshot))

class DiagnosticCache:
    """
    Thread-safe holder of the current DiagnosticSnapshot.
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self._lock = threading.Lock()
        self._snapshot = DiagnosticSnapshot()

    def update(self, name: str, value: Optional[float],
               timestamp: Optional[float] = None) -> bool:
        """
        Store a decoded value.

        Non-finite or missing values leave the previous reading untouched.

        Args:
            name: Signal name (a DiagnosticSnapshot field)
            value: Decoded value
            timestamp: Time of the reading (defaults to now)

        Returns:
            True if the value was stored
        """
        if name not in SIGNAL_NAMES:
            raise KeyError(f"Unknown diagnostic signal: {name}")

        if not is_finite(value):
            return False

        reading = SignalReading(float(value), self.clock() if timestamp is None else timestamp)
        with self._lock:
            self._snapshot = replace(self._snapshot, **{name: reading})
        return True

    def snapshot(self) -> DiagnosticSnapshot:
        """Consistent view of all signals."""
        with self._lock:
            return self._snapshot

    def get(self, name: str) -> Optional[SignalReading]:
        return getattr(self.snapshot(), name)

    def is_fresh(self, name: str, window_s: float, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        return self.snapshot().is_fresh(name, now, window_s)
