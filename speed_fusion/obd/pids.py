"""
OBD-II mode 01 signal table and response decoders.

Each response is decoded by locating the echoed "41"+PID prefix and applying
the signal formula to the hex byte pairs that follow it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import DecodeError
from ..math.utils import is_finite

logger = logging.getLogger(__name__)

MODE_CURRENT_DATA = "01"
MODE_RESPONSE = "41"

ERROR_TOKENS = ("NODATA", "SEARCHING", "ERROR", "STOPPED", "UNABLETOCONNECT")

_NON_HEX_NOISE = re.compile(r"[\s\x00-\x1f>]+")

@dataclass(frozen=True)
class PidDefinition:
    """One polled signal.

    name: Cache field name
    pid: Two-character hex parameter ID
    byte_count: Data bytes consumed by the formula (A, B, ...)
    formula: Maps the data bytes to a physical value
    unit: Physical unit of the decoded value
    tier: Polling tier (1 = every tick, 2 = every 5th, 3 = every 20th)
    """
    name: str
    pid: str
    byte_count: int
    formula: Callable[..., float]
    unit: str
    tier: int

    @property
    def command(self) -> str:
        return MODE_CURRENT_DATA + self.pid

    @property
    def response_prefix(self) -> str:
        return MODE_RESPONSE + self.pid

    def decode(self, response: str) -> Optional[float]:
        """Decode a response, returning None instead of raising."""
        try:
            return parse_response(self, response)
        except DecodeError as e:
            logger.debug("No value for %s: %s", self.name, e)
            return None

def _word(a: int, b: int) -> int:
    return a * 256 + b

PIDS: Tuple[PidDefinition, ...] = (
    # Tier 1: every tick
    PidDefinition("engine_rpm", "0C", 2, lambda a, b: _word(a, b) / 4, "rpm", 1),
    PidDefinition("vehicle_speed", "0D", 1, lambda a: float(a), "km/h", 1),
    PidDefinition("intake_manifold_pressure", "0B", 1, lambda a: float(a), "kPa", 1),
    PidDefinition("throttle_position", "11", 1, lambda a: a * 100 / 255, "%", 1),
    # Tier 2: every 5th tick
    PidDefinition("coolant_temp", "05", 1, lambda a: float(a - 40), "°C", 2),
    PidDefinition("intake_air_temp", "0F", 1, lambda a: float(a - 40), "°C", 2),
    PidDefinition("timing_advance", "0E", 1, lambda a: (a - 128) / 2, "°", 2),
    PidDefinition("maf_rate", "10", 2, lambda a, b: _word(a, b) / 100, "g/s", 2),
    PidDefinition("lambda_ratio", "44", 2, lambda a, b: _word(a, b) / 32768, "ratio", 2),
    PidDefinition("engine_load", "04", 1, lambda a: a * 100 / 255, "%", 2),
    # Tier 3: every 20th tick
    PidDefinition("control_module_voltage", "42", 2, lambda a, b: _word(a, b) / 1000, "V", 3),
    PidDefinition("fuel_level", "2F", 1, lambda a: a * 100 / 255, "%", 3),
    PidDefinition("barometric_pressure", "33", 1, lambda a: float(a), "kPa", 3),
    PidDefinition("ambient_air_temp", "46", 1, lambda a: float(a - 40), "°C", 3),
    PidDefinition("fuel_rail_pressure", "23", 2, lambda a, b: _word(a, b) * 10.0, "kPa", 3),
)

PIDS_BY_NAME: Dict[str, PidDefinition] = {p.name: p for p in PIDS}

TIER_INTERVALS = {1: 1, 2: 5, 3: 20}

def pids_for_tier(tier: int) -> List[PidDefinition]:
    return [p for p in PIDS if p.tier == tier]

def clean_response(response: str) -> str:
    """Strip whitespace, control characters and the prompt; uppercase."""
    return _NON_HEX_NOISE.sub("", response or "").upper()

def parse_response(definition: PidDefinition, response: str) -> float:
    """
    Decode a mode 01 response for one signal.

    Args:
        definition: Signal being decoded
        response: Raw response text from the adapter

    Returns:
        Decoded physical value

    Raises:
        DecodeError: Error token, missing prefix, short or non-hex payload,
            or a non-finite result
    """
    clean = clean_response(response)
    if not clean:
        raise DecodeError("empty response", response)

    for token in ERROR_TOKENS:
        if token in clean:
            raise DecodeError(f"adapter reported {token}", response)

    start = clean.find(definition.response_prefix)
    if start == -1:
        raise DecodeError(f"missing {definition.response_prefix} prefix", response)

    payload = clean[start + len(definition.response_prefix):]
    width = definition.byte_count * 2
    if len(payload) < width:
        raise DecodeError("truncated payload", response)

    try:
        data = [int(payload[i:i + 2], 16) for i in range(0, width, 2)]
    except ValueError:
        raise DecodeError("non-hex payload", response)

    value = definition.formula(*data)
    if not is_finite(value):
        raise DecodeError("non-finite value", response)
    return value

def decode(name: str, response: str) -> Optional[float]:
    """Decode a response for the named signal; None when there is no value."""
    return PIDS_BY_NAME[name].decode(response)
