"""
Physics fallback generator.

When the diagnostic cache has nothing fresh, this drive-cycle state machine
synthesizes RPM, gear, speed and body-frame accelerations so the estimator
always has an input to predict from. Its output is indistinguishable from
live input as far as the filter is concerned.
"""

from __future__ import annotations

import enum
import logging
import time
import numpy as np
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..math.constants import GRAVITY_MS2, KPH_TO_MPS
from ..math.utils import clamp

logger = logging.getLogger(__name__)

RPM_IDLE = 800.0
RPM_MAX = 8000.0
RPM_CRUISE = 2500.0
RPM_CORNER = 3000.0
RPM_UPSHIFT = 4500.0
RPM_DOWNSHIFT = 2000.0
TOP_GEAR = 6
SPEED_MAX_MPS = 280.0 * KPH_TO_MPS
MIN_YAW_SPEED_MPS = 1.0

class DriveMode(enum.Enum):
    IDLE = "idle"
    ACCELERATING = "accelerating"
    CRUISING = "cruising"
    BRAKING = "braking"
    CORNERING = "cornering"

# Successor weights per mode
TRANSITIONS: Dict[DriveMode, Tuple[Tuple[DriveMode, float], ...]] = {
    DriveMode.IDLE: ((DriveMode.ACCELERATING, 1.0),),
    DriveMode.ACCELERATING: (
        (DriveMode.CRUISING, 0.4),
        (DriveMode.BRAKING, 0.35),
        (DriveMode.CORNERING, 0.25),
    ),
    DriveMode.CRUISING: (
        (DriveMode.ACCELERATING, 0.35),
        (DriveMode.BRAKING, 0.25),
        (DriveMode.CRUISING, 0.2),
        (DriveMode.CORNERING, 0.2),
    ),
    DriveMode.BRAKING: (
        (DriveMode.IDLE, 0.7),
        (DriveMode.ACCELERATING, 0.3),
    ),
    DriveMode.CORNERING: (
        (DriveMode.CRUISING, 0.5),
        (DriveMode.ACCELERATING, 0.2),
        (DriveMode.BRAKING, 0.3),
    ),
}

# Dwell range (seconds) once a mode is entered
DWELL_S: Dict[DriveMode, Tuple[float, float]] = {
    DriveMode.IDLE: (5.0, 10.0),
    DriveMode.ACCELERATING: (8.0, 18.0),
    DriveMode.CRUISING: (5.0, 13.0),
    DriveMode.BRAKING: (3.0, 6.0),
    DriveMode.CORNERING: (2.0, 5.0),
}

@dataclass(frozen=True)
class FallbackSample:
    """Synthetic vehicle signals for one tick."""
    mode: DriveMode
    rpm: float
    gear: int
    speed_mps: float
    accel_long: float
    lateral_g: float
    yaw_rate: float

    @property
    def accel(self) -> np.ndarray:
        """Body-frame acceleration [longitudinal, lateral, vertical]."""
        return np.array([self.accel_long, self.lateral_g * GRAVITY_MS2, 0.0])

    @property
    def gyro(self) -> np.ndarray:
        """Body-frame angular rate [roll, pitch, yaw]."""
        return np.array([0.0, 0.0, self.yaw_rate])

class PhysicsFallback:
    """
    Idle -> Accelerating -> Cruising -> Braking -> Cornering drive cycle.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, clock=time.time):
        """
        Initialize the generator in Idle at standstill.

        Args:
            rng: Random number generator for reproducibility
            clock: Time source for mode deadlines
        """
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

        self.mode = DriveMode.IDLE
        self.mode_deadline = self.clock() + self._dwell(DriveMode.IDLE)
        self.rpm = RPM_IDLE
        self.gear = 1
        self.speed_mps = 0.0
        self.lateral_g = 0.0
        self.transitions = 0

    def _dwell(self, mode: DriveMode) -> float:
        low, high = DWELL_S[mode]
        return float(self.rng.uniform(low, high))

    def _choose_successor(self) -> DriveMode:
        modes, weights = zip(*TRANSITIONS[self.mode])
        weights = np.asarray(weights) / np.sum(weights)
        return modes[int(self.rng.choice(len(modes), p=weights))]

    def _enter(self, mode: DriveMode, now: float):
        logger.debug("Fallback mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self.mode_deadline = now + self._dwell(mode)
        self.transitions += 1

        if mode is DriveMode.CORNERING:
            side = 1.0 if self.rng.random() < 0.5 else -1.0
            self.lateral_g = side * float(self.rng.uniform(0.3, 0.7))
        else:
            self.lateral_g = 0.0

    def _engine(self) -> float:
        """Advance RPM and gear for the current mode; return longitudinal accel."""
        mode = self.mode
        if mode is DriveMode.IDLE:
            self.rpm += (RPM_IDLE - self.rpm) * 0.1
            if self.speed_mps < 5.0 * KPH_TO_MPS:
                self.gear = 1
            return -0.5

        if mode is DriveMode.ACCELERATING:
            if self.rpm > RPM_UPSHIFT and self.gear < TOP_GEAR:
                self.gear += 1
                self.rpm *= 0.6
            self.rpm += (RPM_MAX / (self.gear * 15)) * (1 - self.rpm / RPM_MAX) + self.rng.random() * 50
            return 6.0 + float(self.rng.random())

        if mode is DriveMode.CRUISING:
            self.rpm += (RPM_CRUISE - self.rpm) * 0.05 + (self.rng.random() - 0.5) * 100
            return 0.0

        if mode is DriveMode.BRAKING:
            if self.rpm < RPM_DOWNSHIFT and self.gear > 1:
                self.gear -= 1
                self.rpm *= 1.2
            self.rpm *= 0.98
            return -8.0

        # Cornering
        self.rpm += (RPM_CORNER - self.rpm) * 0.05
        return -1.0

    def step(self, dt: float, now: Optional[float] = None) -> FallbackSample:
        """
        Advance the drive cycle by one tick.

        Args:
            dt: Time step in seconds
            now: Current time (defaults to the generator clock)

        Returns:
            FallbackSample for this tick
        """
        now = self.clock() if now is None else now
        if now > self.mode_deadline:
            self._enter(self._choose_successor(), now)

        accel_long = self._engine()
        self.rpm = clamp(self.rpm, RPM_IDLE, RPM_MAX)

        previous_speed = self.speed_mps
        self.speed_mps = clamp(self.speed_mps + accel_long * dt, 0.0, SPEED_MAX_MPS)
        if dt > 0:
            # Acceleration realised after the speed clamp
            accel_long = (self.speed_mps - previous_speed) / dt

        yaw_rate = self.lateral_g * GRAVITY_MS2 / max(self.speed_mps, MIN_YAW_SPEED_MPS)

        return FallbackSample(
            mode=self.mode,
            rpm=self.rpm,
            gear=self.gear,
            speed_mps=self.speed_mps,
            accel_long=accel_long,
            lateral_g=self.lateral_g,
            yaw_rate=yaw_rate
        )
