"""
Fixed-rate fusion loop.

Each tick runs, strictly in order: freshness check, input selection
(live diagnostics or physics fallback), prediction, bus speed fusion,
rate-limited vision fusion, GPS speed fusion, and publication of the fused
state. The orchestrator is the only writer of the filter and the only reader
of the diagnostic cache.
"""

import logging
import threading
import time
import numpy as np
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Tuple

from ..config import Config
from ..ekf import VelocityEKF
from ..math.constants import KPH_TO_MPS, MPS_TO_KPH
from ..obd.cache import DiagnosticCache, SignalReading
from ..obd.scheduler import DiagnosticScheduler
from ..sensors.gps import PositionFix
from ..sensors.vision import VisionResult, TRACKING_LOST
from ..sim.fallback import PhysicsFallback

logger = logging.getLogger(__name__)

SOURCE_LIVE = "live_obd"
SOURCE_FALLBACK = "fallback"

ZERO3 = np.zeros(3)

@dataclass(frozen=True)
class FusedState:
    """Estimator output published once per tick."""
    timestamp: float
    speed_mps: float
    velocity: Tuple[float, float, float]
    uncertainty: float
    source: str
    vision_confidence: float
    vision_tracking: bool
    gps_active: bool
    rpm: Optional[float]
    gear: Optional[int]
    distance_m: float

    @property
    def speed_kph(self) -> float:
        return self.speed_mps * MPS_TO_KPH

class FusionOrchestrator:
    """
    Drives the velocity EKF from the diagnostic cache, the physics fallback,
    visual odometry and GPS fixes.
    """

    def __init__(self, ekf: VelocityEKF, cache: DiagnosticCache,
                 fallback: PhysicsFallback, config: Optional[Config] = None,
                 clock=time.time):
        """
        Initialize the orchestrator with explicitly owned collaborators.

        Args:
            ekf: Velocity filter (written only by this orchestrator)
            cache: Diagnostic cache filled by the polling loop
            fallback: Synthetic input generator for stale diagnostics
            config: Loop parameters (defaults when None)
            clock: Time source
        """
        self.ekf = ekf
        self.cache = cache
        self.fallback = fallback
        self.config = config or Config(config_file=None)
        self.clock = clock

        self.period_s = 1.0 / self.config.tick_rate_hz
        self.stale_after_s = self.config.stale_after_s
        self.gps_expiry_s = self.config.gps_expiry_s
        self.vision_every_n_ticks = self.config.vision_every_n_ticks
        self.vision_lighting = self.config.vision_lighting

        # Position fixes arrive from another thread
        self._fix_lock = threading.Lock()
        self._latest_fix: Optional[PositionFix] = None

        self.tick_count = 0
        self.distance_m = 0.0
        self._last_tick_time: Optional[float] = None
        self._last_bus: Optional[SignalReading] = None
        self._live_accel = 0.0
        self._last_vision: VisionResult = TRACKING_LOST

        self.latest_state: Optional[FusedState] = None
        self.history: Deque[FusedState] = deque(maxlen=self.config.history_size)
        self._listeners: List[Callable[[FusedState], None]] = []

        # Threading control
        self._stop_event = threading.Event()
        self._tick_thread: Optional[threading.Thread] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._scheduler: Optional[DiagnosticScheduler] = None

    def submit_fix(self, fix: PositionFix):
        """Deliver the latest GPS fix (thread-safe)."""
        with self._fix_lock:
            self._latest_fix = fix

    @property
    def latest_fix(self) -> Optional[PositionFix]:
        with self._fix_lock:
            return self._latest_fix

    def add_listener(self, callback: Callable[[FusedState], None]):
        """Register a callback invoked with every published state."""
        self._listeners.append(callback)

    def gps_usable(self, fix: Optional[PositionFix], now: float) -> bool:
        """A fix is usable when it carries speed and has not expired."""
        if fix is None or fix.speed_mps is None:
            return False
        if self.gps_expiry_s is None:
            return True
        return fix.age(now) <= self.gps_expiry_s

    def _live_input(self, reading: SignalReading) -> float:
        """
        Longitudinal acceleration from successive bus speed readings.

        Readings further apart than the staleness window are not differenced;
        acceleration restarts from zero after a dropout.
        """
        previous = self._last_bus
        if previous is None or reading.timestamp <= previous.timestamp:
            return self._live_accel

        span = reading.timestamp - previous.timestamp
        if span > self.stale_after_s:
            self._live_accel = 0.0
        else:
            self._live_accel = (reading.value - previous.value) * KPH_TO_MPS / span
        return self._live_accel

    def tick(self, dt: Optional[float] = None) -> FusedState:
        """
        Run one fusion cycle.

        Args:
            dt: Time step in seconds (measured from the clock when None)

        Returns:
            The published FusedState
        """
        now = self.clock()
        if dt is None:
            dt = self.period_s if self._last_tick_time is None else now - self._last_tick_time
            if dt <= 0:
                dt = self.period_s
        self._last_tick_time = now
        self.tick_count += 1

        # Freshness check and input selection
        snapshot = self.cache.snapshot()
        live = snapshot.is_fresh("vehicle_speed", now, self.stale_after_s)
        sample = self.fallback.step(dt, now)

        if live:
            reading = snapshot.vehicle_speed
            bus_speed = reading.value * KPH_TO_MPS
            accel = np.array([self._live_input(reading), 0.0, 0.0])
            gyro = ZERO3
            nominal_speed = bus_speed
            source = SOURCE_LIVE
            rpm = snapshot.value("engine_rpm")
            gear = None
        else:
            reading = None
            accel = sample.accel
            gyro = sample.gyro
            nominal_speed = sample.speed_mps
            source = SOURCE_FALLBACK
            rpm = sample.rpm
            gear = sample.gear

        self.ekf.predict(accel, gyro, dt)

        # Bus fusion, once per new reading
        if reading is not None and reading != self._last_bus:
            self.ekf.fuse_bus_speed(bus_speed)
            self._last_bus = reading

        # Vision fusion, rate limited
        if self.tick_count % self.vision_every_n_ticks == 0:
            self._last_vision = self.ekf.fuse_vision_speed(
                nominal_speed, dt * self.vision_every_n_ticks, self.vision_lighting)

        # GPS fusion
        fix = self.latest_fix
        gps_active = self.gps_usable(fix, now)
        if gps_active:
            self.ekf.fuse_satellite_speed(fix.speed_mps, fix.accuracy)

        speed = self.ekf.estimated_speed()
        self.distance_m += speed * dt

        state = FusedState(
            timestamp=now,
            speed_mps=speed,
            velocity=tuple(float(v) for v in self.ekf.velocity),
            uncertainty=self.ekf.uncertainty(),
            source=source,
            vision_confidence=self._last_vision.confidence,
            vision_tracking=self._last_vision.is_tracking,
            gps_active=gps_active,
            rpm=rpm,
            gear=gear,
            distance_m=self.distance_m
        )
        self._publish(state)
        return state

    def _publish(self, state: FusedState):
        self.latest_state = state
        self.history.append(state)
        for listener in self._listeners:
            listener(state)

    def _tick_loop(self):
        """Fixed-rate fusion loop."""
        logger.info("Fusion loop started (%.0f Hz)", 1.0 / self.period_s)
        while not self._stop_event.is_set():
            started = self.clock()
            try:
                self.tick()
            except Exception:
                logger.exception("Fusion tick failed")
            remaining = self.period_s - (self.clock() - started)
            if remaining > 0:
                self._stop_event.wait(remaining)
        logger.info("Fusion loop stopped after %d ticks", self.tick_count)

    @property
    def running(self) -> bool:
        return self._tick_thread is not None and self._tick_thread.is_alive()

    def start(self, scheduler: Optional[DiagnosticScheduler] = None):
        """
        Start the fusion loop and, if given, the diagnostic polling loop.

        Args:
            scheduler: Diagnostic scheduler to run on its own thread
        """
        if self.running:
            logger.warning("Fusion loop already running")
            return

        self._stop_event.clear()
        self._scheduler = scheduler

        if scheduler is not None:
            poll_period = 1.0 / self.config.obd_poll_rate_hz
            self._poll_thread = threading.Thread(
                target=scheduler.run, args=(self._stop_event, poll_period),
                name="obd-poll", daemon=True)
            self._poll_thread.start()

        self._tick_thread = threading.Thread(target=self._tick_loop, name="fusion-tick", daemon=True)
        self._tick_thread.start()

    def stop(self):
        """
        Stop both loops, then release the diagnostic transport.

        The transport is closed only once the polling thread has exited.
        """
        self._stop_event.set()

        if self._tick_thread is not None and self._tick_thread.is_alive():
            self._tick_thread.join(timeout=2.0)

        poll_stopped = True
        if self._poll_thread is not None and self._poll_thread.is_alive():
            # An in-flight request may block for the full transport timeout
            self._poll_thread.join(timeout=2.0 + self.config.obd_timeout_s)
            poll_stopped = not self._poll_thread.is_alive()

        if self._scheduler is not None:
            if poll_stopped:
                self._scheduler.transport.close()
            else:
                logger.warning("Diagnostic polling did not stop; transport left open")
            self._scheduler = None

        self._tick_thread = None
        self._poll_thread = None

    def get_statistics(self) -> dict:
        """Get orchestrator statistics."""
        stats = {
            'ticks': self.tick_count,
            'distance_m': self.distance_m,
            'ekf': self.ekf.get_statistics(),
            'vision': self.ekf.vision.get_statistics()
        }
        if self._scheduler is not None:
            stats['obd'] = self._scheduler.get_statistics()
        return stats
