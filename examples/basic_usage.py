#!/usr/bin/env python3
"""
Basic usage example of the speed fusion system.

This example drives the full estimation pipeline from a simulated ELM327
adapter and a simulated GPS receiver, without any hardware attached.
"""

import sys
import os
import numpy as np

# Add the package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from speed_fusion import (Config, DiagnosticCache, DiagnosticScheduler, FusionOrchestrator,
                          PhysicsFallback, PositionFix, VelocityEKF)
from speed_fusion.errors import TransportTimeout
from speed_fusion.math.constants import KPH_TO_MPS
from speed_fusion.obd.pids import PIDS_BY_NAME

class SimulatedAdapter:
    """
    Answers mode 01 requests for a vehicle following a speed profile.

    Args:
        profile: Maps elapsed seconds to speed in km/h
        clock: Simulation time source
        dropout: (start, end) window in which every request times out
    """

    def __init__(self, profile, clock, dropout=None):
        self.profile = profile
        self.clock = clock
        self.dropout = dropout
        self.requests = 0

    def _payload(self, name: str) -> str:
        speed_kph = self.profile(self.clock())
        rpm = 800 + speed_kph * 30
        values = {
            "engine_rpm": int(rpm * 4),
            "vehicle_speed": int(round(speed_kph)),
            "intake_manifold_pressure": 45,
            "throttle_position": 40,
            "coolant_temp": 130,
            "intake_air_temp": 65,
            "timing_advance": 150,
            "maf_rate": 1500,
            "lambda_ratio": 32768,
            "engine_load": 90,
            "control_module_voltage": 14100,
            "fuel_level": 180,
            "barometric_pressure": 101,
            "ambient_air_temp": 60,
            "fuel_rail_pressure": 350,
        }
        definition = PIDS_BY_NAME[name]
        return f"{values[name]:0{definition.byte_count * 2}X}"

    def send_and_await(self, command: str) -> str:
        self.requests += 1
        now = self.clock()
        if self.dropout and self.dropout[0] <= now < self.dropout[1]:
            raise TransportTimeout(command, 0.1)

        pid = command[2:]
        for definition in PIDS_BY_NAME.values():
            if definition.pid == pid:
                payload = self._payload(definition.name)
                return " ".join(
                    [definition.response_prefix[:2], pid] +
                    [payload[i:i + 2] for i in range(0, len(payload), 2)])
        return "NO DATA"

    def close(self):
        pass

class SimClock:
    """Manually advanced time source."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

def speed_profile(t: float) -> float:
    """Accelerate to 60 km/h, cruise, then brake."""
    if t < 10.0:
        return 6.0 * t
    if t < 25.0:
        return 60.0
    return max(0.0, 60.0 - 8.0 * (t - 25.0))

def main():
    """Run the offline fusion demo."""
    print("Speed Fusion System - Basic Usage Example")
    print("=" * 50)

    clock = SimClock()
    config = Config(config_file=None)
    config.set("obd_serial_port", None)
    config.set("gps_serial_port", None)

    cache = DiagnosticCache(clock=clock)
    adapter = SimulatedAdapter(speed_profile, clock, dropout=(14.0, 18.0))
    # Simulated time: backoff sleeps are no-ops
    scheduler = DiagnosticScheduler(adapter, cache, backoff_s=0.0, sleep=lambda s: None, clock=clock)

    ekf = VelocityEKF(process_noise=config.process_noise, bus_speed_noise=config.bus_speed_noise)
    fallback = PhysicsFallback(rng=np.random.default_rng(7), clock=clock)
    orchestrator = FusionOrchestrator(ekf, cache, fallback, config, clock=clock)

    rng = np.random.default_rng(11)
    dt = 1.0 / config.tick_rate_hz
    duration = 35.0

    print(f"Simulating {duration:.0f}s at {config.tick_rate_hz:.0f} Hz "
          f"(diagnostics drop out between 14s and 18s)")
    print(f"{'t':>5} {'true':>7} {'fused':>7} {'sigma':>6}  source    gps  vision")

    for step in range(int(duration / dt)):
        clock.now = step * dt
        scheduler.poll_once()

        # 1 Hz GPS with speed noise
        if step % int(config.tick_rate_hz) == 0:
            true_mps = speed_profile(clock.now) * KPH_TO_MPS
            orchestrator.submit_fix(PositionFix(
                speed_mps=max(0.0, true_mps + rng.normal(0, 0.3)),
                accuracy=3.0, lat=37.7749, lon=-122.4194, timestamp=clock.now))

        state = orchestrator.tick(dt)

        if step % int(config.tick_rate_hz) == 0:
            print(f"{clock.now:5.1f} {speed_profile(clock.now):7.1f} {state.speed_kph:7.1f} "
                  f"{state.uncertainty:6.2f}  {state.source:<9} "
                  f"{'yes' if state.gps_active else 'no ':>3}  {state.vision_confidence:.2f}")

    stats = orchestrator.get_statistics()
    print("\n=== Final Statistics ===")
    print(f"Distance travelled: {stats['distance_m']:.1f} m")
    print(f"EKF: {stats['ekf']['predictions']} predictions, "
          f"{stats['ekf']['bus_updates']} bus updates, "
          f"{stats['ekf']['gps_updates']} GPS updates, "
          f"{stats['ekf']['vision_updates']} vision updates")
    obd_stats = scheduler.get_statistics()
    print(f"OBD: {adapter.requests} requests, {obd_stats['transport_failures']} transport failures")

if __name__ == "__main__":
    main()
