#!/usr/bin/env python3
"""
Speed Fusion Application for Raspberry Pi 3B
Hardware: ELM327 OBD-II adapter (serial/rfcomm) + Ublox NEO6M (UART)
"""

import sys
import os
import time
import threading
import signal
import logging
from typing import Optional

# Add the repository root to the path when run from a checkout
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from speed_fusion import (Config, DiagnosticCache, DiagnosticScheduler, FusionOrchestrator,
                          GPSProcessor, PhysicsFallback, VelocityEKF)
from hardware.elm327_driver import ELM327Driver
from hardware.gps_driver import GPSDriver

logger = logging.getLogger(__name__)

class SpeedFusionSystem:
    """Main speed fusion system for Raspberry Pi."""

    def __init__(self, config_file: str = "config.json"):
        """Initialize the speed fusion system."""

        # Load configuration
        self.config = Config(config_file)
        self.config.setup_logging()

        # Hardware drivers (None disables the device)
        self.elm327: Optional[ELM327Driver] = None
        if self.config.obd_serial_port:
            self.elm327 = ELM327Driver(
                serial_port=self.config.obd_serial_port,
                baud_rate=self.config.obd_baud_rate,
                timeout_s=self.config.obd_timeout_s
            )

        self.gps_driver: Optional[GPSDriver] = None
        if self.config.gps_serial_port:
            self.gps_driver = GPSDriver(
                serial_port=self.config.gps_serial_port,
                baud_rate=self.config.gps_baud_rate
            )

        # Estimation pipeline
        self.cache = DiagnosticCache()
        self.gps_processor = GPSProcessor()
        self.ekf = VelocityEKF(
            process_noise=self.config.process_noise,
            bus_speed_noise=self.config.bus_speed_noise
        )
        self.fallback = PhysicsFallback()
        self.orchestrator = FusionOrchestrator(self.ekf, self.cache, self.fallback, self.config)

        # Threading control
        self.running = False
        self.stop_event = threading.Event()
        self.gps_thread = None
        self.output_thread = None

        # Statistics
        self.start_time = time.time()

        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        logger.info("Speed Fusion System initialized")
        logger.info("OBD: %s", self.config.obd_serial_port or "disabled (fallback only)")
        logger.info("GPS: %s", self.config.gps_serial_port or "disabled")

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        print("\nShutdown signal received, stopping system...")
        self.stop()
        sys.exit(0)

    def start(self) -> bool:
        """Start the speed fusion system."""
        if self.running:
            print("System already running")
            return True

        print("Starting speed fusion system...")

        scheduler = None
        if self.elm327 is not None:
            if self.elm327.initialize():
                scheduler = DiagnosticScheduler(
                    self.elm327, self.cache, backoff_s=self.config.transport_backoff_s)
            else:
                print("WARNING: ELM327 unavailable, running on physics fallback")

        if self.gps_driver is not None and not self.gps_driver.initialize():
            print("WARNING: GPS unavailable, continuing without satellite speed")
            self.gps_driver = None

        self.running = True
        self.stop_event.clear()

        self.orchestrator.start(scheduler)

        if self.gps_driver is not None:
            self.gps_thread = threading.Thread(
                target=self.gps_driver.run,
                args=(self.gps_processor, self.orchestrator.submit_fix, self.stop_event),
                name="gps-fix", daemon=True)
            self.gps_thread.start()

        self.output_thread = threading.Thread(target=self._output_loop, name="status", daemon=True)
        self.output_thread.start()

        print("Speed fusion system started successfully")
        return True

    def stop(self):
        """Stop the speed fusion system."""
        if not self.running:
            return

        print("Stopping speed fusion system...")

        self.running = False
        self.stop_event.set()

        # Closes the ELM327 through the scheduler
        self.orchestrator.stop()

        for thread in (self.gps_thread, self.output_thread):
            if thread and thread.is_alive():
                thread.join(timeout=2.0)

        if self.gps_driver is not None:
            self.gps_driver.cleanup()

        print("Speed fusion system stopped")

    def _output_loop(self):
        """Status output loop."""
        output_interval = 1.0 / self.config.output_rate_hz

        while not self.stop_event.wait(output_interval):
            self._print_status()

    def _print_status(self):
        """Print current system status."""
        uptime = time.time() - self.start_time
        state = self.orchestrator.latest_state

        print(f"\n=== Speed Fusion Status (Uptime: {uptime:.1f}s) ===")
        if state is None:
            print("No fused state yet")
            return

        vx, vy, vz = state.velocity
        print(f"Speed:    {state.speed_kph:.1f} km/h ({state.speed_mps:.2f} m/s)")
        print(f"Velocity: [{vx:.2f}, {vy:.2f}, {vz:.2f}] m/s")
        print(f"Uncertainty: {state.uncertainty:.3f} m/s")
        print(f"Source: {state.source}, GPS: {'active' if state.gps_active else 'inactive'}, "
              f"Vision: {state.vision_confidence:.2f}"
              f"{'' if state.vision_tracking else ' (lost)'}")
        if state.rpm is not None:
            gear = state.gear if state.gear is not None else '-'
            print(f"Engine: {state.rpm:.0f} rpm, gear {gear}")
        print(f"Distance: {state.distance_m:.1f} m")

        stats = self.orchestrator.get_statistics()
        ekf_stats = stats['ekf']
        print(f"EKF: {ekf_stats['predictions']} predictions, "
              f"{ekf_stats['bus_updates']} bus updates, "
              f"{ekf_stats['gps_updates']} GPS updates, "
              f"{ekf_stats['vision_updates']} vision updates, "
              f"{ekf_stats['gated_innovations']} gated")

        if 'obd' in stats:
            obd_stats = stats['obd']
            print(f"OBD: {obd_stats['requests']} requests, "
                  f"{obd_stats['decode_failures']} decode failures, "
                  f"{obd_stats['transport_failures']} transport failures")

    def get_current_speed(self) -> dict:
        """Get current speed estimate for external API."""
        state = self.orchestrator.latest_state
        if state is None:
            return {'timestamp': time.time(), 'speed': None}

        return {
            'timestamp': state.timestamp,
            'speed': {'mps': state.speed_mps, 'kph': state.speed_kph},
            'velocity': dict(zip(('vx', 'vy', 'vz'), state.velocity)),
            'uncertainty': state.uncertainty,
            'source': state.source,
            'gps_active': state.gps_active,
            'vision': {'confidence': state.vision_confidence, 'tracking': state.vision_tracking},
            'distance_m': state.distance_m
        }

def main():
    """Main entry point."""
    print("Speed Fusion System for Raspberry Pi 3B")
    print("Hardware: ELM327 + Ublox NEO6M")
    print("=" * 50)

    # Create and start system
    system = SpeedFusionSystem()

    if not system.start():
        print("Failed to start system")
        return 1

    try:
        # Keep main thread alive
        while system.running:
            time.sleep(1.0)

    except KeyboardInterrupt:
        print("\nKeyboard interrupt received")

    finally:
        system.stop()

    return 0

if __name__ == "__main__":
    sys.exit(main())
