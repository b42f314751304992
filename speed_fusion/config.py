"""
Configuration manager for the speed fusion system.
"""

import copy
import json
import logging
import os
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

class Config:
    """Configuration manager for the speed fusion system."""

    DEFAULT_CONFIG = {
        # Diagnostic adapter (ELM327 over serial); None disables live polling
        "obd_serial_port": "/dev/rfcomm0",
        "obd_baud_rate": 38400,
        "obd_timeout_s": 2.0,
        "obd_poll_rate_hz": 20.0,
        "transport_backoff_s": 1.0,

        # GPS receiver
        "gps_serial_port": "/dev/ttyAMA0",
        "gps_baud_rate": 9600,

        # Fusion loop
        "tick_rate_hz": 20.0,
        "stale_after_ms": 500,
        "gps_expiry_s": 2.0,
        "vision_every_n_ticks": 2,
        "vision_lighting": 0.95,
        "history_size": 200,

        # EKF noise parameters
        "process_noise": 0.05,
        "bus_speed_noise": 2.0,

        # Data logging
        "enable_logging": True,
        "log_file": "speed_fusion.log",
        "log_level": "INFO",

        # Output configuration
        "output_rate_hz": 1.0
    }

    def __init__(self, config_file: Optional[str] = "config.json",
                 create_if_missing: bool = True):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file (None for defaults only)
            create_if_missing: Write the defaults when the file does not exist
        """
        self.config_file = config_file
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file is None:
            return

        if os.path.exists(config_file):
            self.load_config()
        else:
            logger.info("Config file %s not found, using defaults", config_file)
            if create_if_missing:
                self.save_config()

    def load_config(self) -> bool:
        """
        Load configuration from file.

        Returns:
            True if loaded successfully
        """
        try:
            with open(self.config_file, 'r') as f:
                file_config = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to load config %s: %s", self.config_file, e)
            return False

        if not isinstance(file_config, dict):
            logger.error("Config %s must hold a JSON object", self.config_file)
            return False

        # File config overrides defaults
        self._merge_config(self.config, file_config)
        logger.info("Configuration loaded from %s", self.config_file)
        return True

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if saved successfully
        """
        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            logger.error("Failed to save config %s: %s", self.config_file, e)
            return False

        logger.info("Configuration saved to %s", self.config_file)
        return True

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]):
        """Overlay file values on the defaults; unknown keys are kept but reported."""
        for key, value in override.items():
            if key not in base:
                logger.warning("Unknown config key %r in %s", key, self.config_file)
            base[key] = value

    def get(self, key: str, default=None):
        """Get configuration value with optional default."""
        return self.config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self.config[key] = value

    def setup_logging(self):
        """Configure the root logger from log_level and log_file."""
        level = getattr(logging, str(self.config["log_level"]).upper(), logging.INFO)
        handlers = [logging.StreamHandler()]
        if self.enable_logging and self.log_file:
            handlers.append(logging.FileHandler(self.log_file))
        logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Property accessors for common configuration values
    @property
    def obd_serial_port(self) -> Optional[str]:
        return self.config["obd_serial_port"]

    @property
    def obd_baud_rate(self) -> int:
        return self.config["obd_baud_rate"]

    @property
    def obd_timeout_s(self) -> float:
        return self.config["obd_timeout_s"]

    @property
    def obd_poll_rate_hz(self) -> float:
        return self.config["obd_poll_rate_hz"]

    @property
    def transport_backoff_s(self) -> float:
        return self.config["transport_backoff_s"]

    @property
    def gps_serial_port(self) -> Optional[str]:
        return self.config["gps_serial_port"]

    @property
    def gps_baud_rate(self) -> int:
        return self.config["gps_baud_rate"]

    @property
    def tick_rate_hz(self) -> float:
        return self.config["tick_rate_hz"]

    @property
    def stale_after_s(self) -> float:
        return self.config["stale_after_ms"] / 1000.0

    @property
    def gps_expiry_s(self) -> Optional[float]:
        return self.config["gps_expiry_s"]

    @property
    def vision_every_n_ticks(self) -> int:
        return max(1, int(self.config["vision_every_n_ticks"]))

    @property
    def vision_lighting(self) -> float:
        return self.config["vision_lighting"]

    @property
    def history_size(self) -> int:
        return self.config["history_size"]

    @property
    def process_noise(self) -> float:
        return self.config["process_noise"]

    @property
    def bus_speed_noise(self) -> float:
        return self.config["bus_speed_noise"]

    @property
    def enable_logging(self) -> bool:
        return self.config["enable_logging"]

    @property
    def log_file(self) -> str:
        return self.config["log_file"]

    @property
    def output_rate_hz(self) -> float:
        return self.config["output_rate_hz"]

    def print_config(self):
        """Print current configuration."""
        print("=== Speed Fusion Configuration ===")
        print(json.dumps(self.config, indent=2))
