"""
ELM327 OBD-II adapter driver over a serial link (USB, UART or rfcomm).
"""

import logging
import threading
import time

import serial

from speed_fusion.errors import TransportError, TransportTimeout
from speed_fusion.obd.protocol import ELM327_INIT_COMMANDS, ResponseAssembler, frame_request

logger = logging.getLogger(__name__)

class ELM327Driver:
    """
    Half-duplex request/response link to an ELM327 adapter.

    Implements the DiagnosticTransport contract: one command in flight at a
    time, each answered by text terminated with the '>' prompt.
    """

    def __init__(self, serial_port: str = "/dev/rfcomm0", baud_rate: int = 38400,
                 timeout_s: float = 2.0, serial_factory=serial.Serial):
        """
        Initialize ELM327 driver.

        Args:
            serial_port: Serial port device
            baud_rate: Baud rate (38400 for most ELM327 clones)
            timeout_s: Maximum wait for a complete response
            serial_factory: Callable opening the port (injectable for tests)
        """
        self.serial_port = serial_port
        self.baud_rate = baud_rate
        self.timeout_s = timeout_s
        self.serial_factory = serial_factory

        self.serial_conn = None
        self.initialized = False

        self._lock = threading.Lock()
        self._assembler = ResponseAssembler()

        # Statistics
        self.commands_sent = 0
        self.timeouts = 0
        self.last_response_time = 0.0

    def initialize(self) -> bool:
        """
        Open the port and run the adapter handshake.

        Returns:
            True if initialization successful
        """
        try:
            self.serial_conn = self.serial_factory(
                port=self.serial_port,
                baudrate=self.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0.05
            )
            self.serial_conn.reset_input_buffer()

            for command in ELM327_INIT_COMMANDS:
                response = self.send_and_await(command)
                logger.debug("ELM327 %s -> %r", command, response)

        except (serial.SerialException, TransportError) as e:
            logger.error("ELM327 initialization on %s failed: %s", self.serial_port, e)
            self.cleanup()
            return False

        self.initialized = True
        logger.info("ELM327 initialized on %s at %d baud", self.serial_port, self.baud_rate)
        return True

    def send_and_await(self, command: str) -> str:
        """
        Send one command and wait for its prompt-terminated response.

        Args:
            command: Command text without terminator (e.g. "010C", "ATZ")

        Returns:
            Response text with the prompt removed

        Raises:
            TransportTimeout: No prompt within timeout_s
            TransportError: The port is closed or failed
        """
        with self._lock:
            if self.serial_conn is None:
                raise TransportError("ELM327 port is not open")

            self._assembler.clear()
            try:
                self.serial_conn.write(frame_request(command))
                self.serial_conn.flush()
                self.commands_sent += 1

                deadline = time.monotonic() + self.timeout_s
                while time.monotonic() < deadline:
                    chunk = self.serial_conn.read(self.serial_conn.in_waiting or 1)
                    if not chunk:
                        continue
                    responses = self._assembler.feed(chunk)
                    if responses:
                        self.last_response_time = time.time()
                        return responses[-1]

            except serial.SerialException as e:
                raise TransportError(f"ELM327 link failed: {e}") from e

            self.timeouts += 1
            raise TransportTimeout(command, self.timeout_s)

    def close(self):
        self.cleanup()

    def get_statistics(self) -> dict:
        """Get driver statistics."""
        return {
            'initialized': self.initialized,
            'commands_sent': self.commands_sent,
            'timeouts': self.timeouts,
            'last_response_time': self.last_response_time,
            'serial_port': self.serial_port,
            'baud_rate': self.baud_rate
        }

    def cleanup(self):
        """Close the serial port once no request is in flight."""
        with self._lock:
            if self.serial_conn is not None:
                try:
                    self.serial_conn.close()
                except serial.SerialException as e:
                    logger.warning("ELM327 close failed: %s", e)
                self.serial_conn = None

            self.initialized = False
