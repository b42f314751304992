"""
GPS receiver driver (NMEA over UART) producing position fixes.
"""

import logging
import threading
import time
from queue import Queue, Empty, Full
from typing import Callable, List, Optional

import serial

from speed_fusion.sensors.gps import GPSProcessor, PositionFix

logger = logging.getLogger(__name__)

class GPSDriver:
    """
    Reads NMEA sentences from a serial GPS module on a background thread.
    """

    def __init__(self, serial_port: str = "/dev/ttyAMA0", baud_rate: int = 9600,
                 serial_factory=serial.Serial):
        """
        Initialize GPS driver.

        Args:
            serial_port: Serial port device (e.g., "/dev/ttyAMA0")
            baud_rate: Baud rate (default 9600 for NEO6M)
            serial_factory: Callable opening the port (injectable for tests)
        """
        self.serial_port = serial_port
        self.baud_rate = baud_rate
        self.serial_factory = serial_factory
        self.serial_conn = None
        self.initialized = False

        self.reader_thread = None
        self.running = False

        self.sentence_queue = Queue(maxsize=100)
        self.receive_buffer = ""

        # Statistics
        self.sentences_received = 0
        self.sentences_dropped = 0
        self.last_sentence_time = 0.0

    def initialize(self) -> bool:
        """
        Open the port and start the reader thread.

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
                timeout=1.0
            )
            self.serial_conn.reset_input_buffer()
        except serial.SerialException as e:
            logger.error("GPS initialization on %s failed: %s", self.serial_port, e)
            return False

        self.running = True
        self.reader_thread = threading.Thread(target=self._reader_loop, name="gps-reader", daemon=True)
        self.reader_thread.start()

        self.initialized = True
        logger.info("GPS initialized on %s at %d baud", self.serial_port, self.baud_rate)
        return True

    def _reader_loop(self):
        """Main reader loop for GPS data."""
        while self.running and self.serial_conn:
            try:
                data = self.serial_conn.read(self.serial_conn.in_waiting or 1)
            except serial.SerialException as e:
                logger.warning("GPS reader error: %s", e)
                time.sleep(0.1)
                continue

            if data:
                self.feed(data)

    def feed(self, data: bytes) -> int:
        """
        Add received bytes and queue every complete sentence.

        Returns:
            Number of sentences queued
        """
        self.receive_buffer += data.decode('ascii', errors='ignore')
        queued = 0

        while '\n' in self.receive_buffer:
            line, _, self.receive_buffer = self.receive_buffer.partition('\n')
            sentence = line.strip()
            if not sentence.startswith('$'):
                continue

            try:
                self.sentence_queue.put_nowait(sentence)
            except Full:
                self.sentences_dropped += 1
                continue

            self.sentences_received += 1
            self.last_sentence_time = time.time()
            queued += 1

        return queued

    def read_sentence(self, timeout: float = 1.0) -> Optional[str]:
        """
        Read next NMEA sentence.

        Args:
            timeout: Timeout in seconds

        Returns:
            NMEA sentence string, or None on timeout
        """
        try:
            return self.sentence_queue.get(timeout=timeout)
        except Empty:
            return None

    def read_sentences(self, max_sentences: int = 10) -> List[str]:
        """Read up to max_sentences already queued sentences."""
        sentences = []
        for _ in range(max_sentences):
            try:
                sentences.append(self.sentence_queue.get_nowait())
            except Empty:
                break
        return sentences

    def run(self, processor: GPSProcessor, on_fix: Callable[[PositionFix], None],
            stop_event: threading.Event):
        """
        Deliver fixes to on_fix until stop_event is set.

        Args:
            processor: NMEA to PositionFix converter
            on_fix: Receives every valid fix
            stop_event: Set to terminate the loop
        """
        while not stop_event.is_set():
            sentence = self.read_sentence(timeout=0.5)
            if sentence is None:
                continue

            fix = processor.process_nmea_sentence(sentence)
            if fix is not None:
                on_fix(fix)

    def get_data_age(self) -> float:
        """Seconds since the last sentence was received."""
        if self.last_sentence_time == 0:
            return float('inf')
        return time.time() - self.last_sentence_time

    def get_statistics(self) -> dict:
        """Get driver statistics."""
        return {
            'initialized': self.initialized,
            'sentences_received': self.sentences_received,
            'sentences_dropped': self.sentences_dropped,
            'queue_size': self.sentence_queue.qsize(),
            'data_age': self.get_data_age(),
            'serial_port': self.serial_port,
            'baud_rate': self.baud_rate
        }

    def cleanup(self):
        """Stop the reader thread and close the port."""
        self.running = False

        if self.reader_thread and self.reader_thread.is_alive():
            self.reader_thread.join(timeout=2.0)

        if self.serial_conn:
            try:
                self.serial_conn.close()
            except serial.SerialException as e:
                logger.warning("GPS close failed: %s", e)
            self.serial_conn = None

        self.initialized = False
        logger.info("GPS cleanup completed")
