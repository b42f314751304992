#!/usr/bin/env python3
"""
Tests for the Raspberry Pi serial drivers using a scripted port.
"""

import threading
import time
import unittest
import sys
import os

import serial

# Add package and platform modules to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'platforms', 'raspberry_pi'))

from hardware.elm327_driver import ELM327Driver
from hardware.gps_driver import GPSDriver
from speed_fusion.errors import TransportError, TransportTimeout
from speed_fusion.obd import DiagnosticCache, DiagnosticScheduler, ELM327_INIT_COMMANDS
from speed_fusion.sensors.gps import GPSProcessor
from speed_fusion.sensors.nmea import nmea_checksum

class ScriptedSerial:
    """
    Serial port double answering ELM327 commands.

    Replies are released in small chunks to exercise response assembly.
    """

    def __init__(self, replies=None, chunk_size=3, silent=False, **kwargs):
        self.replies = replies or {}
        self.chunk_size = chunk_size
        self.silent = silent
        self.kwargs = kwargs
        self.written = []
        self.buffer = b""
        self.closed = False

    @property
    def in_waiting(self):
        return len(self.buffer)

    def reset_input_buffer(self):
        self.buffer = b""

    def write(self, data):
        self.written.append(data)
        if self.silent:
            return len(data)
        command = data.decode("ascii").strip()
        reply = self.replies.get(command, "OK")
        self.buffer += f"{reply}\r\r>".encode("ascii")
        return len(data)

    def flush(self):
        pass

    def read(self, size=1):
        if not self.buffer:
            time.sleep(0.005)
            return b""
        size = min(size, self.chunk_size)
        data, self.buffer = self.buffer[:size], self.buffer[size:]
        return data

    def close(self):
        self.closed = True

class TestELM327Driver(unittest.TestCase):
    """Test ELM327Driver class."""

    def make_driver(self, **port_options):
        self.port = None

        def factory(**kwargs):
            self.port = ScriptedSerial(**port_options, **kwargs)
            return self.port

        return ELM327Driver(serial_port="/dev/null", timeout_s=0.2, serial_factory=factory)

    def test_initialize_runs_handshake(self):
        driver = self.make_driver(replies={"ATZ": "ELM327 v1.5"})

        self.assertTrue(driver.initialize())
        self.assertTrue(driver.initialized)
        self.assertEqual([w.decode().strip() for w in self.port.written], list(ELM327_INIT_COMMANDS))
        self.assertEqual(self.port.kwargs['baudrate'], 38400)

    def test_send_and_await(self):
        """Chunked replies are assembled up to the prompt."""
        driver = self.make_driver(replies={"010D": "41 0D 32"})
        driver.initialize()

        self.assertEqual(driver.send_and_await("010D"), "41 0D 32")
        self.assertEqual(self.port.written[-1], b"010D\r")
        self.assertEqual(driver.get_statistics()['commands_sent'], len(ELM327_INIT_COMMANDS) + 1)

    def test_timeout(self):
        """No prompt within the timeout raises TransportTimeout."""
        driver = self.make_driver(silent=True)
        self.assertFalse(driver.initialize())

        driver = self.make_driver()
        driver.initialize()
        self.port.silent = True
        with self.assertRaises(TransportTimeout):
            driver.send_and_await("010C")
        self.assertEqual(driver.timeouts, 1)

    def test_closed_port(self):
        driver = self.make_driver()
        with self.assertRaises(TransportError):
            driver.send_and_await("010D")

    def test_open_failure(self):
        def factory(**kwargs):
            raise serial.SerialException("no such device")

        driver = ELM327Driver(serial_port="/dev/missing", serial_factory=factory)
        self.assertFalse(driver.initialize())
        self.assertFalse(driver.initialized)

    def test_close(self):
        driver = self.make_driver()
        driver.initialize()
        driver.close()

        self.assertTrue(self.port.closed)
        self.assertFalse(driver.initialized)

    def test_close_waits_for_request(self):
        """Closing during a request lets it finish with a transport error."""
        driver = self.make_driver()
        driver.initialize()
        self.port.silent = True
        errors = []

        def request():
            try:
                driver.send_and_await("010C")
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=request)
        thread.start()
        time.sleep(0.05)
        driver.close()
        thread.join(timeout=2.0)

        self.assertFalse(thread.is_alive())
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], TransportTimeout)
        self.assertTrue(self.port.closed)
        with self.assertRaises(TransportError):
            driver.send_and_await("010D")

    def test_scheduler_over_driver(self):
        """The scheduler decodes responses delivered by the driver."""
        driver = self.make_driver(replies={"010C": "41 0C 1A F2", "010D": "41 0D 32"})
        driver.initialize()
        cache = DiagnosticCache()
        scheduler = DiagnosticScheduler(driver, cache, sleep=lambda s: None)

        scheduler.poll_once()

        self.assertAlmostEqual(cache.snapshot().value("engine_rpm"), 1724.5)
        self.assertEqual(cache.snapshot().value("vehicle_speed"), 50.0)

class TestGPSDriver(unittest.TestCase):
    """Test GPSDriver sentence handling."""

    GGA = "GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,"
    RMC = "GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W"

    def sentence(self, payload):
        return f"${payload}*{nmea_checksum(payload)}\r\n"

    def test_feed_splits_sentences(self):
        """Only complete lines starting with '$' are queued."""
        driver = GPSDriver(serial_factory=ScriptedSerial)
        data = self.sentence(self.GGA) + "noise\r\n" + self.sentence(self.RMC)

        self.assertEqual(driver.feed(data[:40].encode()), 0)
        self.assertEqual(driver.feed(data[40:].encode()), 2)

        self.assertEqual(driver.read_sentence(timeout=0.1), self.sentence(self.GGA).strip())
        self.assertEqual(driver.read_sentences(), [self.sentence(self.RMC).strip()])
        self.assertIsNone(driver.read_sentence(timeout=0.01))
        self.assertEqual(driver.get_statistics()['sentences_received'], 2)

    def test_run_delivers_fixes(self):
        """Fixes are handed to the callback until stopped."""
        driver = GPSDriver(serial_factory=ScriptedSerial)
        driver.feed((self.sentence(self.GGA) + self.sentence(self.RMC)).encode())

        fixes = []
        stop_event = threading.Event()

        def on_fix(fix):
            fixes.append(fix)
            if fix.speed_mps is not None:
                stop_event.set()

        thread = threading.Thread(target=driver.run, args=(GPSProcessor(), on_fix, stop_event))
        thread.start()
        thread.join(timeout=5.0)

        self.assertFalse(thread.is_alive())
        self.assertEqual(len(fixes), 2)
        self.assertGreater(fixes[-1].speed_mps, 0.0)

    def test_initialize_and_cleanup(self):
        driver = GPSDriver(serial_port="/dev/null", serial_factory=ScriptedSerial)

        self.assertTrue(driver.initialize())
        self.assertTrue(driver.initialized)

        driver.cleanup()
        self.assertFalse(driver.initialized)
        self.assertIsNone(driver.serial_conn)

if __name__ == '__main__':
    unittest.main()
