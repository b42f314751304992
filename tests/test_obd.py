#!/usr/bin/env python3
"""
Unit tests for the diagnostic cache, adapter protocol and polling scheduler.
"""

import threading
import time
import unittest
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from speed_fusion.errors import TransportError, TransportTimeout
from speed_fusion.obd.cache import DiagnosticCache, SignalReading, is_fresh
from speed_fusion.obd.pids import PIDS, pids_for_tier
from speed_fusion.obd.protocol import ResponseAssembler, frame_request
from speed_fusion.obd.scheduler import DiagnosticScheduler

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

class FakeTransport:
    """Answers commands from a response table."""

    def __init__(self, responses=None, fail_on=None):
        self.responses = responses or {}
        self.fail_on = fail_on
        self.commands = []
        self.closed = False

    def send_and_await(self, command):
        self.commands.append(command)
        if command == self.fail_on:
            raise TransportTimeout(command, 2.0)
        return self.responses.get(command, "NO DATA")

    def close(self):
        self.closed = True

class TestDiagnosticCache(unittest.TestCase):
    """Test DiagnosticCache class."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = DiagnosticCache(clock=self.clock)

    def test_empty(self):
        """Signals are absent until first decoded."""
        snapshot = self.cache.snapshot()
        self.assertIsNone(snapshot.vehicle_speed)
        self.assertIsNone(snapshot.value("engine_rpm"))
        self.assertFalse(self.cache.is_fresh("vehicle_speed", 0.5))

    def test_update_stamps_reading(self):
        """Values are stored with the current time."""
        self.assertTrue(self.cache.update("vehicle_speed", 50.0))

        self.assertEqual(self.cache.get("vehicle_speed"), SignalReading(50.0, 1000.0))
        self.assertEqual(self.cache.snapshot().value("vehicle_speed"), 50.0)

    def test_snapshot_is_immutable(self):
        """A snapshot taken earlier never observes later writes."""
        self.cache.update("vehicle_speed", 50.0)
        before = self.cache.snapshot()

        self.cache.update("vehicle_speed", 60.0)

        self.assertEqual(before.value("vehicle_speed"), 50.0)
        self.assertEqual(self.cache.snapshot().value("vehicle_speed"), 60.0)
        with self.assertRaises(Exception):
            before.vehicle_speed = None

    def test_non_finite_rejected(self):
        """NaN, infinity and None keep the previous reading."""
        self.cache.update("engine_rpm", 900.0)
        for value in (float('nan'), float('inf'), None):
            self.assertFalse(self.cache.update("engine_rpm", value))
        self.assertEqual(self.cache.get("engine_rpm").value, 900.0)

    def test_unknown_signal(self):
        with self.assertRaises(KeyError):
            self.cache.update("warp_factor", 9.0)

    def test_freshness_window(self):
        """Readings are fresh up to and including the window."""
        self.cache.update("vehicle_speed", 50.0)

        self.clock.now += 0.5
        self.assertTrue(self.cache.is_fresh("vehicle_speed", 0.5))
        self.clock.now += 0.01
        self.assertFalse(self.cache.is_fresh("vehicle_speed", 0.5))

    def test_freshness_predicate(self):
        reading = SignalReading(1.0, 10.0)
        self.assertTrue(is_fresh(reading, 10.2, 0.5))
        self.assertFalse(is_fresh(reading, 11.0, 0.5))
        self.assertFalse(is_fresh(None, 10.0, 0.5))

    def test_concurrent_writers(self):
        """Concurrent updates of different signals are all retained."""
        names = [p.name for p in PIDS]

        def writer(name):
            for i in range(200):
                self.cache.update(name, float(i))

        threads = [threading.Thread(target=writer, args=(name,)) for name in names]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = self.cache.snapshot()
        for name in names:
            self.assertEqual(snapshot.value(name), 199.0)

class TestProtocol(unittest.TestCase):
    """Test ELM327 framing and response assembly."""

    def test_frame_request(self):
        self.assertEqual(frame_request("010D"), b"010D\r")
        self.assertEqual(frame_request(" ATZ "), b"ATZ\r")

    def test_partial_delivery(self):
        """A response split across reads completes at the prompt."""
        assembler = ResponseAssembler()

        self.assertEqual(assembler.feed(b"41 0D"), [])
        self.assertEqual(assembler.pending(), "41 0D")
        self.assertEqual(assembler.feed(b" 32\r"), [])
        self.assertEqual(assembler.feed(b"\r>"), ["41 0D 32"])
        self.assertIsNone(assembler.pending())

    def test_multiple_responses(self):
        """Several prompts in one chunk give several responses."""
        assembler = ResponseAssembler()

        self.assertEqual(assembler.feed("OK\r>ELM327 v1.5\r>41"), ["OK", "ELM327 v1.5"])
        self.assertEqual(assembler.pending(), "41")

        assembler.clear()
        self.assertIsNone(assembler.pending())

class TestDiagnosticScheduler(unittest.TestCase):
    """Test DiagnosticScheduler class."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = DiagnosticCache(clock=self.clock)
        self.transport = FakeTransport({
            "010C": "41 0C 1A F2",
            "010D": "41 0D 32",
            "0105": "41 05 50",
        })
        self.sleeps = []
        self.scheduler = DiagnosticScheduler(
            self.transport, self.cache, backoff_s=1.0,
            sleep=self.sleeps.append, clock=self.clock)

    def test_tier_cadence(self):
        """Over 100 ticks: tier 1 every tick, tier 2 every 5th, tier 3 every 20th."""
        for _ in range(100):
            self.scheduler.poll_once()

        requests = self.scheduler.get_statistics()['requests']
        for definition in pids_for_tier(1):
            self.assertEqual(requests[definition.name], 100)
        for definition in pids_for_tier(2):
            self.assertEqual(requests[definition.name], 20)
        for definition in pids_for_tier(3):
            self.assertEqual(requests[definition.name], 5)

    def test_first_pass_is_fast_tier_only(self):
        """Tick 1 requests only tier 1 signals, in table order."""
        self.scheduler.poll_once()
        self.assertEqual(self.transport.commands, [p.command for p in pids_for_tier(1)])

    def test_decoded_values_reach_cache(self):
        """Decoded signals are stored; undecodable ones are counted."""
        for _ in range(5):
            self.scheduler.poll_once()

        snapshot = self.cache.snapshot()
        self.assertAlmostEqual(snapshot.value("engine_rpm"), 1724.5)
        self.assertEqual(snapshot.value("vehicle_speed"), 50.0)
        self.assertEqual(snapshot.value("coolant_temp"), 40.0)
        self.assertIsNone(snapshot.value("fuel_level"))

        stats = self.scheduler.get_statistics()
        self.assertEqual(stats['decoded']['vehicle_speed'], 5)
        self.assertEqual(stats['decode_failures']['throttle_position'], 5)

    def test_decode_failure_keeps_previous_value(self):
        """An error response does not erase the cached reading."""
        self.scheduler.poll_once()
        self.clock.now += 0.05

        self.transport.responses["010D"] = "NO DATA"
        self.scheduler.poll_once()

        self.assertEqual(self.cache.get("vehicle_speed"), SignalReading(50.0, 1000.0))
        self.assertEqual(self.scheduler.get_statistics()['decode_failures']['vehicle_speed'], 1)

    def test_transport_failure_backs_off(self):
        """A timeout ends the pass and backs off before the next."""
        self.transport.fail_on = "010C"

        updated = self.scheduler.poll_once()

        self.assertEqual(updated, 0)
        self.assertEqual(self.transport.commands, ["010C"])
        self.assertEqual(self.sleeps, [1.0])
        self.assertEqual(self.scheduler.transport_failures, 1)

        # Recovery on the next pass
        self.transport.fail_on = None
        self.assertGreater(self.scheduler.poll_once(), 0)

    def test_transport_error_is_handled(self):
        """Any transport error is absorbed by the scheduler."""
        class BrokenTransport(FakeTransport):
            def send_and_await(self, command):
                raise TransportError("link down")

        scheduler = DiagnosticScheduler(BrokenTransport(), self.cache, sleep=self.sleeps.append)
        self.assertEqual(scheduler.poll_once(), 0)
        self.assertEqual(scheduler.transport_failures, 1)

    def test_failed_pass_carries_higher_tiers(self):
        """Tier 2 signals skipped by a failed pass are requested on the next one."""
        for _ in range(4):
            self.scheduler.poll_once()

        self.transport.fail_on = pids_for_tier(1)[0].command
        self.scheduler.poll_once()
        self.assertEqual(self.scheduler.get_statistics()['carried_over'],
                         sorted(p.name for p in pids_for_tier(2)))

        self.transport.fail_on = None
        self.transport.commands = []
        self.scheduler.poll_once()

        expected = [p.command for p in PIDS if p.tier in (1, 2)]
        self.assertEqual(self.transport.commands, expected)
        self.assertEqual(self.scheduler.get_statistics()['carried_over'], [])

        # Back on the regular cadence afterwards
        self.transport.commands = []
        self.scheduler.poll_once()
        self.assertEqual(self.transport.commands, [p.command for p in pids_for_tier(1)])

    def test_stop_event_cuts_backoff_short(self):
        """With a stop event the backoff ends as soon as it is set."""
        stop_event = threading.Event()
        stop_event.set()
        scheduler = DiagnosticScheduler(FakeTransport(fail_on="010C"), self.cache,
                                        backoff_s=30.0, sleep=self.sleeps.append)

        started = time.monotonic()
        self.assertEqual(scheduler.poll_once(stop_event), 0)

        self.assertLess(time.monotonic() - started, 1.0)
        self.assertEqual(self.sleeps, [])
        self.assertEqual(scheduler.transport_failures, 1)

    def test_run_until_stopped(self):
        """The polling loop exits when the stop event is set."""
        stop_event = threading.Event()
        scheduler = DiagnosticScheduler(self.transport, self.cache)

        thread = threading.Thread(target=scheduler.run, args=(stop_event, 0.01))
        thread.start()
        stop_event.wait(0.1)
        stop_event.set()
        thread.join(timeout=2.0)

        self.assertFalse(thread.is_alive())
        self.assertGreater(scheduler.tick_count, 0)

if __name__ == '__main__':
    unittest.main()
