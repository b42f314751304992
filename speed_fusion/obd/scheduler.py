"""
Tiered polling of the diagnostic bus.
"""

import logging
import threading
import time
from collections import Counter
from typing import Dict, Any, List, Optional, Set

from .cache import DiagnosticCache
from .pids import PIDS, PidDefinition, TIER_INTERVALS
from .protocol import DiagnosticTransport
from ..errors import TransportError

logger = logging.getLogger(__name__)

class DiagnosticScheduler:
    """
    Issues tiered requests over a half-duplex transport and fills the cache.

    Tier 1 signals are requested every tick, tier 2 every 5th tick and
    tier 3 every 20th tick. Requests within a pass are strictly sequential.
    Tier 2 and 3 signals skipped by a failed pass are carried over to the
    next pass instead of waiting for their next scheduled tick.
    """

    def __init__(self, transport: DiagnosticTransport, cache: DiagnosticCache,
                 backoff_s: float = 1.0, sleep=time.sleep, clock=time.time):
        """
        Initialize the scheduler.

        Args:
            transport: Link offering send_and_await(command)
            cache: Destination for decoded values
            backoff_s: Delay after a transport failure
            sleep: Sleep function used when no stop event is given (injectable for tests)
            clock: Time source used for pacing
        """
        self.transport = transport
        self.cache = cache
        self.backoff_s = backoff_s
        self.sleep = sleep
        self.clock = clock

        self.tick_count = 0
        self._carried: Set[str] = set()

        # Statistics
        self.requests = Counter()
        self.decoded = Counter()
        self.decode_failures = Counter()
        self.transport_failures = 0

    def due_pids(self, tick: int) -> List[PidDefinition]:
        """Signals to request on the given tick, in table order."""
        return [p for p in PIDS
                if tick % TIER_INTERVALS[p.tier] == 0 or p.name in self._carried]

    def poll_once(self, stop_event: Optional[threading.Event] = None) -> int:
        """
        Run one polling pass.

        Args:
            stop_event: When given, the backoff wait ends as soon as it is set

        Returns:
            Number of cache entries updated
        """
        self.tick_count += 1
        updated = 0

        due = self.due_pids(self.tick_count)
        self._carried = set()

        for index, definition in enumerate(due):
            self.requests[definition.name] += 1
            try:
                response = self.transport.send_and_await(definition.command)
            except TransportError as e:
                self.transport_failures += 1
                self._carried = {p.name for p in due[index:] if p.tier > 1}
                logger.warning("Diagnostic request %s failed: %s; backing off %.1fs",
                               definition.command, e, self.backoff_s)
                if stop_event is not None:
                    stop_event.wait(self.backoff_s)
                else:
                    self.sleep(self.backoff_s)
                return updated

            value = definition.decode(response)
            if value is not None and self.cache.update(definition.name, value):
                self.decoded[definition.name] += 1
                updated += 1
            else:
                self.decode_failures[definition.name] += 1

        return updated

    def run(self, stop_event: threading.Event, period_s: float = 0.05):
        """
        Poll until stop_event is set, pacing each pass to period_s.

        Args:
            stop_event: Set to terminate the loop (also cuts a backoff short)
            period_s: Target duration of one pass
        """
        logger.info("Diagnostic polling started (%.0f Hz)", 1.0 / period_s)
        while not stop_event.is_set():
            started = self.clock()
            self.poll_once(stop_event)
            remaining = period_s - (self.clock() - started)
            if remaining > 0:
                stop_event.wait(remaining)
        logger.info("Diagnostic polling stopped after %d ticks", self.tick_count)

    def get_statistics(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        return {
            'ticks': self.tick_count,
            'requests': dict(self.requests),
            'decoded': dict(self.decoded),
            'decode_failures': dict(self.decode_failures),
            'transport_failures': self.transport_failures,
            'carried_over': sorted(self._carried)
        }
