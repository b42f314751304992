"""
OBD-II diagnostic channel: signal decoding, caching and tiered polling.
"""

from .pids import PIDS, PIDS_BY_NAME, PidDefinition, parse_response, decode
from .cache import DiagnosticCache, DiagnosticSnapshot, SignalReading, is_fresh
from .protocol import DiagnosticTransport, ResponseAssembler, ELM327_INIT_COMMANDS
from .scheduler import DiagnosticScheduler

__all__ = [
    "PIDS", "PIDS_BY_NAME", "PidDefinition", "parse_response", "decode",
    "DiagnosticCache", "DiagnosticSnapshot", "SignalReading", "is_fresh",
    "DiagnosticTransport", "ResponseAssembler", "ELM327_INIT_COMMANDS",
    "DiagnosticScheduler"
]
