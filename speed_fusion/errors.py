"""
Exception types shared by the diagnostic channel and its drivers.

None of these reach callers of the estimator: decode failures and transport
failures are handled where they occur.
"""


class SpeedFusionError(Exception):
    """Base class for all speed fusion errors."""


class DecodeError(SpeedFusionError):
    """A diagnostic response was malformed or carried an error token."""

    def __init__(self, message: str, response: str = ""):
        super().__init__(message)
        self.response = response


class TransportError(SpeedFusionError):
    """The diagnostic link failed to deliver a response."""


class TransportTimeout(TransportError):
    """No complete response arrived within the request timeout."""

    def __init__(self, command: str, timeout_s: float):
        super().__init__(f"Command {command!r} timed out after {timeout_s:.2f}s")
        self.command = command
        self.timeout_s = timeout_s
