"""
ELM327 text protocol: request framing and prompt-terminated responses.
"""

from typing import List, Optional, Protocol

REQUEST_TERMINATOR = "\r"
PROMPT = ">"

# Adapter handshake: reset, echo off, linefeeds off, spaces off,
# headers off, automatic protocol detection
ELM327_INIT_COMMANDS = ("ATZ", "ATE0", "ATL0", "ATS0", "ATH0", "ATSP0")

class DiagnosticTransport(Protocol):
    """Half-duplex request/response link to the diagnostic adapter."""

    def send_and_await(self, command: str) -> str:
        """
        Send one command and block until its complete response arrives.

        Raises:
            TransportTimeout: No prompt within the request timeout
            TransportError: The link failed
        """
        ...

    def close(self) -> None:
        ...

def frame_request(command: str) -> bytes:
    """Encode a command for the wire."""
    return (command.strip() + REQUEST_TERMINATOR).encode("ascii")

class ResponseAssembler:
    """
    Buffers partial deliveries until the adapter prompt is seen.

    Adapters split a response across several reads; only text followed by
    the prompt character forms a complete response.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk) -> List[str]:
        """
        Add received data.

        Args:
            chunk: Received bytes or text

        Returns:
            Complete responses (prompt removed, whitespace trimmed), oldest first
        """
        if isinstance(chunk, (bytes, bytearray)):
            chunk = chunk.decode("ascii", errors="ignore")
        self._buffer += chunk

        responses = []
        while PROMPT in self._buffer:
            response, _, self._buffer = self._buffer.partition(PROMPT)
            responses.append(response.strip())
        return responses

    def pending(self) -> Optional[str]:
        """Text received since the last prompt, if any."""
        return self._buffer or None

    def clear(self):
        self._buffer = ""
