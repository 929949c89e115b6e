"""
Heuristic detection of Noise handshake packets.

Handshake flow:
    --> e                                                        [client hello]
    <-- e, s (encrypted), payload (encrypted certificate)       [server hello]
    --> s (encrypted public key), payload (encrypted payload)   [client finish]

Handshake packets are not encrypted with the transport keys and must bypass
the frame cipher. Parsing every packet would be wasteful, so parsing is only
attempted within a short window after a connection preamble was seen.
"""

from enum import Enum
from typing import Optional

import structlog

from .config import SessionConfig
from .handshake_proto import HandshakeMessage, decode_handshake_message
from .types import (
    NO_PREAMBLE_START,
    PREAMBLE_MAGIC,
    PREAMBLE_OFFSET,
    PREAMBLE_START,
    ROUTED_PREAMBLE_START,
    HandshakeParseError,
)

logger = structlog.get_logger(__name__)


class DetectorState(Enum):
    """Where the detector is relative to the last preamble."""
    AWAITING_PREAMBLE = "awaiting_preamble"
    IN_WINDOW = "in_window"
    CLOSED = "closed"


def _read_u16(data: bytes, offset: int) -> Optional[int]:
    if offset + 2 > len(data):
        return None
    return int.from_bytes(data[offset : offset + 2], "big")


def preamble_start(packet: bytes) -> int:
    """
    Offset at which the handshake message begins.

    3 without a preamble (just the frame header), 7 after the noise header,
    18 after a routing token followed by the noise header.
    """
    start = NO_PREAMBLE_START
    if _read_u16(packet, 0) == PREAMBLE_MAGIC:
        start = PREAMBLE_START
    if _read_u16(packet, PREAMBLE_OFFSET) == PREAMBLE_MAGIC:
        start = ROUTED_PREAMBLE_START
    return start


class HandshakeDetector:
    """Classifies raw packets as handshake or data phase."""

    def __init__(self, config: Optional[SessionConfig] = None) -> None:
        self._config = config or SessionConfig()
        self._attempts = 0

    @property
    def attempts_since_reset(self) -> int:
        return self._attempts

    @property
    def state(self) -> DetectorState:
        if self._attempts == 0:
            return DetectorState.AWAITING_PREAMBLE
        if self._attempts <= self._config.handshake_window:
            return DetectorState.IN_WINDOW
        return DetectorState.CLOSED

    @property
    def attempts_remaining(self) -> int:
        """Packets that may still be parsed before the window closes."""
        return max(0, self._config.handshake_window - self._attempts)

    def reset(self) -> None:
        """Open a new handshake window."""
        self._attempts = 0

    def looks_like_handshake(self, packet: bytes) -> bool:
        """Return True if the packet must bypass the frame cipher."""
        data = bytes(packet)

        if len(data) < self._config.min_packet_size:
            logger.info("noise_small_packet", length=len(data), data=data.hex())
            return True

        start = preamble_start(data)
        if start > NO_PREAMBLE_START:
            # client hello
            self.reset()

        self._attempts += 1
        if self._attempts > self._config.handshake_window:
            return False

        try:
            message = decode_handshake_message(data[start:])
        except HandshakeParseError:
            return False

        if self._config.log_handshake_messages:
            self._log_message(message)

        return message.is_handshake()

    def _log_message(self, message: HandshakeMessage) -> None:
        if message.client_hello is not None:
            logger.debug("noise_client_hello", message=message.client_hello)
        if message.server_hello is not None:
            logger.debug("noise_server_hello", message=message.server_hello)
        if message.client_finish is not None:
            logger.debug("noise_client_finish", message=message.client_finish)
