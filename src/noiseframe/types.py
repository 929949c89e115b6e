"""Type definitions and constants for the noiseframe transport."""


# Cipher constants
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# Framing constants
FRAME_HEADER_SIZE = 3
MAX_FRAME_SIZE = (1 << 24) - 1

# Plaintext flags byte
FLAG_COMPRESSED = 0x02

# Handshake detection constants
MIN_PACKET_SIZE = 8
HANDSHAKE_WINDOW = 3
PREAMBLE_MAGIC = 0x5741  # "WA"
PREAMBLE_OFFSET = 0x0B
NO_PREAMBLE_START = 0x03
PREAMBLE_START = 0x07
ROUTED_PREAMBLE_START = 0x12


# Exception types
class NoiseFrameError(Exception):
    """Base exception for noiseframe errors."""
    pass


class InvalidKeyError(NoiseFrameError):
    """Key material has the wrong length."""

    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__(f"Invalid key length: {length} bytes (expected {KEY_SIZE})")


class WrongCounterError(NoiseFrameError):
    """
    Authentication failed under the assigned counter.

    Raised when frames of several channels sharing one key arrive interleaved.
    The counter has already been rolled back when this is raised, so the
    caller may retry the packet. The rollback stops at 0: a failure under
    counter 0 leaves the counter at 0.
    """

    retryable = True

    def __init__(self, direction, counter: int) -> None:
        self.direction = direction
        self.counter = counter
        super().__init__(f"Wrong counter in decryption ({direction}, counter {counter})")


class CompressionError(NoiseFrameError):
    """Inflating a compressed payload failed."""
    pass


class HandshakeParseError(NoiseFrameError):
    """Bytes are not a well-formed handshake message."""
    pass


class FrameTooLargeError(NoiseFrameError):
    """Frame does not fit the 3-byte length header."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(f"Frame too large: {size} bytes (max {MAX_FRAME_SIZE})")
