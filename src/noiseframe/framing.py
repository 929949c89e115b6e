"""Length-prefixed framing for the noise transport."""

from dataclasses import dataclass
from typing import Iterable, Optional

from .types import FRAME_HEADER_SIZE, MAX_FRAME_SIZE, FrameTooLargeError


@dataclass
class Frame:
    """One frame cut from a packet. The counter is assigned after splitting."""
    ciphertext: bytes
    counter: Optional[int] = None


def split_frames(buffer: bytes) -> list[Frame]:
    """
    Split a packet into frames.

    Format (repeated):
        [0]      length >> 16
        [1-2]    length & 0xFFFF (big-endian)
        [3..]    length bytes of ciphertext

    Splitting stops once fewer than 4 bytes remain. A trailing frame whose
    body is shorter than its header claims is dropped.

    Args:
        buffer: Raw packet bytes

    Returns:
        Frames in arrival order, without counters
    """
    data = bytes(buffer)
    frames = []
    offset = 0

    while offset + FRAME_HEADER_SIZE < len(data):
        size = int.from_bytes(data[offset : offset + FRAME_HEADER_SIZE], "big")
        offset += FRAME_HEADER_SIZE

        if offset + size > len(data):
            break

        frames.append(Frame(ciphertext=data[offset : offset + size]))
        offset += size

    return frames


def pack_frames(frames: Iterable[bytes]) -> bytes:
    """
    Concatenate frames, each behind its 3-byte length header.

    Raises:
        FrameTooLargeError: If a frame exceeds the 24-bit length field
    """
    out = bytearray()
    for frame in frames:
        size = len(frame)
        if size > MAX_FRAME_SIZE:
            raise FrameTooLargeError(size)
        out.append(size >> 16)
        out += (size & 0xFFFF).to_bytes(2, "big")
        out += frame
    return bytes(out)


def frame_size(packet: bytes) -> int:
    """Read the length header of the first frame in a packet."""
    if len(packet) < FRAME_HEADER_SIZE:
        raise ValueError(f"Packet too short: {len(packet)} bytes (minimum {FRAME_HEADER_SIZE})")
    return int.from_bytes(packet[:FRAME_HEADER_SIZE], "big")
