"""Per-direction key material and nonce counters."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .types import KEY_SIZE, InvalidKeyError

logger = structlog.get_logger(__name__)


class Direction(Enum):
    """Which half of the transport a key belongs to."""
    READ = "read"
    WRITE = "write"

    @classmethod
    def from_incoming(cls, is_incoming: bool) -> "Direction":
        """Incoming traffic uses the read key, outgoing the write key."""
        return cls.READ if is_incoming else cls.WRITE


@dataclass
class KeyState:
    """Key material for one direction.

    Attributes:
        raw_key: The 32-byte AES-256 key.
        imported: The AEAD handle built from raw_key.
        counter: The next nonce counter to hand out.
    """
    raw_key: bytes
    imported: AESGCM
    counter: int = 0


def import_key(raw_key: bytes) -> AESGCM:
    """
    Build an AES-256-GCM handle from raw key bytes.

    Args:
        raw_key: 32-byte key

    Returns:
        AESGCM instance usable for both encrypt and decrypt

    Raises:
        InvalidKeyError: If the key is not 32 bytes
    """
    if len(raw_key) != KEY_SIZE:
        raise InvalidKeyError(len(raw_key))
    return AESGCM(bytes(raw_key))


class KeyStore:
    """
    Holds the read and write keys of a session together with their counters.

    A new key replaces the whole KeyState object, so operations that captured
    the previous state keep running under it.
    """

    def __init__(self) -> None:
        self._states: dict[Direction, KeyState] = {}

    def set_key(
        self,
        direction: Direction,
        raw_key: bytes,
        imported: Optional[AESGCM] = None,
    ) -> KeyState:
        """Replace the key for a direction and reset its counter to 0."""
        if len(raw_key) != KEY_SIZE:
            raise InvalidKeyError(len(raw_key))
        if imported is None:
            imported = import_key(raw_key)

        state = KeyState(raw_key=bytes(raw_key), imported=imported)
        self._states[direction] = state
        logger.info("noise_key_replaced", direction=direction.value)
        return state

    def current_key(self, direction: Direction) -> Optional[KeyState]:
        """Returns the key state for a direction, or None if no key is set."""
        return self._states.get(direction)

    def has_key(self, direction: Direction) -> bool:
        """Check if a key is set for a direction."""
        return direction in self._states

    def counter(self, direction: Direction) -> int:
        """Returns the current counter, 0 when no key is set."""
        state = self._states.get(direction)
        return state.counter if state is not None else 0

    def next_counter(self, direction: Direction) -> int:
        """
        Return the current counter for a direction and advance it.

        Must only be called from the direction's task queue.

        Raises:
            KeyError: If no key is set for the direction
        """
        state = self._states[direction]
        counter = state.counter
        state.counter += 1
        return counter

    def rollback(self, direction: Direction) -> None:
        """
        Step the counter back by one, never below zero.

        A counter already at 0 stays at 0, so after a failure under counter 0
        the next frame is tried under 0 again.
        """
        state = self._states.get(direction)
        if state is None:
            return
        if state.counter > 0:
            state.counter -= 1

    def clear(self, direction: Optional[Direction] = None) -> None:
        """Forget the key of one direction, or of both."""
        if direction is None:
            self._states.clear()
        else:
            self._states.pop(direction, None)
