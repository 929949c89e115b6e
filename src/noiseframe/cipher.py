"""AES-256-GCM frame encryption and decryption with counter nonces."""

import struct
import zlib
from dataclasses import dataclass
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag

from .keystore import Direction, KeyState, KeyStore
from .types import (
    FLAG_COMPRESSED,
    NONCE_SIZE,
    CompressionError,
    WrongCounterError,
)

logger = structlog.get_logger(__name__)


@dataclass
class DecryptedFrame:
    """A decrypted frame.

    Attributes:
        plaintext: Payload without the flags byte, inflated if it was compressed.
        counter: The counter the frame was decrypted under.
        raw_decrypted: The decrypted bytes as transmitted, flags byte included.
    """
    plaintext: bytes
    counter: int
    raw_decrypted: bytes

    @property
    def flags(self) -> int:
        return self.raw_decrypted[0] if self.raw_decrypted else 0

    @property
    def compressed(self) -> bool:
        return bool(self.flags & FLAG_COMPRESSED)


def counter_to_nonce(counter: int) -> bytes:
    """
    Derive the 12-byte nonce for a counter.

    Format:
        [0-7]    zero
        [8-11]   counter (big-endian uint32)
    """
    return bytes(NONCE_SIZE - 4) + struct.pack(">I", counter)


def encode_payload(payload: bytes, compress: bool = False) -> bytes:
    """Prefix a payload with its flags byte, deflating it when requested."""
    if compress:
        return bytes([FLAG_COMPRESSED]) + zlib.compress(payload)
    return b"\x00" + payload


def open_payload(decrypted: bytes) -> bytes:
    """
    Strip the flags byte from decrypted bytes and inflate if flagged.

    Raises:
        CompressionError: If a compressed payload cannot be inflated
    """
    if not decrypted:
        return b""

    flags = decrypted[0]
    body = decrypted[1:]
    if flags & FLAG_COMPRESSED:
        try:
            return zlib.decompress(body)
        except zlib.error as e:
            raise CompressionError(f"Could not inflate payload: {e}") from e
    return body


class FrameCipher:
    """Encrypts and decrypts frames with the keys held by a KeyStore."""

    def __init__(self, keystore: KeyStore) -> None:
        self._keystore = keystore

    @property
    def keystore(self) -> KeyStore:
        return self._keystore

    def decrypt(
        self,
        ciphertext: bytes,
        direction: Direction,
        counter: Optional[int] = None,
    ) -> bytes:
        """Decrypt a frame and return its logical payload."""
        return self.decrypt_frame(ciphertext, direction, counter).plaintext

    def decrypt_frame(
        self,
        ciphertext: bytes,
        direction: Direction,
        counter: Optional[int] = None,
        key_state: Optional[KeyState] = None,
    ) -> DecryptedFrame:
        """
        Decrypt a frame.

        Args:
            ciphertext: Frame body including the 16-byte tag
            direction: Which key to use
            counter: Counter to decrypt under; drawn from the KeyStore if None
            key_state: Key captured by the caller; the current key if None

        Returns:
            DecryptedFrame

        Raises:
            KeyError: If no key is set for the direction
            WrongCounterError: If authentication fails under the counter
            CompressionError: If a compressed payload cannot be inflated
        """
        state = key_state or self._keystore.current_key(direction)
        if state is None:
            raise KeyError(f"No {direction.value} key set")
        if counter is None:
            counter = self._keystore.next_counter(direction)

        try:
            decrypted = state.imported.decrypt(counter_to_nonce(counter), bytes(ciphertext), None)
        except InvalidTag:
            # Another channel sharing this key may own the counter
            if self._keystore.current_key(direction) is state:
                self._keystore.rollback(direction)
            logger.debug(
                "noise_wrong_counter",
                direction=direction.value,
                counter=counter,
                length=len(ciphertext),
            )
            raise WrongCounterError(direction, counter)
        except Exception:
            logger.exception(
                "noise_decrypt_failed",
                direction=direction.value,
                counter=counter,
                length=len(ciphertext),
            )
            raise

        try:
            plaintext = open_payload(decrypted)
        except CompressionError:
            logger.exception(
                "noise_decrypt_failed",
                direction=direction.value,
                counter=counter,
                length=len(ciphertext),
            )
            raise

        return DecryptedFrame(plaintext=plaintext, counter=counter, raw_decrypted=decrypted)

    def encrypt(
        self,
        plaintext: bytes,
        direction: Direction,
        counter: int,
        key_state: Optional[KeyState] = None,
    ) -> Optional[bytes]:
        """
        Encrypt a frame under the given counter.

        Failures are logged and None is returned.

        Args:
            plaintext: Flags byte followed by the payload
            direction: Which key to use
            counter: Counter to derive the nonce from
            key_state: Key captured by the caller; the current key if None

        Returns:
            Ciphertext with the 16-byte tag appended, or None on failure
        """
        state = key_state or self._keystore.current_key(direction)
        if state is None:
            logger.error("noise_encrypt_without_key", direction=direction.value, counter=counter)
            return None

        try:
            return state.imported.encrypt(counter_to_nonce(counter), bytes(plaintext), None)
        except Exception:
            logger.exception("noise_encrypt_failed", direction=direction.value, counter=counter)
            return None
