"""Tests for frame encryption and decryption."""

import zlib

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from noiseframe.cipher import (
    FrameCipher,
    counter_to_nonce,
    encode_payload,
    open_payload,
)
from noiseframe.keystore import Direction, KeyStore
from noiseframe.types import (
    FLAG_COMPRESSED,
    TAG_SIZE,
    CompressionError,
    WrongCounterError,
)

FIXED_KEY = bytes(range(32))


def _cipher() -> FrameCipher:
    store = KeyStore()
    store.set_key(Direction.READ, FIXED_KEY)
    store.set_key(Direction.WRITE, FIXED_KEY)
    return FrameCipher(store)


class TestNonce:
    """Test counter nonce derivation."""

    def test_zero_counter(self) -> None:
        assert counter_to_nonce(0) == bytes(12)

    def test_counter_in_last_four_bytes(self) -> None:
        nonce = counter_to_nonce(0x01020304)
        assert len(nonce) == 12
        assert nonce == bytes(8) + b"\x01\x02\x03\x04"

    def test_max_counter(self) -> None:
        assert counter_to_nonce(0xFFFFFFFF)[8:] == b"\xff\xff\xff\xff"


class TestPayloadFlags:
    """Test the flags byte in front of the payload."""

    def test_plain_payload(self) -> None:
        assert encode_payload(b"hello") == b"\x00hello"
        assert open_payload(b"\x00hello") == b"hello"

    def test_compressed_payload(self) -> None:
        encoded = encode_payload(b"hello" * 50, compress=True)
        assert encoded[0] == FLAG_COMPRESSED
        assert open_payload(encoded) == b"hello" * 50

    def test_other_flags_pass_through(self) -> None:
        """Bits other than 0x2 do not trigger inflation."""
        assert open_payload(b"\x01\x78\x9c") == b"\x78\x9c"

    def test_empty(self) -> None:
        assert open_payload(b"") == b""

    def test_corrupt_compressed_payload(self) -> None:
        with pytest.raises(CompressionError):
            open_payload(bytes([FLAG_COMPRESSED]) + b"not zlib")


class TestEncryptDecrypt:
    """Test the cipher round trip."""

    def test_round_trip(self, cipher) -> None:
        ciphertext = cipher.encrypt(encode_payload(b"stanza"), Direction.READ, 0)
        assert ciphertext is not None
        assert len(ciphertext) == 1 + len(b"stanza") + TAG_SIZE

        assert cipher.decrypt(ciphertext, Direction.READ, 0) == b"stanza"

    def test_decrypt_frame_keeps_raw_bytes(self, cipher) -> None:
        """raw_decrypted keeps the flags byte and the compressed body."""
        encoded = encode_payload(b"x" * 200, compress=True)
        ciphertext = cipher.encrypt(encoded, Direction.READ, 3)

        frame = cipher.decrypt_frame(ciphertext, Direction.READ, 3)

        assert frame.plaintext == b"x" * 200
        assert frame.raw_decrypted == encoded
        assert frame.counter == 3
        assert frame.compressed

    def test_uncompressed_payload_unchanged(self, cipher) -> None:
        """Without the flag, zlib-looking bytes are returned as given."""
        body = zlib.compress(b"looks compressed")
        ciphertext = cipher.encrypt(b"\x00" + body, Direction.WRITE, 9)
        assert cipher.decrypt(ciphertext, Direction.WRITE, 9) == body

    def test_counter_drawn_from_keystore(self, cipher, keystore) -> None:
        """Without an explicit counter the next one is taken."""
        first = cipher.encrypt(encode_payload(b"a"), Direction.READ, 0)
        second = cipher.encrypt(encode_payload(b"b"), Direction.READ, 1)

        assert cipher.decrypt(first, Direction.READ) == b"a"
        assert cipher.decrypt(second, Direction.READ) == b"b"
        assert keystore.counter(Direction.READ) == 2

    def test_directions_use_their_own_key(self, cipher) -> None:
        ciphertext = cipher.encrypt(encode_payload(b"w"), Direction.WRITE, 0)
        with pytest.raises(WrongCounterError):
            cipher.decrypt(ciphertext, Direction.READ, 0)

    def test_decrypt_without_key(self) -> None:
        cipher = FrameCipher(KeyStore())
        with pytest.raises(KeyError):
            cipher.decrypt(b"\x00" * 32, Direction.READ, 0)

    def test_corrupt_compressed_frame(self, cipher) -> None:
        ciphertext = cipher.encrypt(bytes([FLAG_COMPRESSED]) + b"garbage", Direction.READ, 0)
        with pytest.raises(CompressionError):
            cipher.decrypt(ciphertext, Direction.READ, 0)

    def test_corrupt_compressed_frame_is_logged(self, cipher) -> None:
        ciphertext = cipher.encrypt(bytes([FLAG_COMPRESSED]) + b"garbage", Direction.READ, 0)
        with capture_logs() as logs:
            with pytest.raises(CompressionError):
                cipher.decrypt(ciphertext, Direction.READ, 0)
        assert logs[0]["event"] == "noise_decrypt_failed"
        assert logs[0]["log_level"] == "error"
        assert logs[0]["counter"] == 0

    def test_encrypt_under_captured_key(self, cipher, keystore) -> None:
        old_state = keystore.current_key(Direction.WRITE)
        keystore.set_key(Direction.WRITE, bytes(32))

        ciphertext = cipher.encrypt(encode_payload(b"old"), Direction.WRITE, 3, key_state=old_state)

        with pytest.raises(WrongCounterError):
            cipher.decrypt(ciphertext, Direction.WRITE, 3)
        assert cipher.decrypt_frame(ciphertext, Direction.WRITE, 3, key_state=old_state).plaintext == b"old"


class TestWrongCounter:
    """Test recovery from counter mismatches."""

    def test_wrong_counter_rolls_back(self, cipher, keystore) -> None:
        """Decrypting under counter + 1 fails and steps the counter back."""
        for _ in range(5):
            keystore.next_counter(Direction.READ)
        before = keystore.counter(Direction.READ)

        ciphertext = cipher.encrypt(encode_payload(b"payload"), Direction.READ, 7)
        with pytest.raises(WrongCounterError) as excinfo:
            cipher.decrypt(ciphertext, Direction.READ, 8)

        assert excinfo.value.retryable
        assert excinfo.value.counter == 8
        assert excinfo.value.direction is Direction.READ
        assert keystore.counter(Direction.READ) == before - 1

    def test_drawn_counter_is_returned(self, cipher, keystore) -> None:
        """A failed frame gives back the counter it drew."""
        ciphertext = cipher.encrypt(encode_payload(b"payload"), Direction.READ, 40)
        with pytest.raises(WrongCounterError):
            cipher.decrypt(ciphertext, Direction.READ)
        assert keystore.counter(Direction.READ) == 0

    def test_tampered_ciphertext(self, cipher) -> None:
        ciphertext = bytearray(cipher.encrypt(encode_payload(b"payload"), Direction.READ, 0))
        ciphertext[0] ^= 0xFF
        with pytest.raises(WrongCounterError):
            cipher.decrypt(bytes(ciphertext), Direction.READ, 0)

    def test_stale_key_does_not_touch_new_counter(self, cipher, keystore) -> None:
        """A failure under a replaced key leaves the new key's counter alone."""
        old_state = keystore.current_key(Direction.READ)
        ciphertext = cipher.encrypt(encode_payload(b"old"), Direction.READ, 0)

        keystore.set_key(Direction.READ, bytes(32))
        keystore.next_counter(Direction.READ)

        with pytest.raises(WrongCounterError):
            cipher.decrypt_frame(ciphertext, Direction.READ, 1, key_state=old_state)
        assert keystore.counter(Direction.READ) == 1

        frame = cipher.decrypt_frame(ciphertext, Direction.READ, 0, key_state=old_state)
        assert frame.plaintext == b"old"


class TestEncryptFailures:
    """Encryption failures are logged and reported as None."""

    def test_missing_key(self) -> None:
        cipher = FrameCipher(KeyStore())
        with capture_logs() as logs:
            assert cipher.encrypt(b"\x00data", Direction.WRITE, 0) is None
        assert logs[0]["event"] == "noise_encrypt_without_key"

    def test_aead_failure(self, cipher) -> None:
        """Invalid input to the AEAD does not propagate."""
        with capture_logs() as logs:
            assert cipher.encrypt("not bytes", Direction.WRITE, 0) is None
        assert logs[0]["event"] == "noise_encrypt_failed"
        assert logs[0]["log_level"] == "error"


class TestCipherProperties:
    """Property tests for the cipher."""

    @given(
        payload=st.binary(max_size=1024),
        counter=st.integers(min_value=0, max_value=0xFFFFFFFF),
        compress=st.booleans(),
    )
    @settings(max_examples=100)
    def test_round_trip(self, payload: bytes, counter: int, compress: bool) -> None:
        cipher = _cipher()
        ciphertext = cipher.encrypt(encode_payload(payload, compress), Direction.WRITE, counter)
        assert cipher.decrypt(ciphertext, Direction.WRITE, counter) == payload

    @given(
        payload=st.binary(max_size=256),
        counter=st.integers(min_value=0, max_value=0xFFFFFFFE),
    )
    @settings(max_examples=50)
    def test_next_counter_fails(self, payload: bytes, counter: int) -> None:
        cipher = _cipher()
        ciphertext = cipher.encrypt(encode_payload(payload), Direction.READ, counter)
        with pytest.raises(WrongCounterError):
            cipher.decrypt(ciphertext, Direction.READ, counter + 1)
