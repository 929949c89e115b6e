"""Pytest configuration and shared fixtures for noiseframe tests."""

import pytest

from noiseframe import Direction, KeyStore, FrameCipher, NoiseSession, SessionConfig, configure_logging

# Fixed keys, never use outside tests
READ_KEY_HEX = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"
WRITE_KEY_HEX = "f0e0d0c0b0a090807060504030201000ffeeddccbbaa99887766554433221100"

configure_logging(debug=True)


@pytest.fixture
def read_key() -> bytes:
    return bytes.fromhex(READ_KEY_HEX)


@pytest.fixture
def write_key() -> bytes:
    return bytes.fromhex(WRITE_KEY_HEX)


@pytest.fixture
def keystore(read_key, write_key) -> KeyStore:
    """Key store with both directions keyed."""
    store = KeyStore()
    store.set_key(Direction.READ, read_key)
    store.set_key(Direction.WRITE, write_key)
    return store


@pytest.fixture
def cipher(keystore) -> FrameCipher:
    return FrameCipher(keystore)


@pytest.fixture
def data_session(read_key, write_key) -> NoiseSession:
    """Session whose handshake window is already closed."""
    session = NoiseSession(SessionConfig(handshake_window=0))
    session.set_key(Direction.READ, read_key)
    session.set_key(Direction.WRITE, write_key)
    return session
