"""
noiseframe - Noise transport framing and frame encryption

Python implementation of a Noise-style secure transport codec: length-prefixed
framing, AES-256-GCM with counter nonces, and handshake packet detection.
"""

from .types import (
    KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    MAX_FRAME_SIZE,
    FLAG_COMPRESSED,
    NoiseFrameError,
    InvalidKeyError,
    WrongCounterError,
    CompressionError,
    HandshakeParseError,
    FrameTooLargeError,
)
from .keystore import Direction, KeyState, KeyStore, import_key
from .framing import Frame, split_frames, pack_frames, frame_size
from .cipher import (
    DecryptedFrame,
    FrameCipher,
    counter_to_nonce,
    encode_payload,
    open_payload,
)
from .handshake_proto import (
    ClientHello,
    ServerHello,
    ClientFinish,
    HandshakeMessage,
    decode_handshake_message,
    encode_handshake_message,
    build_preamble,
)
from .handshake import DetectorState, HandshakeDetector, preamble_start
from .task_queue import QueuedJob, TaskQueue
from .config import SessionConfig
from .session import NodeInfo, NoiseSession, StanzaEncoder
from .logging_config import configure_logging

__version__ = "0.1.0"

__all__ = [
    # Constants
    "KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "MAX_FRAME_SIZE",
    "FLAG_COMPRESSED",
    # Errors
    "NoiseFrameError",
    "InvalidKeyError",
    "WrongCounterError",
    "CompressionError",
    "HandshakeParseError",
    "FrameTooLargeError",
    # Keys
    "Direction",
    "KeyState",
    "KeyStore",
    "import_key",
    # Framing
    "Frame",
    "split_frames",
    "pack_frames",
    "frame_size",
    # Cipher
    "DecryptedFrame",
    "FrameCipher",
    "counter_to_nonce",
    "encode_payload",
    "open_payload",
    # Handshake
    "ClientHello",
    "ServerHello",
    "ClientFinish",
    "HandshakeMessage",
    "decode_handshake_message",
    "encode_handshake_message",
    "build_preamble",
    "DetectorState",
    "HandshakeDetector",
    "preamble_start",
    # Queue
    "QueuedJob",
    "TaskQueue",
    # Session
    "SessionConfig",
    "NodeInfo",
    "NoiseSession",
    "StanzaEncoder",
    "configure_logging",
]
