"""Configuration for noise sessions."""

import os
from dataclasses import dataclass
from typing import Optional

from .types import HANDSHAKE_WINDOW, MIN_PACKET_SIZE


@dataclass
class SessionConfig:
    """Configuration for a noise session."""

    handshake_window: int = HANDSHAKE_WINDOW
    """Packets after a preamble that are still parsed as handshake candidates."""

    min_packet_size: int = MIN_PACKET_SIZE
    """Packets shorter than this are treated as handshake packets."""

    log_handshake_messages: bool = False
    """Log every recognized handshake message at debug level."""

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "SessionConfig":
        """Build a config from NOISEFRAME_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            handshake_window=int(env.get("NOISEFRAME_HANDSHAKE_WINDOW", HANDSHAKE_WINDOW)),
            min_packet_size=int(env.get("NOISEFRAME_MIN_PACKET_SIZE", MIN_PACKET_SIZE)),
            log_handshake_messages=env.get("NOISEFRAME_DEBUG", "").lower() in ("1", "true", "yes"),
        )
