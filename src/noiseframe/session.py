"""
Noise transport session.

The NoiseSession owns the key store, the handshake detector and one task
queue per direction, and exposes the packet-level decrypt and encrypt paths.

Example usage:
    ```python
    session = NoiseSession()
    session.set_key(Direction.READ, read_key)

    frames = await session.decrypt_packet(packet, incoming=True)
    if frames is not None:
        for frame in frames:
            handle(frame.plaintext, frame.counter)
    ```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import structlog
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .cipher import DecryptedFrame, FrameCipher
from .config import SessionConfig
from .framing import pack_frames, split_frames
from .handshake import HandshakeDetector
from .keystore import Direction, KeyState, KeyStore
from .task_queue import TaskQueue

logger = structlog.get_logger(__name__)


class StanzaEncoder(ABC):
    """Interface for turning structured nodes into plaintext frame bytes."""

    @abstractmethod
    async def encode(self, node: Any) -> bytes:
        """Encode a node, flags byte included."""
        ...


@dataclass
class NodeInfo:
    """A node to send together with the counter it must be encrypted under."""
    node: Any
    counter: int
    decrypted_frame: Optional[DecryptedFrame] = None


class NoiseSession:
    """Decrypts and encrypts noise transport packets for one connection."""

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        keystore: Optional[KeyStore] = None,
    ) -> None:
        self._config = config or SessionConfig()
        self.keystore = keystore or KeyStore()
        self.cipher = FrameCipher(self.keystore)
        self.detector = HandshakeDetector(self._config)
        self.incoming_queue = TaskQueue("incoming")
        self.outgoing_queue = TaskQueue("outgoing")

    @property
    def config(self) -> SessionConfig:
        return self._config

    def set_key(
        self,
        direction: Direction,
        raw_key: bytes,
        imported: Optional[AESGCM] = None,
    ) -> KeyState:
        """Install new key material for a direction."""
        return self.keystore.set_key(direction, raw_key, imported)

    def queue_for(self, direction: Direction) -> TaskQueue:
        return self.incoming_queue if direction is Direction.READ else self.outgoing_queue

    async def enqueue(self, operation: Callable[[Any], Any], arg: Any = None, incoming: bool = False) -> Any:
        """Run an operation on the incoming or outgoing lane."""
        queue = self.queue_for(Direction.from_incoming(incoming))
        return await queue.run(operation, arg)

    async def decrypt_packet(self, payload: bytes, incoming: bool = True) -> Optional[list[DecryptedFrame]]:
        """
        Decrypt all frames of a packet.

        Args:
            payload: Raw packet as seen on the wire
            incoming: True for received packets (read key), False for sent ones

        Returns:
            Decrypted frames in order, or None for handshake packets and
            packets whose direction has no key yet

        Raises:
            WrongCounterError: If a frame fails authentication; the counter
                has been rolled back and the caller may retry
        """
        direction = Direction.from_incoming(incoming)
        if self.detector.looks_like_handshake(payload):
            return None
        if not self.keystore.has_key(direction):
            return None

        return await self.queue_for(direction).run(self._decrypt_job, (bytes(payload), direction))

    async def _decrypt_job(self, args: tuple) -> Optional[list[DecryptedFrame]]:
        payload, direction = args
        state = self.keystore.current_key(direction)
        if state is None:
            return None

        frames = split_frames(payload)
        for frame in frames:
            frame.counter = self.keystore.next_counter(direction)

        decrypted = []
        for frame in frames:
            decrypted.append(
                self.cipher.decrypt_frame(
                    frame.ciphertext,
                    direction,
                    counter=frame.counter,
                    key_state=state,
                )
            )

        logger.debug(
            "noise_packet_decrypted",
            direction=direction.value,
            frames=len(decrypted),
            counters=[f.counter for f in decrypted],
        )
        return decrypted

    def encrypt_packet(self, payload: bytes, counter: int, incoming: bool = False) -> Optional[bytes]:
        """Encrypt a single frame body; None if encryption failed."""
        return self.cipher.encrypt(payload, Direction.from_incoming(incoming), counter)

    async def encrypt_and_pack(
        self,
        nodes: Sequence[NodeInfo],
        encoder: StanzaEncoder,
        incoming: bool = False,
    ) -> Optional[bytes]:
        """
        Encode, encrypt and frame a sequence of nodes.

        Args:
            nodes: Nodes with the counters to encrypt them under
            encoder: Collaborator producing plaintext bytes for a node
            incoming: Use the read key and incoming lane instead of the write key

        Returns:
            The packed packet, or None if any frame failed to encrypt
        """
        direction = Direction.from_incoming(incoming)
        return await self.queue_for(direction).run(
            self._encrypt_job, (list(nodes), encoder, direction)
        )

    async def _encrypt_job(self, args: tuple) -> Optional[bytes]:
        nodes, encoder, direction = args
        # The encoder may suspend; a key injected meanwhile applies to the next packet
        state = self.keystore.current_key(direction)

        frames = []
        for info in nodes:
            buffer = await encoder.encode(info.node)
            data = self.cipher.encrypt(buffer, direction, info.counter, key_state=state)
            if data is None:
                logger.error("noise_pack_aborted", direction=direction.value, counter=info.counter)
                return None
            frames.append(data)

        return pack_frames(frames)
