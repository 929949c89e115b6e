"""
Wire model of the Noise handshake messages.

The messages use protobuf encoding:

    HandshakeMessage { 2: ClientHello  3: ServerHello  4: ClientFinish }
    ClientHello      { 1: ephemeral    2: static       3: payload }
    ServerHello      { 1: ephemeral    2: static       3: payload }
    ClientFinish     { 1: static       2: payload }

Only length-delimited fields carry data. Unknown fields are skipped the way
any protobuf reader skips them.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from .types import HandshakeParseError

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_BYTES = 2
WIRE_FIXED32 = 5

# "WA" magic, protocol version 6, dictionary version 3
NOISE_HEADER = b"WA\x06\x03"
ROUTING_MAGIC = b"ED"


@dataclass
class ClientHello:
    ephemeral: Optional[bytes] = None
    static: Optional[bytes] = None
    payload: Optional[bytes] = None


@dataclass
class ServerHello:
    ephemeral: Optional[bytes] = None
    static: Optional[bytes] = None
    payload: Optional[bytes] = None


@dataclass
class ClientFinish:
    static: Optional[bytes] = None
    payload: Optional[bytes] = None


@dataclass
class HandshakeMessage:
    client_hello: Optional[ClientHello] = None
    server_hello: Optional[ServerHello] = None
    client_finish: Optional[ClientFinish] = None

    def is_handshake(self) -> bool:
        """True if any of the three handshake steps is present."""
        return (
            self.client_hello is not None
            or self.server_hello is not None
            or self.client_finish is not None
        )


def _read_varint(data: bytes, offset: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise HandshakeParseError("Truncated varint")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7
        if shift >= 64:
            raise HandshakeParseError("Varint too long")


def _iter_fields(data: bytes) -> Iterator[Tuple[int, int, object]]:
    """Yield (field number, wire type, value) for every field in a message."""
    offset = 0
    while offset < len(data):
        key, offset = _read_varint(data, offset)
        field_number = key >> 3
        wire_type = key & 0x07
        if field_number == 0:
            raise HandshakeParseError("Invalid field number 0")

        if wire_type == WIRE_VARINT:
            value, offset = _read_varint(data, offset)
        elif wire_type == WIRE_BYTES:
            length, offset = _read_varint(data, offset)
            if offset + length > len(data):
                raise HandshakeParseError(
                    f"Field {field_number} overruns message: {length} bytes at offset {offset}"
                )
            value = data[offset : offset + length]
            offset += length
        elif wire_type == WIRE_FIXED64:
            if offset + 8 > len(data):
                raise HandshakeParseError("Truncated fixed64")
            value = data[offset : offset + 8]
            offset += 8
        elif wire_type == WIRE_FIXED32:
            if offset + 4 > len(data):
                raise HandshakeParseError("Truncated fixed32")
            value = data[offset : offset + 4]
            offset += 4
        else:
            raise HandshakeParseError(f"Unsupported wire type: {wire_type}")

        yield field_number, wire_type, value


def _bytes_fields(data: bytes, names: dict) -> dict:
    values = {}
    for number, wire_type, value in _iter_fields(data):
        if number in names:
            if wire_type != WIRE_BYTES:
                raise HandshakeParseError(f"Field {names[number]} must be length-delimited")
            values[names[number]] = bytes(value)
    return values


def decode_handshake_message(data: bytes) -> HandshakeMessage:
    """
    Decode a handshake message.

    Raises:
        HandshakeParseError: If the bytes are not a well-formed message
    """
    message = HandshakeMessage()
    for number, wire_type, value in _iter_fields(bytes(data)):
        if number not in (2, 3, 4):
            continue
        if wire_type != WIRE_BYTES:
            raise HandshakeParseError(f"Handshake field {number} must be a message")

        if number == 2:
            message.client_hello = ClientHello(
                **_bytes_fields(value, {1: "ephemeral", 2: "static", 3: "payload"})
            )
        elif number == 3:
            message.server_hello = ServerHello(
                **_bytes_fields(value, {1: "ephemeral", 2: "static", 3: "payload"})
            )
        else:
            message.client_finish = ClientFinish(
                **_bytes_fields(value, {1: "static", 2: "payload"})
            )
    return message


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _encode_bytes_field(number: int, value: Optional[bytes]) -> bytes:
    if value is None:
        return b""
    return _encode_varint((number << 3) | WIRE_BYTES) + _encode_varint(len(value)) + value


def encode_handshake_message(message: HandshakeMessage) -> bytes:
    """Encode a handshake message to protobuf bytes."""
    out = b""
    if message.client_hello is not None:
        hello = message.client_hello
        body = (
            _encode_bytes_field(1, hello.ephemeral)
            + _encode_bytes_field(2, hello.static)
            + _encode_bytes_field(3, hello.payload)
        )
        out += _encode_bytes_field(2, body)
    if message.server_hello is not None:
        hello = message.server_hello
        body = (
            _encode_bytes_field(1, hello.ephemeral)
            + _encode_bytes_field(2, hello.static)
            + _encode_bytes_field(3, hello.payload)
        )
        out += _encode_bytes_field(3, body)
    if message.client_finish is not None:
        finish = message.client_finish
        body = _encode_bytes_field(1, finish.static) + _encode_bytes_field(2, finish.payload)
        out += _encode_bytes_field(4, body)
    return out


def build_preamble(routing_token: Optional[bytes] = None) -> bytes:
    """
    Build the connection preamble sent ahead of the client hello.

    Format:
        [0-1]    "ED"                     (only with a routing token)
        [2-4]    token length (24-bit)    (only with a routing token)
        [5..]    routing token            (only with a routing token)
        then     "WA" 0x06 0x03

    A 6-byte routing token puts the noise header at offset 11.
    """
    if routing_token is None:
        return NOISE_HEADER
    return ROUTING_MAGIC + len(routing_token).to_bytes(3, "big") + routing_token + NOISE_HEADER
