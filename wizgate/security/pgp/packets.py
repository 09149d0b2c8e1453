#!/usr/bin/env python3
"""
wizgate OpenPGP packet framing

Reads the packet layer of RFC 4880 (section 4): old-format and new-format
headers, including indeterminate and partial body lengths, and the
multiprecision integers used inside key and signature packets.

Only framing lives here. What a packet body means is decided by
signature.py and keys.py.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Tuple


class PacketError(ValueError):
    """Malformed or truncated OpenPGP data."""


class PacketTag(IntEnum):
    """Packet tags wizgate needs to recognise."""
    SIGNATURE = 2
    ONE_PASS_SIGNATURE = 4
    SECRET_KEY = 5
    PUBLIC_KEY = 6
    SECRET_SUBKEY = 7
    COMPRESSED_DATA = 8
    MARKER = 10
    LITERAL_DATA = 11
    TRUST = 12
    USER_ID = 13
    PUBLIC_SUBKEY = 14
    USER_ATTRIBUTE = 17


@dataclass(frozen=True)
class Packet:
    """A single decoded packet: its tag and its complete body."""
    tag: int
    body: bytes


def read_uint(data: bytes, pos: int, size: int) -> int:
    """Read a big-endian unsigned integer of *size* bytes at *pos*."""
    if pos < 0 or pos + size > len(data):
        raise PacketError(f"truncated data: need {size} bytes at offset {pos}")
    return int.from_bytes(data[pos:pos + size], "big")


def read_bytes(data: bytes, pos: int, length: int) -> bytes:
    """Read exactly *length* bytes at *pos*."""
    if pos < 0 or length < 0 or pos + length > len(data):
        available = max(len(data) - pos, 0)
        raise PacketError(
            f"truncated data: need {length} bytes at offset {pos}, have {available}"
        )
    return bytes(data[pos:pos + length])


def read_packet(data: bytes, offset: int = 0) -> Tuple[Packet, int]:
    """Read one packet starting at *offset*.

    Args:
        data: Binary OpenPGP data.
        offset: Position of the packet's header byte.

    Returns:
        (packet, offset of the byte following the packet)

    Raises:
        PacketError: If the header byte is invalid or the body is truncated.
    """
    if offset >= len(data):
        raise PacketError("unexpected end of packet data")

    ctb = data[offset]
    if not ctb & 0x80:
        raise PacketError(f"invalid packet header byte 0x{ctb:02x} at offset {offset}")

    pos = offset + 1
    if ctb & 0x40:
        tag = ctb & 0x3F
        body, pos = _read_new_format_body(data, pos)
    else:
        tag = (ctb >> 2) & 0x0F
        body, pos = _read_old_format_body(data, pos, ctb & 0x03)

    return Packet(tag=tag, body=body), pos


def _read_old_format_body(data: bytes, pos: int, length_type: int) -> Tuple[bytes, int]:
    if length_type == 3:
        # Indeterminate length: the packet runs to the end of the data
        return bytes(data[pos:]), len(data)

    size = 1 << length_type
    length = read_uint(data, pos, size)
    pos += size
    return read_bytes(data, pos, length), pos + length


def _read_new_format_body(data: bytes, pos: int) -> Tuple[bytes, int]:
    chunks = []
    while True:
        first = read_uint(data, pos, 1)
        pos += 1

        if first < 192:
            length = first
        elif first < 224:
            length = ((first - 192) << 8) + read_uint(data, pos, 1) + 192
            pos += 1
        elif first == 255:
            length = read_uint(data, pos, 4)
            pos += 4
        else:
            # Partial body length: another length header follows this chunk
            length = 1 << (first & 0x1F)
            chunks.append(read_bytes(data, pos, length))
            pos += length
            continue

        chunks.append(read_bytes(data, pos, length))
        return b"".join(chunks), pos + length


def iter_packets(data: bytes) -> Iterator[Packet]:
    """Yield every packet in *data*. The whole buffer must be well formed."""
    offset = 0
    while offset < len(data):
        packet, offset = read_packet(data, offset)
        yield packet


def read_mpi(data: bytes, pos: int) -> Tuple[int, int]:
    """Read a multiprecision integer. Returns (value, next offset)."""
    raw, pos = read_mpi_bytes(data, pos)
    return int.from_bytes(raw, "big"), pos


def read_mpi_bytes(data: bytes, pos: int) -> Tuple[bytes, int]:
    """Read a multiprecision integer as its raw big-endian octets."""
    bits = read_uint(data, pos, 2)
    size = (bits + 7) // 8
    return read_bytes(data, pos + 2, size), pos + 2 + size
