#!/usr/bin/env python3
"""
wizgate OpenPGP signature reading

Release tooling has shipped detached signatures in three shapes over time:
a binary packet stream, an ASCII-armored stream, and a bare signature packet
followed by stray bytes (typically a newline added by the web server).
parse_signature() tries one reader per shape, in that order, and returns the
first signature any of them produces.

Supported: v3 and v4 signature packets over RSA, DSA, ECDSA and EdDSA keys.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Callable, List, Optional, Tuple

from wizgate.errors import VerificationError
from wizgate.security.pgp.armor import dearmor
from wizgate.security.pgp.packets import (
    Packet,
    PacketError,
    PacketTag,
    iter_packets,
    read_bytes,
    read_mpi,
    read_packet,
    read_uint,
)

logger = logging.getLogger(__name__)


class PublicKeyAlgorithm(IntEnum):
    RSA = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    EDDSA = 22


class HashAlgorithm(IntEnum):
    MD5 = 1
    SHA1 = 2
    RIPEMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11


class SubpacketType(IntEnum):
    CREATION_TIME = 2
    ISSUER = 16
    KEY_FLAGS = 27
    ISSUER_FINGERPRINT = 33


class KeyFlags(IntFlag):
    CERTIFY = 0x01
    SIGN = 0x02
    ENCRYPT_COMMUNICATIONS = 0x04
    ENCRYPT_STORAGE = 0x08
    AUTHENTICATE = 0x20


class SignatureType(IntEnum):
    BINARY = 0x00
    TEXT = 0x01


# Number of MPIs that make up the signature value, per algorithm
_SIGNATURE_MPI_COUNT = {
    PublicKeyAlgorithm.RSA: 1,
    PublicKeyAlgorithm.RSA_SIGN_ONLY: 1,
    PublicKeyAlgorithm.DSA: 2,
    PublicKeyAlgorithm.ECDSA: 2,
    PublicKeyAlgorithm.EDDSA: 2,
}


@dataclass(frozen=True)
class Subpacket:
    type: int
    critical: bool
    body: bytes


@dataclass(frozen=True)
class Signature:
    """A parsed signature packet.

    ``hashed_data`` is the part of the packet that is hashed after the
    signed content (before the v4 trailer); ``digest_prefix`` is the
    left 16 bits of the expected digest.
    """
    version: int
    signature_type: int
    public_key_algorithm: int
    hash_algorithm: int
    hashed_data: bytes
    hashed_subpackets: Tuple[Subpacket, ...]
    unhashed_subpackets: Tuple[Subpacket, ...]
    digest_prefix: bytes
    values: Tuple[int, ...]
    v3_issuer: Optional[bytes] = None
    v3_creation_time: Optional[int] = None

    @property
    def key_flags(self) -> KeyFlags:
        """Key usage flags from the hashed area. Unhashed flags are not trusted."""
        for sub in self.hashed_subpackets:
            if sub.type == SubpacketType.KEY_FLAGS and sub.body:
                return KeyFlags(sub.body[0])
        return KeyFlags(0)

    @property
    def issuer_key_id(self) -> Optional[str]:
        if self.v3_issuer is not None:
            return self.v3_issuer.hex().upper()
        for sub in self.hashed_subpackets + self.unhashed_subpackets:
            if sub.type == SubpacketType.ISSUER and len(sub.body) == 8:
                return sub.body.hex().upper()
            if sub.type == SubpacketType.ISSUER_FINGERPRINT and len(sub.body) > 8:
                return sub.body[-8:].hex().upper()
        return None

    @property
    def creation_time(self) -> Optional[int]:
        if self.v3_creation_time is not None:
            return self.v3_creation_time
        for sub in self.hashed_subpackets:
            if sub.type == SubpacketType.CREATION_TIME and len(sub.body) == 4:
                return int.from_bytes(sub.body, "big")
        return None

    def hash_trailer(self) -> bytes:
        """Bytes fed to the digest after the signed content."""
        if self.version == 3:
            return self.hashed_data
        return (
            self.hashed_data
            + bytes([self.version, 0xFF])
            + len(self.hashed_data).to_bytes(4, "big")
        )


def parse_subpackets(area: bytes) -> Tuple[Subpacket, ...]:
    """Parse a hashed or unhashed subpacket area."""
    subpackets: List[Subpacket] = []
    pos = 0
    while pos < len(area):
        first = read_uint(area, pos, 1)
        pos += 1
        if first < 192:
            length = first
        elif first < 255:
            length = ((first - 192) << 8) + read_uint(area, pos, 1) + 192
            pos += 1
        else:
            length = read_uint(area, pos, 4)
            pos += 4

        if length == 0:
            raise PacketError("empty signature subpacket")
        raw = read_bytes(area, pos, length)
        pos += length
        subpackets.append(Subpacket(type=raw[0] & 0x7F, critical=bool(raw[0] & 0x80), body=raw[1:]))
    return tuple(subpackets)


def _read_values(body: bytes, pos: int, algorithm: int) -> Tuple[int, ...]:
    count = _SIGNATURE_MPI_COUNT.get(algorithm)
    if count is None:
        raise PacketError(f"unsupported signature public-key algorithm {algorithm}")
    values = []
    for _ in range(count):
        value, pos = read_mpi(body, pos)
        values.append(value)
    if pos != len(body):
        raise PacketError(f"{len(body) - pos} unexpected bytes after signature value")
    return tuple(values)


def parse_signature_packet(body: bytes) -> Signature:
    """Decode the body of a signature packet (tag 2)."""
    version = read_uint(body, 0, 1)

    if version == 4:
        hashed_length = read_uint(body, 4, 2)
        hashed_end = 6 + hashed_length
        hashed_area = read_bytes(body, 6, hashed_length)
        unhashed_length = read_uint(body, hashed_end, 2)
        unhashed_area = read_bytes(body, hashed_end + 2, unhashed_length)
        pos = hashed_end + 2 + unhashed_length
        algorithm = body[2]
        return Signature(
            version=4,
            signature_type=body[1],
            public_key_algorithm=algorithm,
            hash_algorithm=body[3],
            hashed_data=bytes(body[:hashed_end]),
            hashed_subpackets=parse_subpackets(hashed_area),
            unhashed_subpackets=parse_subpackets(unhashed_area),
            digest_prefix=read_bytes(body, pos, 2),
            values=_read_values(body, pos + 2, algorithm),
        )

    if version in (2, 3):
        if read_uint(body, 1, 1) != 5:
            raise PacketError("v3 signature hashed material must be 5 bytes")
        algorithm = read_uint(body, 15, 1)
        return Signature(
            version=3,
            signature_type=body[2],
            public_key_algorithm=algorithm,
            hash_algorithm=read_uint(body, 16, 1),
            hashed_data=read_bytes(body, 2, 5),
            hashed_subpackets=(),
            unhashed_subpackets=(),
            digest_prefix=read_bytes(body, 17, 2),
            values=_read_values(body, 19, algorithm),
            v3_issuer=read_bytes(body, 7, 8),
            v3_creation_time=read_uint(body, 3, 4),
        )

    raise PacketError(f"unsupported signature version {version}")


# ============================================================================
# SIGNATURE READERS
# ============================================================================


def _first_signature(packets: List[Packet]) -> Optional[Signature]:
    """Take the first element of a leading signature list, if there is one."""
    packets = [p for p in packets if p.tag != PacketTag.MARKER]
    signatures = []
    for packet in packets:
        if packet.tag != PacketTag.SIGNATURE:
            break
        signatures.append(parse_signature_packet(packet.body))
    return signatures[0] if signatures else None


def read_binary_signature(data: bytes) -> Optional[Signature]:
    """Read *data* as a binary packet stream."""
    try:
        signature = _first_signature(list(iter_packets(data)))
    except PacketError as e:
        logger.debug("Failed to read binary signature: %s", e)
        return None
    if signature is not None:
        logger.debug("Read binary signature")
    return signature


def read_armored_signature(data: bytes) -> Optional[Signature]:
    """Dearmor *data*, then read it as a packet stream."""
    try:
        signature = _first_signature(list(iter_packets(dearmor(data))))
    except PacketError as e:
        logger.debug("Failed to read ASCII armored signature: %s", e)
        return None
    if signature is not None:
        logger.debug("Read ASCII armored signature")
    return signature


def read_raw_signature(data: bytes) -> Optional[Signature]:
    """Read exactly one packet from the start of *data* and ignore the rest."""
    try:
        packet, end = read_packet(data, 0)
        if packet.tag != PacketTag.SIGNATURE:
            logger.debug("Raw packet has tag %d, not a signature", packet.tag)
            return None
        signature = parse_signature_packet(packet.body)
    except PacketError as e:
        logger.debug("Failed to read raw signature: %s", e)
        return None
    if end < len(data):
        logger.debug("Ignoring %d bytes after raw signature packet", len(data) - end)
    logger.debug("Read raw signature")
    return signature


SignatureReader = Callable[[bytes], Optional[Signature]]

SIGNATURE_READERS: Tuple[SignatureReader, ...] = (
    read_binary_signature,
    read_armored_signature,
    read_raw_signature,
)


def parse_signature(data: bytes) -> Signature:
    """Parse a detached signature in any supported encoding.

    Raises:
        VerificationError: If no reader can make sense of *data*.
    """
    logger.debug("Reading signature data of size: %d bytes", len(data))
    for reader in SIGNATURE_READERS:
        signature = reader(data)
        if signature is not None:
            return signature
    raise VerificationError("unsupported signature format")
