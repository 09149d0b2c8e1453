#!/usr/bin/env python3
"""
wizgate public key rings

Parses transferable public keys (RFC 4880 section 11.1) into key rings and
picks the key that release signatures are made with: the first subkey,
in ring order then key order, whose binding signature carries the
"can sign" key flag in its hashed area. Master keys are never selected.
"""

import functools
import hashlib
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from wizgate.errors import VerificationError
from wizgate.security.pgp.armor import dearmor, is_armored
from wizgate.security.pgp.packets import (
    PacketError,
    PacketTag,
    iter_packets,
    read_bytes,
    read_mpi,
    read_mpi_bytes,
    read_uint,
)
from wizgate.security.pgp.signature import (
    KeyFlags,
    PublicKeyAlgorithm,
    Signature,
    parse_signature_packet,
)

logger = logging.getLogger(__name__)

_SKIPPED_TAGS = frozenset({
    PacketTag.USER_ID,
    PacketTag.USER_ATTRIBUTE,
    PacketTag.TRUST,
    PacketTag.MARKER,
})


@dataclass(frozen=True)
class PublicKey:
    """A v4 public key or subkey with the signatures attached to it.

    ``params`` holds the algorithm-specific public material: integers for
    RSA/DSA/ElGamal, ``(curve_oid, point)`` byte strings for ECDSA/EdDSA,
    and the raw remainder for anything else.
    """
    version: int
    created: int
    algorithm: int
    params: Tuple
    fingerprint: str
    is_master: bool
    signatures: Tuple[Signature, ...] = ()

    @property
    def key_id(self) -> str:
        return self.fingerprint[-16:]

    @property
    def can_sign(self) -> bool:
        return any(KeyFlags.SIGN in sig.key_flags for sig in self.signatures)

    @property
    def is_signing_key(self) -> bool:
        return not self.is_master and self.can_sign


@dataclass(frozen=True)
class KeyRing:
    master: PublicKey
    subkeys: Tuple[PublicKey, ...] = ()

    @property
    def keys(self) -> Tuple[PublicKey, ...]:
        return (self.master,) + self.subkeys


def _parse_params(body: bytes, pos: int, algorithm: int) -> Tuple:
    if algorithm in (
        PublicKeyAlgorithm.RSA,
        PublicKeyAlgorithm.RSA_ENCRYPT_ONLY,
        PublicKeyAlgorithm.RSA_SIGN_ONLY,
    ):
        count = 2  # n, e
    elif algorithm == PublicKeyAlgorithm.DSA:
        count = 4  # p, q, g, y
    elif algorithm == PublicKeyAlgorithm.ELGAMAL:
        count = 3  # p, g, y
    elif algorithm in (
        PublicKeyAlgorithm.ECDSA,
        PublicKeyAlgorithm.EDDSA,
        PublicKeyAlgorithm.ECDH,
    ):
        oid_length = read_uint(body, pos, 1)
        oid = read_bytes(body, pos + 1, oid_length)
        point, _ = read_mpi_bytes(body, pos + 1 + oid_length)
        return (oid, point)
    else:
        return (bytes(body[pos:]),)

    values = []
    for _ in range(count):
        value, pos = read_mpi(body, pos)
        values.append(value)
    return tuple(values)


def parse_public_key_packet(
    body: bytes,
    is_master: bool,
    signatures: Tuple[Signature, ...] = (),
) -> PublicKey:
    """Decode the body of a public key or public subkey packet."""
    version = read_uint(body, 0, 1)
    if version != 4:
        raise PacketError(f"unsupported public key version {version}")

    algorithm = read_uint(body, 5, 1)
    fingerprint = hashlib.sha1(
        b"\x99" + len(body).to_bytes(2, "big") + body
    ).hexdigest().upper()

    return PublicKey(
        version=version,
        created=read_uint(body, 1, 4),
        algorithm=algorithm,
        params=_parse_params(body, 6, algorithm),
        fingerprint=fingerprint,
        is_master=is_master,
        signatures=signatures,
    )


@dataclass
class _PendingKey:
    body: bytes
    is_master: bool
    signatures: List[Signature] = field(default_factory=list)

    def build(self) -> PublicKey:
        return parse_public_key_packet(self.body, self.is_master, tuple(self.signatures))


def _finish_ring(pending: List[_PendingKey]) -> KeyRing:
    master, *subkeys = [key.build() for key in pending]
    return KeyRing(master=master, subkeys=tuple(subkeys))


def read_key_rings(data: bytes) -> Tuple[KeyRing, ...]:
    """Split a binary packet stream into key rings.

    A public key packet starts a new ring. Signature packets belong to the
    most recent key or subkey; user IDs, user attributes and trust packets
    are skipped.
    """
    rings: List[KeyRing] = []
    pending: List[_PendingKey] = []

    for packet in iter_packets(data):
        if packet.tag == PacketTag.PUBLIC_KEY:
            if pending:
                rings.append(_finish_ring(pending))
            pending = [_PendingKey(packet.body, is_master=True)]
        elif packet.tag in _SKIPPED_TAGS:
            continue
        elif packet.tag in (PacketTag.SECRET_KEY, PacketTag.SECRET_SUBKEY):
            raise PacketError("secret key material is not accepted as a public key")
        elif not pending:
            raise PacketError(f"key data must start with a public key packet, found tag {packet.tag}")
        elif packet.tag == PacketTag.PUBLIC_SUBKEY:
            pending.append(_PendingKey(packet.body, is_master=False))
        elif packet.tag == PacketTag.SIGNATURE:
            pending[-1].signatures.append(parse_signature_packet(packet.body))
        else:
            raise PacketError(f"unexpected packet tag {packet.tag} in key data")

    if pending:
        rings.append(_finish_ring(pending))
    return tuple(rings)


@functools.lru_cache(maxsize=16)
def read_public_key_set(key_data: bytes) -> Tuple[KeyRing, ...]:
    """Parse an armored (or binary) public key bundle into key rings.

    Results are cached per input; the returned objects are immutable.
    """
    binary = dearmor(key_data) if is_armored(key_data) else key_data
    rings = read_key_rings(binary)
    if not rings:
        raise PacketError("no public keys found")
    return rings


def find_signing_key(rings: Tuple[KeyRing, ...]) -> Optional[PublicKey]:
    for ring in rings:
        logger.debug("Processing key ring with master key: %s", ring.master.key_id)
        for key in ring.keys:
            logger.debug("Examining key: %s", key.key_id)
            if key.is_signing_key:
                logger.debug("Found suitable signing key: %s", key.key_id)
                return key
    return None


def select_signing_key(key_data: bytes) -> PublicKey:
    """Select the signing key from an armored public key bundle.

    Raises:
        VerificationError: If the bundle cannot be parsed or holds no
            non-master key flagged for signing.
    """
    try:
        rings = read_public_key_set(bytes(key_data))
    except PacketError as e:
        raise VerificationError(f"Failed to read public key: {e}") from e

    key = find_signing_key(rings)
    if key is None:
        raise VerificationError("no suitable signing key found in provided key ring")
    return key
