#!/usr/bin/env python3
"""
wizgate detached signature verification

verify_signature() answers one question: was *signed_data* signed by the
signing key in *public_key_data*? It returns False when the signature was
checked and does not match, and raises VerificationError only when the
inputs cannot be checked at all (empty, unparseable, unsupported
algorithms). Callers must keep those two outcomes apart.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    encode_dss_signature,
)

from wizgate.errors import VerificationError
from wizgate.security.pgp.keys import PublicKey, select_signing_key
from wizgate.security.pgp.signature import (
    HashAlgorithm,
    PublicKeyAlgorithm,
    Signature,
    SignatureType,
    parse_signature,
)

logger = logging.getLogger(__name__)

_HASHES = {
    HashAlgorithm.SHA1: ("sha1", hashes.SHA1),
    HashAlgorithm.SHA224: ("sha224", hashes.SHA224),
    HashAlgorithm.SHA256: ("sha256", hashes.SHA256),
    HashAlgorithm.SHA384: ("sha384", hashes.SHA384),
    HashAlgorithm.SHA512: ("sha512", hashes.SHA512),
}

_CURVES = {
    bytes.fromhex("2a8648ce3d030107"): ec.SECP256R1,
    bytes.fromhex("2b81040022"): ec.SECP384R1,
    bytes.fromhex("2b81040023"): ec.SECP521R1,
}

ED25519_LEGACY_OID = bytes.fromhex("2b06010401da470f01")

_RSA_ALGORITHMS = frozenset({PublicKeyAlgorithm.RSA, PublicKeyAlgorithm.RSA_SIGN_ONLY})


def _validate_input(signed_data: bytes, signature: bytes, public_key: bytes) -> None:
    for name, value in (
        ("signed data", signed_data),
        ("signature", signature),
        ("public key", public_key),
    ):
        if not value:
            raise VerificationError(f"empty input: {name} is null or empty")


def _canonical_text(data: bytes) -> bytes:
    return re.sub(rb"\r?\n", b"\r\n", data)


def load_crypto_key(key: PublicKey):
    """Build a ``cryptography`` public key object from a parsed OpenPGP key."""
    try:
        if key.algorithm in _RSA_ALGORITHMS:
            n, e = key.params
            return rsa.RSAPublicNumbers(e, n).public_key()

        if key.algorithm == PublicKeyAlgorithm.DSA:
            p, q, g, y = key.params
            return dsa.DSAPublicNumbers(y, dsa.DSAParameterNumbers(p, q, g)).public_key()

        if key.algorithm == PublicKeyAlgorithm.ECDSA:
            oid, point = key.params
            curve = _CURVES.get(oid)
            if curve is None:
                raise VerificationError(f"unsupported ECDSA curve OID {oid.hex()}")
            return ec.EllipticCurvePublicKey.from_encoded_point(curve(), point)

        if key.algorithm == PublicKeyAlgorithm.EDDSA:
            oid, point = key.params
            if oid != ED25519_LEGACY_OID:
                raise VerificationError(f"unsupported EdDSA curve OID {oid.hex()}")
            if len(point) != 33 or point[0] != 0x40:
                raise VerificationError("malformed Ed25519 public key point")
            return Ed25519PublicKey.from_public_bytes(point[1:])
    except ValueError as e:
        raise VerificationError(f"invalid public key material for key {key.key_id}: {e}") from e

    raise VerificationError(f"public key algorithm {key.algorithm} cannot verify signatures")


def _fixed_width(value: int, size: int) -> bytes:
    if value.bit_length() > size * 8:
        raise InvalidSignature()
    return value.to_bytes(size, "big")


def _check(crypto_key, signature: Signature, digest: bytes, algorithm: hashes.HashAlgorithm) -> None:
    """Raise InvalidSignature unless the signature values match *digest*."""
    if signature.public_key_algorithm in _RSA_ALGORITHMS:
        (s,) = signature.values
        size = (crypto_key.key_size + 7) // 8
        crypto_key.verify(_fixed_width(s, size), digest, padding.PKCS1v15(), Prehashed(algorithm))
    elif signature.public_key_algorithm == PublicKeyAlgorithm.DSA:
        r, s = signature.values
        crypto_key.verify(encode_dss_signature(r, s), digest, Prehashed(algorithm))
    elif signature.public_key_algorithm == PublicKeyAlgorithm.ECDSA:
        r, s = signature.values
        crypto_key.verify(encode_dss_signature(r, s), digest, ec.ECDSA(Prehashed(algorithm)))
    else:
        # Legacy EdDSA signs the digest itself; r and s are the raw 32-byte halves
        r, s = signature.values
        crypto_key.verify(_fixed_width(r, 32) + _fixed_width(s, 32), digest)


def verify_parsed(signed_data: bytes, signature: Signature, key: PublicKey) -> bool:
    """Verify an already-parsed signature with an already-selected key."""
    key_family = _RSA_ALGORITHMS if key.algorithm in _RSA_ALGORITHMS else {key.algorithm}
    if signature.public_key_algorithm not in key_family:
        raise VerificationError(
            f"signature algorithm {signature.public_key_algorithm} does not match "
            f"signing key {key.key_id} algorithm {key.algorithm}"
        )

    if signature.signature_type not in (SignatureType.BINARY, SignatureType.TEXT):
        raise VerificationError(
            f"signature type 0x{signature.signature_type:02x} is not a document signature"
        )

    hash_entry = _HASHES.get(signature.hash_algorithm)
    if hash_entry is None:
        raise VerificationError(f"unsupported hash algorithm {signature.hash_algorithm}")
    hash_name, hash_cls = hash_entry

    if signature.signature_type == SignatureType.TEXT:
        signed_data = _canonical_text(signed_data)

    hasher = hashlib.new(hash_name)
    hasher.update(signed_data)
    hasher.update(signature.hash_trailer())
    digest = hasher.digest()

    if digest[:2] != signature.digest_prefix:
        logger.debug("Digest prefix mismatch for key %s", key.key_id)
        return False

    crypto_key = load_crypto_key(key)
    try:
        _check(crypto_key, signature, digest, hash_cls())
    except InvalidSignature:
        return False
    return True


def verify_signature(signed_data: bytes, signature_data: bytes, public_key_data: bytes) -> bool:
    """Verify a detached OpenPGP signature.

    Args:
        signed_data: The exact bytes that were signed.
        signature_data: Binary, armored, or raw-framed signature.
        public_key_data: Armored public key bundle.

    Returns:
        True if the signature is valid, False if it was checked and rejected.

    Raises:
        VerificationError: If any input is empty or cannot be parsed.
    """
    _validate_input(signed_data, signature_data, public_key_data)

    key = select_signing_key(public_key_data)
    signature = parse_signature(signature_data)

    issuer = signature.issuer_key_id
    if issuer and issuer != key.key_id:
        logger.debug("Signature issuer %s differs from selected signing key %s", issuer, key.key_id)

    logger.debug("Verifying signature with key ID: %s", key.key_id)
    result = verify_parsed(signed_data, signature, key)
    logger.debug("Signature verification result: %s", result)
    return result


def _read_input(path: Union[str, Path], kind: str) -> bytes:
    if not path or not str(path).strip():
        raise VerificationError(f"{kind} path is null or empty")
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        logger.error("Failed to read %s file %s: %s", kind, path, e)
        raise VerificationError(f"Failed to read {kind} file: {path}") from e
    if not content:
        raise VerificationError(f"empty input: {kind} file is empty: {path}")
    logger.debug("Read %s file: %s, size: %d bytes", kind, path, len(content))
    return content


def verify_signature_files(
    data_path: Union[str, Path],
    signature_path: Union[str, Path],
    public_key_path: Union[str, Path],
) -> bool:
    """File-based form of verify_signature(); all three files are read first."""
    logger.debug("Starting signature verification for file: %s", data_path)
    signed_data = _read_input(data_path, "data")
    signature = _read_input(signature_path, "signature")
    public_key = _read_input(public_key_path, "public key")
    return verify_signature(signed_data, signature, public_key)
