"""OpenPGP detached-signature verification for Wiz CLI releases."""

from wizgate.security.pgp.keys import KeyRing, PublicKey, select_signing_key
from wizgate.security.pgp.signature import Signature, parse_signature
from wizgate.security.pgp.verifier import verify_signature, verify_signature_files

__all__ = [
    "KeyRing", "PublicKey", "Signature",
    "parse_signature", "select_signing_key",
    "verify_signature", "verify_signature_files",
]
