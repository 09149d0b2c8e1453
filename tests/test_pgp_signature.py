#!/usr/bin/env python3
"""
Tests for detached signature reading.

Verifies that:
- Binary, armored and raw-framed signatures are all accepted
- Readers are tried in order and never raise
- Unusable data is rejected with "unsupported signature format"
"""

from unittest.mock import patch

import pytest

from wizgate.errors import VerificationError
from wizgate.security.pgp import signature as sigmod
from wizgate.security.pgp.packets import PacketError
from wizgate.security.pgp.signature import (
    HashAlgorithm,
    KeyFlags,
    PublicKeyAlgorithm,
    SignatureType,
    SubpacketType,
    parse_signature,
    parse_signature_packet,
    parse_subpackets,
    read_armored_signature,
    read_binary_signature,
    read_raw_signature,
)

pytestmark = pytest.mark.security

RELEASE_SIGNING_KEY_ID = "D82AF31DB77D056C"
ED25519_SIGNING_KEY_ID = "5BFB9CC5EE5B1ABF"


def _v3_body(issuer=b"\x01\x02\x03\x04\x05\x06\x07\x08", value=0x1234):
    return (
        bytes([3, 5, SignatureType.BINARY])
        + (1700000000).to_bytes(4, "big")
        + issuer
        + bytes([PublicKeyAlgorithm.RSA, HashAlgorithm.SHA256])
        + b"\xab\xcd"
        + value.bit_length().to_bytes(2, "big")
        + value.to_bytes((value.bit_length() + 7) // 8, "big")
    )


class TestParseSignaturePacket:

    def test_release_signature_fields(self, pgp_dir):
        sig = read_binary_signature((pgp_dir / "wizcli-sha256.sig").read_bytes())
        assert sig.version == 4
        assert sig.signature_type == SignatureType.BINARY
        assert sig.public_key_algorithm == PublicKeyAlgorithm.RSA
        assert sig.hash_algorithm == HashAlgorithm.SHA512
        assert sig.digest_prefix == b"\x1a\xf8"
        assert sig.issuer_key_id == RELEASE_SIGNING_KEY_ID
        assert sig.creation_time == 0x6AD5164B
        assert len(sig.values) == 1

    def test_eddsa_signature_has_two_values(self, pgp_dir):
        sig = parse_signature((pgp_dir / "wizcli-sha256.ed25519.sig").read_bytes())
        assert sig.public_key_algorithm == PublicKeyAlgorithm.EDDSA
        assert sig.hash_algorithm == HashAlgorithm.SHA256
        assert sig.issuer_key_id == ED25519_SIGNING_KEY_ID
        assert len(sig.values) == 2

    def test_v4_hash_trailer(self, pgp_dir):
        sig = parse_signature((pgp_dir / "wizcli-sha256.sig").read_bytes())
        trailer = sig.hash_trailer()
        assert trailer.startswith(sig.hashed_data)
        assert trailer[len(sig.hashed_data):len(sig.hashed_data) + 2] == b"\x04\xff"
        assert int.from_bytes(trailer[-4:], "big") == len(sig.hashed_data)

    def test_v3_signature(self):
        sig = parse_signature_packet(_v3_body())
        assert sig.version == 3
        assert sig.issuer_key_id == "0102030405060708"
        assert sig.creation_time == 1700000000
        assert sig.values == (0x1234,)
        assert sig.hash_trailer() == bytes([0]) + (1700000000).to_bytes(4, "big")
        assert sig.key_flags == KeyFlags(0)

    def test_v3_bad_hashed_length(self):
        body = bytearray(_v3_body())
        body[1] = 6
        with pytest.raises(PacketError, match="5 bytes"):
            parse_signature_packet(bytes(body))

    def test_unsupported_version(self):
        with pytest.raises(PacketError, match="unsupported signature version"):
            parse_signature_packet(b"\x05" + b"\x00" * 20)

    def test_unsupported_algorithm(self):
        body = bytearray(_v3_body())
        body[15] = PublicKeyAlgorithm.ELGAMAL
        with pytest.raises(PacketError, match="public-key algorithm"):
            parse_signature_packet(bytes(body))

    def test_bytes_after_value_rejected(self):
        with pytest.raises(PacketError, match="unexpected bytes"):
            parse_signature_packet(_v3_body() + b"\x00")


class TestSubpackets:

    def test_lengths_and_critical_bit(self):
        area = bytes([2, SubpacketType.KEY_FLAGS, 0x02])
        area += bytes([5, 0x80 | SubpacketType.CREATION_TIME]) + b"\x00\x00\x00\x01"
        subs = parse_subpackets(area)
        assert [s.type for s in subs] == [SubpacketType.KEY_FLAGS, SubpacketType.CREATION_TIME]
        assert not subs[0].critical
        assert subs[1].critical
        assert subs[1].body == b"\x00\x00\x00\x01"

    def test_two_octet_length(self):
        body = b"n" * 299
        length = 300
        first = ((length - 192) >> 8) + 192
        second = (length - 192) & 0xFF
        subs = parse_subpackets(bytes([first, second, 20]) + body)
        assert subs[0].body == body

    def test_zero_length_rejected(self):
        with pytest.raises(PacketError):
            parse_subpackets(b"\x00")

    def test_overrun_rejected(self):
        with pytest.raises(PacketError):
            parse_subpackets(bytes([10, 2, 0]))


class TestReaders:

    def test_binary_reader(self, pgp_dir):
        assert read_binary_signature((pgp_dir / "wizcli-sha256.sig").read_bytes()) is not None

    def test_binary_reader_rejects_armor(self, pgp_dir):
        assert read_binary_signature((pgp_dir / "wizcli-sha256.asc").read_bytes()) is None

    def test_armored_reader(self, pgp_dir):
        sig = read_armored_signature((pgp_dir / "wizcli-sha256.asc").read_bytes())
        assert sig is not None
        assert sig.issuer_key_id == RELEASE_SIGNING_KEY_ID

    def test_armored_reader_rejects_binary(self, pgp_dir):
        assert read_armored_signature((pgp_dir / "wizcli-sha256.sig").read_bytes()) is None

    def test_raw_reader_ignores_trailing_bytes(self, pgp_dir):
        data = (pgp_dir / "wizcli-sha256-trailing.sig").read_bytes()
        assert read_binary_signature(data) is None
        assert read_armored_signature(data) is None
        sig = read_raw_signature(data)
        assert sig is not None
        assert sig.issuer_key_id == RELEASE_SIGNING_KEY_ID

    def test_raw_reader_rejects_non_signature_packet(self):
        assert read_raw_signature(bytes([0xB4, 1]) + b"u") is None

    def test_first_of_leading_signature_run(self, pgp_dir):
        first = (pgp_dir / "wizcli-sha256.sig").read_bytes()
        second = (pgp_dir / "wizcli-sha256.ed25519.sig").read_bytes()
        sig = read_binary_signature(first + second)
        assert sig.issuer_key_id == RELEASE_SIGNING_KEY_ID

    def test_marker_packets_skipped(self, pgp_dir):
        marker = bytes([0xA8, 3]) + b"PGP"
        sig = read_binary_signature(marker + (pgp_dir / "wizcli-sha256.sig").read_bytes())
        assert sig is not None

    def test_non_signature_stream_yields_none(self):
        user_id = bytes([0xB4, 4]) + b"user"
        assert read_binary_signature(user_id) is None


class TestParseSignature:

    @pytest.mark.parametrize("name", [
        "wizcli-sha256.sig",
        "wizcli-sha256.asc",
        "wizcli-sha256-trailing.sig",
    ])
    def test_every_shipped_shape_parses(self, pgp_dir, name):
        sig = parse_signature((pgp_dir / name).read_bytes())
        assert sig.issuer_key_id == RELEASE_SIGNING_KEY_ID

    @pytest.mark.parametrize("data", [
        b"not a signature",
        b"\x00\x01\x02",
        b"-----BEGIN PGP SIGNATURE-----\n\nAAAA\n-----END PGP SIGNATURE-----\n",
    ])
    def test_garbage_rejected(self, data):
        with pytest.raises(VerificationError, match="unsupported signature format"):
            parse_signature(data)

    def test_readers_tried_in_order(self, pgp_dir):
        data = (pgp_dir / "wizcli-sha256.sig").read_bytes()
        calls = []

        def failing(name):
            def reader(_):
                calls.append(name)
                return None
            return reader

        readers = (failing("binary"), failing("armored"), sigmod.read_raw_signature)
        with patch.object(sigmod, "SIGNATURE_READERS", readers):
            sig = sigmod.parse_signature(data)

        assert calls == ["binary", "armored"]
        assert sig is not None
