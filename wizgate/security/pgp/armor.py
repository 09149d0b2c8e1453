#!/usr/bin/env python3
"""
wizgate ASCII armor decoding (RFC 4880 section 6).

Decodes one or more "-----BEGIN PGP ...-----" blocks, checking the CRC-24
checksum line when one is present.
"""

import base64
import binascii
import re
from typing import List

from wizgate.security.pgp.packets import PacketError

_BEGIN = re.compile(r"^-----BEGIN PGP ([A-Z0-9 ,/]+)-----$")
_END = re.compile(r"^-----END PGP ([A-Z0-9 ,/]+)-----$")
_CHECKSUM = re.compile(r"^=([A-Za-z0-9+/]{4})$")

CRC24_INIT = 0xB704CE
CRC24_POLY = 0x1864CFB


class ArmorError(PacketError):
    """Armored data is missing, malformed, or fails its checksum."""


def crc24(data: bytes) -> int:
    """CRC-24 as used by OpenPGP armor."""
    crc = CRC24_INIT
    for byte in data:
        crc ^= byte << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= CRC24_POLY
    return crc & 0xFFFFFF


def is_armored(data: bytes) -> bool:
    """Cheap check for an armor header anywhere in *data*."""
    return b"-----BEGIN PGP " in data


def dearmor(data: bytes) -> bytes:
    """Decode every armored block in *data* and concatenate the payloads.

    Raises:
        ArmorError: If no block is found, or any block is malformed.
    """
    try:
        text = data.decode("ascii")
    except UnicodeDecodeError as e:
        raise ArmorError("armored data is not ASCII") from e

    lines = [line.strip() for line in text.splitlines()]
    payloads: List[bytes] = []
    i = 0

    while i < len(lines):
        begin = _BEGIN.match(lines[i])
        if not begin:
            i += 1
            continue
        payload, i = _decode_block(lines, i + 1, begin.group(1))
        payloads.append(payload)

    if not payloads:
        raise ArmorError("no armored data found")
    return b"".join(payloads)


def _decode_block(lines: List[str], i: int, label: str):
    # Armor headers ("Key: Value") run until the first blank line
    while i < len(lines) and lines[i] and ":" in lines[i]:
        i += 1
    if i < len(lines) and not lines[i]:
        i += 1

    body: List[str] = []
    checksum = None
    while i < len(lines):
        line = lines[i]
        end = _END.match(line)
        if end:
            if end.group(1) != label:
                raise ArmorError(f"armor tail '{end.group(1)}' does not match header '{label}'")
            break
        match = _CHECKSUM.match(line)
        if match:
            checksum = match.group(1)
        elif line:
            body.append(line)
        i += 1
    else:
        raise ArmorError(f"missing armor tail for '{label}'")

    try:
        payload = base64.b64decode("".join(body), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArmorError(f"invalid base64 in armored '{label}': {e}") from e

    if checksum is not None:
        expected = int.from_bytes(base64.b64decode(checksum), "big")
        if crc24(payload) != expected:
            raise ArmorError(f"armor checksum mismatch in '{label}'")

    return payload, i + 1
