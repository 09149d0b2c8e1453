#!/usr/bin/env python3
"""
wizgate checksums

Streaming SHA-256 over downloaded files. Files are never read into memory
whole; the digest is accumulated chunk by chunk.
"""

import hashlib
from pathlib import Path
from typing import Union

CHUNK_SIZE = 8192


def sha256_file(path: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the SHA-256 of a file as lower-case hex.

    Args:
        path: File to hash.
        chunk_size: Read size in bytes. Does not affect the result.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def sha256_bytes(data: bytes) -> str:
    """SHA-256 of an in-memory buffer as lower-case hex."""
    return hashlib.sha256(data).hexdigest()
