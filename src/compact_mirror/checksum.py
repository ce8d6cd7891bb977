"""Digest accumulation for cache verification.

Digest algorithms are keyed by their HTTP token (``sha-256``), the same
names servers use in ``Repr-Digest`` and ``Digest`` headers. Encoded
digests are standard base64, the format those headers carry.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, BinaryIO

CHUNK_SIZE = 65536  # 64 KB read chunks

SUPPORTED_DIGESTS: dict[str, Callable[[], Any]] = {
    "sha-256": hashlib.sha256,
    "sha-512": hashlib.sha512,
}


def new_digests(keys: Iterable[str] | None = None) -> dict[str, Any]:
    """Return fresh accumulators, one per supported algorithm.

    Args:
        keys: Restrict to these algorithm names. Unsupported names are ignored.
            None means every supported algorithm.
    """
    if keys is None:
        names = list(SUPPORTED_DIGESTS)
    else:
        names = [k for k in keys if k in SUPPORTED_DIGESTS]
    return {name: SUPPORTED_DIGESTS[name]() for name in names}


def base64digest(h: Any) -> str:
    """Finalize a hashlib object to its base64 encoding."""
    return base64.b64encode(h.digest()).decode("ascii")


def digest_bytes(data: bytes, algorithm: str = "sha-256") -> str:
    """Base64 digest of ``data`` under a supported algorithm.

    Raises:
        KeyError: If the algorithm is not supported.
    """
    h = SUPPORTED_DIGESTS[algorithm]()
    h.update(data)
    return base64digest(h)


class DigestIO:
    """Binary file wrapper that feeds every byte read or written to digests.

    Wraps rather than subclasses the file, so any binary file object works.
    Attributes not defined here fall through to the wrapped file.
    """

    def __init__(self, io: BinaryIO, digests: dict[str, Any]):
        self._io = io
        self.digests = digests

    def write(self, data: bytes) -> int:
        for h in self.digests.values():
            h.update(data)
        return self._io.write(data)

    def read(self, size: int = -1) -> bytes:
        data = self._io.read(size)
        for h in self.digests.values():
            h.update(data)
        return data

    def __getattr__(self, name: str) -> Any:
        return getattr(self._io, name)


def md5_file(path: Path) -> str:
    """MD5 hex digest of a file, the checksum the versions index publishes.

    Raises:
        FileNotFoundError: If path does not exist.
    """
    h = hashlib.md5()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()
