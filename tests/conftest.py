"""Shared test fixtures for compact-mirror."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from compact_mirror.checksum import digest_bytes


@pytest.fixture
def local_path(tmp_path: Path) -> Path:
    """Location of the mirrored content file (absent until written)."""
    d = tmp_path / "localpath"
    d.mkdir()
    return d / "versions"


@pytest.fixture
def etag_path(tmp_path: Path) -> Path:
    """Location of the etag store (absent until written)."""
    d = tmp_path / "localpath-etags"
    d.mkdir()
    return d / "versions.etag"


@pytest.fixture
def fetcher() -> MagicMock:
    return MagicMock(name="fetcher")


def make_response(
    status: int = 200,
    body: bytes = b"",
    etag: str | None = None,
    repr_digest: str | None = None,
    digest: str | None = None,
    **extra_headers: str,
) -> httpx.Response:
    """Build a real httpx.Response the way a fetcher would return it."""
    headers = {k.replace("_", "-"): v for k, v in extra_headers.items()}
    if etag is not None:
        headers["ETag"] = etag
    if repr_digest is not None:
        headers["Repr-Digest"] = repr_digest
    if digest is not None:
        headers["Digest"] = digest
    return httpx.Response(status, content=body, headers=headers)


def sha256_repr(data: bytes) -> str:
    """``Repr-Digest`` value declaring the sha-256 of ``data``."""
    return f"sha-256=:{digest_bytes(data)}:"
