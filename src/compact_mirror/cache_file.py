"""Atomic, digest-verified cache files.

A CacheFile stages bytes in ``<original>.<pid>.tmp`` and only ever makes
them visible through one ``os.replace`` over the original, so readers see
either the old or the new content, never a mix. Each writing process gets
its own staging file; concurrent writers resolve last-committer-wins.

If expected digests are given, the bytes written through the instance are
hashed on the way to disk and checked before the commit.

Usage::

    with CacheFile.copy(path) as file:
        file.expect_digests({"sha-256": "..."})
        file.append(tail)

    CacheFile.write(path, data, {"sha-256": "..."})

Every instance ends exactly once, committed or discarded. Leaving the
``with`` block discards whatever was not committed.
"""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

from compact_mirror.checksum import CHUNK_SIZE, DigestIO, base64digest, new_digests
from compact_mirror.errors import CacheFileClosed, DigestMismatch, DigestStateConsumed
from compact_mirror.paths import staging_path

logger = logging.getLogger(__name__)


def _copy_stream(src: BinaryIO, dst: BinaryIO, limit: int | None = None) -> None:
    remaining = limit
    while remaining is None or remaining > 0:
        want = CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining)
        chunk = src.read(want)
        if not chunk:
            break
        dst.write(chunk)
        if remaining is not None:
            remaining -= len(chunk)


class CacheFile:
    """One staged replacement of ``original_path``."""

    def __init__(self, original_path: Path | str):
        self.original_path = Path(original_path)
        self.path = staging_path(self.original_path)
        self.closed = False
        self._digests: dict[str, Any] | None = None
        self._expected_digests: dict[str, str] | None = None
        self._computed_digests: dict[str, str] | None = None

    def __enter__(self) -> CacheFile:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @classmethod
    @contextmanager
    def copy(cls, path: Path | str, size: int | None = None) -> Iterator[CacheFile]:
        """Stage a copy of ``path`` for appending.

        Accumulators for every supported digest are started, empty: only
        bytes appended afterwards are hashed. ``size`` keeps just the first
        ``size`` bytes of the original in the staged copy.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
        """
        with cls(path) as file:
            file.initialize_digests()
            file.copy_original(size)
            yield file

    @classmethod
    def write(
        cls,
        path: Path | str,
        data: bytes | None,
        digests: dict[str, str] | None = None,
    ) -> bool | None:
        """Atomically replace ``path`` with ``data``, verified if digests are given.

        Returns None without touching anything when ``data`` is None.

        Raises:
            DigestMismatch: If ``data`` does not match ``digests``. The
                original file is left as it was.
        """
        if data is None:
            return None
        with cls(path) as file:
            file.original_path.parent.mkdir(parents=True, exist_ok=True)
            file.expect_digests(digests)
            if file._digests is None:
                file.initialize_digests()
            return file.replace(data)

    # ------------------------------------------------------------------
    # Digest state
    # ------------------------------------------------------------------

    def initialize_digests(self, keys: list[str] | None = None) -> None:
        self._digests = new_digests(keys)

    def expect_digests(self, expected: dict[str, str] | None) -> None:
        """Set the digests checked by verify().

        Running accumulators are narrowed to the expected algorithms; None
        drops both, which turns verification off.
        """
        self._expected_digests = dict(expected) if expected is not None else None
        if self._expected_digests is None:
            self._digests = None
        elif self._digests is not None:
            self._digests = {
                k: h for k, h in self._digests.items() if k in self._expected_digests
            }
        else:
            self.initialize_digests(list(self._expected_digests))

    @property
    def has_digests(self) -> bool:
        return bool(self._digests)

    @property
    def expected_digests(self) -> dict[str, str] | None:
        return self._expected_digests

    @property
    def computed_digests(self) -> dict[str, str] | None:
        """Digests finalized by the last verify(), or None."""
        return self._computed_digests

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    # ------------------------------------------------------------------
    # Staging writes
    # ------------------------------------------------------------------

    @contextmanager
    def open(self, mode: str = "wb") -> Iterator[BinaryIO | DigestIO]:
        """Open the staging file, hashing through it when digests are configured."""
        if self.closed:
            raise CacheFileClosed(self.path, "reopen")
        with open(self.path, mode) as f:
            yield DigestIO(f, self._digests) if self._digests else f
            f.flush()
            os.fsync(f.fileno())

    def copy_original(self, size: int | None = None) -> None:
        """Copy the original into staging, bypassing the digests."""
        if self.closed:
            raise CacheFileClosed(self.path, "copy into")
        with open(self.original_path, "rb") as src:
            mode = stat.S_IMODE(os.fstat(src.fileno()).st_mode)
            with open(self.path, "wb") as dst:
                _copy_stream(src, dst, size)
        os.chmod(self.path, mode)

    def append(self, data: bytes) -> bool:
        """Append ``data`` to the staged copy, verify it, and commit.

        Returns False without writing when no digests are configured:
        unverified appends are refused. Returns False if verification fails,
        in which case nothing is committed.

        Raises:
            CacheFileClosed: If the instance was already committed or discarded.
            DigestStateConsumed: If verify() already finalized the digests.
        """
        if self.closed:
            raise CacheFileClosed(self.path, "append to")
        if self._computed_digests is not None:
            raise DigestStateConsumed(self.path)
        if not self.has_digests:
            logger.debug("refusing unverified append to %s", self.original_path)
            return False
        with self.open("ab") as f:
            f.write(data)
        return self.verify() and self.commit()

    def replace(self, data: bytes) -> bool:
        """Overwrite the staged content with ``data``, then commit_or_fail()."""
        if self._digests is not None:
            self.initialize_digests(list(self._digests))
        with self.open("wb") as f:
            f.write(data)
        return self.commit_or_fail()

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def verify(self) -> bool:
        """Compare finalized digests with the expected ones.

        One-shot: the accumulators are consumed, so a second call has
        nothing to check and returns True.
        """
        if not self._expected_digests or not self.has_digests:
            return True
        assert self._digests is not None
        computed = {k: base64digest(h) for k, h in self._digests.items()}
        self._computed_digests = computed
        self._digests = None
        return all(computed.get(k) == v for k, v in self._expected_digests.items())

    def commit_or_fail(self) -> bool:
        """Commit if verification passes.

        Raises:
            DigestMismatch: With both the expected and the computed digests.
        """
        if not self.verify():
            raise DigestMismatch(self._expected_digests, self._computed_digests)
        return self.commit()

    def commit(self) -> bool:
        """Rename the staging file over the original."""
        if self.closed:
            raise CacheFileClosed(self.path, "commit")
        os.replace(self.path, self.original_path)
        self.closed = True
        logger.debug("committed %s", self.original_path)
        return True

    def close(self) -> None:
        """Discard the staging file unless already committed. Idempotent."""
        if self.closed:
            return
        if self.path.is_file():
            self.path.unlink()
            logger.debug("discarded staging file %s", self.path)
        self.closed = True
