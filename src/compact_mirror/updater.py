"""One synchronization cycle for a mirrored compact-index endpoint.

Given a remote path, the local content file and its etag file, the Updater
asks only for what it does not have:

- local content present: ``Range: bytes=<size-1>-`` (one byte of overlap so
  the range is never empty, which servers answer with 416)
- etag stored: ``If-None-Match: <etag>``

and then persists the answer:

- 304: nothing to do
- 206: the staged copy is cut back to the range offset and the body
  appended, verified against the declared digests of that segment
- anything else 2xx: the body replaces the file, verified against the
  declared digests of the whole body

A 206 that cannot be trusted (no usable digest, a different offset, or an
overlap byte that no longer matches the local file) makes the cycle repeat
as a plain full request, and so does a 416 when the remote has become
shorter than the local copy. The local file only ever changes through
CacheFile's atomic commit.
"""

from __future__ import annotations

import logging
import re
import zlib
from collections.abc import Mapping
from pathlib import Path

import httpx

from compact_mirror.cache_file import CacheFile
from compact_mirror.checksum import SUPPORTED_DIGESTS
from compact_mirror.errors import DigestMismatch, HTTPError, MismatchedChecksumError
from compact_mirror.http import Fetcher, ResponseKind, classify

logger = logging.getLogger(__name__)

_CONTENT_RANGE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+|\*)\s*$", re.IGNORECASE)

# Raised by fetchers and while decoding response bodies.
_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.StreamError, zlib.error, EOFError, OSError)


class Updater:
    """Bring local copies of remote index files up to date."""

    def __init__(self, fetcher: Fetcher):
        self.fetcher = fetcher

    def update(self, remote_path: str, local_path: Path | str, etag_path: Path | str) -> bool:
        """Synchronize ``local_path`` with ``remote_path``.

        Returns True once the local file reflects the remote (updated or
        confirmed unchanged).

        Raises:
            HTTPError: The fetch failed or the response status is unusable.
            MismatchedChecksumError: Received bytes disagree with the declared
                digest. Neither the content nor the etag file was changed.
        """
        local_path = Path(local_path)
        etag_path = Path(etag_path)
        try:
            return self._append(remote_path, local_path, etag_path) or self._replace(
                remote_path, local_path, etag_path
            )
        except DigestMismatch as e:
            logger.warning("checksum mismatch for %s: %s", remote_path, e)
            raise MismatchedChecksumError(remote_path, str(e)) from e

    def _append(self, remote_path: str, local_path: Path, etag_path: Path) -> bool:
        size = _file_size(local_path)
        if not size:
            return False

        offset = size - 1
        etag = read_etag(etag_path)
        with CacheFile.copy(local_path, size=offset) as file:
            try:
                response, body = self._fetch(remote_path, request_headers(etag, offset))
            except HTTPError as e:
                # remote shrank below the local copy
                if e.status_code != httpx.codes.REQUESTED_RANGE_NOT_SATISFIABLE:
                    raise
                logger.info("%s cannot serve byte %d, refetching in full", remote_path, offset)
                return False
            kind = classify(response)
            if kind is ResponseKind.NOT_MODIFIED:
                logger.debug("%s not modified", remote_path)
                return True

            digests = parse_digests(response.headers)
            file.expect_digests(digests)
            if kind is ResponseKind.PARTIAL_CONTENT:
                start = content_range_start(response.headers)
                if start is not None and start != offset:
                    logger.info(
                        "%s answered range %d with offset %d, refetching in full",
                        remote_path,
                        offset,
                        start,
                    )
                    return False
                if body[:1] != _byte_at(local_path, offset):
                    logger.info("%s changed before byte %d, refetching in full", remote_path, size)
                    return False
                if not file.has_digests:
                    logger.info("%s sent no usable digest for the range, refetching in full", remote_path)
                    return False
                if not file.append(body):
                    raise DigestMismatch(file.expected_digests, file.computed_digests)
                logger.debug("%s appended (%d new bytes)", remote_path, len(body) - 1)
            else:
                # server may ignore Range and return the full response
                file.replace(body)
                logger.debug("%s replaced (%d bytes, range ignored)", remote_path, len(body))

        write_etag(etag_path, response)
        return True

    def _replace(self, remote_path: str, local_path: Path, etag_path: Path) -> bool:
        # An empty or missing local file makes the request unconditional, so a
        # 304 can never leave us without content.
        etag = read_etag(etag_path) if _file_size(local_path) else None
        response, body = self._fetch(remote_path, request_headers(etag))
        if classify(response) is ResponseKind.NOT_MODIFIED:
            logger.debug("%s not modified", remote_path)
            return True

        CacheFile.write(local_path, body, parse_digests(response.headers))
        logger.debug("%s downloaded (%d bytes)", remote_path, len(body))
        write_etag(etag_path, response)
        return True

    def _fetch(self, remote_path: str, headers: dict[str, str]) -> tuple[httpx.Response, bytes]:
        logger.debug("fetching %s headers=%s", remote_path, headers)
        try:
            response = self.fetcher(remote_path, headers)
            response.read()
            body = response.content
        except _TRANSPORT_ERRORS as e:
            raise HTTPError(remote_path, f"{type(e).__name__}: {e}") from e
        check_status(remote_path, response, headers)
        return response, body


def request_headers(etag: str | None, range_start: int | None = None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if range_start is not None:
        headers["Range"] = f"bytes={range_start}-"
    if etag:
        headers["If-None-Match"] = etag
    return headers


def check_status(remote_path: str, response: httpx.Response, headers: Mapping[str, str]) -> None:
    """Reject responses that must not reach the write path.

    Error statuses are never persisted. A 206 is only meaningful for a range
    request and a 304 only for a conditional one.

    Raises:
        HTTPError: With the offending status code.
    """
    status = response.status_code
    kind = classify(response)
    if kind is ResponseKind.NOT_MODIFIED:
        if "If-None-Match" in headers:
            return
        detail = "The server answered 304 to an unconditional request."
    elif kind is ResponseKind.PARTIAL_CONTENT:
        if "Range" in headers:
            return
        detail = "The server answered 206 to a request without a Range header."
    elif 200 <= status < 300:
        return
    else:
        detail = "The response body was not written. Retry later or check the remote URL."
    raise HTTPError(remote_path, detail, status_code=status)


def parse_digests(headers: Mapping[str, str]) -> dict[str, str] | None:
    """Digests declared by the remote, keyed by algorithm.

    ``Repr-Digest`` (``sha-256=:<base64>:``) is preferred over the legacy
    ``Digest`` header (``SHA-256=<base64>``). Unsupported algorithms and
    malformed values are skipped; None if nothing usable remains.
    """
    header = headers.get("Repr-Digest") or headers.get("Digest")
    if not header:
        return None
    digests: dict[str, str] = {}
    for member in header.split(","):
        algorithm, sep, value = member.partition("=")
        algorithm = algorithm.strip().lower()
        if not sep or algorithm not in SUPPORTED_DIGESTS:
            continue
        value = _byte_sequence(value.strip())
        if value:
            digests[algorithm] = value
    return digests or None


def _byte_sequence(value: str) -> str | None:
    """Strip structured-field ``:`` delimiters; reject an unterminated one."""
    if value.startswith(":"):
        if len(value) < 2 or not value.endswith(":"):
            return None
        return value[1:-1]
    return value


def content_range_start(headers: Mapping[str, str]) -> int | None:
    """First byte position of a ``Content-Range`` header, or None."""
    value = headers.get("Content-Range")
    if not value:
        return None
    m = _CONTENT_RANGE.match(value)
    if not m:
        return None
    return int(m.group(1))


def read_etag(etag_path: Path) -> str | None:
    """Stored etag, or None if there is none or it cannot go in a header."""
    if not etag_path.is_file():
        return None
    etag = etag_path.read_bytes().decode("utf-8", errors="replace").strip()
    if not etag.isascii():
        logger.warning("ignoring non-ASCII etag in %s", etag_path)
        return None
    return etag or None


def write_etag(etag_path: Path, response: httpx.Response) -> None:
    """Persist the response's ETag. A missing header leaves the store as it was.

    An ETag that is not ASCII could never be sent back in ``If-None-Match``,
    so the stored one is dropped instead.
    """
    etag = response.headers.get("ETag")
    if etag is None:
        logger.debug("no ETag in response, keeping %s", etag_path)
        return
    if not etag.isascii():
        logger.warning("non-ASCII ETag %r, removing %s", etag, etag_path)
        etag_path.unlink(missing_ok=True)
        return
    CacheFile.write(etag_path, etag.encode("ascii"))


def _byte_at(path: Path, offset: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(1)


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.is_file() else 0
    except FileNotFoundError:
        return 0
