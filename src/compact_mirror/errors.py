"""Exception hierarchy for compact-mirror.

Every error carries an ``ErrorKind`` so callers can branch on the cause
exhaustively (retry a transport failure, never silently retry-and-trust a
checksum failure). Messages say what happened, why, and what to do next.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(enum.Enum):
    """Closed set of failure causes surfaced to callers."""

    TRANSPORT_FAILURE = "transport_failure"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    INTERNAL_DIGEST_MISMATCH = "internal_digest_mismatch"
    USAGE_ERROR = "usage_error"
    CONFIG_ERROR = "config_error"


class MirrorError(Exception):
    """Base class for all compact-mirror errors."""

    kind: ErrorKind


def error_kind(exc: BaseException) -> ErrorKind | None:
    """Return the ErrorKind of a MirrorError, or None for foreign exceptions."""
    if isinstance(exc, MirrorError):
        return exc.kind
    return None


class HTTPError(MirrorError):
    """The remote could not be fetched, or answered with an unusable response."""

    kind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, remote_path: str, detail: str = "", status_code: int = 0):
        if status_code:
            msg = (
                f"Fetching '{remote_path}' returned HTTP {status_code}. "
                f"Nothing was written to the local cache. {detail}"
            )
        else:
            msg = (
                f"Fetching '{remote_path}' failed: {detail or 'transport error'}. "
                f"Nothing was written to the local cache. "
                f"Check the network connection and try again."
            )
        super().__init__(msg.strip())
        self.remote_path = remote_path
        self.detail = detail
        self.status_code = status_code


class MismatchedChecksumError(MirrorError):
    """Bytes received from the remote do not match the digest it declared."""

    kind = ErrorKind.CHECKSUM_MISMATCH

    def __init__(self, remote_path: str, detail: str):
        super().__init__(
            f"The checksum of /{remote_path} does not match the checksum provided "
            f"by the server. The local cache was left unchanged. {detail}"
        )
        self.remote_path = remote_path
        self.detail = detail


class DigestMismatch(MirrorError):
    """Locally computed digests disagree with the expected digests."""

    kind = ErrorKind.INTERNAL_DIGEST_MISMATCH

    def __init__(self, expected: dict[str, str] | None, actual: dict[str, str] | None):
        super().__init__(f"Local checksums {actual!r} did not match {expected!r}.")
        self.expected = dict(expected or {})
        self.actual = dict(actual or {})


class CacheFileClosed(MirrorError):
    """A cache file was used after it was committed or discarded."""

    kind = ErrorKind.USAGE_ERROR

    def __init__(self, path: Any, action: str):
        super().__init__(
            f"Cannot {action} closed cache file '{path}'. "
            f"A cache file is committed or discarded exactly once; "
            f"start a new CacheFile for another operation."
        )
        self.path = path
        self.action = action


class DigestStateConsumed(MirrorError):
    """Append attempted after verify() already finalized the digests."""

    kind = ErrorKind.USAGE_ERROR

    def __init__(self, path: Any):
        super().__init__(
            f"Cannot append to '{path}': its digests were already finalized by verify(). "
            f"Appending now would leave the new bytes unverified. "
            f"Start a new CacheFile.copy() and append there."
        )
        self.path = path


class ConfigError(MirrorError):
    """Mirror configuration is missing or invalid."""

    kind = ErrorKind.CONFIG_ERROR

    def __init__(self, detail: str, hint: str = ""):
        msg = f"Configuration error: {detail}."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)
        self.detail = detail
        self.hint = hint
