"""Canonical paths for compact-mirror.

Layout:
  ~/.compact-mirror/           home_dir()   — config, logs
  ~/.compact-mirror/cache/     cache_dir()  — default mirror directory
  <content>.<pid>.tmp          staging_path() — never survives an operation
"""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

DOT_DIR = ".compact-mirror"

_SPECIAL_CHARS = re.compile(r"[^a-z0-9_-]")


def home_dir() -> Path:
    """Return ~/.compact-mirror/."""
    return Path.home() / DOT_DIR


def cache_dir() -> Path:
    """Default directory holding the mirrored index."""
    return home_dir() / "cache"


def staging_path(original: Path, pid: int | None = None) -> Path:
    """Process-unique staging file next to ``original``.

    Same directory as the original so the commit rename stays on one filesystem.
    """
    pid = os.getpid() if pid is None else pid
    return original.with_name(f"{original.name}.{pid}.tmp")


def etag_path(content: Path) -> Path:
    """Sibling file storing the ETag of ``content``."""
    return content.with_name(f"{content.name}.etag")


def name_digest(name: str) -> str:
    """Lowercase md5 hex of an entry name, used to disambiguate filenames."""
    return hashlib.md5(name.encode("utf-8")).hexdigest()


def has_special_characters(name: str) -> bool:
    """True if ``name`` is not safe to use verbatim as a filename."""
    return bool(_SPECIAL_CHARS.search(name))
