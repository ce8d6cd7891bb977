"""Tests for compact_mirror.paths."""

import hashlib
from pathlib import Path

from compact_mirror.paths import (
    DOT_DIR,
    cache_dir,
    etag_path,
    has_special_characters,
    home_dir,
    name_digest,
    staging_path,
)


def test_home_and_cache_dir():
    assert home_dir() == Path.home() / DOT_DIR
    assert cache_dir().parent == home_dir()


def test_staging_path_uses_pid():
    assert staging_path(Path("/x/versions"), pid=123) == Path("/x/versions.123.tmp")


def test_etag_path_is_sibling():
    assert etag_path(Path("/x/versions")) == Path("/x/versions.etag")


def test_special_characters():
    assert not has_special_characters("rack")
    assert not has_special_characters("net-http_2")
    assert has_special_characters("Rack")
    assert has_special_characters("rack.pro")


def test_name_digest():
    assert name_digest("rack") == hashlib.md5(b"rack").hexdigest()
