"""Mirror configuration — loads and validates ~/.compact-mirror/mirror.yaml.

If no config exists, defaults are used; create_default() writes a commented
starter file. Environment variables override the file:

  COMPACT_MIRROR_REMOTE     base URL of the compact index
  COMPACT_MIRROR_CACHE_DIR  directory holding the mirror
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from compact_mirror.errors import ConfigError
from compact_mirror.http import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT
from compact_mirror.paths import cache_dir, home_dir

DEFAULT_REMOTE = "https://rubygems.org/"

ENV_REMOTE = "COMPACT_MIRROR_REMOTE"
ENV_CACHE_DIR = "COMPACT_MIRROR_CACHE_DIR"


@dataclass
class MirrorConfig:
    """Parsed mirror.yaml."""

    remote: str = DEFAULT_REMOTE
    cache_dir: Path = field(default_factory=cache_dir)
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE


_DEFAULT_CONFIG = """\
# compact-mirror configuration
# Edit freely; environment variables COMPACT_MIRROR_REMOTE and
# COMPACT_MIRROR_CACHE_DIR take precedence over this file.

# Base URL of the compact index (serves /names, /versions, /info/<name>).
remote: https://rubygems.org/

# Where the mirrored files live. Defaults to ~/.compact-mirror/cache
# cache_dir: ~/.compact-mirror/cache

# HTTP settings. Retries apply to 429/5xx and connection errors only;
# set max_retries: 0 to let the caller handle every failure.
timeout: 15.0
max_retries: 3
backoff_base: 1.0
"""


def config_path() -> Path:
    """Path to mirror.yaml inside ~/.compact-mirror/."""
    return home_dir() / "mirror.yaml"


def create_default(path: Path | None = None) -> Path:
    """Write a starter mirror.yaml if it doesn't exist. Returns the path."""
    p = path or config_path()
    if not p.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(_DEFAULT_CONFIG, encoding="utf-8")
    return p


def _number(data: dict, key: str, cast: type, default: float | int) -> float | int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    try:
        result = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from e
    if result < 0:
        raise ConfigError(f"'{key}' must not be negative, got {value!r}")
    return result


def load_config(path: Path | None = None) -> MirrorConfig:
    """Load and validate mirror.yaml. Returns defaults if the file is missing."""
    p = path or config_path()
    data: dict = {}
    if p.exists():
        raw = p.read_text(encoding="utf-8")
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {p}: {e}", hint="Fix the syntax or delete the file.") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a YAML mapping in {p}, got {type(data).__name__}")

    remote = os.environ.get(ENV_REMOTE) or data.get("remote", DEFAULT_REMOTE)
    if not isinstance(remote, str) or not remote.startswith(("http://", "https://")):
        raise ConfigError(
            f"'remote' must be an http(s) URL, got {remote!r}",
            hint=f"Set remote in {p} or the {ENV_REMOTE} environment variable.",
        )

    raw_cache_dir = os.environ.get(ENV_CACHE_DIR) or data.get("cache_dir")
    if raw_cache_dir is None:
        mirror_dir = cache_dir()
    elif isinstance(raw_cache_dir, str) and raw_cache_dir:
        mirror_dir = Path(raw_cache_dir).expanduser()
    else:
        raise ConfigError(f"'cache_dir' must be a path, got {raw_cache_dir!r}")

    return MirrorConfig(
        remote=remote,
        cache_dir=mirror_dir,
        timeout=float(_number(data, "timeout", float, DEFAULT_TIMEOUT)),
        max_retries=int(_number(data, "max_retries", int, DEFAULT_MAX_RETRIES)),
        backoff_base=float(_number(data, "backoff_base", float, DEFAULT_BACKOFF_BASE)),
    )
