"""Local mirror of a compact index.

Maps the index endpoints to files under one directory:

  <directory>/
    names, names.etag
    versions, versions.etag
    info/<name>                               plain names
    info-special-characters/<name>-<md5>      names outside [a-z0-9_-]
    info-etags/<name>-<md5>

Each endpoint is fetched at most once per IndexMirror instance; later calls
read the local copy. The content itself is never interpreted here.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from compact_mirror.checksum import md5_file
from compact_mirror.config import MirrorConfig
from compact_mirror.http import Fetcher, HttpFetcher
from compact_mirror.paths import etag_path, has_special_characters, name_digest
from compact_mirror.updater import Updater

logger = logging.getLogger(__name__)


class IndexMirror:
    """Compact-index files kept in sync under ``directory``.

    Without a fetcher the mirror is read-only.
    """

    def __init__(self, directory: Path | str, fetcher: Fetcher | None = None):
        self.directory = Path(directory).expanduser().resolve()
        self._updater = Updater(fetcher) if fetcher is not None else None
        self._lock = threading.Lock()
        self._endpoints: set[str] = set()
        self._endpoint_locks: dict[str, threading.Lock] = {}
        self.info_root = self._mkdir("info")
        self.special_characters_info_root = self._mkdir("info-special-characters")
        self.info_etag_root = self._mkdir("info-etags")

    @classmethod
    def from_config(cls, config: MirrorConfig) -> IndexMirror:
        fetcher = HttpFetcher(
            config.remote,
            timeout=config.timeout,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
        )
        return cls(config.cache_dir, fetcher)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def names(self) -> bytes | None:
        return self._fetch("names", self.names_path)

    def versions(self) -> bytes | None:
        return self._fetch("versions", self.versions_path)

    def info(self, name: str, remote_checksum: str | None = None) -> bytes | None:
        """Info file for ``name``.

        Only fetched when ``remote_checksum`` (the md5 hex published in the
        versions index) is given and differs from the local file.
        """
        path = self.info_path(name)
        if remote_checksum and remote_checksum != self._local_md5(path):
            return self._fetch(f"info/{name}", path, self.info_etag_path(name))
        logger.debug(
            "update skipped info/%s (%s)",
            name,
            "versions index checksum matches local" if remote_checksum else "no remote checksum",
        )
        return self._read(path)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def names_path(self) -> Path:
        return self.directory / "names"

    @property
    def versions_path(self) -> Path:
        return self.directory / "versions"

    def info_path(self, name: str) -> Path:
        name = str(name)
        if has_special_characters(name):
            return self.special_characters_info_root / f"{name}-{name_digest(name)}"
        return self.info_root / name

    def info_etag_path(self, name: str) -> Path:
        name = str(name)
        return self.info_etag_root / f"{name}-{name_digest(name)}"

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    @property
    def fetched_endpoints(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._endpoints)

    def reset(self) -> None:
        """Forget which endpoints were fetched, so the next read updates again."""
        with self._lock:
            self._endpoints.clear()

    def _endpoint_lock(self, remote_path: str) -> threading.Lock:
        with self._lock:
            return self._endpoint_locks.setdefault(remote_path, threading.Lock())

    def _already_fetched(self, remote_path: str) -> bool:
        with self._lock:
            return remote_path in self._endpoints

    def _fetch(self, remote_path: str, path: Path, etag: Path | None = None) -> bytes | None:
        # Concurrent callers for one endpoint wait for the running update.
        # A failed update is not recorded, so the next call retries it.
        with self._endpoint_lock(remote_path):
            if self._already_fetched(remote_path):
                logger.debug("already fetched %s", remote_path)
            elif self._updater is not None:
                logger.debug("fetching %s", remote_path)
                self._updater.update(remote_path, path, etag or etag_path(path))
                with self._lock:
                    self._endpoints.add(remote_path)
            return self._read(path)

    def _mkdir(self, name: str) -> Path:
        path = self.directory / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _read(path: Path) -> bytes | None:
        if not path.is_file():
            return None
        return path.read_bytes()

    @staticmethod
    def _local_md5(path: Path) -> str | None:
        if not path.is_file():
            return None
        return md5_file(path)
