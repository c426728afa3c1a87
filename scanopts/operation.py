"""Local artifact caches and vulnerability database download operations."""

from __future__ import annotations

import dataclasses
import json
import logging
import shutil
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import redis

from scanopts.dbclient import Client, DBError, MetadataStore
from scanopts.options import CacheOption

_LOGGER = logging.getLogger("scanopts")

_ARTIFACT_BUCKET = "artifact"
_BLOB_BUCKET = "blob"
_REDIS_PREFIX = "fanal"


class CacheError(Exception):
    """Raised when a cache cannot be opened, read, written or cleared."""


def _encode(value: Any) -> str:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, default=str, sort_keys=True)


class FSCache:
    """Artifact and blob cache kept in an SQLite file under ``<cache_dir>/fanal``."""

    def __init__(self, cache_dir: str | Path) -> None:
        self.directory = Path(cache_dir) / "fanal"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._conn: sqlite3.Connection | None = sqlite3.connect(self.directory / "fanal.db")
            with self._conn:
                for bucket in (_ARTIFACT_BUCKET, _BLOB_BUCKET):
                    self._conn.execute(
                        f"CREATE TABLE IF NOT EXISTS {bucket} (id TEXT PRIMARY KEY, data TEXT NOT NULL)"
                    )
        except (OSError, sqlite3.Error) as exc:
            raise CacheError(f"unable to open the cache database: {exc}") from exc

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheError("the cache is closed")
        return self._conn

    def _put(self, bucket: str, key: str, value: Any) -> None:
        try:
            with self._db as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {bucket} (id, data) VALUES (?, ?)", (key, _encode(value))
                )
        except sqlite3.Error as exc:
            raise CacheError(f"unable to store {bucket} {key}: {exc}") from exc

    def _get(self, bucket: str, key: str) -> Any:
        try:
            row = self._db.execute(f"SELECT data FROM {bucket} WHERE id = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"unable to read {bucket} {key}: {exc}") from exc
        if row is None:
            raise CacheError(f"{bucket} not found in the cache: {key}")
        return json.loads(row[0])

    def _exists(self, bucket: str, key: str) -> bool:
        try:
            row = self._db.execute(f"SELECT 1 FROM {bucket} WHERE id = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"unable to read {bucket} {key}: {exc}") from exc
        return row is not None

    def put_artifact(self, artifact_id: str, artifact_info: Any) -> None:
        self._put(_ARTIFACT_BUCKET, artifact_id, artifact_info)

    def put_blob(self, diff_id: str, blob_info: Any) -> None:
        self._put(_BLOB_BUCKET, diff_id, blob_info)

    def get_artifact(self, artifact_id: str) -> Any:
        return self._get(_ARTIFACT_BUCKET, artifact_id)

    def get_blob(self, diff_id: str) -> Any:
        return self._get(_BLOB_BUCKET, diff_id)

    def missing_blobs(self, artifact_id: str, blob_ids: list[str]) -> tuple[bool, list[str]]:
        """Return whether the artifact is missing and which blobs are."""
        missing_artifact = not self._exists(_ARTIFACT_BUCKET, artifact_id)
        missing = [blob_id for blob_id in blob_ids if not self._exists(_BLOB_BUCKET, blob_id)]
        return missing_artifact, missing

    def clear(self) -> None:
        """Close the cache and remove its directory."""
        self.close()
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise CacheError(f"unable to remove {self.directory}: {exc}") from exc

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class RedisCache:
    """Artifact and blob cache kept in redis under ``fanal::`` keys."""

    def __init__(self, client: Any) -> None:
        self.client = client

    @staticmethod
    def _key(bucket: str, key: str) -> str:
        return f"{_REDIS_PREFIX}::{bucket}::{key}"

    def _put(self, bucket: str, key: str, value: Any) -> None:
        try:
            self.client.set(self._key(bucket, key), _encode(value))
        except redis.RedisError as exc:
            raise CacheError(f"unable to store {bucket} {key}: {exc}") from exc

    def _get(self, bucket: str, key: str) -> Any:
        try:
            data = self.client.get(self._key(bucket, key))
        except redis.RedisError as exc:
            raise CacheError(f"unable to read {bucket} {key}: {exc}") from exc
        if data is None:
            raise CacheError(f"{bucket} not found in the cache: {key}")
        return json.loads(data)

    def _exists(self, bucket: str, key: str) -> bool:
        try:
            return bool(self.client.exists(self._key(bucket, key)))
        except redis.RedisError as exc:
            raise CacheError(f"unable to read {bucket} {key}: {exc}") from exc

    def put_artifact(self, artifact_id: str, artifact_info: Any) -> None:
        self._put(_ARTIFACT_BUCKET, artifact_id, artifact_info)

    def put_blob(self, diff_id: str, blob_info: Any) -> None:
        self._put(_BLOB_BUCKET, diff_id, blob_info)

    def get_artifact(self, artifact_id: str) -> Any:
        return self._get(_ARTIFACT_BUCKET, artifact_id)

    def get_blob(self, diff_id: str) -> Any:
        return self._get(_BLOB_BUCKET, diff_id)

    def missing_blobs(self, artifact_id: str, blob_ids: list[str]) -> tuple[bool, list[str]]:
        """Return whether the artifact is missing and which blobs are."""
        missing_artifact = not self._exists(_ARTIFACT_BUCKET, artifact_id)
        missing = [blob_id for blob_id in blob_ids if not self._exists(_BLOB_BUCKET, blob_id)]
        return missing_artifact, missing

    def clear(self) -> None:
        """Delete every cache key."""
        try:
            for key in list(self.client.scan_iter(match=f"{_REDIS_PREFIX}::*")):
                self.client.delete(key)
        except redis.RedisError as exc:
            raise CacheError(f"unable to clear the redis cache: {exc}") from exc

    def close(self) -> None:
        self.client.close()


@dataclass
class Cache:
    """A cache backend together with the directory the database lives in."""

    backend: FSCache | RedisCache
    cache_dir: str

    def __enter__(self) -> Cache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def reset(self) -> None:
        """Remove the database and every cached artifact."""
        try:
            self.clear_db()
        except CacheError as exc:
            raise CacheError(f"failed to clear the database: {exc}") from exc
        try:
            self.clear_artifacts()
        except CacheError as exc:
            raise CacheError(f"failed to clear the artifact cache: {exc}") from exc

    def clear_db(self) -> None:
        """Remove the whole cache directory."""
        _LOGGER.info("Removing DB file...")
        try:
            shutil.rmtree(self.cache_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise CacheError(f"failed to remove the directory ({self.cache_dir}) : {exc}") from exc

    def clear_artifacts(self) -> None:
        """Remove every cached artifact and blob."""
        _LOGGER.info("Removing artifact caches...")
        try:
            self.backend.clear()
        except CacheError as exc:
            raise CacheError(f"failed to remove the cache: {exc}") from exc

    def close(self) -> None:
        self.backend.close()


def new_cache(cache_option: CacheOption, cache_dir: str) -> Cache:
    """Open the redis cache for a ``redis://`` backend, else the filesystem cache."""
    url = cache_option.cache_backend
    if url.startswith("redis://"):
        _LOGGER.info(f"Redis cache: {url}")
        kwargs: dict[str, Any] = {}
        tls = cache_option.redis_option
        if not tls.is_empty():
            for path in (tls.redis_ca_cert, tls.redis_cert, tls.redis_key):
                if not Path(path).is_file():
                    raise CacheError(f"unable to read the TLS file: {path}")
            kwargs = {
                "connection_class": redis.SSLConnection,
                "ssl_ca_certs": tls.redis_ca_cert,
                "ssl_certfile": tls.redis_cert,
                "ssl_keyfile": tls.redis_key,
            }
        try:
            client = redis.Redis.from_url(url, **kwargs)
        except ValueError as exc:
            raise CacheError(f"invalid redis URL: {exc}") from exc
        return Cache(RedisCache(client), cache_dir)

    try:
        backend = FSCache(cache_dir)
    except CacheError as exc:
        raise CacheError(f"unable to initialize fs cache: {exc}") from exc
    return Cache(backend, cache_dir)


def download_db(
    app_version: str,
    cache_dir: str,
    quiet: bool,
    skip_update: bool,
    client: Client | None = None,
) -> None:
    """Download the database when it is missing or stale, then check its metadata."""
    if client is None:
        client = Client(cache_dir, quiet)
    try:
        needs_update = client.needs_update(app_version, skip_update)
    except DBError as exc:
        raise DBError(f"database error: {exc}") from exc

    if needs_update:
        _LOGGER.info("Need to update DB")
        _LOGGER.info("Downloading DB...")
        try:
            client.download(cache_dir)
        except DBError as exc:
            raise DBError(f"failed to download vulnerability DB: {exc}") from exc

    try:
        meta = MetadataStore(cache_dir).get()
    except DBError as exc:
        raise DBError(f"failed to show database info: something wrong with DB: {exc}") from exc
    _LOGGER.debug(
        f"DB Schema: {meta.version}, UpdatedAt: {meta.updated_at}, "
        f"NextUpdate: {meta.next_update}, DownloadedAt: {meta.downloaded_at}"
    )