"""Vulnerability database metadata and update decisions."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

_LOGGER = logging.getLogger("scanopts")

SCHEMA_VERSION = 2
DB_REPOSITORY = "ghcr.io/aquasecurity/trivy-db"
DB_MEDIA_TYPE = "application/vnd.aquasec.trivy.db.layer.v1.tar+gzip"

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


class DBError(Exception):
    """Raised when the database cannot be checked or downloaded."""


def _format_time(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.match(text)
    if match is None:
        raise DBError(f"invalid time: {text}")
    year, month, day, hour, minute, second, frac, zone = match.groups()
    micro = int((frac or "").ljust(6, "0")[:6])
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    ).astimezone(timezone.utc)


@dataclass
class Metadata:
    """State of a downloaded database."""

    version: int = 0
    next_update: datetime = ZERO_TIME
    updated_at: datetime = ZERO_TIME
    downloaded_at: datetime = ZERO_TIME

    def is_empty(self) -> bool:
        return self == Metadata()

    def to_json(self) -> dict:
        return {
            "Version": self.version,
            "NextUpdate": _format_time(self.next_update),
            "UpdatedAt": _format_time(self.updated_at),
            "DownloadedAt": _format_time(self.downloaded_at),
        }

    @classmethod
    def from_json(cls, data: dict) -> Metadata:
        return cls(
            version=int(data.get("Version", 0)),
            next_update=_parse_time(data.get("NextUpdate", _format_time(ZERO_TIME))),
            updated_at=_parse_time(data.get("UpdatedAt", _format_time(ZERO_TIME))),
            downloaded_at=_parse_time(data.get("DownloadedAt", _format_time(ZERO_TIME))),
        )


class MetadataStore:
    """Reads and writes ``db/metadata.json`` under a cache directory."""

    def __init__(self, cache_dir: str | Path) -> None:
        self.path = Path(cache_dir) / "db" / "metadata.json"

    def get(self) -> Metadata:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise DBError(f"unable to open a file: {exc}") from exc
        return Metadata.from_json(data)

    def update(self, meta: Metadata) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(meta.to_json()), encoding="utf-8")
        except OSError as exc:
            raise DBError(f"unable to write metadata: {exc}") from exc

    def delete(self) -> None:
        try:
            self.path.unlink()
        except OSError as exc:
            raise DBError(f"unable to remove the metadata file: {exc}") from exc


class Artifact(Protocol):
    """Something that can unpack the database into a directory."""

    def download(self, dst: str) -> None: ...


def _real_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Client:
    """Decides whether the database needs updating and downloads it."""

    cache_dir: str
    quiet: bool = False
    artifact: Artifact | None = None
    clock: Callable[[], datetime] = _real_clock
    metadata: MetadataStore = field(init=False)

    def __post_init__(self) -> None:
        self.metadata = MetadataStore(self.cache_dir)

    def needs_update(self, cli_version: str, skip: bool) -> bool:
        try:
            meta = self.metadata.get()
        except DBError as exc:
            _LOGGER.debug(f"There is no valid metadata file: {exc}")
            if skip:
                _LOGGER.error("The first run cannot skip downloading DB")
                raise DBError("--skip-update cannot be specified on the first run") from exc
            meta = Metadata(version=SCHEMA_VERSION)

        if SCHEMA_VERSION < meta.version:
            _LOGGER.error(f"Trivy version ({cli_version}) is old. Update to the latest version.")
            raise DBError(
                "the version of DB schema doesn't match. "
                f"Local DB: {meta.version}, Expected: {SCHEMA_VERSION}"
            )

        if skip:
            if meta.version != SCHEMA_VERSION:
                _LOGGER.error("The local DB has an old schema version. It needs to be updated.")
                raise DBError("validate error: --skip-update cannot be specified with the old DB schema")
            return False

        if meta.version != SCHEMA_VERSION:
            return True
        return not self._is_new_db(meta)

    def _is_new_db(self, meta: Metadata) -> bool:
        now = self.clock()
        if now < meta.next_update:
            _LOGGER.debug("DB update was skipped because the local DB is the latest")
            return True
        if now < meta.downloaded_at + timedelta(hours=1):
            _LOGGER.debug("DB update was skipped because the local DB was downloaded during the last hour")
            return True
        return False

    def download(self, dst: str) -> None:
        """Download the database into ``dst`` and stamp the download time."""
        try:
            self.metadata.delete()
        except DBError:
            _LOGGER.debug("no metadata file")

        if self.artifact is None:
            raise DBError(
                f"OCI artifact error: no artifact for {DB_REPOSITORY}:{SCHEMA_VERSION} ({DB_MEDIA_TYPE})"
            )
        try:
            self.artifact.download(str(Path(dst) / "db"))
        except Exception as exc:
            raise DBError(f"database download error: {exc}") from exc

        store = MetadataStore(dst)
        try:
            meta = store.get()
            meta.downloaded_at = self.clock().astimezone(timezone.utc)
            store.update(meta)
        except DBError as exc:
            raise DBError(f"failed to update downloaded_at: {exc}") from exc