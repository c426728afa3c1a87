"""Client for a remote artifact cache served over Twirp with JSON."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from typing import Any

import requests

CACHE_PATH_PREFIX = "/twirp/trivy.cache.v1.Cache/"


class RemoteCacheError(Exception):
    """Raised when the remote cache rejects or fails a request."""


def _plain(value: Any) -> Any:
    if value is None:
        return {}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return dict(value)
    return value


class RemoteCache:
    """Stores and queries artifacts and blobs on a remote cache server."""

    def __init__(
        self,
        url: str,
        custom_headers: Mapping[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._headers = dict(custom_headers or {})
        self._session = session or requests.Session()

    def _call(self, method: str, payload: dict) -> dict:
        headers = {"Content-Type": "application/json", **self._headers}
        try:
            resp = self._session.post(
                f"{self._url}{CACHE_PATH_PREFIX}{method}",
                data=json.dumps(payload, default=str),
                headers=headers,
            )
        except requests.RequestException as exc:
            raise RemoteCacheError(f"twirp error unavailable: {exc}") from exc
        if resp.status_code != 200:
            try:
                body = resp.json()
                code = body.get("code", "internal")
                msg = body.get("msg", "")
            except ValueError:
                code, msg = "internal", resp.text
            raise RemoteCacheError(f"twirp error {code}: {msg}")
        return resp.json() if resp.content else {}

    def put_artifact(self, artifact_id: str, artifact_info: Any) -> None:
        try:
            self._call("PutArtifact", {"artifact_id": artifact_id, "artifact_info": _plain(artifact_info)})
        except RemoteCacheError as exc:
            raise RemoteCacheError(f"unable to store cache on the server: {exc}") from exc

    def put_blob(self, diff_id: str, blob_info: Any) -> None:
        try:
            self._call("PutBlob", {"diff_id": diff_id, "blob_info": _plain(blob_info)})
        except RemoteCacheError as exc:
            raise RemoteCacheError(f"unable to store cache on the server: {exc}") from exc

    def missing_blobs(self, artifact_id: str, blob_ids: list[str]) -> tuple[bool, list[str]]:
        """Return whether the artifact is missing and which blobs are."""
        try:
            body = self._call("MissingBlobs", {"artifact_id": artifact_id, "blob_ids": list(blob_ids)})
        except RemoteCacheError as exc:
            raise RemoteCacheError(f"unable to fetch missing layers: {exc}") from exc
        return bool(body.get("missing_artifact", False)), list(body.get("missing_blob_ids") or [])