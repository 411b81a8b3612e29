"""
Canonical-entry lookup implementations.

The engine only needs a callable ``lookup(track_id) -> Optional[CanonicalRecord]``.
This module provides three: an in-memory store (tests, offline runs), a
JSON/YAML snapshot file, and an HTTP client for the lyric database service.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote

import requests
import yaml

from .config import get_retry_config
from .models import CanonicalRecord

logger = logging.getLogger(__name__)


LookupFn = Callable[[str], Optional[CanonicalRecord]]

REQUEST_TIMEOUT = 10


class StoreError(Exception):
    """Raised when canonical data cannot be loaded or is malformed."""
    pass


class LookupUnavailableError(StoreError):
    """Raised when the canonical store cannot be reached."""
    pass


def record_from_dict(data: Mapping[str, Any], track_id: str) -> CanonicalRecord:
    """
    Build a CanonicalRecord from a store payload.

    Args:
        data: Mapping with content_hash, revision and optional id
        track_id: Fallback record id when the payload carries none

    Raises:
        StoreError: If required keys are missing or have the wrong type
    """
    if not isinstance(data, Mapping):
        raise StoreError(f"Record for {track_id} must be a mapping")
    content_hash = data.get("content_hash")
    revision = data.get("revision")
    if not isinstance(content_hash, str) or not content_hash:
        raise StoreError(f"Record for {track_id} has no content_hash")
    if not isinstance(revision, int) or isinstance(revision, bool) or revision < 0:
        raise StoreError(f"Record for {track_id} has invalid revision: {revision!r}")
    record_id = data.get("id") or data.get("record_id") or track_id
    return CanonicalRecord(record_id=str(record_id), content_hash=content_hash, revision=revision)


class InMemoryCanonicalStore:
    """Dict-backed store keyed by track id."""

    def __init__(self, records: Optional[Dict[str, CanonicalRecord]] = None):
        self.records: Dict[str, CanonicalRecord] = dict(records or {})

    def lookup(self, track_id: str) -> Optional[CanonicalRecord]:
        return self.records.get(track_id)

    def __call__(self, track_id: str) -> Optional[CanonicalRecord]:
        return self.lookup(track_id)


def load_canonical_file(path: Path) -> InMemoryCanonicalStore:
    """
    Load a canonical snapshot file (JSON or YAML).

    Accepted layouts::

        {"tracks": {"<track_id>": {"content_hash": "...", "revision": 3}}}
        {"<track_id>": {"content_hash": "...", "revision": 3}}

    Raises:
        StoreError: If the file is unreadable or malformed
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise StoreError(f"Failed to load canonical file {path}: {e}")

    if not isinstance(data, dict):
        raise StoreError(f"Canonical file {path} must contain a mapping")
    tracks = data.get("tracks", data)
    if not isinstance(tracks, dict):
        raise StoreError(f"'tracks' in {path} must be a mapping")

    records = {str(tid): record_from_dict(entry, str(tid)) for tid, entry in tracks.items()}
    logger.info(f"Loaded {len(records)} canonical record(s) from {path}")
    return InMemoryCanonicalStore(records)


class HttpCanonicalStore:
    """
    Read-only client for the lyric database service.

    ``GET {base_url}/tracks/{track_id}`` answers 200 with the record JSON or
    404 when the track has no canonical entry yet.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        retry_config: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry_config or get_retry_config()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _fetch_once(self, track_id: str) -> Optional[CanonicalRecord]:
        url = f"{self.base_url}/tracks/{quote(track_id, safe='')}"
        resp = self.session.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        try:
            payload = resp.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from {url}: {e}")
        return record_from_dict(payload, track_id)

    def lookup(self, track_id: str) -> Optional[CanonicalRecord]:
        """
        Look up with retries and exponential backoff.

        Malformed records fail immediately; transport errors are retried.

        Raises:
            LookupUnavailableError: After the last failed attempt
            StoreError: If the service returns a malformed record
        """
        max_retries = self.retry["max_retries"]
        backoff = self.retry["initial_backoff_seconds"]
        last_error = None

        for attempt in range(1, max_retries + 1):
            try:
                return self._fetch_once(track_id)
            except requests.RequestException as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(f"Retry {attempt}/{max_retries} for lookup of {track_id} in {backoff}s: {e}")
                    time.sleep(backoff)
                    backoff *= self.retry["backoff_multiplier"]
                else:
                    logger.error(f"Lookup of {track_id} failed after {max_retries} attempts: {e}")

        raise LookupUnavailableError(f"Canonical store unreachable for {track_id}: {last_error}")

    def __call__(self, track_id: str) -> Optional[CanonicalRecord]:
        return self.lookup(track_id)
