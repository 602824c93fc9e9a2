"""Filesystem response cache with per-category TTLs.

Layout: ``<cache_dir>/<category>/<key>.json``, one entry per file. Keys are
the first 16 hex digits of the SHA-256 of the request path and body.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from feedlyclient.clock import Clock, SystemClock

logger = structlog.get_logger()

_HOUR = timedelta(hours=1)

TTL_MAP: dict[str, timedelta] = {
    "trending": _HOUR,
    "dashboard": 2 * _HOUR,
    "cve-entity": 24 * _HOUR,
    "threat-actor": timedelta(days=7),
    "malware": timedelta(days=7),
    "trending-actors": _HOUR,
    "trending-malware": _HOUR,
    "entity-search": 24 * _HOUR,
    "actor-relations": 24 * _HOUR,
    "detection-rules": timedelta(days=7),
    "search": timedelta(minutes=30),
    "stream": timedelta(minutes=30),
    "ioc": 6 * _HOUR,
    "tags": 24 * _HOUR,
    "profile": _HOUR,
    "batch-articles": 6 * _HOUR,
}
DEFAULT_TTL = _HOUR


class CacheEntry(BaseModel):
    data: Any
    cached_at: datetime
    expires_at: datetime
    endpoint: str


@dataclass(frozen=True)
class PurgeResult:
    purged: int
    remaining: int


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    expired: int
    live: int
    by_category: dict[str, int] = field(default_factory=dict)


def cache_key(path: str, body: str | None = None) -> str:
    digest = hashlib.sha256(path.encode("utf-8"))
    if body:
        digest.update(body.encode("utf-8"))
    return digest.hexdigest()[:16]


def ttl_for(category: str) -> timedelta:
    return TTL_MAP.get(category, DEFAULT_TTL)


class ResponseCache:
    """Per-category JSON response cache.

    Unreadable entries are deleted on sight and treated as misses.
    """

    def __init__(self, base_dir: str | Path, clock: Clock | None = None) -> None:
        self.base_dir = Path(base_dir).expanduser()
        self.clock = clock or SystemClock()

    def _entry_path(self, category: str, path: str, body: str | None) -> Path:
        return self.base_dir / category / f"{cache_key(path, body)}.json"

    def _read(self, entry_path: Path) -> CacheEntry | None:
        if not entry_path.exists():
            return None
        try:
            return CacheEntry.model_validate_json(entry_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Dropping unreadable cache entry", path=str(entry_path), error=str(exc))
            entry_path.unlink(missing_ok=True)
            return None

    def _expired(self, entry: CacheEntry) -> bool:
        return self.clock.now() > entry.expires_at

    def get(self, category: str, path: str, body: str | None = None) -> Any | None:
        """Return cached data that has not expired.

        Expired entries stay on disk for ``get_stale`` until ``purge_expired`` runs.
        """
        entry = self._read(self._entry_path(category, path, body))
        if entry is None or self._expired(entry):
            return None
        return entry.data

    def get_stale(self, category: str, path: str, body: str | None = None) -> Any | None:
        """Return cached data regardless of age."""
        entry = self._read(self._entry_path(category, path, body))
        return entry.data if entry is not None else None

    def set(self, category: str, path: str, data: Any, body: str | None = None) -> None:
        now = self.clock.now()
        entry = CacheEntry(data=data, cached_at=now, expires_at=now + ttl_for(category), endpoint=path)
        entry_path = self._entry_path(category, path, body)
        entry_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = entry_path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(entry.model_dump(mode="json"), indent=2), encoding="utf-8")
        os.replace(tmp_path, entry_path)

    def _entries(self):
        if not self.base_dir.exists():
            return
        for category_dir in sorted(p for p in self.base_dir.iterdir() if p.is_dir()):
            for entry_path in sorted(category_dir.glob("*.json")):
                yield category_dir.name, entry_path

    def purge_expired(self) -> PurgeResult:
        purged = 0
        remaining = 0
        for _, entry_path in self._entries():
            entry = self._read(entry_path)
            if entry is None:
                purged += 1
            elif self._expired(entry):
                entry_path.unlink(missing_ok=True)
                purged += 1
            else:
                remaining += 1
        if purged:
            logger.info("Purged expired cache entries", purged=purged, remaining=remaining)
        return PurgeResult(purged=purged, remaining=remaining)

    def stats(self) -> CacheStats:
        """Count entries without deleting anything."""
        total = 0
        expired = 0
        by_category: dict[str, int] = {}
        for category, entry_path in self._entries():
            total += 1
            by_category[category] = by_category.get(category, 0) + 1
            try:
                entry = CacheEntry.model_validate_json(entry_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError):
                expired += 1
                continue
            if self._expired(entry):
                expired += 1
        return CacheStats(total_entries=total, expired=expired, live=total - expired, by_category=by_category)
