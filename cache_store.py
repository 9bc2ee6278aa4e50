"""TTL-bounded cache of aggregated author search results."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterator, MutableMapping
from json import JSONDecodeError
from pathlib import Path
from typing import Callable
from urllib.parse import quote

from models import CacheEntry, PaginationToken, ResultRecord

CACHE_TTL_SECONDS = float(os.getenv("SD_CACHE_TTL_SECONDS", "300"))
CACHE_KEY_PREFIX = "sd_cache_"

LOGGER = logging.getLogger(__name__)


def normalize_subject(subject: str) -> str:
    return subject.strip().lower()


def cache_key(subject: str) -> str:
    """Case-insensitive, percent-safe storage key for a subject name."""
    return CACHE_KEY_PREFIX + quote(normalize_subject(subject), safe="")


class CacheStore:
    """One entry per subject; expired entries are evicted when read.

    Args:
        storage: Backing string mapping. Defaults to an in-memory dict, which
            lives as long as the process (the browsing-session equivalent).
        ttl: Entry lifetime in seconds.
        clock: Returns the current epoch time in seconds.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str] | None = None,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage: MutableMapping[str, str] = {} if storage is None else storage
        self.ttl = ttl
        self._clock = clock

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    def get(self, subject: str) -> CacheEntry | None:
        key = cache_key(subject)
        raw = self.storage.get(key)
        if raw is None:
            return None

        try:
            entry = _decode_entry(normalize_subject(subject), raw)
        except (JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Discarding unreadable cache entry for subject=%s: %s", subject, exc)
            self.storage.pop(key, None)
            return None

        elapsed_ms = self._now_ms() - entry.timestamp
        if elapsed_ms >= self.ttl * 1000:
            LOGGER.debug("Cache entry expired for subject=%s (age=%sms)", subject, elapsed_ms)
            self.storage.pop(key, None)
            return None

        LOGGER.info("Using cached results for subject=%s (%s records)", subject, len(entry.records))
        return entry

    def put(
        self,
        subject: str,
        records: list[ResultRecord],
        token: PaginationToken | None,
    ) -> None:
        payload = {
            "timestamp": self._now_ms(),
            "records": [record.to_dict() for record in records],
            "token": token.to_dict() if token is not None else None,
        }
        try:
            self.storage[cache_key(subject)] = json.dumps(payload, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.error("Cache write failed for subject=%s: %s", subject, exc)

    def clear(self, subject: str) -> None:
        self.storage.pop(cache_key(subject), None)


def _decode_entry(subject: str, raw: str) -> CacheEntry:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("cache entry is not an object")

    records = data["records"]
    if not isinstance(records, list):
        raise ValueError("cache records is not a list")

    return CacheEntry(
        subject=subject,
        timestamp=int(data["timestamp"]),
        records=[ResultRecord.from_dict(item) for item in records],
        token=PaginationToken.from_dict(data.get("token")),
    )


class JsonFileStorage(MutableMapping[str, str]):
    """String mapping persisted as a single JSON object on disk.

    Lets cached searches survive between CLI runs. The file is rewritten on
    every mutation.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable cache file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(self._data, fh, ensure_ascii=False)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)
