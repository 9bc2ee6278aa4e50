from __future__ import annotations

import json
from pathlib import Path

from cache_store import CacheStore, JsonFileStorage, cache_key
from models import PaginationToken, ResultRecord, TokenKind

_RECORDS = [
    ResultRecord(
        name="Jane Doe",
        profile_url="https://scholar.google.com/citations?user=U1",
        affiliation="MIT",
        subject_id="U1",
        contact_domain="mit.edu",
        citation_count=42,
        thumbnail_url=None,
    ),
    ResultRecord(name="Jane Doe", profile_url="https://scholar.google.com/citations?hl=en"),
]
_TOKEN = PaginationToken(TokenKind.AFTER_AUTHOR, "ABC123")


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_put_then_get_returns_entry() -> None:
    store = CacheStore(clock=FakeClock())
    store.put("Jane Doe", _RECORDS, _TOKEN)

    entry = store.get("Jane Doe")
    assert entry is not None
    assert entry.subject == "jane doe"
    assert entry.records == _RECORDS
    assert entry.token == _TOKEN


def test_entry_valid_just_before_ttl_and_absent_at_ttl() -> None:
    clock = FakeClock()
    storage: dict[str, str] = {}
    store = CacheStore(storage=storage, ttl=300, clock=clock)
    store.put("Jane Doe", _RECORDS, None)
    written_at = clock.now

    clock.now = written_at + 299.999
    assert store.get("Jane Doe") is not None

    clock.now = written_at + 300
    assert store.get("Jane Doe") is None
    assert storage == {}  # evicted on read


def test_key_is_case_insensitive_and_percent_safe() -> None:
    assert cache_key("Jane Doe") == cache_key("  JANE DOE ")
    assert cache_key("Jane Doe/Ø") == "sd_cache_jane%20doe%2F%C3%B8"


def test_put_overwrites_existing_entry() -> None:
    store = CacheStore(clock=FakeClock())
    store.put("Jane Doe", _RECORDS, _TOKEN)
    store.put("jane doe", _RECORDS[:1], None)

    entry = store.get("Jane Doe")
    assert entry is not None
    assert entry.records == _RECORDS[:1]
    assert entry.token is None
    assert len(store.storage) == 1


def test_persisted_layout_is_flat_json_with_epoch_ms() -> None:
    storage: dict[str, str] = {}
    store = CacheStore(storage=storage, clock=FakeClock(1_700_000_000.5))
    store.put("Jane Doe", _RECORDS[:1], _TOKEN)

    data = json.loads(storage[cache_key("Jane Doe")])
    assert data["timestamp"] == 1_700_000_000_500
    assert data["token"] == {"kind": "after_author", "value": "ABC123"}
    assert data["records"][0]["subject_id"] == "U1"


def test_corrupt_entry_is_discarded() -> None:
    storage = {cache_key("Jane Doe"): "{not json"}
    store = CacheStore(storage=storage, clock=FakeClock())

    assert store.get("Jane Doe") is None
    assert storage == {}


def test_clear_removes_entry() -> None:
    store = CacheStore(clock=FakeClock())
    store.put("Jane Doe", _RECORDS, _TOKEN)
    store.clear("JANE DOE")
    assert store.get("Jane Doe") is None


def test_json_file_storage_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "cache" / "scholar.json"
    clock = FakeClock()
    CacheStore(storage=JsonFileStorage(path), clock=clock).put("Jane Doe", _RECORDS, _TOKEN)

    reopened = CacheStore(storage=JsonFileStorage(path), clock=clock)
    entry = reopened.get("Jane Doe")
    assert entry is not None
    assert entry.token == _TOKEN


def test_json_file_storage_ignores_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "scholar.json"
    path.write_text("garbage", encoding="utf-8")

    storage = JsonFileStorage(path)
    assert len(storage) == 0
