import json
from datetime import datetime, timedelta, timezone

import pytest

from notiontui.domain.models.cache import CacheEntry, payload_hash
from notiontui.domain.models.common import (
    BLOCKS_PREFIX,
    PAGE_PREFIX,
    is_valid_notion_id,
    make_cache_key,
    normalize_notion_id,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_cache_keys_are_namespaced():
    assert make_cache_key(PAGE_PREFIX, "abc") == "page:abc"
    assert make_cache_key(BLOCKS_PREFIX, "abc") == "blocks:abc"


@pytest.mark.parametrize(
    "raw, valid",
    [
        ("0123456789abcdef0123456789abcdef", True),
        ("01234567-89ab-cdef-0123-456789ABCDEF", True),
        ("0123456789abcdef", False),
        ("0123456789abcdef0123456789abcdeg", False),
        ("", False),
    ],
)
def test_is_valid_notion_id(raw, valid):
    assert is_valid_notion_id(raw) is valid


def test_normalize_notion_id():
    assert normalize_notion_id(" 0123-4567 ") == "01234567"


def test_entry_expiry_boundaries():
    entry = CacheEntry.create("k", {"a": 1}, ttl=60, now=NOW)

    assert not entry.is_expired(NOW + timedelta(seconds=60))
    assert entry.is_expired(NOW + timedelta(seconds=60.001))
    assert not CacheEntry.create("k", 1, ttl=-1, now=NOW).is_expired(NOW + timedelta(days=3650))


def test_payload_hash_ignores_key_order():
    assert payload_hash({"a": 1, "b": 2}) == payload_hash({"b": 2, "a": 1})


def test_entry_json_envelope():
    entry = CacheEntry.create("page:p1", {"title": "Ünïcode"}, ttl=30, now=NOW)

    restored = CacheEntry.from_json(entry.to_json())

    assert restored == entry
    assert set(json.loads(entry.to_json())) == {"key", "data", "timestamp", "ttl", "hash"}


def test_naive_timestamp_is_read_as_utc():
    raw = json.dumps({"key": "k", "data": 1, "timestamp": "2024-05-01T12:00:00", "ttl": 5})

    assert CacheEntry.from_json(raw).written_at == NOW


@pytest.mark.parametrize(
    "raw",
    [
        "[]",
        json.dumps({"key": "k", "data": 1, "timestamp": "2024-05-01T12:00:00+00:00"}),
        json.dumps({"key": "k", "data": 1, "timestamp": "yesterday", "ttl": 5}),
        json.dumps({"key": "k", "data": 1, "timestamp": "2024-05-01T12:00:00+00:00", "ttl": "5"}),
        json.dumps({"key": "k", "data": 1, "timestamp": "2024-05-01T12:00:00+00:00", "ttl": 5, "hash": "00"}),
    ],
)
def test_malformed_envelopes_are_rejected(raw):
    with pytest.raises(ValueError):
        CacheEntry.from_json(raw)


def test_naive_datetimes_are_treated_as_utc():
    naive = NOW.replace(tzinfo=None)
    entry = CacheEntry.create("k", 1, ttl=60, now=NOW)

    assert not entry.is_expired(naive + timedelta(seconds=60))
    assert entry.is_expired(naive + timedelta(seconds=61))
    assert CacheEntry.create("k", 1, ttl=60, now=naive).written_at == NOW
