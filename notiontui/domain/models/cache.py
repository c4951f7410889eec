"""Cache value objects: the on-disk envelope and the statistics snapshot."""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def canonical_json(value: Any) -> str:
    """Serializes a value deterministically (sorted keys, compact separators)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_hash(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of a payload."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A single cached item with its write time and time-to-live.

    ``ttl`` is in seconds; zero or negative means the entry never expires.
    """

    key: str
    data: Any
    written_at: datetime
    ttl: float
    hash: str = ""

    @classmethod
    def create(cls, key: str, data: Any, ttl: float, now: Optional[datetime] = None) -> "CacheEntry":
        """Builds a fresh entry stamped with ``now`` and the payload hash."""
        written_at = now or utcnow()
        if written_at.tzinfo is None:
            written_at = written_at.replace(tzinfo=timezone.utc)
        return cls(
            key=key,
            data=data,
            written_at=written_at,
            ttl=float(ttl),
            hash=payload_hash(data),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when ``ttl > 0`` and more than ``ttl`` seconds have elapsed.

        A naive ``now`` is taken to be UTC, matching how envelopes are read.
        """
        if self.ttl <= 0:
            return False
        current = now or utcnow()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current - self.written_at > timedelta(seconds=self.ttl)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "data": self.data,
            "timestamp": self.written_at.isoformat(),
            "ttl": self.ttl,
            "hash": self.hash,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        """Parses an envelope written by ``to_json``.

        Raises:
            ValueError: If the text is not a well-formed envelope or the
                stored hash does not match the payload.
        """
        obj = json.loads(raw)
        if not isinstance(obj, dict):
            raise ValueError("cache envelope is not a JSON object")
        missing = [name for name in ("key", "data", "timestamp", "ttl") if name not in obj]
        if missing:
            raise ValueError(f"cache envelope missing fields: {', '.join(missing)}")

        written_at = datetime.fromisoformat(obj["timestamp"])
        if written_at.tzinfo is None:
            written_at = written_at.replace(tzinfo=timezone.utc)
        ttl = obj["ttl"]
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise ValueError(f"cache envelope ttl is not a number: {ttl!r}")

        stored_hash = obj.get("hash", "")
        if stored_hash and stored_hash != payload_hash(obj["data"]):
            raise ValueError("cache envelope hash mismatch")

        return cls(
            key=str(obj["key"]),
            data=obj["data"],
            written_at=written_at,
            ttl=float(ttl),
            hash=stored_hash,
        )


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache usage.

    ``hit_count`` and ``miss_count`` are lifetime counters; ``size`` is the
    number of entries currently stored.
    """

    hit_count: int = 0
    miss_count: int = 0
    size: int = 0

    @property
    def lookups(self) -> int:
        return self.hit_count + self.miss_count

    @property
    def hit_ratio(self) -> float:
        return self.hit_count / self.lookups if self.lookups else 0.0
