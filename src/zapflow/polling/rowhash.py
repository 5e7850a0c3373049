"""Row-hash stores — per-trigger ``row_key → hash`` state for change detection.

Each trigger owns one mapping stored under
``"<namespace>:trigger:<trigger_id>:rowhash"``. The whole mapping is
re-written after every poll and its retention TTL refreshed, so state for
orphaned triggers expires on its own.

Backends:
    - :class:`InMemoryRowHashStore` — single process, TTL-aware (tests, dev)
    - :class:`RedisRowHashStore` — Redis hash per trigger (HGETALL/HSET/EXPIRE)

Example:
    >>> store = InMemoryRowHashStore()
    >>> store.save("t1", {"2": "ab12..."})
    >>> store.load("t1")
    {'2': 'ab12...'}
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

DEFAULT_NAMESPACE = "sheets"
DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 30


def rowhash_key(namespace: str, trigger_id: str) -> str:
    return f"{namespace}:trigger:{trigger_id}:rowhash"


@runtime_checkable
class RowHashStore(Protocol):
    """Storage contract used by the change-detection poller."""

    def load(self, trigger_id: str) -> dict[str, str]:
        """Previous hashes for a trigger (empty if none)."""
        ...

    def save(self, trigger_id: str, hashes: Mapping[str, str]) -> None:
        """Write hashes for a trigger and refresh its TTL."""
        ...

    def clear(self, trigger_id: str) -> None:
        """Drop all state for a trigger."""
        ...


class InMemoryRowHashStore:
    """Process-local store with per-trigger expiry."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: dict[str, tuple[float, dict[str, str]]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> dict[str, str] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, hashes = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return hashes

    def load(self, trigger_id: str) -> dict[str, str]:
        with self._lock:
            hashes = self._live(rowhash_key(self.namespace, trigger_id))
            return dict(hashes) if hashes else {}

    def save(self, trigger_id: str, hashes: Mapping[str, str]) -> None:
        key = rowhash_key(self.namespace, trigger_id)
        with self._lock:
            current = self._live(key) or {}
            current.update(hashes)
            self._data[key] = (self._clock() + self.ttl_seconds, current)

    def clear(self, trigger_id: str) -> None:
        with self._lock:
            self._data.pop(rowhash_key(self.namespace, trigger_id), None)


class RedisRowHashStore:
    """Redis hash per trigger.

    Args:
        client: A ``redis.Redis`` (or compatible) client
        namespace: Key prefix
        ttl_seconds: Retention refreshed on every save
    """

    def __init__(
        self,
        client: Any,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self._client = client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(
        cls,
        url: str,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> RedisRowHashStore:
        """Connect with ``redis.from_url``.

        Raises:
            ImportError: If ``redis`` package not installed.
        """
        try:
            import redis
        except ImportError as exc:
            raise ImportError(
                "Redis row-hash store requires the 'redis' package. Install with: pip install redis"
            ) from exc
        return cls(redis.from_url(url, decode_responses=True), namespace, ttl_seconds)

    @staticmethod
    def _text(value: Any) -> str:
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def load(self, trigger_id: str) -> dict[str, str]:
        raw = self._client.hgetall(rowhash_key(self.namespace, trigger_id)) or {}
        return {self._text(k): self._text(v) for k, v in raw.items()}

    def save(self, trigger_id: str, hashes: Mapping[str, str]) -> None:
        if not hashes:
            return
        key = rowhash_key(self.namespace, trigger_id)
        pipe = self._client.pipeline()
        pipe.hset(key, mapping=dict(hashes))
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    def clear(self, trigger_id: str) -> None:
        self._client.delete(rowhash_key(self.namespace, trigger_id))


__all__ = [
    "InMemoryRowHashStore",
    "RedisRowHashStore",
    "RowHashStore",
    "rowhash_key",
]
