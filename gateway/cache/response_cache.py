from __future__ import annotations
from typing import Any, Hashable, Mapping, MutableMapping
from hashlib import sha256
from json import dumps
from logging import getLogger
from time import monotonic
from cachetools import LRUCache, TTLCache
from gateway.interfaces.operation import ExecutionResult


logger = getLogger(__name__)

CacheKey = tuple[str | None, str]


def operation_signature(
    query: str,
    variables: Mapping[str, Any] | None = None,
    operation_name: str | None = None,
) -> str:
    # Printed query text, so whitespace differences in the raw request do not matter
    canonical = dumps(
        {"query": query, "variables": variables or {}, "operationName": operation_name},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return sha256(canonical.encode()).hexdigest()


def build_store(
    ttl: float | None = None, max_entries: int = 1000, timer=monotonic
) -> MutableMapping[Hashable, ExecutionResult]:
    """LRU store bounded to `max_entries`; entries also expire after `ttl` seconds if set."""
    if ttl is None:
        return LRUCache(maxsize=max_entries)
    return TTLCache(maxsize=max_entries, ttl=ttl, timer=timer)


class ResponseCache:
    """Execution results partitioned by session.

    Keys are `(session_key, signature)`; `None` is the no-session partition,
    so a result stored for one session can never be read with another session
    key, or with none. Expiry and eviction belong to the store. The cache is an
    optimisation only: any failure of the store is logged and behaves like a
    miss.
    """

    def __init__(self, store: MutableMapping[Hashable, ExecutionResult] | None = None):
        self.store = store if store is not None else build_store()

    def __len__(self) -> int:
        return len(self.store)

    def get(self, session_key: str | None, signature: str) -> ExecutionResult | None:
        key: CacheKey = (session_key, signature)
        try:
            return self.store.get(key)
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("cache read failed: %s", e, extra={"event": "cache-error"})
            return None

    def put(self, session_key: str | None, signature: str, result: ExecutionResult) -> None:
        key: CacheKey = (session_key, signature)
        try:
            self.store[key] = result
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("cache write failed: %s", e, extra={"event": "cache-error"})

    def clear(self) -> None:
        self.store.clear()
