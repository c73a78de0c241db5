"""Bounded in-memory response cache.

Responses are stored under a request fingerprint: a SHA-256 digest of the
method, the normalized URL, a configured subset of the headers and, for
methods other than GET, the body. Entries expire after their max-age and
are dropped lazily when looked up. When the cache is full the least
recently used entry is evicted first.

The cache is shared by every call made through a client, so all
read-modify-write sequences run under a lock.
"""

from __future__ import annotations

import hashlib
import json as jsonlib
import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .types import HTTPMethod, Request, Response

logger = logging.getLogger(__name__)

_MAX_AGE_PATTERN = re.compile(r"(?:^|,)\s*max-age\s*=\s*\"?(\d+)\"?", re.IGNORECASE)
_NO_STORE_PATTERN = re.compile(r"(?:^|,)\s*no-store\s*(?:,|$)", re.IGNORECASE)


def normalize_url(url: str, params: Mapping[str, Any] | None = None) -> str:
    """Normalize a URL for fingerprinting.

    Lower-cases the scheme and host, drops the default port and sorts the
    query parameters, merging in ``params``.
    """
    parsed = httpx.URL(url)
    if params:
        parsed = parsed.copy_merge_params(params)
    query = sorted(httpx.QueryParams(parsed.query).multi_items())
    port = parsed.port
    netloc = parsed.host.lower() if port is None else f"{parsed.host.lower()}:{port}"
    path = parsed.path or "/"
    normalized = f"{parsed.scheme.lower()}://{netloc}{path}"
    if query:
        normalized += "?" + str(httpx.QueryParams(query))
    return normalized


def fingerprint(
    request: Request,
    key_headers: frozenset[str] | None = None,
    exclude_headers: frozenset[str] = frozenset(),
) -> str:
    """Compute the cache key for a request.

    Args:
        request: Request to fingerprint
        key_headers: Header names to include; every header when None
        exclude_headers: Header names to leave out when key_headers is None

    Returns:
        Hex digest identifying the request
    """
    digest = hashlib.sha256()
    digest.update(request.method.value.encode())
    digest.update(b"\0")
    digest.update(normalize_url(request.url, request.params).encode())

    if key_headers is not None:
        selected = {k: v for k, v in request.headers.items() if k in key_headers}
    else:
        selected = {k: v for k, v in request.headers.items() if k not in exclude_headers}
    for name in sorted(selected):
        digest.update(b"\0")
        digest.update(f"{name}:{selected[name]}".encode())

    if request.method is not HTTPMethod.GET:
        digest.update(b"\0body\0")
        if request.body is not None:
            digest.update(request.body)
        elif request.json is not None:
            digest.update(jsonlib.dumps(request.json, sort_keys=True, default=str).encode())
        elif request.form is not None:
            digest.update(jsonlib.dumps(dict(request.form), sort_keys=True).encode())

    return digest.hexdigest()


def parse_max_age(response: Response) -> float | None:
    """Return the ``max-age`` declared by a response, if any."""
    cache_control = response.header("cache-control")
    if not cache_control:
        return None
    match = _MAX_AGE_PATTERN.search(cache_control)
    if not match:
        return None
    return float(match.group(1))


def is_no_store(response: Response) -> bool:
    cache_control = response.header("cache-control")
    return bool(cache_control and _NO_STORE_PATTERN.search(cache_control))


@dataclass(frozen=True)
class CacheEntry:
    """A cached response. Never mutated after insertion."""

    fingerprint: str
    response: Response
    created_at: float
    max_age: float
    size: int

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.max_age


def _entry_size(response: Response) -> int:
    return len(response.body) + sum(len(k) + len(v) for k, v in response.headers.items())


class ResponseCache:
    """Thread-safe LRU cache of responses keyed by fingerprint.

    Args:
        max_entries: Maximum number of entries
        max_size: Optional bound on the summed entry sizes in bytes
        clock: Monotonic clock returning seconds
    """

    def __init__(
        self,
        max_entries: int = 100,
        max_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Response | None:
        """Return the live response stored under ``key``, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                self._drop(key)
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.response

    def set(self, key: str, response: Response, max_age: float) -> None:
        """Store ``response`` under ``key``, replacing any existing entry."""
        size = _entry_size(response)
        if self.max_size is not None and size > self.max_size:
            logger.debug(f"Response too large to cache ({size} bytes)")
            return

        entry = CacheEntry(
            fingerprint=key,
            response=response,
            created_at=self._clock(),
            max_age=max_age,
            size=size,
        )
        with self._lock:
            if key in self._entries:
                self._drop(key)
            while self._entries and (
                len(self._entries) >= self.max_entries
                or (self.max_size is not None and self._size + size > self.max_size)
            ):
                oldest, _ = next(iter(self._entries.items()))
                self._drop(oldest)
                self._evictions += 1
            self._entries[key] = entry
            self._size += size

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._entries:
                self._drop(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0

    def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._drop(key)
            return len(expired)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "size": self._size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _drop(self, key: str) -> None:
        # Caller holds the lock
        entry = self._entries.pop(key)
        self._size -= entry.size

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
