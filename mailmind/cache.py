"""
Result cache: per-message analysis summaries with age-based eviction.

Entries live in a KeyValueStore under one namespace, one stored value per
message id. Writes to the same key are serialized with a per-key lock so a
read-merge-write can never be computed against a stale read.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError

from .errors import CacheUnavailable
from .models import CacheEntry, CacheEntryUpdate
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "emailCache"
DEFAULT_SOFT_CEILING = 100
DEFAULT_MAX_AGE = timedelta(days=7)
DEFAULT_SWEEP_INTERVAL = timedelta(minutes=60)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResultCache:
    def __init__(
        self,
        store: KeyValueStore,
        soft_ceiling: int = DEFAULT_SOFT_CEILING,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Optional[Clock] = None,
        namespace: str = CACHE_NAMESPACE,
    ) -> None:
        self.store = store
        self.soft_ceiling = soft_ceiling
        self.max_age = max_age
        self.namespace = namespace
        self._clock = clock or utc_now
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # -- locking -------------------------------------------------------------

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    # -- raw store access ----------------------------------------------------

    async def _raw_get(self, key: str) -> Optional[dict]:
        try:
            return await self.store.get(self.namespace, key)
        except Exception as e:
            raise CacheUnavailable(f"Cache read failed for {key!r}: {e}") from e

    async def _raw_set(self, entry: CacheEntry) -> None:
        try:
            await self.store.set(self.namespace, entry.key, entry.model_dump(mode="json"))
        except Exception as e:
            raise CacheUnavailable(f"Cache write failed for {entry.key!r}: {e}") from e

    async def _raw_delete(self, key: str) -> None:
        try:
            await self.store.delete(self.namespace, key)
        except Exception as e:
            raise CacheUnavailable(f"Cache delete failed for {key!r}: {e}") from e

    async def _raw_keys(self) -> List[str]:
        try:
            return await self.store.keys(self.namespace)
        except Exception as e:
            raise CacheUnavailable(f"Cache listing failed: {e}") from e

    def _parse(self, key: str, raw: Optional[dict]) -> Optional[CacheEntry]:
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValidationError as ve:
            logger.warning("Ignoring malformed cache entry for %s: %s", key, ve)
            return None

    # -- public API ----------------------------------------------------------

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key, or None if nothing (valid) is cached."""
        return self._parse(key, await self._raw_get(key))

    async def put(self, key: str, update: CacheEntryUpdate) -> CacheEntry:
        """
        Merge update into the entry for key and stamp updated_at.

        Fields not set on update keep their stored values. Triggers a sweep
        if the cache has grown past its soft ceiling.
        """
        fields = {
            name: getattr(update, name)
            for name in update.model_fields_set
            if getattr(update, name) is not None
        }

        async with self._key_lock(key):
            existing = self._parse(key, await self._raw_get(key))
            now = self._clock()
            if existing is None:
                entry = CacheEntry(key=key, updated_at=now, **fields)
            else:
                if now < existing.updated_at:
                    now = existing.updated_at
                entry = existing.model_copy(update={**fields, "updated_at": now})
            await self._raw_set(entry)

        logger.debug("Cache entry %s updated (fields=%s)", key, sorted(fields))

        count = len(await self._raw_keys())
        if count > self.soft_ceiling:
            logger.info(
                "Cache holds %d entries (soft ceiling %d); sweeping.",
                count,
                self.soft_ceiling,
            )
            await self.sweep()

        return entry

    async def sweep(self, max_age: Optional[timedelta] = None) -> int:
        """
        Remove every entry last updated before now - max_age.

        Returns the number of entries removed. Malformed entries are removed too.
        """
        max_age = self.max_age if max_age is None else max_age
        cutoff = self._clock() - max_age
        removed = 0
        keys = await self._raw_keys()

        for key in keys:
            async with self._key_lock(key):
                raw = await self._raw_get(key)
                if raw is None:
                    continue
                entry = self._parse(key, raw)
                if entry is None or entry.updated_at < cutoff:
                    await self._raw_delete(key)
                    removed += 1

        logger.info(
            "Cache swept: removed %d entries, %d remaining.",
            removed,
            len(keys) - removed,
        )
        return removed

    async def sweep_periodically(
        self,
        interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        max_age: Optional[timedelta] = None,
    ) -> None:
        """Sweep every interval until cancelled. Failures are logged and retried next cycle."""
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                await self.sweep(max_age)
            except CacheUnavailable as e:
                logger.warning("Periodic cache sweep failed: %s", e)

    def start_periodic_sweep(
        self,
        interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        max_age: Optional[timedelta] = None,
    ) -> "asyncio.Task[None]":
        return asyncio.create_task(self.sweep_periodically(interval, max_age))
