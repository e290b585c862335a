"""
Remote collection cache.

"Give me the current collection for key K" with caching, one shared
in-flight request per key, and explicit invalidation.

Guarantees:
    - A refetch replaces the cached list atomically; the previous list is
      served until the new one has fully arrived and validated.
    - A failed load keeps the last-known-good list and records the error.
      Nothing is retried automatically.
    - Last-invalidate-wins: a response to a request issued before the
      latest invalidation is stored but stays stale, and new callers never
      join that request.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

import structlog
from pydantic import BaseModel, ValidationError as PydanticValidationError

from exceptions import AppError, CollectionLoadError, ResourceNotFoundError
from models.table import PageStatus, Record, ResourceConfig

logger = structlog.get_logger(__name__)

Loader = Callable[[str], Awaitable[list[Record]]]
Subscriber = Callable[[str], None]


@dataclass
class CacheEntry:
    """Cached state of one collection key."""
    key: str
    records: Optional[list[Record]] = None
    fetched_at: Optional[datetime] = None
    loaded_tick: float = 0.0
    stale: bool = True
    error: Optional[AppError] = None
    # bumped on every invalidation
    generation: int = 0
    # generation of the request whose result is currently stored
    stored_generation: int = -1


@dataclass
class CacheSnapshot:
    """Read-only view of one key for rendering."""
    key: str
    status: PageStatus
    records: list[Record] = field(default_factory=list)
    has_records: bool = False
    error: Optional[AppError] = None
    fetched_at: Optional[datetime] = None
    stale: bool = True
    loading: bool = False


class RemoteCollectionCache:
    """
    Per-session cache of remote collections.

    Args:
        loader: Coroutine function fetching one key's records
        stale_after: Seconds a loaded list stays fresh (None = until invalidated)
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        loader: Loader,
        stale_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._stale_after = stale_after
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, tuple[int, asyncio.Task]] = {}
        self._subscribers: dict[str, list[Subscriber]] = {}

    # ===================
    # READS
    # ===================

    def _entry(self, key: str) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.records is None or entry.stale:
            return False
        if self._stale_after is not None:
            return self._clock() - entry.loaded_tick < self._stale_after
        return True

    async def fetch(self, key: str) -> list[Record]:
        """
        Current collection for key.

        Returns the cached list when fresh; otherwise joins the in-flight
        request for the key or starts one.

        Raises:
            CollectionLoadError: If the load fails
        """
        if self.is_fresh(key):
            return list(self._entries[key].records)

        entry = self._entry(key)
        inflight = self._inflight.get(key)
        if inflight is not None and inflight[0] == entry.generation:
            task = inflight[1]
            logger.debug("collection_fetch_joined", key=key, generation=entry.generation)
        else:
            task = self._start(key, entry.generation)

        records = await asyncio.shield(task)
        return list(records)

    async def load(self, key: str) -> CacheSnapshot:
        """Fetch, reporting a load failure as snapshot state instead of raising."""
        try:
            await self.fetch(key)
        except CollectionLoadError:
            pass
        return self.snapshot(key)

    def peek(self, key: str) -> Optional[list[Record]]:
        """Last-known-good records without fetching (None if never loaded)."""
        entry = self._entries.get(key)
        if entry is None or entry.records is None:
            return None
        return list(entry.records)

    def snapshot(self, key: str) -> CacheSnapshot:
        """Status of key: loading, ready or failed, plus last-known-good rows."""
        entry = self._entries.get(key) or CacheEntry(key=key)
        loading = key in self._inflight

        if entry.error is not None:
            status = PageStatus.FAILED
        elif entry.records is not None:
            status = PageStatus.READY
        else:
            status = PageStatus.LOADING

        return CacheSnapshot(
            key=key,
            status=status,
            records=list(entry.records or []),
            has_records=entry.records is not None,
            error=entry.error,
            fetched_at=entry.fetched_at,
            stale=not self.is_fresh(key),
            loading=loading,
        )

    # ===================
    # LOADING
    # ===================

    def _start(self, key: str, generation: int) -> asyncio.Task:
        logger.info("collection_fetch_started", key=key, generation=generation)
        task = asyncio.get_running_loop().create_task(self._run(key, generation))
        task.add_done_callback(_consume_result)
        self._inflight[key] = (generation, task)
        return task

    async def _run(self, key: str, generation: int) -> list[Record]:
        try:
            records = await self._loader(key)
        except CollectionLoadError as e:
            self._store_failure(key, generation, e)
            raise
        except AppError:
            raise
        except Exception as e:
            logger.error(
                "collection_loader_crashed",
                key=key,
                error=str(e),
                error_type=type(e).__name__
            )
            error = CollectionLoadError(
                key,
                f"Could not load {key}",
                details={"error_type": type(e).__name__}
            )
            self._store_failure(key, generation, error)
            raise error from e
        finally:
            current = self._inflight.get(key)
            if current is not None and current[0] == generation:
                del self._inflight[key]

        self._store_success(key, generation, records)
        return records

    def _store_success(self, key: str, generation: int, records: list[Record]) -> None:
        entry = self._entry(key)
        if generation < entry.stored_generation:
            logger.info("collection_response_superseded", key=key, generation=generation)
            return

        entry.records = list(records)
        entry.fetched_at = datetime.now(timezone.utc)
        entry.loaded_tick = self._clock()
        entry.error = None
        entry.stored_generation = generation
        entry.stale = generation < entry.generation

        logger.info(
            "collection_fetch_completed",
            key=key,
            count=len(records),
            stale=entry.stale
        )

    def _store_failure(self, key: str, generation: int, error: CollectionLoadError) -> None:
        entry = self._entry(key)
        if generation < entry.stored_generation:
            return
        entry.error = error
        entry.stale = True
        logger.warning(
            "collection_fetch_failed",
            key=key,
            error=error.message,
            has_last_known_good=entry.records is not None
        )

    # ===================
    # INVALIDATION
    # ===================

    def invalidate(self, key: str, *dependent_keys: str) -> None:
        """
        Mark key (and dependent keys) stale and notify their subscribers.

        The cached lists stay readable until a refetch replaces them.
        """
        keys = list(dict.fromkeys((key, *dependent_keys)))
        for k in keys:
            entry = self._entry(k)
            entry.generation += 1
            entry.stale = True

        logger.info("collection_invalidated", keys=keys)

        for k in keys:
            for callback in list(self._subscribers.get(k, ())):
                try:
                    callback(k)
                except Exception as e:
                    logger.error("collection_subscriber_failed", key=k, error=str(e))

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """
        Call callback(key) whenever key is invalidated.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, ()))

    def clear(self) -> None:
        """Drop every entry and cancel in-flight requests."""
        for _, task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        self._entries.clear()
        self._subscribers.clear()


def _consume_result(task: asyncio.Task) -> None:
    # Failures are delivered to awaiting callers; mark them retrieved.
    if not task.cancelled():
        task.exception()


# ===================
# RESOURCE LOADER
# ===================

def normalize_collection(key: str, payload: Any) -> list[Any]:
    """
    Accept both a bare array and a {"data": [...]} envelope.

    Raises:
        CollectionLoadError: If the payload is neither
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    raise CollectionLoadError(
        key=key,
        message=f"Unexpected response shape for '{key}'",
        details={"type": type(payload).__name__}
    )


def validate_records(key: str, rows: list[Any], model: type[BaseModel]) -> list[Record]:
    """
    Validate every row against the record schema once, at the cache boundary.

    Raises:
        CollectionLoadError: If any row is invalid
    """
    records: list[Record] = []
    for position, row in enumerate(rows):
        try:
            records.append(model.model_validate(row).model_dump(by_alias=True))
        except PydanticValidationError as e:
            errors = [
                {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg")}
                for err in e.errors()
            ]
            logger.error("collection_record_invalid", key=key, position=position, errors=errors)
            raise CollectionLoadError(
                key=key,
                message=f"Invalid record received for '{key}'",
                details={"position": position, "errors": errors}
            ) from e
    return records


def make_resource_loader(client: Any, resources: Mapping[str, ResourceConfig]) -> Loader:
    """
    Loader fetching a registered resource through the parks API client.

    The blocking HTTP call runs in a worker thread.
    """

    async def load(key: str) -> list[Record]:
        config = resources.get(key)
        if config is None:
            raise ResourceNotFoundError(key)

        payload = await asyncio.to_thread(client.list_collection, key, config.path)
        rows = normalize_collection(key, payload)
        records = validate_records(key, rows, config.record_model)

        if config.sort is not None:
            records = sort_records(records, config.sort.field, config.sort.descending)
        return records

    return load


def sort_records(records: list[Record], field_name: str, descending: bool = False) -> list[Record]:
    """Stable sort by one field; records missing it go last."""
    present = [r for r in records if r.get(field_name) is not None]
    missing = [r for r in records if r.get(field_name) is None]
    present.sort(key=lambda r: _sort_key(r[field_name]), reverse=descending)
    return present + missing


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.casefold()
    return value
