"""
Region: a synchronized local mirror of one remote collection.

Responsibilities:
- Hold the collection's DataObjects in memory (add / update / remove).
- Drive synchronization through an injected Loader, single-flight, with
  full reconciliation when the loader reports a complete id set.
- Apply optimistic ("preemptive") changes and hand back undo functions.
- Persist the collection with a debounced write and seed it from that cache.
- Notify consumers through named events.

Collection specifics are injected as capabilities (Loader, mapper, matcher,
session handler); Region itself is never subclassed.
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from typing import Any, Callable, Protocol

from ..const import (
    EVENT_CLOSED,
    EVENT_DESTABILIZED,
    EVENT_ERROR,
    EVENT_OBJECT_ADDED,
    EVENT_OBJECT_REMOVED,
    EVENT_OBJECT_UPDATED,
    EVENT_STABILIZED,
    EVENT_SYNCHRONIZING,
    EVENT_UPDATED,
    EVENT_WILL_UPDATE,
    SAVE_DELAY,
)
from .data_object import (
    DataObject,
    DataObjectUpdateRecord,
    deep_merged,
    get_key_path,
    has_key_path,
    set_key_path,
)
from .events import EventEmitter
from .persistence import PersistentStore

_LOGGER = logging.getLogger(__name__)

UndoFunction = Callable[[], None]
Mapper = Callable[[DataObject], Any]
Matcher = Callable[["Region", str, Any], bool]
SessionHandler = Callable[["Region", Any], None]


class Loader(Protocol):
    async def load(self, region: "Region") -> list[str] | None:
        """
        Fetch the entire collection, calling ``region.add()`` as objects arrive.

        Return every id that belongs to the region, or None when the fetch
        cannot vouch for completeness (nothing is evicted then).
        """


def _noop() -> None:
    return None


def default_matcher(region: "Region", plugin_id: str, descriptor: Any) -> bool:
    return region.plugin_id == plugin_id and region.descriptor == descriptor


def identity_mapper(obj: DataObject) -> Any:
    return obj


class Region(EventEmitter):
    """Generic region; see the module docstring."""

    def __init__(
        self,
        plugin_id: str,
        descriptor: Any,
        state_key: str,
        loader: Loader,
        *,
        mapper: Mapper | None = None,
        matcher: Matcher | None = None,
        on_session_info_changed: SessionHandler | None = None,
        store: PersistentStore | None = None,
        save_delay: float = SAVE_DELAY,
        no_cache: bool = False,
        on_close: Callable[["Region"], None] | None = None,
    ) -> None:
        super().__init__()
        self.plugin_id = plugin_id
        self.descriptor = descriptor
        self.state_key = state_key
        self.no_cache = no_cache

        self._loader = loader
        self._mapper = mapper or identity_mapper
        self._matcher = matcher or default_matcher
        self._session_handler = on_session_info_changed
        self._store = store
        self._save_delay = save_delay
        self._on_close = on_close

        self.objects: dict[str, DataObject] = {}
        self.error: Exception | None = None
        self.closed = False
        self._synchronized = False
        self._sync_task: asyncio.Future | None = None

        self._save_handle: asyncio.TimerHandle | None = None
        self._write_tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"<Region {self.state_key} objects={len(self.objects)} synchronized={self._synchronized}>"

    # ------------------------------------------------------------------
    # Synchronization state
    # ------------------------------------------------------------------

    @property
    def synchronized(self) -> bool:
        """True once the region mirrors the backend."""
        return self._synchronized

    @synchronized.setter
    def synchronized(self, value: bool) -> None:
        if value == self._synchronized:
            return
        self._synchronized = value
        self.emit(EVENT_STABILIZED if value else EVENT_DESTABILIZED)

    @property
    def is_synchronizing(self) -> bool:
        return self._sync_task is not None

    def synchronize(self) -> asyncio.Future:
        """
        Bring the region in line with the backend.

        Concurrent callers share the in-flight synchronization. The returned
        future always resolves to None: a failed load is reported through
        ``error`` and the ``error`` event, never by raising. Each caller gets
        its own shielded view, so cancelling one wait leaves the load running
        for everyone else.
        """
        if self._sync_task is None:
            if self._synchronized:
                done = asyncio.get_running_loop().create_future()
                done.set_result(None)
                return done

            self.error = None
            self.emit(EVENT_SYNCHRONIZING)
            _LOGGER.debug("Starting synchronization for region %s", self.state_key)
            self._sync_task = asyncio.ensure_future(self._run_synchronize())

        return asyncio.shield(self._sync_task)

    def force_synchronize(self) -> asyncio.Future:
        """Re-fetch everything even if the region is already stable."""
        self.synchronized = False
        return self.synchronize()

    async def _run_synchronize(self) -> None:
        started = time.monotonic()
        try:
            ids = await self._loader.load(self)
        except asyncio.CancelledError:
            self._sync_task = None
            raise
        except Exception as exc:  # noqa: BLE001
            self._sync_task = None
            self.error = exc
            _LOGGER.error("Unable to load region %s: %s", self.state_key, exc)
            self.emit(EVENT_ERROR, error=exc)
            return

        if ids is not None:
            keep = set(ids)
            self.remove([object_id for object_id in self.objects if object_id not in keep])

        self._sync_task = None
        self.synchronized = True
        _LOGGER.info(
            "Region %s is now in sync (%d objects, %d ms)",
            self.state_key, len(self.objects), int((time.monotonic() - started) * 1000),
        )

    # ------------------------------------------------------------------
    # Object store
    # ------------------------------------------------------------------

    def add(self, objects: list[DataObject]) -> None:
        """
        Add copies of objects, replacing the data of any that already exist.

        Objects without data are skipped.
        """
        self._add(objects, persist=True)

    def _add(self, objects: list[DataObject], persist: bool) -> None:
        changed = False
        for obj in objects:
            if obj.data is None:
                continue

            existing = self.objects.get(obj.id)
            if existing is not None:
                self.emit(EVENT_WILL_UPDATE, id=obj.id, key_path=None,
                          old_value=existing.data, new_value=obj.data)
                existing.data = copy.deepcopy(obj.data)
                existing.cached_view = None
            else:
                self.objects[obj.id] = DataObject(obj.id, obj.type, copy.deepcopy(obj.data))
                self.emit(EVENT_OBJECT_ADDED, id=obj.id)

            self.emit(EVENT_OBJECT_UPDATED, id=obj.id)
            changed = True

        if changed:
            self.emit(EVENT_UPDATED)
            if persist:
                self.save()

    def update(self, records: list[DataObjectUpdateRecord]) -> None:
        """Deep-merge sparse changes into existing objects; unknown ids are ignored."""
        changed_ids: dict[str, None] = {}
        for record in records:
            existing = self.objects.get(record.id)
            if existing is None or existing.data is None:
                continue

            self.emit(EVENT_WILL_UPDATE, id=record.id, key_path=None,
                      old_value=existing.data, new_value=record.changes)
            existing.data = deep_merged(existing.data, record.changes)
            existing.cached_view = None
            changed_ids[record.id] = None

        for object_id in changed_ids:
            self.emit(EVENT_OBJECT_UPDATED, id=object_id)

        if changed_ids:
            self.emit(EVENT_UPDATED)
            self.save()

    def remove(self, ids: list[str]) -> None:
        """Remove objects by id; unknown ids are ignored."""
        did_update = False
        for object_id in ids:
            if self.objects.pop(object_id, None) is None:
                continue
            did_update = True
            self.emit(EVENT_OBJECT_REMOVED, id=object_id)

        if did_update:
            self.emit(EVENT_UPDATED)
            self.save()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, object_id: str) -> Any:
        """Return the mapped object without waiting for synchronization."""
        obj = self.objects.get(object_id)
        if obj is None:
            return None
        return self._view(obj)

    def get_all(self) -> list[Any]:
        """Return every mapped object without waiting for synchronization."""
        items = []
        for obj in list(self.objects.values()):
            view = self._view(obj)
            if view is not None:
                items.append(view)
        return items

    async def get_stable(self, object_id: str) -> Any:
        await self.synchronize()
        return self.get(object_id)

    async def get_all_stable(self) -> list[Any]:
        await self.synchronize()
        return self.get_all()

    def _view(self, obj: DataObject) -> Any:
        if obj.cached_view is not None:
            return obj.cached_view
        mapped = self._mapper(obj)
        if mapped is None:
            return None
        obj.cached_view = mapped
        return mapped

    # ------------------------------------------------------------------
    # Optimistic mutation
    # ------------------------------------------------------------------

    def preemptive_change(self, object_id: str, key_path: str, value: Any) -> UndoFunction:
        """
        Change one field before the server confirms it.

        Returns a function restoring the previous value. Unknown objects or
        key paths change nothing and get an undo that does nothing.
        """
        obj = self.objects.get(object_id)
        if obj is None or obj.data is None or not has_key_path(obj.data, key_path):
            return _noop

        old_value = get_key_path(obj.data, key_path)
        self._write_field(obj, key_path, old_value, value)

        def undo() -> None:
            if self.objects.get(obj.id) is not obj or not has_key_path(obj.data, key_path):
                return
            self._write_field(obj, key_path, value, old_value)

        return undo

    def _write_field(self, obj: DataObject, key_path: str, old_value: Any, new_value: Any) -> None:
        self.emit(EVENT_WILL_UPDATE, id=obj.id, key_path=key_path,
                  old_value=old_value, new_value=new_value)
        set_key_path(obj.data, key_path, new_value)
        obj.cached_view = None
        self.emit(EVENT_OBJECT_UPDATED, id=obj.id)
        self.emit(EVENT_UPDATED)
        self.save()

    def preemptive_remove(self, object_id: str) -> UndoFunction:
        """
        Remove an object before the server confirms it.

        The returned undo puts it back unless another object with the same
        id has been added since.
        """
        removed = self.objects.pop(object_id, None)
        if removed is None:
            return _noop

        self.emit(EVENT_OBJECT_REMOVED, id=object_id)
        self.emit(EVENT_UPDATED)
        self.save()

        def undo() -> None:
            if object_id in self.objects:
                return
            self.add([removed])

        return undo

    # ------------------------------------------------------------------
    # Session & lifecycle
    # ------------------------------------------------------------------

    def matches(self, plugin_id: str, descriptor: Any) -> bool:
        """True if a request for (plugin_id, descriptor) can be served by this region."""
        return self._matcher(self, plugin_id, descriptor)

    def on_session_info_changed(self, info: Any) -> None:
        if self._session_handler is not None:
            self._session_handler(self, info)

    def close(self) -> None:
        """
        Detach the region from its registry.

        An in-flight synchronization is not aborted; whatever it writes
        afterwards stays in this detached instance.
        """
        if self.closed:
            return
        if self._on_close is not None:
            self._on_close(self)
        self.closed = True
        _LOGGER.debug("Region %s closed", self.state_key)
        self.emit(EVENT_CLOSED)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_from_cache(self) -> int:
        """
        Seed the region from its persisted copy.

        Returns the number of objects loaded. Missing or unreadable caches
        are logged and yield 0.
        """
        if self.no_cache or self._store is None:
            return 0

        started = time.monotonic()
        try:
            raw = self._store.read_bytes(self.state_key)
        except OSError as exc:
            _LOGGER.error("Unable to read cached data for region %s: %s", self.state_key, exc)
            return 0
        if raw is None:
            return 0

        try:
            rows = json.loads(raw)
        except ValueError as exc:
            _LOGGER.error("Unable to parse cached JSON for region %s: %s", self.state_key, exc)
            return 0
        if not isinstance(rows, list):
            _LOGGER.error("Cached data for region %s is not a list", self.state_key)
            return 0

        objects = []
        for row in rows:
            if (
                not isinstance(row, list)
                or len(row) < 3
                or not isinstance(row[0], str)
                or not isinstance(row[1], str)
                or not isinstance(row[2], dict)
            ):
                continue
            objects.append(DataObject(id=row[0], type=row[1], data=row[2]))

        self._add(objects, persist=False)
        _LOGGER.info(
            "Loaded %d objects for region %s from cache in %d ms",
            len(objects), self.state_key, int((time.monotonic() - started) * 1000),
        )
        return len(objects)

    def save(self) -> None:
        """Schedule a write after SAVE_DELAY seconds of quiet, replacing any pending one."""
        if self.no_cache or self._store is None or self.closed:
            return

        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.debug("No running event loop, not scheduling save for %s", self.state_key)
            return
        self._save_handle = loop.call_later(self._save_delay, self._start_write)

    @property
    def save_pending(self) -> bool:
        return self._save_handle is not None

    async def flush(self) -> bool:
        """Write a pending save now. Returns False if nothing was pending."""
        if self._save_handle is None:
            return False
        self._save_handle.cancel()
        self._save_handle = None
        data = self._serialize()
        if data is not None:
            await self._write(data)
        return True

    def _start_write(self) -> None:
        self._save_handle = None
        data = self._serialize()
        if data is None:
            return
        task = asyncio.ensure_future(self._write(data))
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)

    def _serialize(self) -> bytes | None:
        rows = [[obj.id, obj.type, obj.data or {}] for obj in self.objects.values()]
        try:
            return json.dumps(rows).encode("utf-8")
        except (TypeError, ValueError) as exc:
            _LOGGER.error("Unable to convert region %s to JSON: %s", self.state_key, exc)
            return None

    async def _write(self, data: bytes) -> None:
        started = time.monotonic()
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._store.write_bytes, self.state_key, data)
        except OSError as exc:
            _LOGGER.error("Unable to save region %s to disk: %s", self.state_key, exc)
            return
        _LOGGER.info(
            "Saved %d items of region %s in %d ms",
            len(self.objects), self.state_key, int((time.monotonic() - started) * 1000),
        )
