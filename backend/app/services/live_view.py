"""
Live views over the remote store.

A live view keeps the materialized result of a ``QueryDescriptor`` and pushes
a freshly recomputed snapshot to its subscriber whenever the store reports a
change in the underlying collection.

Delivery rules:
- the first snapshot is delivered before ``subscribe`` returns;
- recomputations for one subscription never overlap, so snapshots arrive in
  the order the changes were emitted (bursts collapse into the latest one);
- once ``unsubscribe`` returns nothing more is delivered, including a
  recomputation that was already in flight;
- a failing query keeps the previous snapshot instead of clearing it.
"""

import asyncio
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    TypeVar,
)

from app.store.base import (
    ChangeEvent,
    QueryDescriptor,
    RemoteStore,
    Unsubscribe,
    order_documents,
)
from app.store.exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotCallback = Callable[[List[Any]], None]
ErrorCallback = Callable[[Exception], None]
Decoder = Callable[[Iterable[Dict[str, Any]]], List[Any]]


def materialize(
    descriptor: QueryDescriptor, documents: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Filter, de-duplicate by id (last write wins), order and limit raw documents."""
    by_id: Dict[str, Dict[str, Any]] = {}
    for doc in documents:
        if descriptor.matches(doc):
            by_id[str(doc.get("id"))] = doc
    ordered = order_documents(by_id.values(), descriptor.sort)
    if descriptor.limit:
        ordered = ordered[: descriptor.limit]
    return ordered


class LiveSubscription:
    """One subscriber's view of one query."""

    def __init__(
        self,
        store: RemoteStore,
        descriptor: QueryDescriptor,
        on_change: SnapshotCallback,
        decode: Optional[Decoder] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.store = store
        self.descriptor = descriptor
        self.on_change = on_change
        self.decode = decode
        self.on_error = on_error

        self.snapshot: List[Any] = []
        self.loaded = False
        self.last_error: Optional[Exception] = None

        self._closed = False
        self._dirty = False
        self._draining = False
        self._pump: Optional[asyncio.Task] = None
        self._stop_listening: Optional[Unsubscribe] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        # Listen first: a change landing during the initial fetch marks the view dirty
        stop_listening = await self.store.listen(
            self.descriptor.collection, self._on_remote_change, self._on_remote_error
        )
        if self._closed:
            stop_listening()
            return
        self._stop_listening = stop_listening
        self._dirty = True
        pump = self._pump
        if pump is not None and not pump.done():
            # A change arrived while registering; its pump also serves the first fetch
            await pump
        else:
            await self._drain()

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._stop_listening is not None:
            self._stop_listening()
            self._stop_listening = None

        pump = self._pump
        if pump is not None and not pump.done() and pump is not _current_task():
            pump.cancel()
        logger.debug(f"Live view on {self.descriptor.collection} closed")

    def __call__(self) -> None:
        self.unsubscribe()

    def _on_remote_change(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        self._dirty = True
        if self._draining or (self._pump is not None and not self._pump.done()):
            return
        self._pump = asyncio.get_running_loop().create_task(self._drain())

    def _on_remote_error(self, exc: Exception) -> None:
        if self._closed:
            return
        logger.warning(
            f"Change feed for {self.descriptor.collection} failed, keeping last snapshot: {exc}"
        )
        self._report_error(exc)

    async def _drain(self) -> None:
        self._draining = True
        try:
            while self._dirty and not self._closed:
                self._dirty = False
                await self._recompute()
        finally:
            self._draining = False

    async def _recompute(self) -> None:
        try:
            documents = await self.store.query(self.descriptor)
        except StoreError as exc:
            logger.warning(
                f"Live query on {self.descriptor.collection} failed ({exc.code.value}), "
                f"keeping last snapshot: {exc}"
            )
            self._report_error(exc)
            return

        if self._closed:
            return

        rows: List[Any] = materialize(self.descriptor, documents)
        if self.decode is not None:
            rows = self.decode(rows)

        self.snapshot = rows
        self.loaded = True
        self.last_error = None
        self._deliver()

    def _deliver(self) -> None:
        if self._closed:
            return
        try:
            # Each delivery gets its own list; the cached one is never handed out
            self.on_change(list(self.snapshot))
        except Exception:
            logger.exception(f"Live view subscriber for {self.descriptor.collection} raised")

    def _report_error(self, exc: Exception) -> None:
        self.last_error = exc
        if self.on_error is not None:
            self.on_error(exc)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class LiveViewCache:
    """Creates live subscriptions against one store."""

    def __init__(self, store: RemoteStore):
        self.store = store

    async def subscribe(
        self,
        descriptor: QueryDescriptor,
        on_change: SnapshotCallback,
        decode: Optional[Decoder] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> LiveSubscription:
        """
        Subscribe to ``descriptor``.

        The returned subscription is callable; calling it (or ``unsubscribe``)
        is idempotent and stops all further deliveries.
        """
        subscription = LiveSubscription(
            self.store, descriptor, on_change, decode=decode, on_error=on_error
        )
        await subscription.start()
        return subscription


class LiveQuery(Generic[T]):
    """
    Presentation-facing live query state: ``items``, ``loading`` and ``error``.

    Listeners are told about every new snapshot.
    """

    def __init__(
        self,
        cache: LiveViewCache,
        descriptor: QueryDescriptor,
        decode: Optional[Decoder] = None,
    ):
        self.cache = cache
        self.descriptor = descriptor
        self.decode = decode

        self.items: List[T] = []
        self.loading = True
        self.error: Optional[Exception] = None

        self._listeners: List[Callable[[List[T]], None]] = []
        self._error_listeners: List[Callable[[Exception], None]] = []
        self._subscription: Optional[LiveSubscription] = None

    def add_listener(self, listener: Callable[[List[T]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def add_error_listener(self, listener: Callable[[Exception], None]) -> None:
        self._error_listeners.append(listener)

    async def start(self) -> "LiveQuery[T]":
        if self._subscription is None:
            self._subscription = await self.cache.subscribe(
                self.descriptor,
                self._on_snapshot,
                decode=self.decode,
                on_error=self._on_error,
            )
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._listeners.clear()
        self._error_listeners.clear()

    def _on_snapshot(self, items: List[T]) -> None:
        self.items = items
        self.loading = False
        self.error = None
        for listener in list(self._listeners):
            listener(list(items))

    def _on_error(self, exc: Exception) -> None:
        self.error = exc
        for listener in list(self._error_listeners):
            listener(exc)
