"""
Snapshot store for the Mirror service.

The store keeps the current ordered collection as an immutable tuple and
publishes it through a replay-latest ``LiveStream``. Every mutation builds a
new tuple, so publishing the same object twice is the only thing the stream
suppresses.

Mutations requested while the stream is delivering (for example from a
subscriber callback) are queued and applied after the delivery finishes, one
emission each, in request order.
"""

from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from shared.logging import get_logger
from ..models import ItemId, Snapshot, item_id

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class Subscription:
    """Handle returned by ``LiveStream.subscribe``."""

    def __init__(self, stream: "LiveStream", key: int):
        self._stream = stream
        self._key = key

    @property
    def closed(self) -> bool:
        return not self._stream._has_subscriber(self._key)

    def close(self):
        self._stream._unsubscribe(self._key)


class LiveStream:
    """Replay-latest push channel with identity-based deduplication."""

    def __init__(self, initial: Any, on_idle: Optional[Callable[[], None]] = None):
        self.logger = get_logger("mirror.store.stream")
        self._value = initial
        self._on_idle = on_idle
        self._subscribers: Dict[int, Callable[[Any], None]] = {}
        self._next_key = 0
        self._queue: Deque[Any] = deque()
        self._delivering = False

    @property
    def value(self) -> Any:
        return self._value

    @property
    def delivering(self) -> bool:
        return self._delivering

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        """Register ``callback`` and immediately replay the current value to it."""
        key = self._next_key
        self._next_key += 1
        self._subscribers[key] = callback
        subscription = Subscription(self, key)

        outer = self._delivering
        self._delivering = True
        try:
            self._deliver(callback, self._value)
        finally:
            self._delivering = outer
        if not outer:
            self._idle()
        return subscription

    def publish(self, value: Any) -> bool:
        """Publish ``value``; returns False when it is the current object."""
        if value is self._value:
            return False

        self._value = value
        self._queue.append(value)
        if not self._delivering:
            self._flush()
        return True

    def _flush(self):
        self._delivering = True
        try:
            while self._queue:
                value = self._queue.popleft()
                for key, callback in list(self._subscribers.items()):
                    # A callback may close a later subscription mid-delivery
                    if key in self._subscribers:
                        self._deliver(callback, value)
        finally:
            self._delivering = False
        self._idle()

    def _deliver(self, callback: Callable[[Any], None], value: Any):
        try:
            callback(value)
        except Exception:
            self.logger.exception("Snapshot subscriber failed", callback=repr(callback))

    def _idle(self):
        if self._on_idle is not None:
            self._on_idle()

    def _has_subscriber(self, key: int) -> bool:
        return key in self._subscribers

    def _unsubscribe(self, key: int):
        self._subscribers.pop(key, None)


class SnapshotStore:
    """Holds the mirrored collection and publishes every change."""

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.logger = get_logger("mirror.store")
        self.metrics = metrics
        self._stream = LiveStream((), on_idle=self._drain)
        self._pending: Deque[Callable[[Snapshot], Snapshot]] = deque()
        self._draining = False

    def current(self) -> Snapshot:
        """Return the latest snapshot."""
        return self._stream.value

    def stream(self) -> LiveStream:
        return self._stream

    def __len__(self) -> int:
        return len(self._stream.value)

    def merge(self, items: Iterable[Any]):
        """Upsert ``items`` by id: replace in place when present, else append.

        Ids are read before the mutation is queued, so an item without one
        fails this call and leaves the store untouched.
        """
        incoming = _keyed(items)
        self._apply(lambda current: _upsert(current, incoming), "merge", count=len(incoming))

    def remove(self, item: Any):
        """Remove the item sharing ``item``'s id; absent ids leave the snapshot as is."""
        key = item_id(item)

        def mutation(current: Snapshot) -> Snapshot:
            for index, existing in enumerate(current):
                if item_id(existing) == key:
                    return current[:index] + current[index + 1:]
            return current

        self._apply(mutation, "remove", item_id=key)

    def replace(self, items: Iterable[Any]):
        """Replace the whole collection with ``items``.

        Repeated ids collapse like a merge into an empty store: the last
        entry wins, at the position where the id first appeared.
        """
        replacement = _upsert((), _keyed(items))
        self._apply(lambda current: replacement, "replace", count=len(replacement))

    def _apply(self, mutation: Callable[[Snapshot], Snapshot], operation: str, **fields):
        self._pending.append(mutation)
        if self._draining or self._stream.delivering:
            self.logger.debug("Deferring nested mutation", operation=operation, **fields)
            return
        self._drain()

    def _drain(self):
        if self._draining:
            return

        self._draining = True
        try:
            while self._pending and not self._stream.delivering:
                mutation = self._pending.popleft()
                snapshot = mutation(self._stream.value)
                if self._stream.publish(snapshot) and self.metrics is not None:
                    self.metrics.record_snapshot(len(snapshot))
        finally:
            self._draining = False


def _keyed(items: Iterable[Any]) -> List[Tuple[ItemId, Any]]:
    return [(item_id(item), item) for item in items]


def _upsert(current: Snapshot, incoming: List[Tuple[ItemId, Any]]) -> Snapshot:
    merged = list(current)
    positions = {item_id(existing): index for index, existing in enumerate(merged)}
    for key, item in incoming:
        if key in positions:
            merged[positions[key]] = item
        else:
            positions[key] = len(merged)
            merged.append(item)
    return tuple(merged)
