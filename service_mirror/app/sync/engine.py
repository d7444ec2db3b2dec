"""
Sync engine for the Mirror service.

Runs create/read/update/delete calls against the remote collection and merges
every result into a ``SnapshotStore``. Operations are fire-and-forget: each
returns the ``asyncio.Task`` running it, and transport failures end up in the
diagnostic sink rather than in the caller's control flow.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Set, TYPE_CHECKING

from shared.errors import DecodeError, ErrorRecord, TransportError, render_error
from shared.logging import get_logger, set_sync_context
from shared.retry import RetryConfig, RetryError, call_with_retry

from ..adapters.http_client import CrudTransport, HttpxTransport
from ..models import ItemId, decode_item, encode_item, find_item, item_id
from ..store.snapshot_store import LiveStream, SnapshotStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


Hook = Callable[[Any], None]
DiagnosticSink = Callable[[ErrorRecord], None]
Params = Optional[Mapping[str, Any]]

TRANSPORT_ERRORS = (TransportError,)

# Returned by _call when the remote call gave up
_FAILED = object()


def _noop_hook(item: Any) -> None:
    return None


class SyncEngine:
    """Mirror of one remote collection.

    ``endpoint`` is the collection path on the transport and ``decode`` turns
    one payload entry into an item. Everything else is optional.
    """

    def __init__(
        self,
        transport: CrudTransport,
        endpoint: str,
        decode: Callable[[Any], Any] = decode_item,
        *,
        encode: Callable[[Any], Any] = encode_item,
        post_create_hook: Optional[Hook] = None,
        post_update_hook: Optional[Hook] = None,
        post_delete_hook: Optional[Hook] = None,
        diagnostic_sink: Optional[DiagnosticSink] = None,
        retry_config: Optional[RetryConfig] = None,
        store: Optional[SnapshotStore] = None,
        metrics: Optional["MetricsCollector"] = None,
        fetch_one_by_id: bool = False,
        update_method: str = "POST",
    ):
        if update_method not in ("POST", "PUT"):
            raise ValueError(f"Unsupported update method: {update_method}")

        self.transport = transport
        self.endpoint = endpoint.rstrip('/')
        self.decode = decode
        self.encode = encode
        self.post_create_hook = post_create_hook or _noop_hook
        self.post_update_hook = post_update_hook or _noop_hook
        self.post_delete_hook = post_delete_hook or _noop_hook
        self.diagnostic_sink = diagnostic_sink or self._log_error_record
        self.retry_config = retry_config or RetryConfig(max_attempts=3)
        self.metrics = metrics
        self.store = store if store is not None else SnapshotStore(metrics=metrics)
        self.fetch_one_by_id = fetch_one_by_id
        self.update_method = update_method

        self.logger = get_logger("mirror.sync.engine").bind(endpoint=self.endpoint)
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: "BaseConfig",
        transport: Optional[CrudTransport] = None,
        **kwargs
    ) -> "SyncEngine":
        """Build an engine from service settings."""
        if transport is None:
            transport = HttpxTransport(config.remote_base_url, timeout=config.request_timeout)

        kwargs.setdefault("retry_config", RetryConfig(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay
        ))
        kwargs.setdefault("fetch_one_by_id", config.fetch_one_by_id)
        kwargs.setdefault("update_method", config.update_method)
        return cls(transport, config.remote_endpoint, **kwargs)

    @property
    def data_stream(self) -> LiveStream:
        return self.store.stream()

    def current(self):
        return self.store.current()

    @property
    def pending_operations(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    # -- operations -------------------------------------------------------

    def fetch_all(self, params: Params = None, append: bool = False) -> asyncio.Task:
        """GET the collection; replace the snapshot, or merge when ``append``."""
        return self._spawn("fetch_all", self._fetch_all(params, append))

    def fetch_one(self, target_id: ItemId, params: Params = None) -> asyncio.Task:
        """GET and merge the item with ``target_id``.

        Unless ``fetch_one_by_id`` is set this requests the collection itself,
        so a list payload is merged entry by entry.
        """
        return self._spawn("fetch_one", self._fetch_one(target_id, params))

    def create(self, item: Any, params: Params = None) -> asyncio.Task:
        return self._spawn("create", self._create(item, params))

    def update(self, item: Any, params: Params = None) -> asyncio.Task:
        return self._spawn("update", self._update(item, params))

    def delete(self, item: Any, params: Params = None) -> asyncio.Task:
        return self._spawn("delete", self._delete(item, params))

    async def drain(self):
        """Wait until no operation is in flight, including ones spawned meanwhile."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self):
        await self.drain()
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()

    # -- implementations --------------------------------------------------

    async def _fetch_all(self, params: Params, append: bool) -> Optional[List[Any]]:
        payload = await self._call("GET", self.transport.get, self.endpoint, params)
        if payload is _FAILED:
            return None

        items = [self.decode(entry) for entry in self._as_list(payload)]
        if append:
            self.store.merge(items)
        else:
            self.store.replace(items)

        self.logger.info("Collection fetched", count=len(items), append=append)
        return items

    async def _fetch_one(self, target_id: ItemId, params: Params) -> Optional[Any]:
        path = self._item_path(target_id) if self.fetch_one_by_id else self.endpoint
        payload = await self._call("GET", self.transport.get, path, params)
        if payload is _FAILED:
            return None

        if isinstance(payload, list):
            items = [self.decode(entry) for entry in payload]
            self.store.merge(items)
            return find_item(items, target_id)

        if payload is None:
            raise DecodeError("Empty payload for single item", {"item_id": target_id})

        item = self.decode(payload)
        self.store.merge([item])
        return item

    async def _create(self, item: Any, params: Params) -> Optional[Any]:
        payload = await self._call("POST", self.transport.post, self.endpoint, self.encode(item), params)
        if payload is _FAILED:
            return None

        created = self.decode(payload)
        self.store.merge([created])
        self.post_create_hook(created)
        return created

    async def _update(self, item: Any, params: Params) -> Optional[Any]:
        send = self.transport.put if self.update_method == "PUT" else self.transport.post
        payload = await self._call(
            self.update_method, send, self._item_path(item_id(item)), self.encode(item), params
        )
        if payload is _FAILED:
            return None

        updated = self.decode(payload)
        self.store.merge([updated])
        self.post_update_hook(updated)
        return updated

    async def _delete(self, item: Any, params: Params) -> Optional[Any]:
        payload = await self._call("DELETE", self.transport.delete, self._item_path(item_id(item)), params)
        if payload is _FAILED:
            return None

        self.store.remove(item)
        self.post_delete_hook(item)
        return item

    # -- plumbing ---------------------------------------------------------

    async def _call(self, method: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        try:
            payload = await call_with_retry(
                func, *args, exceptions=TRANSPORT_ERRORS, config=self.retry_config
            )
        except RetryError as exc:
            self._record_call(method, "failure")
            self.diagnostic_sink(render_error(method, exc.last_exception))
            return _FAILED

        self._record_call(method, "success")
        return payload

    def _spawn(self, operation: str, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._in_context(operation, coro))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._on_done(operation, done))
        return task

    async def _in_context(self, operation: str, coro):
        # Each task runs in its own copy of the context
        set_sync_context(self.endpoint, operation)
        return await coro

    def _on_done(self, operation: str, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(
                "Unhandled fault in sync operation",
                operation=operation,
                error=repr(exc),
                exc_info=exc
            )

    def _item_path(self, target_id: ItemId) -> str:
        return f"{self.endpoint}/{target_id}"

    def _as_list(self, payload: Any) -> Sequence[Any]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise DecodeError(
                "Expected a list payload for the collection",
                {"type": type(payload).__name__}
            )
        return payload

    def _record_call(self, method: str, outcome: str):
        if self.metrics is not None:
            self.metrics.record_remote_call(method, outcome)

    def _log_error_record(self, record: ErrorRecord):
        self.logger.error("Service Error", **record.to_dict())
