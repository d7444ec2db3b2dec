"""
Bounded lookup of a single item in the mirrored collection.

A lookup subscribes to the engine's snapshot stream and re-evaluates on every
emission. While the item is missing it asks the engine to fetch it, at most
``budget`` times and never with more than one of its own fetches in flight.
It always finishes: with the item, or with ``None`` after the failure
callback ran.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, TYPE_CHECKING

from shared.logging import get_logger

from ..models import ItemId, find_item
from ..store.snapshot_store import Subscription

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..sync.engine import SyncEngine


DEFAULT_LOOKUP_BUDGET = 2


class LookupState(str, Enum):
    """Lookup lifecycle."""
    WAITING = "waiting"
    FOUND = "found"
    FAILED = "failed"


@dataclass
class LookupRequest:
    """Identifier to look for plus its fetch budget."""
    item_id: ItemId
    id_is_integer: bool = False
    budget: int = DEFAULT_LOOKUP_BUDGET


class BoundedLookup:
    """One lookup: WAITING(remaining) until FOUND(item) or FAILED."""

    def __init__(
        self,
        engine: "SyncEngine",
        request: LookupRequest,
        on_failed: Callable[[], None],
    ):
        self.engine = engine
        self.request = request
        self.remaining = request.budget
        self.state = LookupState.WAITING
        self.item: Optional[Any] = None
        self.fetches_triggered = 0
        self.logger = get_logger("mirror.lookup").bind(item_id=request.item_id)

        self._on_failed = on_failed
        self._in_flight: Optional[asyncio.Future] = None
        self._subscription: Optional[Subscription] = None
        self._result: Optional[asyncio.Future] = None

    @property
    def finished(self) -> bool:
        return self.state is not LookupState.WAITING

    async def run(self, timeout: Optional[float] = None) -> Optional[Any]:
        """Subscribe, evaluate the current snapshot, and wait for a terminal state."""
        self._result = asyncio.get_running_loop().create_future()
        self._subscription = self.engine.data_stream.subscribe(self.evaluate)
        try:
            if timeout is None:
                return await self._result
            return await asyncio.wait_for(asyncio.shield(self._result), timeout)
        except asyncio.TimeoutError:
            self._fail("timeout")
            return None
        finally:
            if not self.finished:
                # Cancelled by the caller; stop reacting to fetch completions
                self.state = LookupState.FAILED
            self._close()

    def evaluate(self, snapshot) -> None:
        """Apply one snapshot to the state machine."""
        if self.finished:
            return

        item = find_item(snapshot, self.request.item_id)
        if item is not None:
            self._found(item)
            return

        # Our fetch will re-evaluate when it completes
        if self._in_flight is not None:
            return

        if self.remaining > 0:
            self.remaining -= 1
            self.fetches_triggered += 1
            self.logger.debug("Item missing, fetching", remaining=self.remaining)
            task = self.engine.fetch_one(self.request.item_id)
            self._in_flight = task
            task.add_done_callback(self._on_fetch_done)
        else:
            self._fail("exhausted")

    def _on_fetch_done(self, task: asyncio.Future):
        self._in_flight = None
        self.evaluate(self.engine.current())

    def _found(self, item: Any):
        self.state = LookupState.FOUND
        self.item = item
        self.logger.debug("Item found", fetches=self.fetches_triggered)
        if self._result is not None and not self._result.done():
            self._result.set_result(item)
        self._close()

    def _fail(self, reason: str):
        if self.finished:
            return
        self.state = LookupState.FAILED
        self.logger.info("Lookup gave up", reason=reason, fetches=self.fetches_triggered)
        self._close()
        try:
            self._on_failed()
        finally:
            if self._result is not None and not self._result.done():
                self._result.set_result(None)

    def _close(self):
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None


class ItemResolver:
    """Resolve routing parameters to a mirrored item.

    ``param_key`` names the route parameter carrying the id; ``id_is_integer``
    parses it base 10 before comparing with item ids.
    """

    def __init__(
        self,
        engine: "SyncEngine",
        param_key: str,
        id_is_integer: bool = False,
        resolve_failed: Optional[Callable[[], None]] = None,
        budget: int = DEFAULT_LOOKUP_BUDGET,
        timeout: Optional[float] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.engine = engine
        self.param_key = param_key
        self.id_is_integer = id_is_integer
        self.resolve_failed = resolve_failed or self._log_failure
        self.budget = budget
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("mirror.lookup.resolver")

    def parse_id(self, params: Mapping[str, Any]) -> Optional[ItemId]:
        """Read the id from ``params``; None when missing or not an integer."""
        raw = params.get(self.param_key)
        if raw is None:
            return None
        if not self.id_is_integer:
            return raw

        # int() alone would also take "+5", " 5" and "1_0"
        text = str(raw)
        digits = text[1:] if text.startswith("-") else text
        if not (digits.isascii() and digits.isdigit()):
            return None
        return int(text, 10)

    async def resolve(self, params: Mapping[str, Any]) -> Optional[Any]:
        target = self.parse_id(params)
        if target is None:
            self.logger.warning(
                "Lookup parameter missing or malformed",
                param_key=self.param_key,
                value=params.get(self.param_key)
            )
            self._record("invalid")
            self.resolve_failed()
            return None

        return await self.lookup(target)

    async def lookup(self, target: ItemId) -> Optional[Any]:
        lookup = BoundedLookup(
            self.engine,
            LookupRequest(target, self.id_is_integer, self.budget),
            self.resolve_failed,
        )
        item = await lookup.run(self.timeout)
        self._record(lookup.state.value)
        return item

    def _record(self, outcome: str):
        if self.metrics is not None:
            self.metrics.record_lookup(outcome)

    def _log_failure(self):
        self.logger.info("resolver failed", param_key=self.param_key)
