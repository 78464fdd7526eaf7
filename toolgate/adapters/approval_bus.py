"""Queue-backed approval channel bridging tool engines to UI consumers.

Engines call ask/update_ask/say. Every call is queued as a typed event
for the UI's consumer loop; the UI answers an outstanding ask with
respond() or withdraws it with cancel().
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator
from typing import Any

from toolgate.adapters.events import (
    ApprovalEvent,
    AskRequested,
    AskResolved,
    AskSuperseded,
    AskUpdated,
    Notification,
)
from toolgate.engine.errors import AskPendingError, AskSupersededError
from toolgate.engine.integrations import ApprovalChannel
from toolgate.engine.models import AskResponse, AskResult, SayKind

logger = logging.getLogger(__name__)


class ApprovalBus(ApprovalChannel):
    """Async queue bridging approval requests to UI event consumers."""

    def __init__(self, maxsize: int = 5000, max_tracked: int = 1000) -> None:
        self._queue: asyncio.Queue[ApprovalEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False
        self._pending: dict[int, asyncio.Future[AskResult]] = {}
        # Most recent payload per ts, oldest evicted past max_tracked.
        self._latest: OrderedDict[int, dict[str, Any]] = OrderedDict()
        self._max_tracked = max_tracked

    # ── ApprovalChannel ────────────────────────────────────────

    async def ask(self, kind: str, payload: dict[str, Any], ts: int) -> AskResult:
        current = self._pending.get(ts)
        if current is not None and not current.done():
            raise AskPendingError(ts)
        future: asyncio.Future[AskResult] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[ts] = future
        self._remember(ts, payload)
        await self._emit(AskRequested(ts=ts, kind=kind, payload=payload))
        try:
            return await future
        finally:
            if self._pending.get(ts) is future:
                del self._pending[ts]

    async def update_ask(self, kind: str, payload: dict[str, Any], ts: int) -> None:
        self._remember(ts, payload)
        await self._emit(AskUpdated(ts=ts, kind=kind, payload=payload))

    async def say(
        self,
        kind: SayKind,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> None:
        await self._emit(Notification(
            channel=SayKind(kind).value,
            text=text,
            images=list(images or []),
        ))

    # ── Operator side ──────────────────────────────────────────

    def respond(
        self,
        ts: int,
        response: AskResponse | str,
        text: str | None = None,
        images: list[str] | None = None,
    ) -> bool:
        """Answer the outstanding ask for ``ts``. Returns False if none."""
        future = self._pending.get(ts)
        if future is None or future.done():
            logger.warning("No outstanding approval request for ts=%s", ts)
            return False
        answer = AskResult(
            response=AskResponse(response),
            text=text,
            images=list(images) if images else None,
        )
        future.set_result(answer)
        self._emit_nowait(AskResolved(
            ts=ts,
            response=answer.response.value,
            text=text,
            images=list(images or []),
        ))
        return True

    def cancel(self, ts: int) -> bool:
        """Withdraw the outstanding ask for ``ts``."""
        future = self._pending.get(ts)
        if future is None or future.done():
            return False
        future.set_exception(AskSupersededError(ts))
        self._emit_nowait(AskSuperseded(ts=ts))
        return True

    def latest(self, ts: int) -> dict[str, Any] | None:
        """Most recent payload sent for ``ts``."""
        return self._latest.get(ts)

    def forget(self, ts: int) -> bool:
        """Drop the tracked payload for a finished invocation."""
        future = self._pending.get(ts)
        if future is not None and not future.done():
            logger.warning("Not forgetting ts=%s: approval request outstanding", ts)
            return False
        return self._latest.pop(ts, None) is not None

    def _remember(self, ts: int, payload: dict[str, Any]) -> None:
        self._latest[ts] = payload
        self._latest.move_to_end(ts)
        while len(self._latest) > self._max_tracked:
            self._latest.popitem(last=False)

    def pending_asks(self) -> list[int]:
        return [ts for ts, fut in self._pending.items() if not fut.done()]

    # ── Queue ──────────────────────────────────────────────────

    async def _emit(self, event: ApprovalEvent) -> None:
        if self._closed:
            return
        try:
            # Use await put() with timeout to add backpressure instead of dropping
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "ApprovalBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    def _emit_nowait(self, event: ApprovalEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "ApprovalBus queue full, dropping: %s", event.event_type,
            )

    async def consume(self) -> AsyncIterator[ApprovalEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def drain(self) -> list[ApprovalEvent]:
        """Return all queued events without waiting."""
        events: list[ApprovalEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        """Stop the consumer loop and withdraw outstanding asks."""
        self._closed = True
        for ts in self.pending_asks():
            self._pending[ts].set_exception(AskSupersededError(ts))
        self._latest.clear()
