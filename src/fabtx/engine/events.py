"""Correlation of commit notifications across peer event streams."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Set

from ..transactions.exceptions import CommitInvalid, CommitTimeout, TransactionIDReused
from ..transactions.models import CommitEvent
from .protocols import EventStream

logger = logging.getLogger(__name__)


class CommitPolicy(str, Enum):
    ANY = "any"
    ALL = "all"


class WaiterState(str, Enum):
    SUBSCRIBED = "subscribed"
    COMMITTED_VALID = "committed_valid"
    COMMITTED_INVALID = "committed_invalid"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class CommitWaiter:
    """Completion signal for one transaction id.

    The first transition out of ``SUBSCRIBED`` is terminal. Notifications
    arriving afterwards are dropped, and the waiter is unregistered from
    every stream exactly once. Stream callbacks must run on the event loop
    thread.
    """

    def __init__(
        self,
        correlator: "EventCorrelator",
        tx_id: str,
        streams: Sequence[EventStream],
        policy: CommitPolicy,
    ) -> None:
        self.tx_id = tx_id
        self.policy = policy
        self.state = WaiterState.SUBSCRIBED
        self.event: Optional[CommitEvent] = None
        self.stream_errors: Dict[str, BaseException] = {}
        self._correlator = correlator
        self._streams = list(streams)
        self._required = frozenset(stream.name for stream in self._streams)
        self._valid_from: Set[str] = set()
        self._registered: Dict[str, EventStream] = {}
        self._timeout: Optional[float] = None
        self._waiting = False
        self._future: asyncio.Future[CommitEvent] = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def registered_streams(self) -> FrozenSet[str]:
        return frozenset(self._registered)

    def _subscribe(self) -> None:
        for stream in self._streams:
            if self.done:
                break
            self._registered[stream.name] = stream
            stream.register_tx_event(
                self.tx_id, self._on_event, self._error_handler(stream.name)
            )

    async def wait(self, timeout: float) -> CommitEvent:
        """Wait up to *timeout* seconds for the commit outcome."""

        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._timeout = timeout
        self._waiting = True
        try:
            await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            self._finish(
                WaiterState.TIMED_OUT, error=CommitTimeout(tx_id=self.tx_id, timeout=timeout)
            )
        except asyncio.CancelledError:
            self.cancel()
            raise
        finally:
            self._waiting = False
        return self._future.result()

    def cancel(self) -> None:
        """Drop the waiter on behalf of its own caller, without an outcome."""

        if self.done:
            return
        self.state = WaiterState.CANCELLED
        self._future.cancel()
        self._release()

    def abandon(self, reason: str) -> None:
        """Stop waiting on behalf of a third party.

        A caller blocked in ``wait`` sees ``CommitTimeout`` carrying *reason*
        rather than a cancellation of its own task.
        """

        if self.done:
            return
        self._finish(
            WaiterState.CANCELLED,
            error=CommitTimeout(tx_id=self.tx_id, timeout=self._timeout, reason=reason),
        )
        if not self._waiting:
            # nobody will collect it
            self._future.exception()

    def discard(self) -> None:
        """Drop the waiter after a failure elsewhere, consuming any outcome it holds."""

        if not self.done:
            self.cancel()
        elif not self._future.cancelled():
            self._future.exception()

    def _on_event(self, event: CommitEvent) -> None:
        if event.tx_id != self.tx_id:
            logger.debug("ignoring event for %s on waiter %s", event.tx_id, self.tx_id)
            return
        if self.done:
            logger.debug(
                "discarding late %s event for %s from %s", event.code, self.tx_id, event.stream
            )
            return
        if not event.valid:
            self.event = event
            self._finish(
                WaiterState.COMMITTED_INVALID,
                error=CommitInvalid(tx_id=self.tx_id, peer=event.stream, code=event.code),
            )
            return

        self._valid_from.add(event.stream)
        if self.policy is CommitPolicy.ANY or self._valid_from >= self._required:
            self.event = event
            self._finish(WaiterState.COMMITTED_VALID, event=event)

    def _error_handler(self, stream_name: str):
        def on_error(exc: BaseException) -> None:
            self._on_stream_error(stream_name, exc)

        return on_error

    def _on_stream_error(self, stream_name: str, exc: BaseException) -> None:
        if self.done:
            return
        logger.warning("event stream %s failed while waiting for %s: %s", stream_name, self.tx_id, exc)
        self.stream_errors[stream_name] = exc
        stream = self._registered.pop(stream_name, None)
        if stream is not None:
            self._unregister(stream)

        if self.policy is CommitPolicy.ALL:
            reason = f"event stream {stream_name} failed: {exc}"
        elif set(self.stream_errors) >= self._required:
            reason = "all event streams failed"
        else:
            return
        self._finish(
            WaiterState.TIMED_OUT,
            error=CommitTimeout(tx_id=self.tx_id, timeout=self._timeout, reason=reason),
        )

    def _finish(
        self,
        state: WaiterState,
        *,
        event: Optional[CommitEvent] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if self.done:
            return
        self.state = state
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(event)
        logger.debug("commit waiter %s finished as %s", self.tx_id, state.value)
        self._release()

    def _release(self) -> None:
        while self._registered:
            _, stream = self._registered.popitem()
            self._unregister(stream)
        self._correlator._discard(self)

    def _unregister(self, stream: EventStream) -> None:
        try:
            stream.unregister_tx_event(self.tx_id)
        except Exception:
            logger.warning(
                "failed to unregister %s from %s", self.tx_id, stream.name, exc_info=True
            )


class EventCorrelator:
    """Tracks commit waiters for a fixed set of event streams."""

    def __init__(
        self, streams: Sequence[EventStream], policy: CommitPolicy = CommitPolicy.ANY
    ) -> None:
        if not streams:
            raise ValueError("at least one event stream is required")
        self.streams: List[EventStream] = list(streams)
        self.policy = policy
        self._pending: Dict[str, CommitWaiter] = {}

    @property
    def pending(self) -> FrozenSet[str]:
        return frozenset(self._pending)

    def register(self, tx_id: str) -> CommitWaiter:
        if tx_id in self._pending:
            raise TransactionIDReused(tx_id=tx_id)
        waiter = CommitWaiter(self, tx_id, self.streams, self.policy)
        self._pending[tx_id] = waiter
        try:
            waiter._subscribe()
        except BaseException:
            waiter.cancel()
            raise
        return waiter

    async def wait_for_commit(self, tx_id: str, timeout: float) -> CommitEvent:
        return await self.register(tx_id).wait(timeout)

    def cancel_all(self, reason: str = "session released") -> None:
        """Abandon every pending waiter; blocked callers get ``CommitTimeout``."""

        for waiter in list(self._pending.values()):
            waiter.abandon(reason)

    def _discard(self, waiter: CommitWaiter) -> None:
        if self._pending.get(waiter.tx_id) is waiter:
            del self._pending[waiter.tx_id]
