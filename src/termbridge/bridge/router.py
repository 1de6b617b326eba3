"""Event router — attribute global backend events to the pane that owns them.

The backend emits OUTPUT and EXIT for every session on one Wire.  Spawning
a shell and learning its id is asynchronous, and the shell usually prints
its first prompt before ``spawn`` returns.  So a pane subscribes *first*,
in the pending state.  While any subscription is pending, unattributed
events are held in a bounded buffer per session id.  When a pane learns
its id, ``Subscription.resolve`` replays that id's buffer in arrival order
and switches to live routing.

Events for ids that have been retired (killed, or replaced by a respawn)
are dropped, so a torn-down pane never receives stale output.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from typing import Callable

from termbridge.bridge.errors import OverflowDrop, UnknownSessionEvent
from termbridge.bridge.parser import CwdDetection, detect_cwd
from termbridge.session.wire import EventType, Wire, WireEvent

logger = logging.getLogger(__name__)

DEFAULT_EARLY_OUTPUT_LIMIT = 100

OutputHandler = Callable[[str], None]
ExitHandler = Callable[[int | None], None]
CwdHandler = Callable[[str], None]


class SubscriptionState(enum.Enum):
    PENDING = "pending"  # Id not known yet, buffering
    RESOLVED = "resolved"  # Routing live for one id
    CLOSED = "closed"


class Subscription:
    """One caller's view of the global event stream."""

    def __init__(
        self,
        router: EventRouter,
        on_output: OutputHandler,
        on_exit: ExitHandler,
        on_cwd_change: CwdHandler | None = None,
    ) -> None:
        self._router = router
        self._on_output = on_output
        self._on_exit = on_exit
        self._on_cwd_change = on_cwd_change
        self._state = SubscriptionState.PENDING
        self._last_cwd: str | None = None
        self.session_id: str | None = None

    @property
    def state(self) -> SubscriptionState:
        return self._state

    def resolve(self, session_id: str) -> int:
        """Bind to ``session_id`` and replay its buffered events in order.

        Returns the number of replayed events.
        """
        if self._state == SubscriptionState.CLOSED:
            return 0
        replay, dropped = self._router._take_early(session_id)
        self.session_id = session_id
        self._state = SubscriptionState.RESOLVED
        self._router._bind(self, session_id)

        if dropped:
            logger.warning(
                "Session %s: %d early event(s) were dropped before its id resolved",
                session_id[:8],
                dropped,
            )
        for event in replay:
            # A replayed handler may close us (e.g. exit -> teardown)
            if self._state != SubscriptionState.RESOLVED:
                break
            self._deliver(event)
        return len(replay)

    def expect_new_id(self) -> None:
        """Go back to pending, e.g. while a replacement process is spawning."""
        if self._state == SubscriptionState.CLOSED:
            return
        self._router._unbind(self)
        self.session_id = None
        self._state = SubscriptionState.PENDING

    def close(self) -> None:
        """Detach from the router. Idempotent."""
        if self._state == SubscriptionState.CLOSED:
            return
        self._router._detach(self)
        self._state = SubscriptionState.CLOSED
        self.session_id = None

    def _deliver(self, event: WireEvent) -> None:
        if event.type == EventType.OUTPUT:
            data = event.data.get("data", "")
            try:
                self._on_output(data)
            except Exception:
                logger.exception("Output handler failed for %s", event.session_id)
            self._detect_cwd(data)
        elif event.type == EventType.EXIT:
            try:
                self._on_exit(event.data.get("exit_code"))
            except Exception:
                logger.exception("Exit handler failed for %s", event.session_id)

    def _detect_cwd(self, data: str) -> None:
        if self._on_cwd_change is None:
            return
        cwd = detect_cwd(data, self._router.cwd_detection)
        if cwd is None or cwd == self._last_cwd:
            return
        self._last_cwd = cwd
        try:
            self._on_cwd_change(cwd)
        except Exception:
            logger.exception("Cwd handler failed for %s", self.session_id)
        if self.session_id is not None:
            self._router.wire.send_cwd(self.session_id, cwd)


class EventRouter:
    """Dispatches OUTPUT/EXIT events from the global Wire to subscriptions.

    Rules, per event:
    1. id retired -> drop silently
    2. id bound to a resolved subscription -> deliver now
    3. otherwise, if any subscription is pending -> buffer under its id
    4. otherwise -> drop silently (unknown id)
    """

    def __init__(
        self,
        wire: Wire,
        early_output_limit: int = DEFAULT_EARLY_OUTPUT_LIMIT,
        cwd_detection: CwdDetection = "all",
    ) -> None:
        self.wire = wire
        self.early_output_limit = early_output_limit
        self.cwd_detection: CwdDetection = cwd_detection
        self._routes: dict[str, Subscription] = {}
        self._pending: list[Subscription] = []
        self._retired: set[str] = set()
        # Unattributed events, held per session id while anyone is pending
        self._early: dict[str | None, deque[WireEvent]] = {}
        self._early_dropped: dict[str | None, int] = {}
        self._task: asyncio.Task | None = None
        self._queue: asyncio.Queue[WireEvent | None] | None = None

    # --- Subscription management ---

    def subscribe(
        self,
        on_output: OutputHandler,
        on_exit: ExitHandler,
        on_cwd_change: CwdHandler | None = None,
    ) -> Subscription:
        """Attach a new caller in the pending state (call before spawning)."""
        sub = Subscription(
            self,
            on_output=on_output,
            on_exit=on_exit,
            on_cwd_change=on_cwd_change,
        )
        self._pending.append(sub)
        return sub

    def retire(self, session_id: str) -> None:
        """Stop trusting ``session_id``; later events for it are dropped."""
        self._retired.add(session_id)
        self._early.pop(session_id, None)
        self._early_dropped.pop(session_id, None)
        sub = self._routes.pop(session_id, None)
        if sub is not None:
            logger.debug("Retired session %s", session_id[:8])

    def is_retired(self, session_id: str) -> bool:
        return session_id in self._retired

    def _bind(self, sub: Subscription, session_id: str) -> None:
        if sub in self._pending:
            self._pending.remove(sub)
        self._routes[session_id] = sub
        self._discard_unclaimed()

    def _unbind(self, sub: Subscription) -> None:
        if sub.session_id is not None and self._routes.get(sub.session_id) is sub:
            del self._routes[sub.session_id]
        if sub not in self._pending:
            self._pending.append(sub)

    def _detach(self, sub: Subscription) -> None:
        if sub in self._pending:
            self._pending.remove(sub)
        if sub.session_id is not None and self._routes.get(sub.session_id) is sub:
            del self._routes[sub.session_id]
        self._discard_unclaimed()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # --- Early output ---

    def buffered(self, session_id: str | None) -> int:
        """Number of early events held for ``session_id``."""
        queue = self._early.get(session_id)
        return len(queue) if queue else 0

    def dropped(self, session_id: str | None) -> int:
        """Number of early events for ``session_id`` lost to the bound."""
        return self._early_dropped.get(session_id, 0)

    def _buffer(self, event: WireEvent) -> None:
        session_id = event.session_id
        queue = self._early.setdefault(session_id, deque())
        if len(queue) >= self.early_output_limit:
            count = self._early_dropped.get(session_id, 0) + 1
            self._early_dropped[session_id] = count
            if count == 1:
                logger.warning("%s", OverflowDrop(self.early_output_limit, session_id))
            return
        queue.append(event)

    def _take_early(self, session_id: str) -> tuple[list[WireEvent], int]:
        queue = self._early.pop(session_id, None)
        dropped = self._early_dropped.pop(session_id, 0)
        return list(queue or ()), dropped

    def _discard_unclaimed(self) -> None:
        # Nobody is left to claim them
        if self._pending or not self._early:
            return
        count = sum(len(q) for q in self._early.values())
        logger.debug("Discarding %d unclaimed early event(s)", count)
        self._early.clear()
        self._early_dropped.clear()

    # --- Dispatch ---

    def dispatch(self, event: WireEvent) -> None:
        if event.type not in (EventType.OUTPUT, EventType.EXIT):
            return
        session_id = event.session_id

        if session_id in self._retired:
            logger.debug("%s", UnknownSessionEvent(session_id))
            return

        sub = self._routes.get(session_id) if session_id else None
        if sub is not None:
            sub._deliver(event)
            return

        if self._pending:
            self._buffer(event)
            return

        logger.debug("%s", UnknownSessionEvent(session_id))

    async def _listen(self) -> None:
        queue = self._queue
        assert queue is not None, "_listen called before start()"
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self.dispatch(event)
        finally:
            self.wire.unsubscribe(queue)

    def start(self) -> None:
        """Subscribe to the wire and route events from a background task."""
        if self._task is not None:
            return
        self._queue = self.wire.subscribe()
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        for sub in list(self._routes.values()) + list(self._pending):
            sub.close()
