"""
Event Bus: in-process dispatch for storage and document notifications.

Design:
- asyncio.Queue for immediate in-process dispatch
- Each event is dispatched on its own task, at most max_concurrency at once,
  so a pipeline backing off between attempts never holds up other events
- Handlers of one event run sequentially in subscription order
- A failing handler is logged and never stops the consumer loop
- Events lost to a full queue or a restart are recovered by the sweeper

Two notification surfaces flow through it:
- OBJECT_FINALIZED: an object landed in blob storage  {path, contentType}
- PLAYER_UPDATED:   a player document changed        {player_id, before, after}
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger("players.events")

# ── Event type constants ─────────────────────────────────────────────────────
OBJECT_FINALIZED = "OBJECT_FINALIZED"
PLAYER_UPDATED = "PLAYER_UPDATED"


# ── Event ────────────────────────────────────────────────────────────────────
class Event:
    """Immutable event payload."""

    __slots__ = ("event_type", "payload", "created_at")

    def __init__(self, event_type: str, payload: Dict[str, Any]):
        self.event_type = event_type
        self.payload = payload
        self.created_at = datetime.now(timezone.utc)

    def __repr__(self):
        subject = self.payload.get("path") or self.payload.get("player_id")
        return f"Event({self.event_type}, subject={subject})"


# ── EventBus ─────────────────────────────────────────────────────────────────
class EventBus:
    """
    In-memory event bus with async consumer.

    Events are dispatched concurrently, each to its registered handlers in
    subscription order. If no handler is registered for an event type, a
    warning is logged.
    """

    def __init__(
        self,
        max_queue_size: int = 1000,
        stop_timeout: float = 10.0,
        max_concurrency: int = 8,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._handlers: Dict[str, List[Callable]] = {}
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._stop_timeout = stop_timeout
        self._slots = asyncio.Semaphore(max_concurrency)
        self._inflight: Set[asyncio.Task] = set()

    def subscribe(self, event_type: str, handler: Callable):
        """Register an async handler for an event type."""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        if handler in self._handlers[event_type]:
            return
        self._handlers[event_type].append(handler)
        logger.info(f"EventBus: subscribed {handler.__name__} to {event_type}")

    async def emit(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """Emit an event to the queue for async processing.

        Returns:
            False if the queue is full and the event was dropped
        """
        event = Event(event_type, payload)
        try:
            self._queue.put_nowait(event)
            logger.info(f"EventBus: emitted {event}")
            return True
        except asyncio.QueueFull:
            logger.error(f"EventBus: queue full ({self._queue.maxsize}), dropping {event}")
            return False

    async def start(self):
        """Start the background consumer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._consumer_loop())
        logger.info("EventBus: started consumer loop")

    async def stop(self):
        """Graceful shutdown: drain queue, wait for in-flight events, then stop."""
        self._running = False
        if self._task:
            # Sentinel to unblock the consumer
            await self._queue.put(None)
            try:
                await asyncio.wait_for(self._wait_idle(), timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                self._task.cancel()
                for task in list(self._inflight):
                    task.cancel()
                logger.warning(
                    f"EventBus: consumer did not finish in {self._stop_timeout}s, cancelled"
                )
            self._task = None
        logger.info(f"EventBus: stopped (pending={self._queue.qsize()})")

    async def drain(self):
        """Dispatch everything currently queued and wait for it to finish.

        Used by scripts and tests that run without the background consumer.
        Events emitted by handlers during the drain are dispatched too.
        """
        while True:
            while not self._queue.empty():
                event = self._queue.get_nowait()
                if event is None:
                    continue
                await self._slots.acquire()
                self._spawn(event)
            if not self._inflight:
                break
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _wait_idle(self):
        await self._task
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _consumer_loop(self):
        """Hand events to dispatch tasks until the stop sentinel."""
        while True:
            try:
                await self._slots.acquire()
                event = await self._queue.get()
                if event is None:
                    self._slots.release()
                    break
                self._spawn(event)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"EventBus: consumer loop error: {e}", exc_info=True)

    def _spawn(self, event: Event) -> None:
        """Dispatch on a new task. The caller holds a concurrency slot."""
        task = asyncio.create_task(self._run(event))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, event: Event):
        try:
            await self._dispatch(event)
        finally:
            self._slots.release()

    async def _dispatch(self, event: Event):
        """Dispatch event to all registered handlers."""
        handlers = self._handlers.get(event.event_type, [])
        if not handlers:
            logger.warning(f"EventBus: no handlers for {event.event_type}")
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"EventBus: handler {handler.__name__} failed for {event}: {e}",
                    exc_info=True,
                )

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    @property
    def is_running(self) -> bool:
        return self._running


# ── Sweeper ──────────────────────────────────────────────────────────────────

async def sweep_stale_pending(session_factory, older_than_seconds: float) -> List[str]:
    """
    Find players whose avatar generation has been pending for too long.

    A player stays pending only until its OBJECT_FINALIZED event is handled,
    so a stale pending row means the event was dropped (queue full) or lost
    (restart, cancelled on shutdown).
    """
    from sqlalchemy import select

    from app.models import GenerationStatus, Player

    cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
    query = (
        select(Player.id)
        .where(Player.generation_status == GenerationStatus.PENDING.value)
        .where(Player.updated_at < cutoff)
        .order_by(Player.updated_at)
    )
    async with session_factory() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def run_sweeper(bus: EventBus, session_factory, media, older_than_seconds: float) -> int:
    """
    Re-announce the canonical photo of every stale pending player.

    Called at startup and by the scheduler.
    Returns count of events emitted.
    """
    try:
        player_ids = await sweep_stale_pending(session_factory, older_than_seconds)
        emitted = 0
        for player_id in player_ids:
            key = await media.find_photo_key(player_id)
            if key is None:
                logger.warning(f"[SWEEPER] No stored photo for pending player {player_id}")
                continue
            content_type = await media.content_type(key) or "image/jpeg"
            if not await bus.emit(OBJECT_FINALIZED, {"path": key, "contentType": content_type, "source": "sweeper"}):
                break
            emitted += 1
        return emitted
    except Exception as e:
        logger.error(f"[SWEEPER] Failed: {e}", exc_info=True)
        return 0


# ── Global bus ───────────────────────────────────────────────────────────────

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus (created on first use)."""
    global _event_bus

    if _event_bus is None:
        from app.config import get_settings

        settings = get_settings()
        _event_bus = EventBus(
            max_queue_size=settings.EVENT_BUS_MAX_QUEUE,
            stop_timeout=settings.EVENT_BUS_STOP_TIMEOUT_SECONDS,
            max_concurrency=settings.EVENT_BUS_MAX_CONCURRENCY,
        )
    return _event_bus
