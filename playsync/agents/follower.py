"""Follower agent: reconciles local playback with received sync events."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..errors import EventValidationError, ProviderError
from ..events import SyncEvent, now_ms
from ..providers import Command, PlaybackProvider

logger = logging.getLogger(__name__)


class FollowerAgent:
    """Applies sync events to a local provider, one event at a time.

    Events are queued and consumed by a single task in arrival order, so
    commands for a newer event are never interleaved with those of an older
    one.
    """

    def __init__(
        self,
        provider: PlaybackProvider,
        room_id: str,
        drift_threshold_ms: int = 2000,
        command_timeout_seconds: float = 10.0,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the follower.

        Args:
            provider: Local player to correct.
            room_id: Room whose events are applied; others are ignored.
            drift_threshold_ms: Position error tolerated before seeking.
            command_timeout_seconds: Bound on each provider call (0 = none).
            clock: Millisecond wall clock.
        """
        self._provider = provider
        self._room_id = room_id
        self._drift_threshold = drift_threshold_ms
        self._command_timeout = command_timeout_seconds
        self._clock = clock
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._running = False

    def submit(self, payload: Any) -> None:
        """Queue a received payload for reconciliation."""
        self._queue.put_nowait(payload)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def drain(self) -> None:
        """Wait until every queued payload has been processed."""
        await self._queue.join()

    async def start(self) -> None:
        """Start the consumer task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Follower started for room {self._room_id}")

    async def stop(self) -> None:
        """Stop the consumer task. Unprocessed payloads are discarded."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Follower stopped")

    async def _run_loop(self) -> None:
        while self._running:
            payload = await self._queue.get()
            try:
                await self.handle_payload(payload)
            except Exception as e:
                logger.error(f"Follower failed to handle event: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def handle_payload(self, payload: Any) -> list[Command] | None:
        """Validate a raw payload and reconcile it.

        Returns:
            Commands issued, or None if the payload was discarded.
        """
        try:
            event = SyncEvent.from_dict(payload)
        except EventValidationError as e:
            logger.warning(f"Discarding malformed sync event: {e}")
            return None

        if event.room_id != self._room_id:
            logger.debug(f"Ignoring event for room {event.room_id}")
            return None

        logger.info(f"Received sync: {event.to_dict()}")
        return await self.reconcile(event)

    def target_position(self, event: SyncEvent, now: int | None = None) -> int:
        """Project the event's position forward to ``now``.

        Negative delays from clock skew count as zero.
        """
        if now is None:
            now = self._clock()
        delay = max(0, now - event.timestamp_ms)
        return event.position_ms + delay

    async def _call(self, operation: Awaitable[Any]) -> Any:
        if self._command_timeout:
            return await asyncio.wait_for(operation, timeout=self._command_timeout)
        return await operation

    async def reconcile(self, event: SyncEvent) -> list[Command]:
        """Issue the fewest commands that bring local playback to ``event``.

        Provider failures end reconciliation of this event; the next event
        starts over from the then-current local state.

        Returns:
            Commands that completed.
        """
        issued: list[Command] = []
        target = self.target_position(event)

        try:
            local = await self._call(self._provider.get_current_playback())

            if local.track_uri != event.track_uri:
                # Starting the track at the target sets position too
                logger.info(f"Follower: changing track to {event.track_uri} @ {target}ms")
                await self._call(self._provider.start_playback(event.track_uri, target))
                issued.append(Command("start_playback", uri=event.track_uri, position_ms=target))
                return issued

            drift = abs(local.position_ms - target)
            if drift > self._drift_threshold:
                logger.info(f"Follower: seeking to {target}ms (drift {drift}ms)")
                await self._call(self._provider.seek(target))
                issued.append(Command("seek", position_ms=target))

            if event.is_playing and not local.is_playing:
                logger.info("Follower: resuming playback")
                await self._call(self._provider.resume())
                issued.append(Command("resume"))
            elif not event.is_playing and local.is_playing:
                logger.info("Follower: pausing playback")
                await self._call(self._provider.pause())
                issued.append(Command("pause"))

        except ProviderError as e:
            logger.warning(f"Follower reconcile failed: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"Follower reconcile timed out after {self._command_timeout}s")

        return issued
