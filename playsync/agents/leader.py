"""Leader agent: samples ground-truth playback and publishes transitions."""

import asyncio
import logging

from ..errors import ProviderError, TransportError
from ..events import SyncEvent
from ..providers import PlaybackProvider
from ..transport import RelayTransport

logger = logging.getLogger(__name__)


class LeaderAgent:
    """Polls the provider and emits a sync event on each transition.

    Only a change of track or of play/pause state counts as a transition.
    Position drift during steady playback never produces an event.
    """

    def __init__(
        self,
        provider: PlaybackProvider,
        transport: RelayTransport,
        room_id: str,
        poll_interval_ms: int = 5000,
    ):
        """Initialize the leader.

        Args:
            provider: Source of ground-truth playback.
            transport: Connection to the room relay.
            room_id: Room the events are published to.
            poll_interval_ms: Sampling cadence.
        """
        self._provider = provider
        self._transport = transport
        self._room_id = room_id
        self._interval = poll_interval_ms / 1000
        self._last_observed: tuple[str, bool] = ("", False)
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def last_observed(self) -> tuple[str, bool]:
        """Last published (track_uri, is_playing) pair."""
        return self._last_observed

    async def poll_once(self) -> SyncEvent | None:
        """Sample the provider once and publish if something changed.

        Returns:
            The published event, or None if nothing was published.
        """
        try:
            state = await self._provider.get_current_playback()
        except ProviderError as e:
            logger.warning(f"Leader poll failed: {e}")
            return None

        if not state.has_active_item:
            logger.debug("No active item, skipping poll")
            return None

        observed = (state.track_uri, state.is_playing)
        if observed == self._last_observed:
            return None

        event = SyncEvent(
            room_id=self._room_id,
            track_uri=state.track_uri,
            is_playing=state.is_playing,
            position_ms=max(0, state.position_ms),
            timestamp_ms=state.sampled_at_ms,
        )

        try:
            await self._transport.send_sync(event)
        except TransportError as e:
            # Keep the old state so the next poll sees the transition again
            logger.warning(f"Failed to publish sync event: {e}")
            return None

        self._last_observed = observed
        logger.info(f"Leader state change: {state.track_uri} isPlaying: {state.is_playing}")
        return event

    async def start(self) -> None:
        """Start polling as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Leader started for room {self._room_id} (interval={self._interval}s)"
        )

    async def stop(self) -> None:
        """Stop polling."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Leader stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            started = loop.time()
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Leader poll crashed: {e}", exc_info=True)

            # Time spent polling counts against the interval
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self._interval - elapsed))
