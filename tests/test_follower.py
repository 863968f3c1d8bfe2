"""Tests for follower reconciliation."""

import asyncio
import pytest

from conftest import T0, make_event
from playsync.agents import FollowerAgent
from playsync.errors import ProviderNetworkError
from playsync.events import SyncEvent
from playsync.providers import Command, MockProvider


@pytest.fixture
def provider(clock):
    return MockProvider(clock=clock)


@pytest.fixture
def follower(provider, clock):
    return FollowerAgent(provider, room_id="room-a", drift_threshold_ms=2000, clock=clock)


def event(**overrides) -> SyncEvent:
    return SyncEvent.from_dict(make_event(**overrides))


class TestTargetPosition:
    def test_projects_by_elapsed_delay(self, follower):
        e = event(position=10000, timestamp=T0)

        assert follower.target_position(e, now=T0 + 1500) == 11500

    def test_negative_delay_counts_as_zero(self, follower):
        e = event(position=10000, timestamp=T0 + 3000)

        assert follower.target_position(e, now=T0) == 10000

    def test_uses_clock_by_default(self, follower, clock):
        clock.advance(250)

        assert follower.target_position(event(position=0, timestamp=T0)) == 250


class TestTrackMismatch:
    @pytest.mark.asyncio
    async def test_no_active_item_starts_track(self, follower, provider, clock):
        clock.advance(300)

        issued = await follower.reconcile(event(uri="spotify:track:9", position=5000))

        assert issued == [Command("start_playback", uri="spotify:track:9", position_ms=5300)]
        assert provider.commands == issued

    @pytest.mark.asyncio
    async def test_other_track_only_starts_playback(self, follower, provider):
        # Drift and play state would both call for correction on a matching track
        provider.set_state("spotify:track:other", False, position_ms=90_000)

        issued = await follower.reconcile(event(uri="spotify:track:1", isPlaying=True))

        assert [c.name for c in issued] == ["start_playback"]
        assert [c.name for c in provider.commands] == ["start_playback"]


class TestTrackMatch:
    @pytest.mark.asyncio
    async def test_drift_within_threshold_no_seek(self, follower, provider, clock):
        clock.advance(1000)
        # target = 49000 + 1000 = 50000, local = 51500
        provider.set_state("spotify:track:1", True, position_ms=51500)

        issued = await follower.reconcile(event(position=49000, timestamp=T0))

        assert issued == []

    @pytest.mark.asyncio
    async def test_drift_beyond_threshold_seeks(self, follower, provider, clock):
        clock.advance(1000)
        provider.set_state("spotify:track:1", True, position_ms=52500)

        issued = await follower.reconcile(event(position=49000, timestamp=T0))

        assert issued == [Command("seek", position_ms=50000)]

    @pytest.mark.asyncio
    async def test_drift_exactly_threshold_no_seek(self, follower, provider):
        provider.set_state("spotify:track:1", True, position_ms=12000)

        assert await follower.reconcile(event(position=10000, timestamp=T0)) == []

    @pytest.mark.asyncio
    async def test_behind_leader_seeks_forward(self, follower, provider):
        provider.set_state("spotify:track:1", True, position_ms=1000)

        issued = await follower.reconcile(event(position=10000, timestamp=T0))

        assert issued == [Command("seek", position_ms=10000)]

    @pytest.mark.asyncio
    async def test_resume_without_seek(self, follower, provider):
        provider.set_state("spotify:track:1", False, position_ms=10500)

        issued = await follower.reconcile(event(position=10000, isPlaying=True))

        assert issued == [Command("resume")]

    @pytest.mark.asyncio
    async def test_pause_without_seek(self, follower, provider):
        provider.set_state("spotify:track:1", True, position_ms=10000)

        issued = await follower.reconcile(event(position=10000, isPlaying=False))

        assert issued == [Command("pause")]

    @pytest.mark.asyncio
    async def test_paused_follower_seeks_without_resuming(self, follower, provider):
        provider.set_state("spotify:track:1", False, position_ms=0)

        issued = await follower.reconcile(event(position=30000, isPlaying=False))

        assert issued == [Command("seek", position_ms=30000)]

    @pytest.mark.asyncio
    async def test_seek_and_resume_together(self, follower, provider):
        provider.set_state("spotify:track:1", False, position_ms=0)

        issued = await follower.reconcile(event(position=30000, isPlaying=True))

        assert issued == [Command("seek", position_ms=30000), Command("resume")]

    @pytest.mark.asyncio
    async def test_in_sync_issues_nothing(self, follower, provider):
        provider.set_state("spotify:track:1", True, position_ms=10000)

        assert await follower.reconcile(event(position=10000)) == []
        assert provider.commands == []

    @pytest.mark.asyncio
    async def test_custom_threshold(self, provider, clock):
        follower = FollowerAgent(provider, room_id="room-a", drift_threshold_ms=100, clock=clock)
        provider.set_state("spotify:track:1", True, position_ms=10200)

        issued = await follower.reconcile(event(position=10000))

        assert issued == [Command("seek", position_ms=10000)]


class TestFailures:
    @pytest.mark.asyncio
    async def test_provider_error_is_contained(self, follower, provider):
        provider.fail_next(ProviderNetworkError("offline"))

        assert await follower.reconcile(event()) == []

    @pytest.mark.asyncio
    async def test_partial_commands_are_reported(self, follower, provider):
        provider.set_state("spotify:track:1", False, position_ms=0)

        async def failing_resume():
            raise ProviderNetworkError("lost")

        provider.resume = failing_resume
        issued = await follower.reconcile(event(position=30000, isPlaying=True))

        assert issued == [Command("seek", position_ms=30000)]

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, clock):
        class HangingProvider(MockProvider):
            async def get_current_playback(self):
                await asyncio.sleep(10)

        follower = FollowerAgent(
            HangingProvider(clock=clock),
            room_id="room-a",
            command_timeout_seconds=0.01,
            clock=clock,
        )

        assert await follower.reconcile(event()) == []

    @pytest.mark.asyncio
    async def test_malformed_payload_discarded(self, follower, provider):
        payload = make_event()
        del payload["timestamp"]

        assert await follower.handle_payload(payload) is None
        assert provider.commands == []

    @pytest.mark.asyncio
    async def test_other_room_ignored(self, follower, provider):
        assert await follower.handle_payload(make_event(roomId="room-b")) is None
        assert provider.commands == []


class TestQueue:
    """Tests for ordered, one-at-a-time processing."""

    @pytest.mark.asyncio
    async def test_events_processed_in_order(self, follower, provider):
        await follower.start()

        follower.submit(make_event(uri="spotify:track:1"))
        follower.submit(make_event(uri="spotify:track:2"))
        follower.submit(make_event(uri="spotify:track:3"))
        await follower.drain()
        await follower.stop()

        assert [c.uri for c in provider.commands] == [
            "spotify:track:1",
            "spotify:track:2",
            "spotify:track:3",
        ]

    @pytest.mark.asyncio
    async def test_no_overlapping_reconciliation(self, clock):
        class SlowProvider(MockProvider):
            in_flight = 0
            max_in_flight = 0

            async def start_playback(self, uri, position_ms):
                SlowProvider.in_flight += 1
                SlowProvider.max_in_flight = max(SlowProvider.max_in_flight, SlowProvider.in_flight)
                await asyncio.sleep(0.01)
                await super().start_playback(uri, position_ms)
                SlowProvider.in_flight -= 1

        provider = SlowProvider(clock=clock)
        follower = FollowerAgent(provider, room_id="room-a", clock=clock)
        await follower.start()

        for n in range(4):
            follower.submit(make_event(uri=f"spotify:track:{n}"))
        await follower.drain()
        await follower.stop()

        assert SlowProvider.max_in_flight == 1
        assert len(provider.commands) == 4

    @pytest.mark.asyncio
    async def test_bad_payload_does_not_stop_queue(self, follower, provider):
        await follower.start()

        follower.submit("garbage")
        follower.submit(make_event(uri="spotify:track:1"))
        await follower.drain()
        await follower.stop()

        assert [c.name for c in provider.commands] == ["start_playback"]
