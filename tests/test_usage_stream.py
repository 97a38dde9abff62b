"""Tests for the usage stream supervisor."""

import asyncio

import pytest

from costa_bridge.bridge.errors import CliTimeoutError, NonZeroExitError
from costa_bridge.bridge.schemas import StatusResult
from costa_bridge.usage import InvalidTransitionError, StreamState, UsageSnapshot, UsageStream

from conftest import settle


def make_stream(client, scheduler) -> UsageStream:
    return UsageStream(client, scheduler=scheduler, poll_interval=3, reconnect_delay=5)


def gated_status(gate: asyncio.Event, result: StatusResult):
    async def status():
        await gate.wait()
        return result

    return status


class TestFetchUsageData:

    @pytest.mark.asyncio
    async def test_not_logged_in_publishes_nothing(self, fake_client, scheduler):
        fake_client.status.return_value = StatusResult(logged_in=False)
        stream = make_stream(fake_client, scheduler)
        events = []
        stream.on_usage(events.append)

        result = await stream.fetch_usage_data()

        assert result is None
        assert events == []
        assert stream.latest is None

    @pytest.mark.asyncio
    async def test_sentinel_values_reach_subscribers_untouched(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)
        events = []
        stream.on_usage(events.append)

        await stream.fetch_usage_data()

        assert len(events) == 1
        snapshot = events[0]
        assert snapshot.points == 5
        assert snapshot.total_points == "∞"
        assert snapshot.context_length == "-"
        assert stream.latest == snapshot

    @pytest.mark.asyncio
    async def test_missing_points_default_to_zero(self, fake_client, scheduler):
        fake_client.status.return_value = StatusResult(logged_in=True)
        stream = make_stream(fake_client, scheduler)

        snapshot = await stream.fetch_usage_data()

        assert snapshot == UsageSnapshot(points=0, total_points=0, context_length="-")

    @pytest.mark.asyncio
    async def test_bridge_errors_propagate(self, fake_client, scheduler):
        fake_client.status.side_effect = NonZeroExitError("costa status exited with code 1", returncode=1)
        stream = make_stream(fake_client, scheduler)

        with pytest.raises(NonZeroExitError):
            await stream.fetch_usage_data()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)
        received = []

        def broken(snapshot):
            raise ValueError("widget disposed")

        stream.on_usage(broken)
        stream.on_usage(received.append)

        await stream.fetch_usage_data()

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)
        received = []
        unsubscribe = stream.on_usage(received.append)

        unsubscribe()
        unsubscribe()
        await stream.fetch_usage_data()

        assert received == []


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_starts_polling(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)

        await stream.connect()

        assert stream.state is StreamState.POLLING
        assert stream.polling
        assert fake_client.status.await_count == 1

        await scheduler.advance(3)
        assert fake_client.status.await_count == 2

        await scheduler.advance(6)
        assert fake_client.status.await_count == 4

    @pytest.mark.asyncio
    async def test_concurrent_connect_runs_one_fetch(self, fake_client, scheduler, logged_in_status):
        gate = asyncio.Event()
        fake_client.status.side_effect = gated_status(gate, logged_in_status)
        stream = make_stream(fake_client, scheduler)

        first = asyncio.create_task(stream.connect())
        await settle()
        assert stream.is_connecting

        await stream.connect()
        assert fake_client.status.call_count == 1

        gate.set()
        await first

        assert fake_client.status.call_count == 1
        assert stream.state is StreamState.POLLING
        assert not stream.is_connecting

    @pytest.mark.asyncio
    async def test_connect_failure_schedules_reconnect(self, fake_client, scheduler):
        fake_client.status.side_effect = CliTimeoutError("costa status timed out after 15s")
        stream = make_stream(fake_client, scheduler)

        await stream.connect()

        assert stream.state is StreamState.RECONNECT_SCHEDULED
        assert stream.reconnect_pending
        assert not stream.polling
        assert not stream.is_connecting

        await scheduler.advance(4.9)
        assert fake_client.status.await_count == 1

        await scheduler.advance(0.1)
        assert fake_client.status.await_count == 2

    @pytest.mark.asyncio
    async def test_reconnect_recovers_into_polling(self, fake_client, scheduler, logged_in_status):
        fake_client.status.side_effect = [
            CliTimeoutError("costa status timed out after 15s"),
            logged_in_status,
            logged_in_status,
        ]
        stream = make_stream(fake_client, scheduler)

        await stream.connect()
        await scheduler.advance(5)

        assert stream.state is StreamState.POLLING
        assert not stream.reconnect_pending

        await scheduler.advance(5)
        assert fake_client.status.await_count == 3


class TestPollingFailures:

    @pytest.mark.asyncio
    async def test_failed_tick_schedules_single_reconnect(self, fake_client, scheduler, logged_in_status):
        failure = NonZeroExitError("costa status exited with code 1", returncode=1)
        fake_client.status.side_effect = [logged_in_status, failure, failure, logged_in_status]
        stream = make_stream(fake_client, scheduler)

        await stream.connect()
        await scheduler.advance(3)

        # tick at t=3 failed: polling torn down, reconnect due at t=8
        assert stream.state is StreamState.RECONNECT_SCHEDULED
        assert not stream.polling
        assert len(scheduler.pending) == 1

        await scheduler.advance(1)
        await stream.connect()

        # second failure at t=4 replaced the pending reconnect (now due at t=9)
        assert fake_client.status.await_count == 3
        assert len(scheduler.pending) == 1

        await scheduler.advance(4.5)
        assert fake_client.status.await_count == 3

        await scheduler.advance(0.5)
        assert fake_client.status.await_count == 4
        assert stream.state is StreamState.POLLING

        await scheduler.advance(1)
        assert fake_client.status.await_count == 4

    @pytest.mark.asyncio
    async def test_slow_poll_does_not_overlap(self, fake_client, scheduler, logged_in_status):
        stream = make_stream(fake_client, scheduler)
        await stream.connect()

        gate = asyncio.Event()
        fake_client.status.side_effect = gated_status(gate, logged_in_status)

        await scheduler.advance(3)
        assert fake_client.status.call_count == 2

        await scheduler.advance(3)
        await scheduler.advance(3)
        assert fake_client.status.call_count == 2

        gate.set()
        await settle()
        await scheduler.advance(3)
        assert fake_client.status.call_count == 3


    @pytest.mark.asyncio
    async def test_connect_waits_for_in_flight_poll(self, fake_client, scheduler, logged_in_status):
        stream = make_stream(fake_client, scheduler)
        await stream.connect()

        gate = asyncio.Event()
        in_flight = 0
        peak = 0

        async def tracked_status():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await gate.wait()
                return logged_in_status
            finally:
                in_flight -= 1

        fake_client.status.side_effect = tracked_status
        await scheduler.advance(3)
        assert in_flight == 1

        connecting = asyncio.create_task(stream.connect())
        await settle()
        assert stream.is_connecting
        assert fake_client.status.call_count == 2

        gate.set()
        await connecting

        assert peak == 1
        assert fake_client.status.call_count == 3
        assert stream.state is StreamState.POLLING

    @pytest.mark.asyncio
    async def test_tick_failing_after_reconnect_leaves_new_cycle_alone(
        self, fake_client, scheduler, logged_in_status
    ):
        stream = make_stream(fake_client, scheduler)
        await stream.connect()

        gate = asyncio.Event()
        calls = 0

        async def first_call_fails_late():
            nonlocal calls
            calls += 1
            if calls == 1:
                await gate.wait()
                raise CliTimeoutError("costa status timed out after 15s")
            return logged_in_status

        fake_client.status.side_effect = first_call_fails_late
        await scheduler.advance(3)

        connecting = asyncio.create_task(stream.connect())
        await settle()
        gate.set()
        await connecting

        assert stream.state is StreamState.POLLING
        assert stream.polling
        assert not stream.reconnect_pending

        await scheduler.advance(3)
        assert fake_client.status.call_count == 4


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_stops_polling(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)
        await stream.connect()

        stream.disconnect()

        assert stream.state is StreamState.IDLE
        assert scheduler.pending == []
        await scheduler.advance(60)
        assert fake_client.status.await_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_reconnect(self, fake_client, scheduler):
        fake_client.status.side_effect = CliTimeoutError("costa status timed out after 15s")
        stream = make_stream(fake_client, scheduler)
        await stream.connect()

        stream.disconnect()

        assert not stream.reconnect_pending
        await scheduler.advance(60)
        assert fake_client.status.await_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_is_safe_when_idle(self, fake_client, scheduler):
        stream = make_stream(fake_client, scheduler)

        stream.disconnect()
        stream.disconnect()

        assert stream.state is StreamState.IDLE

    @pytest.mark.asyncio
    async def test_call_finishing_after_disconnect_does_not_rearm(self, fake_client, scheduler, logged_in_status):
        gate = asyncio.Event()
        fake_client.status.side_effect = gated_status(gate, logged_in_status)
        stream = make_stream(fake_client, scheduler)

        connecting = asyncio.create_task(stream.connect())
        await settle()
        stream.disconnect()
        gate.set()
        await connecting

        assert stream.state is StreamState.IDLE
        assert scheduler.pending == []
        await scheduler.advance(60)
        assert fake_client.status.call_count == 1

    @pytest.mark.asyncio
    async def test_failure_after_disconnect_does_not_schedule_reconnect(self, fake_client, scheduler):
        gate = asyncio.Event()

        async def failing_status():
            await gate.wait()
            raise CliTimeoutError("costa status timed out after 15s")

        fake_client.status.side_effect = failing_status
        stream = make_stream(fake_client, scheduler)

        connecting = asyncio.create_task(stream.connect())
        await settle()
        stream.disconnect()
        gate.set()
        await connecting

        assert not stream.reconnect_pending
        assert stream.state is StreamState.IDLE


def test_illegal_transition_is_rejected(fake_client, scheduler):
    stream = make_stream(fake_client, scheduler)

    with pytest.raises(InvalidTransitionError):
        stream._transition(StreamState.POLLING)


@pytest.mark.asyncio
async def test_close_cancels_in_flight_poll(fake_client, scheduler):
    stream = make_stream(fake_client, scheduler)
    await stream.connect()

    cancelled = []

    async def hanging_status():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    fake_client.status.side_effect = hanging_status
    await scheduler.advance(3)

    await stream.close()

    assert cancelled == [True]
    assert stream.state is StreamState.IDLE
    assert scheduler.pending == []
