"""
Event Evals -- the live stream a UI follows during a session.

A subscriber must always see the stream end, whether it connected before
the session started or after it finished.
"""

import asyncio

import pytest

from collabengine.events import AgentState, QueueEventPublisher, StatusReporter
from collabengine.events.publisher import NullPublisher, make_event, safe_publish
from evals.fakes import RecordingPublisher

CHANNEL = "collab:s1"


async def collect(publisher, channel=CHANNEL):
    return [event async for event in publisher.subscribe(channel)]


class TestQueueEventPublisher:
    """Eval: Subscribers get every event up to collaboration_complete."""

    @pytest.mark.asyncio
    async def test_live_subscriber_stops_at_terminal_event(self):
        publisher = QueueEventPublisher()
        publisher.publish(CHANNEL, make_event("phase_start", phase="draft"))

        task = asyncio.create_task(collect(publisher))
        await asyncio.sleep(0)
        publisher.publish(CHANNEL, make_event("agent_thinking", agent="claude", phase="draft"))
        publisher.publish(CHANNEL, make_event("collaboration_complete"))

        events = await asyncio.wait_for(task, timeout=1.0)
        assert [e["type"] for e in events] == [
            "phase_start", "agent_thinking", "collaboration_complete",
        ]

    @pytest.mark.asyncio
    async def test_late_subscriber_replays_closed_channel(self):
        publisher = QueueEventPublisher()
        publisher.publish(CHANNEL, make_event("phase_start", phase="draft"))
        publisher.publish(CHANNEL, make_event("collaboration_complete"))

        events = await asyncio.wait_for(collect(publisher), timeout=1.0)

        assert publisher.is_closed(CHANNEL)
        assert [e["type"] for e in events] == ["phase_start", "collaboration_complete"]

    @pytest.mark.asyncio
    async def test_channels_are_isolated(self):
        publisher = QueueEventPublisher()
        publisher.publish("collab:other", make_event("phase_start", phase="vote"))
        publisher.publish(CHANNEL, make_event("collaboration_complete"))

        events = await collect(publisher)
        assert [e["type"] for e in events] == ["collaboration_complete"]

    def test_history_is_bounded(self):
        publisher = QueueEventPublisher(history=3)
        for i in range(5):
            publisher.publish(CHANNEL, make_event("agent_thought", chunk=str(i)))
        assert [e["chunk"] for e in publisher.history(CHANNEL)] == ["2", "3", "4"]

    def test_forget_drops_history(self):
        publisher = QueueEventPublisher()
        publisher.publish(CHANNEL, make_event("collaboration_complete"))
        publisher.forget(CHANNEL)
        assert publisher.history(CHANNEL) == []
        assert not publisher.is_closed(CHANNEL)

    def test_retained_channels_are_bounded(self):
        publisher = QueueEventPublisher(max_channels=2)
        for session in ("s1", "s2", "s3"):
            publisher.publish(f"collab:{session}", make_event("phase_start", phase="draft"))
            publisher.publish(f"collab:{session}", make_event("collaboration_complete"))

        assert publisher.channels == 2
        assert publisher.history("collab:s1") == []
        assert not publisher.is_closed("collab:s1")
        assert publisher.is_closed("collab:s3")

    def test_recent_publish_keeps_channel(self):
        publisher = QueueEventPublisher(max_channels=2)
        publisher.publish("collab:a", make_event("phase_start", phase="draft"))
        publisher.publish("collab:b", make_event("phase_start", phase="draft"))
        publisher.publish("collab:a", make_event("agent_thinking", agent="claude"))
        publisher.publish("collab:c", make_event("phase_start", phase="draft"))

        assert publisher.history("collab:b") == []
        assert len(publisher.history("collab:a")) == 2

    @pytest.mark.asyncio
    async def test_channel_with_live_subscriber_not_evicted(self):
        publisher = QueueEventPublisher(max_channels=1)
        task = asyncio.create_task(collect(publisher, "collab:live"))
        await asyncio.sleep(0)

        publisher.publish("collab:live", make_event("phase_start", phase="draft"))
        publisher.publish("collab:other", make_event("collaboration_complete"))
        publisher.publish("collab:live", make_event("collaboration_complete"))

        events = await asyncio.wait_for(task, timeout=1.0)
        assert [e["type"] for e in events] == ["phase_start", "collaboration_complete"]
        assert publisher.history("collab:other") == []
        assert publisher.is_closed("collab:live")

    def test_events_carry_timestamp(self):
        event = make_event("agent_status", agent="claude", state="processing")
        assert event["type"] == "agent_status"
        assert event["timestamp"].endswith("+00:00")


class TestSafePublish:
    """Eval: A broken consumer never breaks the orchestration."""

    def test_publisher_error_is_logged_not_raised(self, caplog):
        class Broken:
            def publish(self, channel_id, event):
                raise ConnectionError("socket closed")

        safe_publish(Broken(), CHANNEL, make_event("phase_start", phase="draft"))
        assert "socket closed" in caplog.text

    def test_no_publisher(self):
        safe_publish(None, CHANNEL, make_event("phase_start"))
        NullPublisher().publish(CHANNEL, make_event("phase_start"))


class TestStatusReporter:
    """Eval: Status updates reach the callback and the stream; finalize closes every agent."""

    def test_update_mirrors_to_stream(self, status_log):
        publisher = RecordingPublisher()
        reporter = StatusReporter(status_log, publisher, CHANNEL)

        reporter.processing("claude", "Drafting")

        assert status_log.updates == [("claude", "processing", "Drafting")]
        event = publisher.of_type("agent_status")[0]
        assert (event["agent"], event["state"], event["message"]) == ("claude", "processing", "Drafting")

    def test_phase_change_keeps_last_state(self):
        reporter = StatusReporter()
        reporter.completed("claude", "Draft done")
        reporter.phase_change(["claude"], "Critique phase")
        assert reporter.last_state("claude") is AgentState.COMPLETED

    def test_finalize_only_touches_non_terminal_agents(self, status_log):
        reporter = StatusReporter(status_log)
        reporter.failed("grok", "timed out")
        reporter.processing("claude", "Voting")

        reporter.finalize(["claude", "grok", "gemini"])

        assert reporter.last_state("grok") is AgentState.FAILED
        assert reporter.last_state("claude") is AgentState.COMPLETED
        assert reporter.last_state("gemini") is AgentState.COMPLETED
        assert status_log.last_state("grok") == "failed"

    def test_callback_error_swallowed(self):
        def explode(agent, state, message):
            raise RuntimeError("ui gone")

        reporter = StatusReporter(explode)
        reporter.completed("claude", "done")
        assert reporter.last_state("claude") is AgentState.COMPLETED

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            StatusReporter().update("claude", "sleeping")
