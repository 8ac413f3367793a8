"""Tests for the watch/phone sync bridges over a loopback link."""

import threading

import pytest

from flexr.models.sync import (
    LiveWorkoutMetrics,
    ReceivedWorkout,
    SegmentCompletion,
    WorkoutSummary,
)
from flexr.sync.bridge import LinkState, PhoneSyncBridge, WatchSyncBridge
from flexr.sync.identity import SessionIdentity
from flexr.sync.messages import MessageType
from flexr.sync.transport import LoopbackTransport


def metrics(index):
    return LiveWorkoutMetrics(
        current_segment_index=index,
        segment_elapsed=10,
        total_elapsed=60 + index,
        heart_rate=140,
    )


def completion(index=0):
    return SegmentCompletion(
        segment_index=index,
        segment_name="1km Run",
        completion_time=245.0,
        average_heart_rate=158,
        max_heart_rate=171,
    )


def summary():
    return WorkoutSummary(
        workout_name="Hybrid Intervals",
        total_time=2710,
        segments_completed=8,
        total_segments=8,
        average_heart_rate=151,
        max_heart_rate=183,
        active_calories=540,
        total_distance=8250,
    )


class FlakyActivationTransport(LoopbackTransport):
    """Loopback endpoint whose first activation blows up."""

    def __init__(self):
        super().__init__(name="watch")
        self.attempts = 0

    def activate(self, delegate):
        self.attempts += 1
        if self.attempts == 1:
            raise RuntimeError("session delegate missing")
        super().activate(delegate)


@pytest.fixture
def link():
    return LoopbackTransport.pair()


@pytest.fixture
def phone(link):
    bridge = PhoneSyncBridge(link[1], app_version="2.3")
    bridge.activate()
    return bridge


@pytest.fixture
def watch(link, phone):
    bridge = WatchSyncBridge(link[0], identity=SessionIdentity(), app_version="1.4")
    bridge.activate()
    return bridge


def collect(bridge, kind):
    received = []
    bridge.subscribe(kind, received.append)
    return received


class TestActivation:
    """Tests for the link state machine."""

    def test_activates(self, watch):
        assert watch.state == LinkState.ACTIVE
        assert watch.is_reachable is True

    def test_second_activate_is_ignored(self, watch):
        assert watch.activate() is False
        assert watch.state == LinkState.ACTIVE

    def test_activation_error_returns_to_inactive(self):
        bridge = WatchSyncBridge(
            LoopbackTransport(activation_error=RuntimeError("unsupported")),
            identity=SessionIdentity(),
        )

        bridge.activate()

        assert bridge.state == LinkState.INACTIVE
        assert bridge.is_reachable is False

    def test_activation_raising_unexpected_error_can_retry(self):
        bridge = WatchSyncBridge(FlakyActivationTransport(), identity=SessionIdentity())

        assert bridge.activate() is False
        assert bridge.state == LinkState.INACTIVE

        assert bridge.activate() is True
        assert bridge.state == LinkState.ACTIVE

    def test_close_is_final(self, watch, phone):
        received = collect(watch, MessageType.WORKOUT_START)

        watch.close()
        phone.send_start_command()

        assert watch.state == LinkState.INACTIVE
        assert watch.closed is True
        assert watch.activate() is False
        assert received == []
        assert watch.has_active_workout is False

    def test_reachability_ignored_while_inactive(self, link):
        bridge = WatchSyncBridge(link[0], identity=SessionIdentity())

        bridge.reachability_changed(True)

        assert bridge.state == LinkState.INACTIVE
        assert bridge.is_reachable is False

    def test_activation_syncs_context(self, watch, phone):
        assert phone.peer_context["appVersion"] == "1.4"
        assert phone.peer_context["hasActiveWorkout"] is False
        assert "lastSyncDate" in phone.peer_context
        assert watch.status().last_sync_at is not None

    def test_status_snapshot(self, watch, link):
        link[0].set_reachable(False)
        watch.send_live_metrics(metrics(0))

        status = watch.status().to_dict()

        assert status["state"] == "active"
        assert status["reachable"] is False
        assert status["queued_count"] == 1


class TestLiveMetrics:
    """Tests for streaming and queueing live metrics."""

    def test_sent_immediately_when_reachable(self, watch, phone, link):
        received = collect(phone, MessageType.LIVE_METRICS)

        watch.send_live_metrics(metrics(3))

        assert [m.current_segment_index for m in received] == [3]
        assert link[0].durable_sent == []

    def test_queue_drops_oldest_beyond_capacity(self, watch, link):
        link[0].set_reachable(False)

        for i in range(150):
            watch.send_live_metrics(metrics(i))

        queued = watch.queued_metrics()
        assert [m.current_segment_index for m in queued] == list(range(50, 150))
        assert watch.status().queued_count == 100
        assert link[0].best_effort_sent == []

    def test_reconnect_flushes_one_batch(self, watch, phone, link):
        batches = collect(phone, MessageType.QUEUED_METRICS)
        link[0].set_reachable(False)
        for i in range(5):
            watch.send_live_metrics(metrics(i))

        link[0].set_reachable(True)

        flushed = [m for m in link[0].durable_sent if m["type"] == "queuedMetrics"]
        assert len(flushed) == 1
        assert flushed[0]["count"] == 5
        assert watch.status().queued_count == 0

        link[0].deliver_pending()
        assert len(batches) == 1
        assert [m.current_segment_index for m in batches[0]] == [0, 1, 2, 3, 4]

    def test_empty_queue_sends_nothing_on_reconnect(self, watch, link):
        link[0].set_reachable(False)
        link[0].set_reachable(True)

        assert link[0].durable_sent == []

    def test_custom_capacity(self, link):
        bridge = WatchSyncBridge(link[0], identity=SessionIdentity(), queue_capacity=3)
        for i in range(5):
            bridge.send_live_metrics(metrics(i))

        assert [m.current_segment_index for m in bridge.queued_metrics()] == [2, 3, 4]

    def test_invalid_capacity(self, link):
        with pytest.raises(ValueError):
            WatchSyncBridge(link[0], identity=SessionIdentity(), queue_capacity=0)


class TestConcurrency:
    """Tests for live metrics sent from several threads while the link flaps."""

    def test_every_metric_delivered_once(self, link):
        phone = PhoneSyncBridge(link[1])
        phone.activate()
        watch = WatchSyncBridge(link[0], identity=SessionIdentity(), queue_capacity=10_000)
        watch.activate()

        received = []
        phone.subscribe(
            MessageType.LIVE_METRICS,
            lambda m: received.append(m.current_segment_index),
        )
        phone.subscribe(
            MessageType.QUEUED_METRICS,
            lambda batch: received.extend(m.current_segment_index for m in batch),
        )

        senders, per_sender = 4, 500
        total = senders * per_sender

        def send(offset):
            for i in range(offset, offset + per_sender):
                watch.send_live_metrics(metrics(i))

        def toggle():
            for flip in range(200):
                link[0].set_reachable(flip % 2 == 1)

        threads = [
            threading.Thread(target=send, args=(n * per_sender,)) for n in range(senders)
        ]
        threads.append(threading.Thread(target=toggle))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        link[0].set_reachable(False)
        link[0].set_reachable(True)
        link[0].deliver_pending()

        assert sorted(received) == list(range(total))
        assert watch.status().queued_count == 0
        assert link[0].pending_count == 0


class TestWatchOutbound:
    """Tests for summaries, segment completions and alerts."""

    def test_summary_is_durable_even_when_unreachable(self, watch, phone, link):
        received = collect(phone, MessageType.WORKOUT_SUMMARY)
        link[0].set_reachable(False)
        sent = summary()

        watch.send_workout_summary(sent)

        [message] = link[0].durable_sent
        assert message["type"] == "workoutSummary"
        assert isinstance(message["timestamp"], float)

        link[0].deliver_pending()
        assert received[0].id == sent.id
        assert received[0].total_distance == 8250

    def test_segment_completion_best_effort(self, watch, phone, link):
        received = collect(phone, MessageType.SEGMENT_COMPLETE)

        watch.send_segment_completion(completion(2))

        assert received[0].segment_index == 2
        assert link[0].durable_sent == []

    def test_segment_completion_durable_when_unreachable(self, watch, link):
        link[0].set_reachable(False)

        watch.send_segment_completion(completion())

        assert [m["type"] for m in link[0].durable_sent] == ["segmentComplete"]

    def test_segment_completion_falls_back_after_send_failure(self, watch, link):
        link[0].fail_best_effort = True

        watch.send_segment_completion(completion())

        assert [m["type"] for m in link[0].durable_sent] == ["segmentComplete"]

    def test_heart_rate_alert_fields_are_top_level(self, watch, phone, link):
        received = collect(phone, MessageType.HEART_RATE_ALERT)

        assert watch.send_heart_rate_alert(182, 175) is True

        message = link[0].best_effort_sent[-1]
        assert message["currentHR"] == 182
        assert message["threshold"] == 175
        assert received[0].current_hr == 182

    def test_heart_rate_alert_dropped_when_unreachable(self, watch, link):
        link[0].set_reachable(False)

        assert watch.send_heart_rate_alert(182, 175) is False
        assert link[0].durable_sent == []


class TestPhoneOutbound:
    """Tests for workouts, commands, settings and identity."""

    def test_workout_delivered_to_watch(self, watch, phone):
        received = collect(watch, MessageType.WORKOUT)

        sent = phone.send_workout(
            ReceivedWorkout(name="Tempo", type="running", estimated_duration=1800)
        )

        assert sent is True
        assert received[0].name == "Tempo"

    def test_workout_not_sent_when_unreachable(self, watch, phone, link):
        link[1].set_reachable(False)

        assert phone.send_workout(
            ReceivedWorkout(name="Tempo", type="running", estimated_duration=1800)
        ) is False

    def test_commands_toggle_active_workout(self, watch, phone):
        starts = collect(watch, MessageType.WORKOUT_START)

        assert phone.send_start_command() is True
        assert watch.has_active_workout is True
        assert starts[0]["type"] == "workoutStart"
        assert "timestamp" in starts[0]

        phone.send_pause_command()
        phone.send_resume_command()
        assert watch.has_active_workout is True

        phone.send_stop_command()
        assert watch.has_active_workout is False

    def test_settings_delivered(self, watch, phone):
        received = collect(watch, MessageType.SETTINGS)

        assert phone.send_settings({"units": "metric", "hrAlert": 175}) is True
        assert received == [{"units": "metric", "hrAlert": 175}]

    def test_settings_queued_when_unreachable(self, watch, phone, link):
        link[1].set_reachable(False)

        assert phone.send_settings({"units": "imperial"}) is True
        assert [m["type"] for m in link[1].durable_sent] == ["settings"]

    def test_unserializable_settings(self, phone):
        assert phone.send_settings(object()) is False

    def test_user_id_requires_active_link(self, link):
        bridge = PhoneSyncBridge(link[1])
        assert bridge.send_user_id("0b6f5c1e-8a55-4c52-9d0a-3f0c2e2d7f11") == "failed"

    def test_user_id_via_message(self, watch, phone):
        user_id = "0B6F5C1E-8A55-4C52-9D0A-3F0C2E2D7F11"

        assert phone.send_user_id(user_id) == "message"
        assert watch.identity.user_id == user_id.lower()

    def test_user_id_via_context_when_unreachable(self, watch, phone, link):
        link[1].set_reachable(False)

        assert phone.send_user_id("0b6f5c1e-8a55-4c52-9d0a-3f0c2e2d7f11") == "context"
        assert watch.identity.user_id == "0b6f5c1e-8a55-4c52-9d0a-3f0c2e2d7f11"


class TestInboundDispatch:
    """Tests for routing and robustness of inbound messages."""

    @pytest.mark.parametrize("payload", [{"type": "reboot"}, {"data": "{}"}, {"type": None}])
    def test_unknown_messages_are_dropped(self, phone, payload):
        received = collect(phone, MessageType.LIVE_METRICS)

        phone.message_received(payload)

        assert received == []

    def test_malformed_payload_is_dropped(self, phone):
        received = collect(phone, MessageType.LIVE_METRICS)

        phone.message_received({"type": "liveMetrics", "data": "{not json"})
        phone.message_received({"type": "liveMetrics", "data": '{"heartRate": 120}'})

        assert received == []

    def test_failing_subscriber_does_not_block_others(self, watch, phone):
        def broken(_):
            raise RuntimeError("ui crashed")

        phone.subscribe(MessageType.LIVE_METRICS, broken)
        received = collect(phone, MessageType.LIVE_METRICS)

        watch.send_live_metrics(metrics(1))

        assert len(received) == 1

    def test_unsubscribe(self, watch, phone):
        received = []
        unsubscribe = phone.subscribe(MessageType.LIVE_METRICS, received.append)
        unsubscribe()

        watch.send_live_metrics(metrics(1))

        assert received == []

    def test_invalid_user_id_is_ignored(self, watch):
        published = collect(watch, MessageType.USER_ID)

        watch.message_received({"type": "userId", "userId": "not-a-uuid"})

        assert watch.identity.user_id is None
        assert published == []
