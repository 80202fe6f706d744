"""
Unit Tests for progress mapping, notification channels and cancellation
"""

import logging

import pytest

from ops_sync.errors import OperationCancelled
from ops_sync.models import LogEvent, ProgressEvent
from ops_sync.utils.cancellation import CancellationToken
from ops_sync.utils.notifications import EventChannel, PipelineNotifier, QueueSubscriber
from ops_sync.utils.progress_utils import (
    DOWNLOAD_STAGE_WEIGHTS,
    LOAD_STAGE_WEIGHTS,
    ProgressAggregator,
    map_slice_percent,
    map_stage_percent,
)


class TestStageMapping:
    """Tests for the pure percentage mapping"""

    def test_download_stages(self):
        assert map_stage_percent(DOWNLOAD_STAGE_WEIGHTS, 0, 0) == 0
        assert map_stage_percent(DOWNLOAD_STAGE_WEIGHTS, 0, 100) == 5
        assert map_stage_percent(DOWNLOAD_STAGE_WEIGHTS, 1, 0) == 5
        assert map_stage_percent(DOWNLOAD_STAGE_WEIGHTS, 1, 50) == 52
        assert map_stage_percent(DOWNLOAD_STAGE_WEIGHTS, 1, 100) == 100

    def test_load_stages(self):
        assert map_stage_percent(LOAD_STAGE_WEIGHTS, 0, 100) == 10
        assert map_stage_percent(LOAD_STAGE_WEIGHTS, 1, 50) == 50
        assert map_stage_percent(LOAD_STAGE_WEIGHTS, 2, 0) == 90
        assert map_stage_percent(LOAD_STAGE_WEIGHTS, 2, 100) == 100

    def test_weights_are_normalized(self):
        assert map_stage_percent((1, 1), 1, 0) == 50

    def test_local_percent_is_clamped(self):
        assert map_stage_percent((5, 95), 0, 250) == 5
        assert map_stage_percent((5, 95), 1, -10) == 5

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            map_stage_percent((), 0, 0)
        with pytest.raises(IndexError):
            map_stage_percent((5, 95), 2, 0)

    def test_slices(self):
        assert map_slice_percent(1, 4, 0) == 0
        assert map_slice_percent(1, 4, 100) == 25
        assert map_slice_percent(3, 4, 50) == 62.5
        assert map_slice_percent(4, 4, 100) == 100
        assert map_slice_percent(1, 0, 0) == 100


class TestProgressAggregator:
    """Tests for ProgressAggregator"""

    def test_never_decreases_and_completes_at_100(self):
        notifier = PipelineNotifier()
        seen = []
        notifier.progress_channel.subscribe(lambda e: seen.append(e.global_percent))

        aggregator = ProgressAggregator(notifier, LOAD_STAGE_WEIGHTS)
        aggregator.report(1, 50)
        aggregator.report(0, 100)   # earlier stage reported late
        aggregator.report(2, 0)
        aggregator.complete()

        assert seen == [50, 50, 90, 100]

    def test_default_message(self):
        aggregator = ProgressAggregator(PipelineNotifier(), DOWNLOAD_STAGE_WEIGHTS)
        event = aggregator.report(1, 0, scope_label="a.csv", step_label="Downloading",
                                  current_index=1, total_count=3)
        assert event.message == "File 1/3: a.csv - Downloading"


class TestNotifications:
    """Tests for channels and the queue adapter"""

    def test_fan_out_and_unsubscribe(self):
        channel = EventChannel("test")
        first, second = [], []
        unsubscribe = channel.subscribe(first.append)
        channel.subscribe(second.append)

        channel.publish(1)
        unsubscribe()
        channel.publish(2)

        assert first == [1]
        assert second == [1, 2]
        assert channel.subscriber_count == 1

    def test_failing_subscriber_does_not_stop_others(self):
        channel = EventChannel("test")
        received = []

        def broken(event):
            raise RuntimeError("observer bug")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.publish("x")
        assert received == ["x"]

    def test_queue_subscriber_drops_oldest(self):
        channel = EventChannel("test")
        subscriber = QueueSubscriber(channel, maxsize=2)
        for i in range(4):
            channel.publish(i)
        assert subscriber.drain() == [2, 3]
        assert subscriber.dropped == 2
        subscriber.close()
        assert channel.subscriber_count == 0

    def test_notifier_mirrors_log_lines(self, caplog):
        notifier = PipelineNotifier(logging.getLogger("ops_sync.test"))
        events = []
        notifier.log_channel.subscribe(events.append)

        with caplog.at_level(logging.INFO):
            notifier.info("hello")
            notifier.warning("careful")

        assert [(e.message, e.level) for e in events] == [("hello", "INFO"), ("careful", "WARNING")]
        assert all(isinstance(e, LogEvent) for e in events)
        assert "careful" in caplog.text

    def test_progress_event_bounds(self):
        with pytest.raises(ValueError):
            ProgressEvent(global_percent=101)


class TestCancellationToken:
    """Tests for CancellationToken"""

    def test_cancel(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        assert not token.is_cancelled

        token.cancel()
        token.cancel()
        assert token.is_cancelled
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()
