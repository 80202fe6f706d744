# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Notification Channels
# Tasks: T0046
# ═══════════════════════════════════════════════════════════════════════

"""
Notification channels - progress and log streams for observers

Two independent channels (progress, log) replace UI-specific events so a
dashboard, the CLI, an Airflow task or a test can subscribe the same way.

Delivery is synchronous, at-most-once per published event, no replay.
A subscriber that raises is logged and does not stop delivery to others.
"""

import logging
import queue
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from ..models import LogEvent, ProgressEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Fan-out channel delivering events of one type to subscribers"""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a callback

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"⚠️ Subscriber on '{self.name}' channel failed: {e}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class QueueSubscriber(Generic[T]):
    """
    Bounded queue adapter for pull-style consumers

    When the queue is full the oldest event is discarded so a slow consumer
    never blocks the pipeline.
    """

    def __init__(self, channel: EventChannel[T], maxsize: int = 1000):
        self.queue: "queue.Queue[T]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self._unsubscribe = channel.subscribe(self._put)

    def _put(self, event: T) -> None:
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> T:
        return self.queue.get(timeout=timeout)

    def drain(self) -> List[T]:
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._unsubscribe()


class PipelineNotifier:
    """
    Progress + log channel pair owned by one orchestrator

    `log()` writes through the module logger and mirrors the line onto the
    log channel; `progress()` publishes a ProgressEvent.
    """

    def __init__(self, source_logger: Optional[logging.Logger] = None):
        self.progress_channel: EventChannel[ProgressEvent] = EventChannel("progress")
        self.log_channel: EventChannel[LogEvent] = EventChannel("log")
        self._logger = source_logger or logger

    def log(self, message: str, level: int = logging.INFO) -> None:
        self._logger.log(level, message)
        self.log_channel.publish(LogEvent(message=message, level=logging.getLevelName(level)))

    def info(self, message: str) -> None:
        self.log(message, logging.INFO)

    def warning(self, message: str) -> None:
        self.log(message, logging.WARNING)

    def error(self, message: str) -> None:
        self.log(message, logging.ERROR)

    def progress(self, event: ProgressEvent) -> None:
        self.progress_channel.publish(event)
