"""Publish/subscribe seam used by the MQTT prompt adapter."""

from __future__ import annotations

import queue
import threading
from typing import Protocol


class Subscription(Protocol):
    def get(self, timeout: float) -> bytes:
        """Block for the next payload; raises ``queue.Empty`` on timeout."""
        ...

    def close(self) -> None: ...


class Broker(Protocol):
    def publish(self, topic: str, payload: bytes) -> None: ...

    def subscribe(self, topic: str) -> Subscription: ...


class _QueueSubscription:
    def __init__(self, broker: "MockBroker", topic: str) -> None:
        self._broker = broker
        self.topic = topic
        self.messages: queue.Queue[bytes] = queue.Queue()

    def get(self, timeout: float) -> bytes:
        return self.messages.get(timeout=timeout)

    def close(self) -> None:
        self._broker._unsubscribe(self)


class MockBroker:
    """In-process topic fan-out; each subscriber gets its own queue."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: dict[str, list[_QueueSubscription]] = {}
        self.published: list[tuple[str, bytes]] = []

    def subscribe(self, topic: str) -> _QueueSubscription:
        subscription = _QueueSubscription(self, topic)
        with self._lock:
            self._topics.setdefault(topic, []).append(subscription)
        return subscription

    def publish(self, topic: str, payload: bytes) -> None:
        with self._lock:
            self.published.append((topic, bytes(payload)))
            subscribers = list(self._topics.get(topic, ()))
        for subscription in subscribers:
            subscription.messages.put(bytes(payload))

    def _unsubscribe(self, subscription: _QueueSubscription) -> None:
        with self._lock:
            subscribers = self._topics.get(subscription.topic)
            if subscribers and subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._topics.pop(subscription.topic, None)
