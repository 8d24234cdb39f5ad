"""
Idle notification broker.

Every connection owns a subscriber that collects the names of changed
subsystems from the moment it connects. `idle` consumes matching names
immediately, or arms the subscriber so the next matching notify wakes the
connection exactly once.
"""

import threading
from typing import Callable, Iterable, Optional

from loguru import logger

SUBSYSTEMS = (
    "database",
    "update",
    "stored_playlist",
    "playlist",
    "player",
    "mixer",
    "output",
    "options",
    "partition",
    "sticker",
    "subscription",
    "message",
    "neighbor",
    "mount",
)


class IdleSubscriber:
    """Pending change set of one connection."""

    def __init__(self, wake: Callable[[], None]):
        self.pending: set[str] = set()
        self.interest: frozenset[str] = frozenset(SUBSYSTEMS)
        self.armed = False
        self._wake = wake


class IdleBroker:
    """Fans subsystem change notifications out to all subscribers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[IdleSubscriber] = []

    def subscribe(self, wake: Callable[[], None]) -> IdleSubscriber:
        subscriber = IdleSubscriber(wake)
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: IdleSubscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def notify(self, *subsystems: str) -> None:
        """Mark subsystems changed and wake subscribers idling on them."""
        to_wake = []
        with self._lock:
            for subscriber in self._subscribers:
                subscriber.pending.update(subsystems)
                if subscriber.armed and subscriber.pending & subscriber.interest:
                    subscriber.armed = False
                    to_wake.append(subscriber)
        logger.debug(f"Changed: {', '.join(subsystems)}")
        for subscriber in to_wake:
            subscriber._wake()

    def begin_idle(
        self, subscriber: IdleSubscriber, names: Optional[Iterable[str]] = None
    ) -> Optional[list[str]]:
        """Start an idle; return changed names now, or None once armed.

        Names must already be validated against SUBSYSTEMS.
        """
        with self._lock:
            subscriber.interest = frozenset(names) if names else frozenset(SUBSYSTEMS)
            changed = self._consume(subscriber)
            if changed:
                return changed
            subscriber.armed = True
            return None

    def collect(self, subscriber: IdleSubscriber) -> list[str]:
        """Consume the names that woke an armed idle."""
        with self._lock:
            subscriber.armed = False
            return self._consume(subscriber)

    def cancel_idle(self, subscriber: IdleSubscriber) -> None:
        with self._lock:
            subscriber.armed = False

    def _consume(self, subscriber: IdleSubscriber) -> list[str]:
        matched = subscriber.pending & subscriber.interest
        subscriber.pending -= matched
        return [name for name in SUBSYSTEMS if name in matched]
