"""
Notifications emitted by state-changing operations.

Events raised inside an atomic operation are held back until the
operation commits; a rolled-back operation leaves no events behind.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    name: str
    args: dict = field(default_factory=dict)

    def __getitem__(self, key):
        return self.args[key]


class EventLog:
    def __init__(self, max_history: int = 10_000):
        # oldest committed events fall off once max_history is reached
        self.committed: deque[Event] = deque(maxlen=max_history)
        self._pending: list[Event] = []
        self._subscribers: list[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]):
        """Call `callback` with every event once it is committed."""
        self._subscribers.append(callback)

    def emit(self, name: str, **args):
        self._pending.append(Event(name, args))

    def mark(self) -> int:
        return len(self._pending)

    def rollback(self, mark: int = 0):
        dropped = len(self._pending) - mark
        del self._pending[mark:]
        if dropped:
            logger.debug(f"Discarded {dropped} uncommitted events")

    def commit(self):
        events, self._pending = self._pending, []
        self.committed.extend(events)
        for event in events:
            for callback in self._subscribers:
                callback(event)

    def find(self, name: str) -> list[Event]:
        return [e for e in self.committed if e.name == name]

    def last(self, name: str = None) -> Event | None:
        for event in reversed(self.committed):
            if name is None or event.name == name:
                return event
        return None

    def __len__(self):
        return len(self.committed)
