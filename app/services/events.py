# app/services/events.py
"""
In-process publish hub for real-time listeners.

Route handlers run on FastAPI's threadpool while WebSocket listeners live on
the event loop, so publishing hands each message to the subscriber's loop
with ``call_soon_threadsafe`` instead of touching the queue directly.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from app.core.clock import utcnow

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    issue_created = "issue_created"
    issue_updated = "issue_updated"
    notification_created = "notification_created"


@dataclass
class PublishedEvent:
    name: str
    payload: Dict[str, Any]
    at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "data": self.payload, "at": self.at.isoformat()}


@dataclass
class _Subscriber:
    loop: asyncio.AbstractEventLoop
    queue: "asyncio.Queue[PublishedEvent]"
    user_id: Optional[int] = None


class EventHub:
    def __init__(self, max_queue: int = 100):
        self._subscribers: list[_Subscriber] = []
        self._lock = threading.Lock()
        self._max_queue = max_queue

    def subscribe(self, user_id: Optional[int] = None) -> _Subscriber:
        """Register a listener. Must be called from inside the listener's event loop."""
        sub = _Subscriber(loop=asyncio.get_running_loop(), queue=asyncio.Queue(self._max_queue), user_id=user_id)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: _Subscriber) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @staticmethod
    def _offer(sub: _Subscriber, event: PublishedEvent) -> None:
        try:
            sub.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event queue full for listener (user=%s); dropping %s", sub.user_id, event.name)

    def publish(self, name, payload: Dict[str, Any], recipient_id: Optional[int] = None) -> PublishedEvent:
        """
        Fan an event out to every listener, or only to ``recipient_id``'s
        listeners when given. Never raises into the caller.
        """
        event = PublishedEvent(name=EventName(name).value, payload=payload)
        with self._lock:
            targets = [s for s in self._subscribers if recipient_id is None or s.user_id == recipient_id]
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(self._offer, sub, event)
            except RuntimeError:
                # loop already closed; the socket is gone
                self.unsubscribe(sub)
        return event


hub = EventHub()
