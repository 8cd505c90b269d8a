"""Notifications — draft and stream events.

Provides:
- ``NotificationService`` — fan-out event bus using asyncio queues
- ``EventNavigator`` — publishes the stream-created hand-off on the bus
"""

from __future__ import annotations

from streampay.notifications.events import DraftEvent, RawEvent, StreamCreatedEvent
from streampay.notifications.service import EventNavigator, NotificationService

__all__ = [
    "DraftEvent",
    "EventNavigator",
    "NotificationService",
    "RawEvent",
    "StreamCreatedEvent",
]
