"""
Event types and EventBus protocol.

The EventBus is an abstract interface that core uses to publish events. The
agent loop uses the same interface as its progress sink, so a transport layer
only has to implement ``publish``.
"""

from typing import Any, Protocol

from pydantic import BaseModel, Field


class Event(BaseModel):
    """Domain event that can be published to subscribers."""

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class EventBus(Protocol):
    """Abstract interface for publishing events."""

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        ...


class NullEventBus:
    """No-op EventBus implementation for testing."""

    async def publish(self, event: Event) -> None:
        """Discard the event."""
        pass


class RecordingEventBus:
    """EventBus that keeps every published event in order."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[Event]:
        """Return the recorded events with the given type."""
        return [e for e in self.events if e.type == event_type]

    def types(self) -> list[str]:
        return [e.type for e in self.events]
