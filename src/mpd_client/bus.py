"""Event Bus - per-client pub/sub for lifecycle and change events.

Subscribers register for an exact event type, a prefix wildcard such as
"changed:*", or "*" for everything.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class EventDefinition(Generic[T]):
    """Typed event definition.

    Usage:
        Connected = Bus.define("connected", ConnectedProps)
        await bus.publish(Connected, ConnectedProps(host="localhost"))
    """

    type: str
    schema: type[T]


# Type for event callbacks
EventCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class Bus:
    """Simple event bus with wildcard subscription support.

    One instance per client. All callbacks run on the client's event loop;
    a failing subscriber is logged and never affects the publisher.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    @staticmethod
    def define(event_type: str, schema: type[T]) -> EventDefinition[T]:
        """Define a typed event.

        Args:
            event_type: Event name (e.g., "connected", "changed:mixer")
            schema: Pydantic model for event properties

        Returns:
            EventDefinition that can be used with publish/subscribe
        """
        return EventDefinition(type=event_type, schema=schema)

    def _subscribers_for(self, event_type: str) -> list[EventCallback]:
        keys = [event_type]
        if ":" in event_type:
            keys.append(event_type.split(":", 1)[0] + ":*")
        keys.append("*")
        callbacks: list[EventCallback] = []
        for key in keys:
            callbacks.extend(self._subscriptions.get(key, []))
        return callbacks

    async def publish(self, event_def: EventDefinition[T], properties: T) -> None:
        """Publish event to all subscribers.

        Args:
            event_def: The event definition (created via Bus.define)
            properties: Event properties (must match the schema)
        """
        payload = {"type": event_def.type, "properties": properties.model_dump()}

        # Copy so callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers_for(event_def.type)):
            try:
                await callback(payload)
            except Exception:
                logger.exception(f"Error in subscriber for {event_def.type}")

    def emit(self, event_def: EventDefinition[T], properties: T) -> asyncio.Task[None]:
        """Schedule a publish without waiting for subscribers.

        Used from synchronous code paths (transport callbacks) that must
        never block on a slow subscriber. Must be called on the event loop.
        """
        task = asyncio.get_running_loop().create_task(self.publish(event_def, properties))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every emitted event to be delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def subscribe(
        self, event_type: str | EventDefinition[Any], callback: EventCallback
    ) -> Callable[[], None]:
        """Subscribe to an event type, a "prefix:*" wildcard or "*".

        Args:
            event_type: Event name or definition to subscribe to
            callback: Async function called with event payload

        Returns:
            Unsubscribe function
        """
        key = event_type.type if isinstance(event_type, EventDefinition) else event_type
        self._subscriptions.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            if key in self._subscriptions and callback in self._subscriptions[key]:
                self._subscriptions[key].remove(callback)

        return unsubscribe

    def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to ALL events."""
        return self.subscribe("*", callback)

    async def stream(self, event_type: str = "*") -> AsyncIterator[dict[str, Any]]:
        """Async iterator over published events.

        Usage:
            async for event in client.events.stream("changed:*"):
                print(event["type"])
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        async def on_event(payload: dict[str, Any]) -> None:
            await queue.put(payload)

        unsubscribe = self.subscribe(event_type, on_event)

        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            unsubscribe()

    def reset(self) -> None:
        """Drop all subscriptions."""
        self._subscriptions = {}
