"""
Delivery of committed hub events to in-process listeners.

The driver hands over the events of a call chain only after its state has
been persisted, so a rolled-back call never reaches a listener.
"""
from typing import Callable, Dict, Iterable, List
import logging

from ...protocol.types.effects import Event

logger = logging.getLogger(__name__)

# Listeners subscribed to this type receive every event
ALL_EVENTS = "*"

# listener(event_type=..., attributes={key: value})
Listener = Callable[..., None]


class EventBus:
    """Routes events by type; listeners run synchronously in publish order."""

    def __init__(self):
        self.listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, event_type: str, callback: Listener) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event type (e.g., 'steakhub/bonded'), or ALL_EVENTS
            callback: Called with `event_type` and `attributes` keywords
        """
        self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Listener) -> None:
        callbacks = self.listeners.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug(f"Unsubscribed from event: {event_type}")
        else:
            logger.warning(f"Callback not found for event: {event_type}")

    def publish(self, events: Iterable[Event]) -> int:
        """
        Delivers committed events in order. Returns the number of deliveries.

        A failing listener is logged and skipped; the call that produced the
        event has already been committed.
        """
        delivered = 0
        for event in events:
            listeners = self.listeners.get(event.ty, []) + self.listeners.get(ALL_EVENTS, [])
            if not listeners:
                continue

            attributes = {a.key: a.value for a in event.attributes}
            for callback in listeners:
                try:
                    callback(event_type=event.ty, attributes=dict(attributes))
                    delivered += 1
                except Exception as e:
                    logger.error(f"Error in event listener for {event.ty}: {e}", exc_info=True)

        if delivered:
            logger.debug(f"Published {delivered} event deliveries")
        return delivered


# Global event bus instance
event_bus = EventBus()
