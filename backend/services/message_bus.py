"""
Per-session message channel

Stands in for the browser's cross-frame postMessage channel, the embedded
scheduling widget's events get relayed into it over HTTP. Listeners are
explicit subscriptions so they can be released when a step is left.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class Subscription:
    """Handle returned by MessageBus.subscribe, close() to stop listening"""

    def __init__(self, bus: "MessageBus", handler: MessageHandler):
        self._bus = bus
        self.handler = handler

    @property
    def active(self) -> bool:
        return self in self._bus._subscriptions

    def close(self):
        self._bus.unsubscribe(self)


class MessageBus:
    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(self, handler: MessageHandler) -> Subscription:
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        logger.debug(f"Listener added ({len(self._subscriptions)} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Listener removed ({len(self._subscriptions)} active)")

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, message: Dict[str, Any]) -> List[Any]:
        """Deliver a message to every current listener, returns their results"""
        results = []
        # snapshot, handlers may unsubscribe while we iterate
        for subscription in list(self._subscriptions):
            results.append(await subscription.handler(message))
        return results

    def clear(self):
        self._subscriptions.clear()
