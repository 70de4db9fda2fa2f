"""
Scheduling bridge between the embedded booking widget and the wizard

Listens for the widget's "event scheduled" message, then asks the vendor
API for the real start time. The message itself is never trusted for the
time, if the lookup fails the appointment stays unset and the customer has
to book again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from domain.errors import SchedulingConfirmationError
from providers.interfaces import SchedulingProvider
from providers.scheduling.calendly_provider import event_uuid_from_uri
from services.message_bus import MessageBus, Subscription

logger = logging.getLogger(__name__)

SCHEDULED_EVENT = "calendly.event_scheduled"


@dataclass
class ScheduleUpdate:
    event_id: str
    event_uri: str
    scheduled_at: Optional[datetime] = None
    error: Optional[str] = None
    pending: bool = False  # booking seen, start time not fetched yet

    @property
    def confirmed(self) -> bool:
        return self.scheduled_at is not None


class WidgetContainer:
    """Where the inline widget gets injected, rendered by the frontend"""

    def __init__(self, element_id: str = "calendly-widget"):
        self.element_id = element_id
        self.children: List[Dict[str, Any]] = []

    def has_children(self) -> bool:
        return bool(self.children)


class SchedulingBridge:
    def __init__(
        self,
        bus: MessageBus,
        provider: SchedulingProvider,
        on_update: Callable[[ScheduleUpdate], None],
    ):
        self.bus = bus
        self.provider = provider
        self.on_update = on_update
        self._subscription: Optional[Subscription] = None

    @property
    def attached(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def attach(self) -> bool:
        """Start listening, does nothing if already listening"""
        if self.attached:
            return False
        self._subscription = self.bus.subscribe(self.handle_message)
        logger.debug("Scheduling bridge attached")
        return True

    def detach(self):
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
            logger.debug("Scheduling bridge detached")

    async def __aenter__(self) -> "SchedulingBridge":
        self.attach()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.detach()

    def render_widget(self, container: WidgetContainer) -> bool:
        # re-entering the step must not stack a second widget
        if container.has_children():
            return False
        container.children.append(self.provider.widget_embed())
        return True

    async def handle_message(self, message: Dict[str, Any]) -> Optional[ScheduleUpdate]:
        if not isinstance(message, dict) or message.get("event") != SCHEDULED_EVENT:
            return None  # devtools noise, other widgets etc

        try:
            event_uri = message["payload"]["event"]["uri"]
        except (KeyError, TypeError):
            logger.warning("Scheduling message without an event uri, ignoring")
            return None

        event_id = event_uuid_from_uri(event_uri)
        logger.info(f"Booking received for event {event_id}, confirming with vendor")
        # any earlier appointment is void until this one is confirmed
        self.on_update(ScheduleUpdate(event_id=event_id, event_uri=event_uri, pending=True))

        try:
            scheduled_at = await self.provider.fetch_event_start(event_uri)
        except SchedulingConfirmationError as e:
            update = ScheduleUpdate(event_id=event_id, event_uri=event_uri, error=e.message)
        else:
            update = ScheduleUpdate(event_id=event_id, event_uri=event_uri, scheduled_at=scheduled_at)

        self.on_update(update)
        return update
