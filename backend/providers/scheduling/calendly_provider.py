import logging
from datetime import datetime
from typing import Any, Dict

import httpx
from pydantic import TypeAdapter, ValidationError

from config import config
from domain.errors import SchedulingConfirmationError
from domain.models import as_aware
from ..interfaces import SchedulingProvider

logger = logging.getLogger(__name__)

_datetime_adapter = TypeAdapter(datetime)


def event_uuid_from_uri(event_uri: str) -> str:
    # https://api.calendly.com/scheduled_events/<uuid>
    return (event_uri or "").rstrip("/").rsplit("/", 1)[-1]


class CalendlyProvider(SchedulingProvider):
    # the widget's postMessage payload only carries URIs, the start time has
    # to come from the REST API

    def __init__(
        self,
        token: str = None,
        api_base: str = None,
        widget_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.token = token or config.calendly.token
        self.api_base = (api_base or config.calendly.api_base).rstrip("/")
        self.widget_url = widget_url or config.calendly.widget_url
        self.timeout = timeout or config.calendly.timeout
        self._transport = transport

        if not self.token:
            logger.warning("no CALENDLY_TOKEN found - appointments can't be confirmed")

    def widget_embed(self) -> Dict[str, Any]:
        return {"url": self.widget_url, "prefill": {}, "utm": {}}

    async def fetch_event_start(self, event_uri: str) -> datetime:
        event_uuid = event_uuid_from_uri(event_uri)
        if not event_uuid:
            raise SchedulingConfirmationError("Booking message did not include an event. Please book again.")
        if not self.token:
            raise SchedulingConfirmationError("Could not fetch appointment details. Please try booking again.")

        url = f"{self.api_base}/scheduled_events/{event_uuid}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Calendly request failed for event {event_uuid}: {e}")
            raise SchedulingConfirmationError(
                "Could not fetch appointment details. Please try booking again."
            ) from e

        if response.status_code != 200:
            logger.error(f"Calendly returned {response.status_code} for event {event_uuid}: {response.text[:200]}")
            raise SchedulingConfirmationError("Could not fetch appointment details. Please try booking again.")

        try:
            body = response.json()
        except ValueError as e:
            raise SchedulingConfirmationError("Could not read appointment details. Please try booking again.") from e

        start_time = (body.get("resource") or {}).get("start_time") if isinstance(body, dict) else None
        if not start_time:
            logger.error(f"No start_time in Calendly response for event {event_uuid}")
            raise SchedulingConfirmationError("Could not find appointment time. Please try booking again.")

        try:
            start = _datetime_adapter.validate_python(start_time)
        except ValidationError as e:
            raise SchedulingConfirmationError("Could not read appointment time. Please try booking again.") from e

        logger.info(f"Calendly event {event_uuid} confirmed for {start.isoformat()}")
        return as_aware(start)
