"""
App factory for wiring wizard sessions

Each wizard gets its own API client / payment delegate because those carry
the customer's token. Storage and scheduling providers are shared.
"""

import logging
from typing import Optional

import httpx

from providers.interfaces import PaymentProvider, SchedulingProvider, StorageProvider
from providers.payment.payment_delegate import PaymentDelegate
from providers.scheduling.calendly_provider import CalendlyProvider
from providers.storage.cloudinary_provider import CloudinaryStorageProvider
from services.repair_api_client import RepairApiClient
from services.repair_wizard import RepairWizard

logger = logging.getLogger(__name__)


class AppFactory:
    """Builds providers once and hands out wizards/clients per request"""

    def __init__(
        self,
        storage: Optional[StorageProvider] = None,
        scheduling: Optional[SchedulingProvider] = None,
        api_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage or CloudinaryStorageProvider()
        self.scheduling = scheduling or CalendlyProvider()
        # only tests pass a transport, lets them fake the marketplace API
        self.api_transport = api_transport

    def create_api_client(self, token: str) -> RepairApiClient:
        return RepairApiClient(token, transport=self.api_transport)

    def create_payment_provider(self, token: str) -> PaymentProvider:
        return PaymentDelegate(token, transport=self.api_transport)

    async def create_wizard(self, token: str, repair_id: Optional[str] = None) -> RepairWizard:
        """New request wizard, or edit mode when repair_id is given"""
        wizard = RepairWizard(
            api_client=self.create_api_client(token),
            storage=self.storage,
            scheduling=self.scheduling,
            payment=self.create_payment_provider(token),
            repair_id=repair_id,
        )

        if repair_id:
            logger.info(f"Opening wizard in edit mode for repair {repair_id}")
            await wizard.load_for_edit()
        else:
            logger.info("Opening wizard for a new repair request")

        return wizard

    def get_stats(self) -> dict:
        return {
            "storage": type(self.storage).__name__,
            "scheduling": type(self.scheduling).__name__,
            "storage_configured": getattr(self.storage, "configured", True),
            "scheduling_configured": bool(getattr(self.scheduling, "token", True)),
        }
