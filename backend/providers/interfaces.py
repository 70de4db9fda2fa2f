"""
Abstract interfaces for the external integrations
Lets us swap Cloudinary / Calendly / the payment backend for fakes in tests
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.models import MediaKind, PaymentRecord, UploadResult, detect_media_kind

ProgressCallback = Callable[[float], None]


# data models for type safety
class UploadSource(BaseModel):
    # a file the customer picked, already read into memory
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def media_kind(self) -> MediaKind:
        return detect_media_kind(self.filename, self.content_type)


class UploadOptions(BaseModel):
    """Per-batch upload options"""
    folder: Optional[str] = None
    tags: Optional[str] = None


class CustomerInfo(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class PaymentIntent(BaseModel):
    # what the payment backend hands back for the card form
    client_secret: Optional[str] = None
    payment_id: Optional[str] = None
    amount: float
    currency: str
    service_id: str
    service_description: str


class PaymentCallback(BaseModel):
    """Success callback coming back from the external payment component"""
    payment_intent_id: Optional[str] = Field(default=None, alias="paymentIntentId")
    payment_id: Optional[str] = Field(default=None, alias="paymentId")
    amount: Optional[float] = None

    model_config = {"populate_by_name": True}


# Abstract Interfaces
class StorageProvider(ABC):
    """Abstract interface for object storage uploads"""

    @abstractmethod
    async def upload_files(
        self,
        files: List[UploadSource],
        options: Optional[UploadOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[UploadResult]:
        """
        Upload a batch of files in parallel

        Args:
            files: Files to upload
            options: Destination folder / tags
            on_progress: Called with the aggregate progress 0..100
            cancel_event: Setting it aborts every in-flight upload

        Returns:
            One UploadResult per file, same order as the input
        """
        pass


class SchedulingProvider(ABC):
    """Abstract interface for the appointment scheduling vendor"""

    @abstractmethod
    async def fetch_event_start(self, event_uri: str) -> datetime:
        """
        Look up the authoritative start time of a booked event

        Args:
            event_uri: Opaque event URI from the widget message

        Returns:
            Timezone aware start time
        """
        pass

    @abstractmethod
    def widget_embed(self) -> Dict[str, Any]:
        """Inline widget settings injected into the scheduling container"""
        pass


class PaymentProvider(ABC):
    """Abstract interface for the payment backend"""

    @abstractmethod
    async def create_payment_intent(
        self, amount: float, service_description: str, customer: CustomerInfo
    ) -> PaymentIntent:
        pass

    @abstractmethod
    def handle_success(self, callback: PaymentCallback, intent: Optional[PaymentIntent] = None) -> PaymentRecord:
        """Turn a success callback into a payment record, raises if it carries no id"""
        pass
