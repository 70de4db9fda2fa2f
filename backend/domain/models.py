"""
Domain models for boat repair requests

Pydantic models mirror the repair API's camelCase JSON, the wizard's
in-progress form lives in a plain dataclass since it's mutated field by field
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv", ".m4v"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    """Treat naive datetimes from the API as UTC so comparisons work"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


def detect_media_kind(filename: str, content_type: Optional[str] = None) -> MediaKind:
    # declared MIME wins, otherwise fall back to the extension
    if content_type and content_type.lower().startswith("video/"):
        return MediaKind.VIDEO
    if PurePosixPath(filename or "").suffix.lower() in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.IMAGE


class ServiceType(str, Enum):
    ENGINE_REPAIR = "engine_repair"
    HULL_REPAIR = "hull_repair"
    ELECTRICAL_REPAIR = "electrical_repair"
    PROPELLER_REPAIR = "propeller_repair"
    MAINTENANCE = "maintenance"
    INSPECTION = "inspection"
    OTHER = "other"


class BoatType(str, Enum):
    SPEEDBOAT = "speedboat"
    YACHT = "yacht"
    FISHING_BOAT = "fishing_boat"
    SAILBOAT = "sailboat"
    JET_SKI = "jet_ski"
    OTHER = "other"


class EngineType(str, Enum):
    INBOARD = "inboard"
    OUTBOARD = "outboard"
    JET_DRIVE = "jet_drive"
    ELECTRIC = "electric"
    OTHER = "other"


class HullMaterial(str, Enum):
    FIBERGLASS = "fiberglass"
    ALUMINUM = "aluminum"
    WOOD = "wood"
    STEEL = "steel"
    COMPOSITE = "composite"
    OTHER = "other"


class RepairStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    WAITING_PARTS = "waiting_parts"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class CamelModel(BaseModel):
    # repair API speaks camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Address(CamelModel):
    street: str = ""
    city: str = ""
    district: str = ""
    postal_code: str = ""


class ServiceCenterLocation(CamelModel):
    type: Literal["service_center"] = "service_center"


class MarinaLocation(CamelModel):
    type: Literal["marina"] = "marina"
    marina_name: str = ""
    dock_number: str = ""


class CustomerLocation(CamelModel):
    type: Literal["customer_location"] = "customer_location"
    address: Address = Field(default_factory=Address)


ServiceLocation = Annotated[
    Union[ServiceCenterLocation, MarinaLocation, CustomerLocation],
    Field(discriminator="type"),
]

LOCATION_TYPES = {
    "service_center": ServiceCenterLocation,
    "marina": MarinaLocation,
    "customer_location": CustomerLocation,
}


class BoatDetails(CamelModel):
    boat_type: BoatType
    boat_make: str
    boat_model: str
    boat_year: int
    engine_type: Optional[EngineType] = None
    engine_model: Optional[str] = None
    hull_material: Optional[HullMaterial] = None


class Photo(CamelModel):
    """One uploaded photo/video attached to a repair request"""
    filename: str  # storage public id
    original_name: str
    cloudinary_url: str
    cloudinary_id: str
    uploaded_at: datetime = Field(default_factory=utcnow)

    @property
    def media_kind(self) -> MediaKind:
        if "/video/upload/" in self.cloudinary_url:
            return MediaKind.VIDEO
        return detect_media_kind(self.original_name)


class PaymentRecord(CamelModel):
    payment_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    paid_at: Optional[datetime] = None


class RepairRequest(CamelModel):
    """Repair request as returned by the repair API"""
    id: Optional[str] = Field(default=None, alias="_id")
    booking_id: Optional[str] = None
    service_type: ServiceType
    problem_description: str
    service_description: Optional[str] = None
    boat_details: BoatDetails
    photos: List[Photo] = []
    scheduled_date_time: Optional[datetime] = None
    calendly_event_id: Optional[str] = None
    calendly_event_uri: Optional[str] = None
    service_location: ServiceLocation = Field(default_factory=ServiceCenterLocation)
    customer_notes: Optional[str] = None
    status: RepairStatus = RepairStatus.PENDING
    payment: Optional[PaymentRecord] = None
    diagnostic_fee: Optional[float] = None


class RepairSubmission(CamelModel):
    # fields both create and customer-edit accept
    service_type: ServiceType
    problem_description: str
    service_description: str = ""
    boat_details: BoatDetails
    photos: List[Photo] = []
    service_location: ServiceLocation
    customer_notes: str = ""


class NewRepairSubmission(RepairSubmission):
    # scheduling + payment only exist on create
    scheduled_date_time: datetime
    calendly_event_id: str = ""
    calendly_event_uri: str = ""
    payment: Optional[PaymentRecord] = None
    diagnostic_fee: Optional[float] = None


class UploadResult(CamelModel):
    """Normalized result of one storage upload"""
    public_id: str
    secure_url: str
    original_filename: str
    size: int
    format: Optional[str] = None
    media_kind: MediaKind = MediaKind.IMAGE

    def to_photo(self) -> Photo:
        return Photo(
            filename=self.public_id,
            original_name=self.original_filename,
            cloudinary_url=self.secure_url,
            cloudinary_id=self.public_id,
        )


# fields the customer can type into on step 1 (plus notes)
FORM_FIELDS = (
    "service_type",
    "boat_type",
    "boat_make",
    "boat_model",
    "boat_year",
    "engine_type",
    "engine_model",
    "hull_material",
    "problem_description",
    "service_description",
    "customer_notes",
)


@dataclass
class FormState:
    """Everything the wizard collects, raw strings until submit"""
    service_type: str = ""
    boat_type: str = ""
    boat_make: str = ""
    boat_model: str = ""
    boat_year: str = ""
    engine_type: str = ""
    engine_model: str = ""
    hull_material: str = ""
    problem_description: str = ""
    service_description: str = ""
    photos: List[Photo] = field(default_factory=list)
    calendly_event_id: str = ""
    calendly_event_uri: str = ""
    scheduled_date_time: Optional[datetime] = None
    service_location: Union[ServiceCenterLocation, MarinaLocation, CustomerLocation] = field(
        default_factory=ServiceCenterLocation
    )
    customer_notes: str = ""

    # UI only, never submitted
    errors: Dict[str, str] = field(default_factory=dict)
    upload_progress: float = 0.0
    is_uploading: bool = False
    scheduling_error: Optional[str] = None
    payment: Optional[PaymentRecord] = None

    @classmethod
    def from_repair(cls, repair: RepairRequest) -> "FormState":
        boat = repair.boat_details
        return cls(
            service_type=repair.service_type.value,
            boat_type=boat.boat_type.value,
            boat_make=boat.boat_make,
            boat_model=boat.boat_model,
            boat_year=str(boat.boat_year),
            engine_type=boat.engine_type.value if boat.engine_type else "",
            engine_model=boat.engine_model or "",
            hull_material=boat.hull_material.value if boat.hull_material else "",
            problem_description=repair.problem_description,
            service_description=repair.service_description or "",
            photos=list(repair.photos),
            calendly_event_id=repair.calendly_event_id or "",
            calendly_event_uri=repair.calendly_event_uri or "",
            scheduled_date_time=repair.scheduled_date_time,
            service_location=repair.service_location,
            customer_notes=repair.customer_notes or "",
        )
