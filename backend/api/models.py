"""
Models for the wizard HTTP API
Pretty standard pydantic models, nothing fancy
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field

from domain.models import FORM_FIELDS, PaymentRecord, Photo, ServiceLocation, UploadResult


class CreateWizardRequest(BaseModel):
    # repair_id set = edit an existing request
    repair_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("repair_id", "repairId"))


class FieldsUpdateRequest(BaseModel):
    fields: Dict[str, Optional[str]] = Field(..., min_length=1)


class LocationTypeRequest(BaseModel):
    type: Literal["service_center", "marina", "customer_location"]


class ServiceLocationRequest(BaseModel):
    location: ServiceLocation


class WizardStateResponse(BaseModel):
    # what the frontend needs to render the current step
    session_id: str
    mode: Literal["new", "edit"]
    current_step: int
    total_steps: int
    step_titles: List[str]
    form: Dict[str, str]
    service_location: ServiceLocation
    photos: List[Photo] = []
    errors: Dict[str, str] = {}
    upload_progress: float = 0.0
    is_uploading: bool = False
    scheduled_date_time: Optional[datetime] = None
    calendly_event_id: Optional[str] = None
    scheduling_error: Optional[str] = None
    widget: List[Dict[str, Any]] = []
    payment_completed: bool = False
    diagnostic_fee: Optional[float] = None  # new requests only

    @classmethod
    def from_session(cls, session) -> "WizardStateResponse":
        wizard = session.wizard
        form = wizard.form
        edit = wizard.is_edit_mode

        state = cls(
            session_id=session.session_id,
            mode="edit" if edit else "new",
            current_step=wizard.current_step,
            total_steps=wizard.total_steps,
            step_titles=wizard.step_titles,
            form={name: getattr(form, name) for name in FORM_FIELDS},
            service_location=form.service_location,
            photos=form.photos,
            errors=form.errors,
            upload_progress=form.upload_progress,
            is_uploading=form.is_uploading,
        )
        if not edit:
            # scheduling/payment never leave the server in edit mode
            state.scheduled_date_time = form.scheduled_date_time
            state.calendly_event_id = form.calendly_event_id or None
            state.scheduling_error = form.scheduling_error
            state.widget = wizard.widget.children
            state.payment_completed = wizard.payment_completed
            state.diagnostic_fee = wizard.diagnostic_fee
        return state


class UploadResponse(BaseModel):
    status: Literal["uploaded", "cancelled"]
    message: str
    files: List[UploadResult] = []
    state: WizardStateResponse


class CancelUploadResponse(BaseModel):
    cancelled: bool


class ScheduleMessageResponse(BaseModel):
    handled: bool
    confirmed: bool = False
    scheduled_date_time: Optional[datetime] = None
    error: Optional[str] = None


class PaymentInfoResponse(BaseModel):
    diagnostic_fee: float
    currency: str
    payment_completed: bool
    payment: Optional[PaymentRecord] = None


class PaymentCompleteRequest(BaseModel):
    payment_intent_id: Optional[str] = None
    payment_id: Optional[str] = None
    amount: Optional[float] = None


class SubmitResponse(BaseModel):
    message: str
    redirect_to: str
    booking_id: Optional[str] = None


class ErrorResponse(BaseModel):
    # standard error format
    error: str
    error_code: Optional[str] = None
    errors: Optional[Dict[str, str]] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    timestamp: datetime = Field(default_factory=datetime.now)
    components: Dict[str, Any] = {}
    version: str = "1.0.0"
