"""
Multi-step repair request wizard

New requests: Boat Details -> Upload -> Schedule -> Payment -> Submit
Edit mode:    Boat Details -> Upload -> Update Request

Edit mode never touches scheduling or payment, once an appointment exists
those are fixed. Forward moves are gated on the current step's checks, going
back is always allowed except from step 1.
"""

import asyncio
import logging
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from config import config
from domain.errors import (
    RepairApiError,
    StepValidationError,
    SubmissionError,
    WizardStateError,
)
from domain.models import (
    FORM_FIELDS,
    LOCATION_TYPES,
    BoatDetails,
    FormState,
    MediaKind,
    NewRepairSubmission,
    Photo,
    RepairRequest,
    RepairStatus,
    RepairSubmission,
    UploadResult,
    as_aware,
    utcnow,
)
from providers.interfaces import (
    CustomerInfo,
    PaymentCallback,
    PaymentIntent,
    PaymentProvider,
    SchedulingProvider,
    StorageProvider,
    UploadOptions,
    UploadSource,
)
from providers.payment.payment_delegate import get_diagnostic_fee
from services.form_validation import validate_boat_details, validate_field
from services.message_bus import MessageBus
from services.repair_api_client import RepairApiClient
from services.scheduling_bridge import ScheduleUpdate, SchedulingBridge, WidgetContainer

logger = logging.getLogger(__name__)

NEW_STEP_TITLES = [
    "Boat Details",
    "Upload Photos/Videos",
    "Schedule Appointment",
    "Payment",
    "Submit Request",
]
EDIT_STEP_TITLES = [
    "Boat Details",
    "Upload Photos/Videos",
    "Update Request",
]

DETAILS_STEP = 1
UPLOAD_STEP = 2
SCHEDULE_STEP = 3  # new requests only
PAYMENT_STEP = 4  # new requests only


@dataclass
class SubmissionResult:
    message: str
    redirect_to: str
    booking_id: Optional[str] = None
    repair: Dict[str, Any] = field(default_factory=dict)


class RepairWizard:
    def __init__(
        self,
        api_client: RepairApiClient,
        storage: StorageProvider,
        scheduling: SchedulingProvider,
        payment: PaymentProvider,
        repair_id: Optional[str] = None,
        upload_options: Optional[UploadOptions] = None,
        max_preview_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.api_client = api_client
        self.storage = storage
        self.payment = payment
        self.repair_id = repair_id
        self.upload_options = upload_options or UploadOptions(
            folder=config.cloudinary.upload_folder, tags=config.cloudinary.upload_tags
        )
        self.clock = clock

        self.form = FormState()
        self.current_step = DETAILS_STEP
        self.original: Optional[RepairRequest] = None

        # uploaded_files and form.photos stay index aligned
        self.uploaded_files: List[UploadResult] = []
        self._previews: Dict[str, bytes] = {}
        self._preview_bytes = 0
        self.max_preview_bytes = (
            config.wizard.max_preview_bytes if max_preview_bytes is None else max_preview_bytes
        )
        self._cancel_event: Optional[asyncio.Event] = None

        self.bus = MessageBus()
        self.widget = WidgetContainer()
        self.bridge = SchedulingBridge(self.bus, scheduling, self.apply_schedule_update)

        self.payment_intent: Optional[PaymentIntent] = None
        self.payment_completed = False

        self._submitting = False
        self.closed = False

    @property
    def is_edit_mode(self) -> bool:
        return self.repair_id is not None

    @property
    def step_titles(self) -> List[str]:
        return EDIT_STEP_TITLES if self.is_edit_mode else NEW_STEP_TITLES

    @property
    def total_steps(self) -> int:
        return len(self.step_titles)

    @property
    def is_final_step(self) -> bool:
        return self.current_step == self.total_steps

    @property
    def diagnostic_fee(self) -> float:
        return get_diagnostic_fee(self.form.service_type)

    def _ensure_open(self):
        if self.closed:
            raise WizardStateError("This wizard session has ended")

    def _ensure_new_mode(self, action: str):
        if self.is_edit_mode:
            raise WizardStateError(f"{action} is not available when editing a request")

    # edit mode

    async def load_for_edit(self):
        """Pull the existing request and fill the form from it"""
        if not self.is_edit_mode:
            raise WizardStateError("No repair request to load")

        response = await self.api_client.get_by_id(self.repair_id)
        if not response.get("success"):
            raise WizardStateError(response.get("message") or "Failed to load repair request")

        try:
            repair = RepairRequest.model_validate(response.get("data") or {})
        except ValidationError as e:
            logger.error(f"Repair {self.repair_id} could not be parsed: {e}")
            raise WizardStateError("Failed to load repair request for editing") from e

        if repair.scheduled_date_time and as_aware(repair.scheduled_date_time) <= self.clock():
            raise WizardStateError("This repair request cannot be edited. Appointment date has passed.")
        if repair.status == RepairStatus.CANCELLED:
            raise WizardStateError("This repair request cannot be edited. It has been cancelled.")

        self.original = repair
        self.form = FormState.from_repair(repair)
        self.uploaded_files = [
            UploadResult(
                public_id=photo.cloudinary_id,
                secure_url=photo.cloudinary_url,
                original_filename=photo.original_name,
                size=0,
                media_kind=photo.media_kind,
            )
            for photo in repair.photos
        ]
        logger.info(f"Loaded repair {self.repair_id} for editing ({len(repair.photos)} photos)")

    # form fields

    def set_field(self, field_name: str, value: Any) -> str:
        """Update one form field, returns the real time validation message"""
        self._ensure_open()
        if field_name not in FORM_FIELDS:
            raise WizardStateError(f"Unknown field: {field_name}")

        value = "" if value is None else str(value)
        if field_name == "boat_year":
            # digits only, max 4
            value = "".join(ch for ch in value if ch in string.digits)[:4]
        if field_name == "service_type" and value != self.form.service_type:
            self._reset_payment()
        setattr(self.form, field_name, value)

        error = validate_field(field_name, value, self.clock().year)
        if error:
            self.form.errors[field_name] = error
        else:
            self.form.errors.pop(field_name, None)
        return error

    def set_fields(self, values: Dict[str, Any]) -> Dict[str, str]:
        return {name: self.set_field(name, value) for name, value in values.items()}

    def change_location_type(self, location_type: str):
        # switching type wipes whatever the other type had
        self._ensure_open()
        location_cls = LOCATION_TYPES.get(location_type)
        if location_cls is None:
            raise StepValidationError(
                "Unknown service location", {"service_location": f"Unknown location type: {location_type}"}
            )
        self.form.service_location = location_cls()

    def set_service_location(self, location):
        self._ensure_open()
        self.form.service_location = location

    # navigation

    def next(self) -> int:
        self._ensure_open()
        step = self.current_step

        if step == DETAILS_STEP:
            errors = validate_boat_details(self.form, self.clock().year)
            self.form.errors = errors
            if errors:
                raise StepValidationError("Please fix the errors before proceeding", errors)

        if not self.is_edit_mode and step == SCHEDULE_STEP and self.form.scheduled_date_time is None:
            raise StepValidationError(
                "Please book your appointment using the calendar above to proceed",
                {"scheduled_date_time": "Appointment not booked"},
            )

        if not self.is_edit_mode and step == PAYMENT_STEP and not self.payment_completed:
            raise StepValidationError(
                "Please complete the payment to proceed", {"payment": "Payment not completed"}
            )

        if step >= self.total_steps:
            raise WizardStateError("Already on the last step")

        self._leave_step(step)
        self.current_step = step + 1
        self._enter_step(self.current_step)
        return self.current_step

    def previous(self) -> int:
        self._ensure_open()
        if self.current_step <= DETAILS_STEP:
            raise WizardStateError("Already on the first step")

        self._leave_step(self.current_step)
        self.current_step -= 1
        self._enter_step(self.current_step)
        return self.current_step

    def _enter_step(self, step: int):
        if not self.is_edit_mode and step == SCHEDULE_STEP:
            self.bridge.attach()
            self.bridge.render_widget(self.widget)

    def _leave_step(self, step: int):
        if not self.is_edit_mode and step == SCHEDULE_STEP:
            self.bridge.detach()

    # uploads

    def _on_upload_progress(self, percent: float):
        self.form.upload_progress = percent

    async def upload_files(self, sources: List[UploadSource]) -> List[UploadResult]:
        self._ensure_open()
        if self.current_step != UPLOAD_STEP:
            raise WizardStateError("Files can only be uploaded on the upload step")
        if self.form.is_uploading:
            raise WizardStateError("An upload is already in progress")
        if not sources:
            return []

        self.form.is_uploading = True
        self.form.upload_progress = 0.0
        self._cancel_event = asyncio.Event()
        try:
            results = await self.storage.upload_files(
                sources,
                options=self.upload_options,
                on_progress=self._on_upload_progress,
                cancel_event=self._cancel_event,
            )
        finally:
            self.form.is_uploading = False
            self.form.upload_progress = 0.0
            self._cancel_event = None

        for source, result in zip(sources, results):
            self.uploaded_files.append(result)
            self.form.photos.append(result.to_photo())
            self._keep_preview(result, source.content)

        logger.info(f"{len(results)} file(s) uploaded successfully")
        return results

    def cancel_upload(self) -> bool:
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True

    def remove_upload(self, index: int) -> Photo:
        self._ensure_open()
        if index < 0 or index >= len(self.form.photos):
            raise WizardStateError(f"No uploaded file at position {index}")

        removed = self.uploaded_files.pop(index) if index < len(self.uploaded_files) else None
        photo = self.form.photos.pop(index)
        # release the in-memory preview
        preview = self._previews.pop(removed.public_id if removed else photo.cloudinary_id, None)
        if preview is not None:
            self._preview_bytes -= len(preview)
        return photo

    def _keep_preview(self, result: UploadResult, content: bytes):
        # videos and anything past the budget are served from secure_url instead
        if result.media_kind is not MediaKind.IMAGE:
            return
        if self._preview_bytes + len(content) > self.max_preview_bytes:
            logger.debug(f"Preview budget reached, not keeping {result.original_filename}")
            return
        self._previews[result.public_id] = content
        self._preview_bytes += len(content)

    def get_preview(self, index: int) -> Optional[bytes]:
        if index < 0 or index >= len(self.uploaded_files):
            return None
        return self._previews.get(self.uploaded_files[index].public_id)

    # scheduling

    def apply_schedule_update(self, update: ScheduleUpdate):
        # can land on any step, last write wins
        if self.is_edit_mode:
            return
        self.form.calendly_event_id = update.event_id
        self.form.calendly_event_uri = update.event_uri
        self.form.scheduled_date_time = update.scheduled_at
        self.form.scheduling_error = update.error
        if update.pending:
            return
        if update.confirmed:
            logger.info(f"Appointment confirmed for {update.scheduled_at.isoformat()}")
        else:
            logger.warning(f"Appointment not confirmed: {update.error}")

    async def relay_message(self, message: Dict[str, Any]) -> List[Any]:
        """Hand a widget message to whoever is listening right now"""
        self._ensure_open()
        return await self.bus.publish(message)

    # payment

    async def start_payment(self, customer: CustomerInfo) -> PaymentIntent:
        self._ensure_open()
        self._ensure_new_mode("Payment")
        if self.current_step != PAYMENT_STEP:
            raise WizardStateError("Payment can only be started on the payment step")

        description = f"Boat Repair Diagnostic - {self.form.service_type.replace('_', ' ')}"
        self.payment_intent = await self.payment.create_payment_intent(
            self.diagnostic_fee, description, customer
        )
        return self.payment_intent

    def complete_payment(self, callback: PaymentCallback):
        self._ensure_open()
        self._ensure_new_mode("Payment")
        record = self.payment.handle_success(callback, self.payment_intent)
        self.form.payment = record
        self.payment_completed = True
        logger.info(f"Diagnostic fee paid ({record.stripe_payment_intent_id or record.payment_id})")
        return record

    def _reset_payment(self):
        # the fee follows the service type, a paid fee for another type no longer applies
        if self.form.payment is None and self.payment_intent is None and not self.payment_completed:
            return
        logger.info("Service type changed, payment has to be made again")
        self.form.payment = None
        self.payment_intent = None
        self.payment_completed = False

    # submission

    def build_payload(self) -> Dict[str, Any]:
        form = self.form
        try:
            boat_details = BoatDetails(
                boat_type=form.boat_type,
                boat_make=form.boat_make.strip(),
                boat_model=form.boat_model.strip(),
                boat_year=int(form.boat_year),
                engine_type=form.engine_type or None,
                engine_model=form.engine_model.strip() or None,
                hull_material=form.hull_material or None,
            )
            common = dict(
                service_type=form.service_type,
                problem_description=form.problem_description.strip(),
                service_description=form.service_description.strip(),
                boat_details=boat_details,
                photos=list(form.photos),
                service_location=form.service_location,
                customer_notes=form.customer_notes.strip(),
            )
            if self.is_edit_mode:
                submission = RepairSubmission(**common)
            else:
                submission = NewRepairSubmission(
                    **common,
                    scheduled_date_time=form.scheduled_date_time,
                    calendly_event_id=form.calendly_event_id,
                    calendly_event_uri=form.calendly_event_uri,
                    payment=form.payment,
                    diagnostic_fee=self.diagnostic_fee if form.payment else None,
                )
        except (ValidationError, ValueError) as e:
            errors = {}
            if isinstance(e, ValidationError):
                errors = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
            raise StepValidationError("Some request details are missing or invalid", errors) from e

        return submission.model_dump(by_alias=True, mode="json", exclude_none=True)

    def _check_ready(self):
        # fields can still be changed from any step, so re-check before sending
        errors = validate_boat_details(self.form, self.clock().year)
        if errors:
            self.form.errors = errors
            raise StepValidationError("Please fix the errors before proceeding", errors)
        if not self.is_edit_mode and not self.payment_completed:
            raise StepValidationError(
                "Please complete the payment to proceed", {"payment": "Payment not completed"}
            )

    async def submit(self) -> SubmissionResult:
        self._ensure_open()
        if not self.is_final_step:
            raise WizardStateError("Complete all steps before submitting")
        if self._submitting:
            raise WizardStateError("Submission already in progress")

        self._check_ready()
        payload = self.build_payload()
        self._submitting = True
        try:
            if self.is_edit_mode:
                response = await self.api_client.update_by_customer(self.repair_id, payload)
            else:
                response = await self.api_client.create(payload)
        except RepairApiError as e:
            # form state stays as is so the customer can retry
            raise SubmissionError(e.message, status_code=e.status_code) from e
        finally:
            self._submitting = False

        if not response.get("success"):
            default = "Failed to update request" if self.is_edit_mode else "Failed to submit request"
            raise SubmissionError(response.get("message") or default)

        data = response.get("data") or {}
        if self.is_edit_mode:
            result = SubmissionResult(
                message="Repair request updated successfully!",
                redirect_to="/my-repairs",
                booking_id=data.get("bookingId"),
                repair=data,
            )
        else:
            booking_id = response.get("bookingId") or data.get("bookingId")
            result = SubmissionResult(
                message=(
                    "Repair service request submitted successfully! Your diagnostic fee has been "
                    "paid and your appointment is confirmed."
                ),
                redirect_to=f"/booking-confirmation/{booking_id}",
                booking_id=booking_id,
                repair=data,
            )

        logger.info(f"Repair request {'updated' if self.is_edit_mode else 'created'}: {result.booking_id}")
        self.close()
        return result

    def close(self):
        """Drop everything the session holds"""
        if self._cancel_event is not None:
            self._cancel_event.set()
        self.bridge.detach()
        self.bus.clear()
        self._previews.clear()
        self._preview_bytes = 0
        self.closed = True
