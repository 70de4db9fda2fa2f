# Usage: python main.py
# Credentials (CLOUDINARY_*, CALENDLY_TOKEN, REPAIR_API_URL) come from .env

import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import ValidationError

from api.models import (
    CancelUploadResponse,
    CreateWizardRequest,
    ErrorResponse,
    FieldsUpdateRequest,
    HealthResponse,
    LocationTypeRequest,
    PaymentCompleteRequest,
    PaymentInfoResponse,
    ScheduleMessageResponse,
    ServiceLocationRequest,
    SubmitResponse,
    UploadResponse,
    WizardStateResponse,
)
from app_factory import AppFactory
from config import config
from domain.errors import RepairApiError, RepairServiceError, StepValidationError, UploadCancelledError
from domain.models import RepairRequest
from providers.interfaces import CustomerInfo, PaymentCallback, UploadSource
from services.repair_policies import guarded_delete
from services.scheduling_bridge import ScheduleUpdate
from services.wizard_sessions import WizardSession, WizardSessionStore

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=getattr(logging, config.logging.level.upper(), logging.INFO),
    format=config.logging.format,
)
logger = logging.getLogger("repair_service")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Starting boat repair wizard service")

    # tests install their own factory before startup
    if not hasattr(app.state, "factory"):
        app.state.factory = AppFactory()
    app.state.sessions = WizardSessionStore(max_sessions=config.wizard.max_sessions)

    logger.info(f"Providers: {app.state.factory.get_stats()}")

    yield

    logger.info("Shutting down, closing wizard sessions...")
    app.state.sessions.clear()


app = FastAPI(
    title="Boat Repair Wizard",
    description="Multi-step boat repair request workflow for the marine services marketplace",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RepairServiceError)
async def repair_error_handler(request: Request, exc: RepairServiceError):
    errors = exc.errors if isinstance(exc, StepValidationError) else None
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    body = ErrorResponse(error=exc.message, error_code=exc.error_code, errors=errors)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


# dependencies

def get_token(authorization: str = Header(None)) -> str:
    # we don't check the token, the marketplace API does
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def get_factory(request: Request) -> AppFactory:
    return request.app.state.factory


def get_sessions(request: Request) -> WizardSessionStore:
    return request.app.state.sessions


def get_session(
    session_id: str,
    token: str = Depends(get_token),
    sessions: WizardSessionStore = Depends(get_sessions),
) -> WizardSession:
    return sessions.get(session_id, token)


def state_of(session: WizardSession) -> WizardStateResponse:
    return WizardStateResponse.from_session(session)


# wizard lifecycle

@app.post("/api/wizard", response_model=WizardStateResponse, status_code=201)
async def create_wizard(
    request: Optional[CreateWizardRequest] = None,
    token: str = Depends(get_token),
    factory: AppFactory = Depends(get_factory),
    sessions: WizardSessionStore = Depends(get_sessions),
):
    repair_id = request.repair_id if request else None
    wizard = await factory.create_wizard(token, repair_id=repair_id)
    session = sessions.add(token, wizard)
    logger.info(f"Wizard session {session.session_id} opened ({'edit' if repair_id else 'new'})")
    return state_of(session)


@app.get("/api/wizard/{session_id}", response_model=WizardStateResponse)
async def get_wizard(session: WizardSession = Depends(get_session)):
    return state_of(session)


@app.delete("/api/wizard/{session_id}", status_code=204)
async def close_wizard(
    session: WizardSession = Depends(get_session),
    sessions: WizardSessionStore = Depends(get_sessions),
):
    sessions.discard(session.session_id)
    return Response(status_code=204)


# step 1 fields

@app.patch("/api/wizard/{session_id}/fields", response_model=WizardStateResponse)
async def update_fields(request: FieldsUpdateRequest, session: WizardSession = Depends(get_session)):
    session.wizard.set_fields(request.fields)
    return state_of(session)


@app.patch("/api/wizard/{session_id}/service-location/type", response_model=WizardStateResponse)
async def change_location_type(request: LocationTypeRequest, session: WizardSession = Depends(get_session)):
    session.wizard.change_location_type(request.type)
    return state_of(session)


@app.put("/api/wizard/{session_id}/service-location", response_model=WizardStateResponse)
async def set_service_location(request: ServiceLocationRequest, session: WizardSession = Depends(get_session)):
    session.wizard.set_service_location(request.location)
    return state_of(session)


# navigation

@app.post("/api/wizard/{session_id}/next", response_model=WizardStateResponse)
async def next_step(session: WizardSession = Depends(get_session)):
    session.wizard.next()
    return state_of(session)


@app.post("/api/wizard/{session_id}/previous", response_model=WizardStateResponse)
async def previous_step(session: WizardSession = Depends(get_session)):
    session.wizard.previous()
    return state_of(session)


# uploads

@app.post("/api/wizard/{session_id}/uploads", response_model=UploadResponse)
async def upload_files(files: List[UploadFile] = File(...), session: WizardSession = Depends(get_session)):
    sources = [
        UploadSource(filename=upload.filename or "upload", content=await upload.read(), content_type=upload.content_type)
        for upload in files
    ]

    try:
        results = await session.wizard.upload_files(sources)
    except UploadCancelledError as e:
        # neutral outcome, not an error
        return UploadResponse(status="cancelled", message=e.message, state=state_of(session))

    return UploadResponse(
        status="uploaded",
        message=f"{len(results)} file(s) uploaded successfully!",
        files=results,
        state=state_of(session),
    )


@app.post("/api/wizard/{session_id}/uploads/cancel", response_model=CancelUploadResponse)
async def cancel_upload(session: WizardSession = Depends(get_session)):
    return CancelUploadResponse(cancelled=session.wizard.cancel_upload())


@app.delete("/api/wizard/{session_id}/uploads/{index}", response_model=WizardStateResponse)
async def remove_upload(index: int, session: WizardSession = Depends(get_session)):
    session.wizard.remove_upload(index)
    return state_of(session)


@app.get("/api/wizard/{session_id}/uploads/{index}/preview")
async def upload_preview(index: int, session: WizardSession = Depends(get_session)):
    wizard = session.wizard
    if index < 0 or index >= len(wizard.uploaded_files):
        raise HTTPException(status_code=404, detail="No preview for this file")
    uploaded = wizard.uploaded_files[index]
    content = wizard.get_preview(index)
    if content is None:
        # videos and previews over the budget come straight from storage
        return RedirectResponse(uploaded.secure_url)
    filename = uploaded.original_filename
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return Response(content=content, media_type=media_type)


# scheduling

@app.get("/api/wizard/{session_id}/schedule/widget")
async def schedule_widget(session: WizardSession = Depends(get_session)):
    wizard = session.wizard
    return {
        "element_id": wizard.widget.element_id,
        "children": wizard.widget.children,
        "listening": wizard.bridge.attached,
    }


@app.post("/api/wizard/{session_id}/schedule/messages", response_model=ScheduleMessageResponse)
async def schedule_message(message: Dict[str, Any] = Body(...), session: WizardSession = Depends(get_session)):
    results = await session.wizard.relay_message(message)
    updates = [result for result in results if isinstance(result, ScheduleUpdate)]
    if not updates:
        return ScheduleMessageResponse(handled=False)

    update = updates[-1]
    return ScheduleMessageResponse(
        handled=True,
        confirmed=update.confirmed,
        scheduled_date_time=update.scheduled_at,
        error=update.error,
    )


# payment

@app.get("/api/wizard/{session_id}/payment", response_model=PaymentInfoResponse)
async def payment_info(session: WizardSession = Depends(get_session)):
    wizard = session.wizard
    if wizard.is_edit_mode:
        raise HTTPException(status_code=404, detail="No payment step when editing a request")
    return PaymentInfoResponse(
        diagnostic_fee=wizard.diagnostic_fee,
        currency=config.payment.currency,
        payment_completed=wizard.payment_completed,
        payment=wizard.form.payment,
    )


@app.post("/api/wizard/{session_id}/payment/intent")
async def create_payment_intent(customer: CustomerInfo, session: WizardSession = Depends(get_session)):
    intent = await session.wizard.start_payment(customer)
    return intent.model_dump()


@app.post("/api/wizard/{session_id}/payment/complete", response_model=WizardStateResponse)
async def complete_payment(request: PaymentCompleteRequest, session: WizardSession = Depends(get_session)):
    session.wizard.complete_payment(
        PaymentCallback(
            payment_intent_id=request.payment_intent_id,
            payment_id=request.payment_id,
            amount=request.amount,
        )
    )
    return state_of(session)


# submit

@app.post("/api/wizard/{session_id}/submit", response_model=SubmitResponse)
async def submit(
    session: WizardSession = Depends(get_session),
    sessions: WizardSessionStore = Depends(get_sessions),
):
    result = await session.wizard.submit()
    # form state is done with once it's on the server
    sessions.discard(session.session_id)
    return SubmitResponse(message=result.message, redirect_to=result.redirect_to, booking_id=result.booking_id)


# my repairs

@app.get("/api/repairs")
async def my_repairs(token: str = Depends(get_token), factory: AppFactory = Depends(get_factory)):
    return await factory.create_api_client(token).list_mine()


@app.patch("/api/repairs/{repair_id}/cancel")
async def cancel_repair(repair_id: str, token: str = Depends(get_token), factory: AppFactory = Depends(get_factory)):
    return await factory.create_api_client(token).cancel_by_customer(repair_id)


@app.delete("/api/repairs/{repair_id}")
async def delete_repair(repair_id: str, token: str = Depends(get_token), factory: AppFactory = Depends(get_factory)):
    client = factory.create_api_client(token)
    response = await client.get_by_id(repair_id)
    if not response.get("success"):
        raise RepairApiError(response.get("message") or "Failed to load repair request")
    try:
        repair = RepairRequest.model_validate(response.get("data") or {})
    except ValidationError as e:
        logger.error(f"Repair {repair_id} could not be parsed: {e}")
        raise RepairApiError("Repair request could not be read") from e
    return await guarded_delete(client, repair)


@app.get("/api/repairs/{repair_id}/pdf")
async def repair_pdf(repair_id: str, token: str = Depends(get_token), factory: AppFactory = Depends(get_factory)):
    content = await factory.create_api_client(token).generate_pdf(repair_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="repair-confirmation-{repair_id}.pdf"'},
    )


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    factory_stats = request.app.state.factory.get_stats()
    degraded = not (factory_stats["storage_configured"] and factory_stats["scheduling_configured"])
    return HealthResponse(
        status="degraded" if degraded else "healthy",
        components={
            "providers": factory_stats,
            "sessions": request.app.state.sessions.get_stats(),
        },
    )


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting boat repair wizard service...")
    uvicorn.run(
        "main:app",
        host=config.server.api_host,
        port=config.server.api_port,
        reload=config.server.api_reload,
        log_level=config.logging.level.lower(),
    )
