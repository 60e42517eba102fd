"""
Device Routes — Detection and eligibility of the applicant's phone.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.journey import Journey
from app.routes.deps import get_journey
from app.schemas.schemas import (
    DeviceDetectRequest, DeviceDetectResponse, DeviceValidateRequest, DeviceValidateResponse,
)
from app.services.device_detection import detect_device
from app.services.device_service import DeviceService
from app.services.event_service import EventService
from app.services.journey_service import JourneyService

router = APIRouter(prefix="/api/device", tags=["Device"])


@router.post("/detect", response_model=DeviceDetectResponse)
def detect(
    request: Request,
    payload: Optional[DeviceDetectRequest] = None,
    journey_token: Optional[str] = Header(None, alias="journey-token"),
    db: Session = Depends(get_db),
):
    """Identify the device from headers and optional client hints."""
    hints = payload.hints.model_dump() if payload and payload.hints else None
    found = detect_device(request.headers, hints)

    journey = JourneyService.get_active_by_token(db, journey_token)
    if journey:
        EventService.log(db, journey.id, "device_detected", journey.current_step, metadata={
            "model": found.model,
            "vendor": found.vendor,
            "detection_source": found.source,
            "confidence": found.confidence,
        })

    return DeviceDetectResponse(**found.model_dump())


@router.post("/validate", response_model=DeviceValidateResponse)
def validate(
    payload: DeviceValidateRequest,
    request: Request,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    """Check the model against the allowlist. Approval is final; rejection can be retried."""
    result = DeviceService.validate(
        db, journey,
        model=payload.model,
        vendor=payload.vendor,
        user_agent=payload.user_agent or request.headers.get("user-agent"),
    )
    return DeviceValidateResponse(**result)
