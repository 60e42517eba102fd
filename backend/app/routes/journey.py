"""
Journey Routes — Resume validation, guarded step advance and lifecycle beacons.

Beacon endpoints (event, abandon, heartbeat) are best-effort: they accept
text/plain or JSON bodies, always answer quickly, and never change a
journey's step or status. Tokens of closed or unknown journeys get
{"ok": false} and nothing is recorded.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import ValidationFailed
from app.models.journey import Journey
from app.routes.deps import beacon_body, get_journey
from app.schemas.schemas import (
    AbandonBeacon, BeaconAck, EventBeacon, HeartbeatBeacon,
    JourneyValidateRequest, JourneyValidateResponse, StepAdvanceRequest, StepResponse,
)
from app.services.event_service import EventService
from app.services.journey_service import JourneyService
from app.utils.clock import utcnow

router = APIRouter(prefix="/api", tags=["Journey"])


def _parse(model, data: Dict[str, Any]):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(
            "Invalid beacon payload",
            reason="invalid_payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


@router.post("/journey/validate", response_model=JourneyValidateResponse)
def validate_journey(payload: JourneyValidateRequest, db: Session = Depends(get_db)):
    """Resume check. The server record always wins over the client snapshot."""
    result = JourneyService.validate(db, payload.token, payload.snapshot)
    if result["valid"]:
        return JourneyValidateResponse(**result)

    status_code = 404 if result["reason"] == "not_found" else 400
    body = JourneyValidateResponse(**result).model_dump(mode="json", exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/journey/step", response_model=StepResponse)
def advance_step(
    payload: StepAdvanceRequest,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    """Move to the next step once the current step's requirements hold."""
    journey, already = JourneyService.advance_to(db, journey, payload.step)
    return StepResponse(
        current_step=journey.step,
        already_processed=already,
        message="Already at this step" if already else "Step advanced",
    )


# ─── Beacons ───

@router.post("/journey/event", response_model=BeaconAck)
def log_event(data: Dict[str, Any] = Depends(beacon_body), db: Session = Depends(get_db)):
    beacon = _parse(EventBeacon, data)
    journey = JourneyService.get_active_by_token(db, beacon.token)
    if journey is None:
        return BeaconAck(ok=False)
    EventService.log(db, journey.id, beacon.event_type, beacon.step_name or journey.current_step, beacon.metadata)
    return BeaconAck()


@router.post("/journey/abandon", response_model=BeaconAck)
def abandon(data: Dict[str, Any] = Depends(beacon_body), db: Session = Depends(get_db)):
    """Page-teardown signal. Recorded for analytics only."""
    beacon = _parse(AbandonBeacon, data)
    journey = JourneyService.get_active_by_token(db, beacon.token)
    if journey is None:
        return BeaconAck(ok=False)
    EventService.log(db, journey.id, "journey_abandoned", beacon.step_name, metadata={
        "abandoned_at": beacon.timestamp or utcnow(),
    })
    return BeaconAck()


@router.post("/heartbeat", response_model=BeaconAck)
def heartbeat(data: Dict[str, Any] = Depends(beacon_body), db: Session = Depends(get_db)):
    beacon = _parse(HeartbeatBeacon, data)
    return BeaconAck(ok=JourneyService.heartbeat(db, beacon.token))
