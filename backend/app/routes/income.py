"""
Income Routes — Start the verification widget, relay its outcome, poll status.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.journey import Journey
from app.routes.deps import get_journey
from app.schemas.schemas import (
    IncomeResultRequest, IncomeStartRequest, IncomeStartResponse, IncomeStatusResponse,
)
from app.services.income_service import IncomeService

router = APIRouter(prefix="/api/income", tags=["Income"])


@router.post("/start", response_model=IncomeStartResponse)
def start_income(
    payload: IncomeStartRequest,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    return IncomeStartResponse(**IncomeService.start(db, journey, payload.platform))


@router.post("/result", response_model=IncomeStatusResponse)
def income_result(
    payload: IncomeResultRequest,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    """Record a widget event (user_created, connection_success, connection_error)."""
    return IncomeStatusResponse(**IncomeService.record_result(db, journey, payload))


@router.get("/status", response_model=IncomeStatusResponse)
def income_status(journey: Journey = Depends(get_journey)):
    return IncomeStatusResponse(**IncomeService.status(journey))
