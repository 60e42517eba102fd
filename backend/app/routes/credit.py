"""
Credit Routes — Offer, device-guard registration and contract.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.journey import Journey
from app.routes.deps import get_journey, get_journey_any_state
from app.schemas.schemas import (
    ContractResponse, ContractSignRequest, ContractSignResponse,
    GuardRegisterRequest, OfferResponse, StepResponse,
)
from app.services.credit_service import CreditService

router = APIRouter(prefix="/api", tags=["Credit"])


# ─── Offer ───

@router.get("/offer", response_model=OfferResponse)
def get_offer(journey: Journey = Depends(get_journey)):
    return OfferResponse(**CreditService.get_offer(journey))


@router.post("/offer/accept", response_model=StepResponse)
def accept_offer(journey: Journey = Depends(get_journey), db: Session = Depends(get_db)):
    return StepResponse(**CreditService.accept_offer(db, journey))


@router.post("/offer/decline", response_model=StepResponse)
def decline_offer(journey: Journey = Depends(get_journey), db: Session = Depends(get_db)):
    """Declining ends the journey (status abandoned)."""
    return StepResponse(**CreditService.decline_offer(db, journey))


# ─── Guard registration ───

@router.post("/guard/register", response_model=StepResponse)
def register_guard(
    payload: GuardRegisterRequest,
    journey: Journey = Depends(get_journey),
    db: Session = Depends(get_db),
):
    return StepResponse(**CreditService.register_guard(db, journey, payload.imei))


# ─── Contract ───

@router.get("/contract", response_model=ContractResponse)
def get_contract(journey: Journey = Depends(get_journey_any_state)):
    return ContractResponse(**CreditService.contract_summary(journey))


@router.post("/contract/sign", response_model=ContractSignResponse)
def sign_contract(
    payload: ContractSignRequest,
    journey: Journey = Depends(get_journey_any_state),
    db: Session = Depends(get_db),
):
    """Sign and complete the journey. Replays return the existing contract."""
    return ContractSignResponse(**CreditService.sign_contract(db, journey, payload.accept_terms))
