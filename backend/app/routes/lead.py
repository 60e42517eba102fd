"""
Lead Routes — CPF lookup, registration and address autofill.
A known CPF starts (or resumes) a journey; an unknown one goes to registration.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import Rejected, ValidationFailed
from app.models.journey import Journey
from app.routes.deps import client_ip
from app.schemas.schemas import (
    AddressResponse, LeadCheckRequest, LeadCheckResponse, LeadRegisterRequest,
)
from app.services.address_service import AddressService
from app.services.event_service import EventService
from app.services.journey_service import JourneyService
from app.services.lead_service import LeadService
from app.utils.rate_limiter import LEAD_LOOKUP_LIMIT, REGISTRATION_LIMIT, limiter
from app.utils.validators import format_cep, only_digits, parse_cpf

router = APIRouter(prefix="/api", tags=["Lead"])


def _journey_response(journey: Journey, reused: bool, already_registered: bool = False) -> LeadCheckResponse:
    return LeadCheckResponse(
        exists=True,
        next_step=journey.current_step,
        journey_id=journey.id,
        token=journey.token,
        current_step=journey.current_step,
        reused=reused,
        already_registered=already_registered,
        message="Journey resumed" if reused else "Journey started",
    )


@router.post("/lead/check", response_model=LeadCheckResponse)
@limiter.limit(LEAD_LOOKUP_LIMIT)
def check_lead(
    payload: LeadCheckRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Look up a CPF and start or resume its journey."""
    try:
        cpf = parse_cpf(payload.cpf)
    except ValueError:
        raise ValidationFailed("Invalid CPF", reason="invalid_cpf")

    lead = LeadService.lookup(db, cpf)
    if lead is None:
        return LeadCheckResponse(exists=False, next_step="registration", message="CPF not registered")
    if lead.blacklisted:
        raise Rejected(reason="blacklisted")

    journey, reused = JourneyService.start_or_reuse(
        db, lead.id,
        device_model=payload.device_model,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _journey_response(journey, reused)


@router.post("/lead/register", response_model=LeadCheckResponse)
@limiter.limit(REGISTRATION_LIMIT)
def register_lead(
    payload: LeadRegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Register a new applicant and start their journey."""
    lead, created = LeadService.register(db, payload)
    if lead.blacklisted:
        raise Rejected(reason="blacklisted")

    journey, reused = JourneyService.start_or_reuse(
        db, lead.id,
        device_model=payload.device_model,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if created:
        EventService.log(db, journey.id, "lead_registered", "registration")
    return _journey_response(journey, reused, already_registered=not created)


@router.get("/address/{cep}", response_model=AddressResponse)
def lookup_address(cep: str):
    """Postal-code autofill; unknown CEPs and provider failures return found=false."""
    address = AddressService.lookup(cep)
    if address is None:
        return AddressResponse(found=False, cep=format_cep(only_digits(cep)))
    return AddressResponse(found=True, cep=format_cep(cep), **address)
