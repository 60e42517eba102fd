"""
Credit Service — Offer, device-guard registration and contract signature.
"""
import math
import secrets
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import StepMismatch, ValidationFailed
from app.models.journey import Journey, JourneyStatus, JourneyStep
from app.services.event_service import EventService
from app.services.journey_service import JourneyService
from app.utils.clock import utcnow
from app.utils.logger import get_logger
from app.utils.validators import format_currency, only_digits, validate_imei

logger = get_logger("credit_service")


def calculate_offer(amount: int, monthly_rate: float = None, installments: int = None) -> Dict[str, Any]:
    """Simple-interest installment plan; monthly_rate is a percentage (3.99 = 3.99%)."""
    settings = get_settings()
    monthly_rate = settings.OFFER_MONTHLY_RATE if monthly_rate is None else monthly_rate
    installments = installments or settings.OFFER_INSTALLMENTS
    installment_value = math.ceil(amount * (1 + (monthly_rate / 100) * installments) / installments)
    return {
        "approved_amount": amount,
        "monthly_rate": monthly_rate,
        "installments": installments,
        "installment_value": installment_value,
        "total": installment_value * installments,
    }


def generate_contract_id() -> str:
    return f"CTR-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


class CreditService:

    # ─── Offer ───

    @staticmethod
    def get_offer(journey: Journey) -> Dict[str, Any]:
        if journey.step.position < JourneyStep.OFFER.position:
            JourneyService.require_step(journey, JourneyStep.OFFER)
        offer = calculate_offer(journey.approved_amount or get_settings().DEFAULT_APPROVED_AMOUNT)
        offer.update({
            "device_model": journey.device_model,
            "commercial_name": journey.device_commercial_name,
        })
        return offer

    @staticmethod
    def accept_offer(db: Session, journey: Journey) -> Dict[str, Any]:
        if journey.offer_accepted_at is not None:
            return {"current_step": journey.step, "already_processed": True, "message": "Offer already accepted"}

        JourneyService.require_step(journey, JourneyStep.OFFER)
        won = JourneyService.advance(db, journey, JourneyStep.OFFER, {"offer_accepted_at": utcnow()})
        if won:
            EventService.log(db, journey.id, "offer_accepted", JourneyStep.OFFER.value,
                             metadata={"approved_amount": journey.approved_amount})
        return {"current_step": journey.step, "already_processed": not won, "message": "Offer accepted"}

    @staticmethod
    def decline_offer(db: Session, journey: Journey) -> Dict[str, Any]:
        JourneyService.require_step(journey, JourneyStep.OFFER)
        EventService.log(db, journey.id, "offer_rejected", JourneyStep.OFFER.value,
                         metadata={"approved_amount": journey.approved_amount})
        JourneyService.set_status(db, journey, JourneyStatus.ABANDONED)
        return {"current_step": journey.step, "already_processed": False, "message": "Offer declined"}

    # ─── Guard registration ───

    @staticmethod
    def register_guard(db: Session, journey: Journey, imei: str) -> Dict[str, Any]:
        clean = only_digits(imei)
        if journey.guard_imei:
            if journey.guard_imei != clean:
                raise ValidationFailed("A different IMEI is already registered", reason="imei_mismatch")
            return {"current_step": journey.step, "already_processed": True, "message": "Device already registered"}

        JourneyService.require_step(journey, JourneyStep.GUARD_REGISTRATION)
        if not validate_imei(imei):
            raise ValidationFailed("Invalid IMEI", reason="invalid_imei")

        won = JourneyService.advance(db, journey, JourneyStep.GUARD_REGISTRATION, {
            "guard_imei": clean,
            "guard_verified_at": utcnow(),
        })
        if won:
            EventService.log(db, journey.id, "guard_verified", JourneyStep.GUARD_REGISTRATION.value)
        return {"current_step": journey.step, "already_processed": not won, "message": "Device registered"}

    # ─── Contract ───

    @staticmethod
    def contract_summary(journey: Journey) -> Dict[str, Any]:
        if journey.contract_id is None:
            JourneyService.require_step(journey, JourneyStep.CONTRACT)
        offer = calculate_offer(journey.approved_amount or get_settings().DEFAULT_APPROVED_AMOUNT)
        return {
            "lead_name": journey.lead.full_name if journey.lead else "",
            "approved_amount": offer["approved_amount"],
            "installments": offer["installments"],
            "installment_value": offer["installment_value"],
            "total": offer["total"],
            "monthly_rate": offer["monthly_rate"],
            "device_model": journey.device_model,
            "guard_imei": journey.guard_imei,
            "contract_id": journey.contract_id,
            "signed_at": journey.contract_signed_at,
            "amounts_display": {
                "approved_amount": format_currency(offer["approved_amount"]),
                "installment_value": format_currency(offer["installment_value"]),
                "total": format_currency(offer["total"]),
            },
        }

    @staticmethod
    def sign_contract(db: Session, journey: Journey, accept_terms: bool) -> Dict[str, Any]:
        if journey.contract_id is not None:
            return {
                "contract_id": journey.contract_id,
                "signed_at": journey.contract_signed_at,
                "current_step": journey.step,
                "already_processed": True,
            }

        JourneyService.require_step(journey, JourneyStep.CONTRACT)
        if not accept_terms:
            raise ValidationFailed("Terms must be accepted", reason="terms_not_accepted")

        contract_id = generate_contract_id()
        won = JourneyService.advance(db, journey, JourneyStep.CONTRACT, {
            "contract_id": contract_id,
            "contract_signed_at": utcnow(),
        })
        if won:
            logger.info("Contract %s signed for journey %s", contract_id, journey.id)
            EventService.log(db, journey.id, "contract_signed", JourneyStep.CONTRACT.value,
                             metadata={"contract_id": contract_id})
            EventService.log(db, journey.id, "journey_completed", JourneyStep.SUCCESS.value)
        elif journey.contract_id is None:
            raise StepMismatch(journey.current_step)
        return {
            "contract_id": journey.contract_id,
            "signed_at": journey.contract_signed_at,
            "current_step": journey.step,
            "already_processed": not won,
        }
