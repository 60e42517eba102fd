"""
Income Service — Gig-platform income verification through the hosted widget.

The widget authenticates the applicant with the platform on its own and
reports the outcome back; the client relays it to /api/income/result and
polls /api/income/status until it settles.
"""
from typing import Any, Dict
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.journey import IncomeStatus, Journey, JourneyStep
from app.schemas.schemas import IncomeResultRequest
from app.services.event_service import EventService
from app.services.journey_service import JourneyService
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger("income_service")

WIDGET_DEFAULTS = {
    "countries": "br",
    "lang": "pt",
    "primary_color": "2B46B9",
    "background_color": "ffffff",
    "font_family": "Inter",
    "hide_privacy_url": "true",
    "hide_redirect_url": "true",
}


def build_widget_url(platform: str, external_id: str) -> str:
    settings = get_settings()
    params = {
        "widget_id": settings.INCOME_WIDGET_ID,
        "platforms": platform,
        **WIDGET_DEFAULTS,
        "external_id": external_id,
    }
    return f"{settings.INCOME_WIDGET_BASE_URL.rstrip('/')}/?{urlencode(params)}"


class IncomeService:

    @staticmethod
    def start(db: Session, journey: Journey, platform: str) -> Dict[str, Any]:
        if journey.income_status == IncomeStatus.VERIFIED.value:
            return {
                "platform": journey.income_platform,
                "status": journey.income_status,
                "widget_url": build_widget_url(journey.income_platform, journey.id),
                "already_processed": True,
            }

        JourneyService.require_step(journey, JourneyStep.INCOME)
        journey.income_platform = platform
        journey.income_status = IncomeStatus.PENDING.value
        journey.updated_at = utcnow()
        db.commit()
        db.refresh(journey)

        EventService.log(db, journey.id, "platform_selected", JourneyStep.INCOME.value,
                         metadata={"platform": platform})
        return {
            "platform": platform,
            "status": journey.income_status,
            "widget_url": build_widget_url(platform, journey.id),
            "already_processed": False,
        }

    @staticmethod
    def record_result(db: Session, journey: Journey, payload: IncomeResultRequest) -> Dict[str, Any]:
        if journey.income_status == IncomeStatus.VERIFIED.value:
            return IncomeService.status(journey)

        JourneyService.require_step(journey, JourneyStep.INCOME)
        data = payload.data.model_dump(exclude_none=True) if payload.data else {}

        EventService.log(db, journey.id, "income_widget_event", JourneyStep.INCOME.value, metadata={
            "success": payload.success,
            "platform": data.get("platform") or journey.income_platform,
            "error": payload.error.code if payload.error else None,
            "widget_event": payload.event,
        })

        if payload.event == "connection_success" and payload.success:
            now = utcnow()
            won = JourneyService.advance(db, journey, JourneyStep.INCOME, {
                "income_status": IncomeStatus.VERIFIED.value,
                "income_account_id": data.get("account_id"),
                "income_data": data,
                "income_checked_at": now,
            })
            if won:
                EventService.log(db, journey.id, "income_verified", JourneyStep.INCOME.value,
                                 metadata={"platform": journey.income_platform})
            return IncomeService.status(journey)

        if payload.event == "connection_error" or not payload.success:
            journey.income_status = IncomeStatus.FAILED.value
            journey.income_checked_at = utcnow()
            journey.income_data = {"error": payload.error.model_dump() if payload.error else None}
            db.commit()
            db.refresh(journey)
            logger.info("Income verification failed for journey %s: %s", journey.id,
                        payload.error.code if payload.error else "unknown")
            EventService.log(db, journey.id, "income_failed", JourneyStep.INCOME.value, metadata={
                "error": payload.error.code if payload.error else "unknown",
            })
            return IncomeService.status(journey)

        # user_created: keep the platform user id for later reconciliation
        journey.income_data = {**(journey.income_data or {}), **data}
        db.commit()
        db.refresh(journey)
        return IncomeService.status(journey)

    @staticmethod
    def status(journey: Journey) -> Dict[str, Any]:
        return {
            "status": journey.income_status,
            "platform": journey.income_platform,
            "current_step": journey.step,
        }
