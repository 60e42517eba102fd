"""
Route Dependencies — journey-token and admin-key resolution shared by routers.
"""
import hmac
import json
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.errors import Rejected, ValidationFailed
from app.models.journey import Journey
from app.services.journey_service import JourneyService


def get_journey(
    journey_token: Optional[str] = Header(None, alias="journey-token"),
    db: Session = Depends(get_db),
) -> Journey:
    """The in-progress journey identified by the journey-token header."""
    return JourneyService.load(db, journey_token)


def get_journey_any_state(
    journey_token: Optional[str] = Header(None, alias="journey-token"),
    db: Session = Depends(get_db),
) -> Journey:
    """Like get_journey, but completed journeys are allowed (contract replays)."""
    return JourneyService.load(db, journey_token, allow_completed=True)


def require_admin(x_admin_key: Optional[str] = Header(None, alias="x-admin-key")) -> None:
    expected = get_settings().ADMIN_API_KEY
    if expected and not hmac.compare_digest(x_admin_key or "", expected):
        raise Rejected("Admin key required", reason="admin_key_invalid")


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def beacon_body(request: Request) -> Dict[str, Any]:
    """Beacons arrive as text/plain (sendBeacon) or application/json; both carry JSON."""
    raw = await request.body()
    try:
        data = json.loads(raw or b"{}")
    except ValueError:
        raise ValidationFailed("Malformed beacon body", reason="malformed_body")
    if not isinstance(data, dict):
        raise ValidationFailed("Beacon body must be a JSON object", reason="malformed_body")
    return data
