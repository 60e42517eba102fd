"""
Pydantic Schemas — Request & Response models for API validation.
"""
import enum
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.models.journey import JourneyStep
from app.utils.validators import (
    age_on, only_digits, parse_birth_date, sanitize_name,
    validate_cep, validate_cpf, validate_phone,
)


# ──────────────── Lead / Identity ────────────────

class LeadCheckRequest(BaseModel):
    cpf: str = Field(..., description="CPF, formatted or digits only")
    device_model: Optional[str] = Field(None, description="Model detected on the client, if any")


class LeadCheckResponse(BaseModel):
    exists: bool
    next_step: str
    journey_id: Optional[str] = None
    token: Optional[str] = None
    current_step: Optional[str] = None
    reused: bool = False
    already_registered: bool = False
    message: str = ""


class LeadRegisterRequest(BaseModel):
    cpf: str
    full_name: str = Field(..., min_length=3, max_length=100)
    phone: str
    phone2: Optional[str] = None
    email: EmailStr
    birth_date: str = Field(..., description="DD/MM/YYYY")

    cep: str
    street: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1)
    complement: Optional[str] = Field(None, max_length=50)
    neighborhood: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    uf: str = Field(..., min_length=2, max_length=2)

    device_model: Optional[str] = None

    @field_validator("cpf")
    @classmethod
    def _cpf(cls, v: str) -> str:
        if not validate_cpf(v):
            raise ValueError("Invalid CPF")
        return only_digits(v)

    @field_validator("full_name")
    @classmethod
    def _full_name(cls, v: str) -> str:
        v = sanitize_name(v)
        if len(v.split(" ")) < 2:
            raise ValueError("Full name must include first and last name")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        if not validate_phone(v):
            raise ValueError("Invalid phone")
        return only_digits(v)

    @field_validator("phone2")
    @classmethod
    def _phone2(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not validate_phone(v):
            raise ValueError("Invalid second phone")
        return only_digits(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return v.lower()

    @field_validator("birth_date")
    @classmethod
    def _birth_date(cls, v: str) -> str:
        birth = parse_birth_date(v)
        if birth is None:
            raise ValueError("Invalid birth date")
        if age_on(birth) < 18:
            raise ValueError("Applicant must be at least 18 years old")
        return birth.strftime("%d/%m/%Y")

    @field_validator("cep")
    @classmethod
    def _cep(cls, v: str) -> str:
        if not validate_cep(v):
            raise ValueError("Invalid CEP")
        return only_digits(v)

    @field_validator("uf")
    @classmethod
    def _uf(cls, v: str) -> str:
        return v.strip().upper()


class AddressResponse(BaseModel):
    found: bool
    cep: str
    street: str = ""
    neighborhood: str = ""
    city: str = ""
    uf: str = ""


# ──────────────── Journey / Resume ────────────────

class JourneySnapshot(BaseModel):
    """Client-cached journey state. Server values always win on conflict."""

    version: int = 1
    journey_id: Optional[str] = None
    current_step: Optional[JourneyStep] = None
    otp_verified_at: Optional[datetime] = None
    device_model: Optional[str] = None
    approved_amount: Optional[int] = None
    guard_imei: Optional[str] = None
    contract_id: Optional[str] = None


class Reconciliation(BaseModel):
    outcome: Literal["in_sync", "server_wins"]
    conflicts: List[str] = []
    snapshot: JourneySnapshot


class JourneyValidateRequest(BaseModel):
    token: Optional[str] = None
    snapshot: Optional[JourneySnapshot] = None


class DeviceInfoView(BaseModel):
    model: str
    vendor: Optional[str] = None
    commercial_name: Optional[str] = None


class JourneyView(BaseModel):
    id: str
    step: JourneyStep
    step_code: str
    progress: int
    otp_valid: bool
    otp_verified_at: Optional[datetime] = None
    needs_otp: bool
    lead_first_name: Optional[str] = None
    device_info: Optional[DeviceInfoView] = None
    approved_amount: Optional[int] = None
    income_status: Optional[str] = None
    guard_imei: Optional[str] = None
    contract_id: Optional[str] = None
    device_attempts: int = 0
    device_approved: bool = False
    expires_at: datetime


class JourneyValidateResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    status: Optional[str] = None
    journey: Optional[JourneyView] = None
    reconciliation: Optional[Reconciliation] = None


class StepAdvanceRequest(BaseModel):
    step: JourneyStep


class StepResponse(BaseModel):
    success: bool = True
    current_step: JourneyStep
    already_processed: bool = False
    message: str = ""


# ──────────────── Events / Beacons ────────────────

class EventCategory(str, enum.Enum):
    SESSION = "session"
    NAVIGATION = "navigation"
    INTERACTION = "interaction"
    IDENTITY = "identity"
    OTP = "otp"
    DEVICE = "device"
    INCOME = "income"
    OFFER = "offer"
    GUARD = "guard"
    CONTRACT = "contract"
    SUCCESS = "success"
    LIFECYCLE = "lifecycle"
    TECHNICAL = "technical"
    CUSTOM = "custom"


_CATALOGUE = {
    EventCategory.SESSION: ["session_started", "session_resumed", "session_expired"],
    EventCategory.NAVIGATION: ["step_entered", "step_completed", "step_abandoned", "step_back"],
    EventCategory.INTERACTION: [
        "button_clicked", "link_clicked", "input_focused", "input_filled",
        "form_error", "checkbox_toggled",
    ],
    EventCategory.IDENTITY: [
        "cpf_entered", "cpf_valid", "cpf_invalid", "cpf_blacklisted", "lead_registered",
    ],
    EventCategory.OTP: [
        "otp_requested", "otp_sent", "otp_resent", "otp_digit_entered", "otp_verified", "otp_failed",
    ],
    EventCategory.DEVICE: ["device_detected", "device_eligible", "device_ineligible"],
    EventCategory.INCOME: [
        "platform_selected", "income_widget_event", "income_verified", "income_failed",
    ],
    EventCategory.OFFER: ["offer_viewed", "offer_accepted", "offer_rejected"],
    EventCategory.GUARD: ["guard_playstore_clicked", "guard_imei_entered", "guard_verified"],
    EventCategory.CONTRACT: [
        "contract_viewed", "contract_scrolled", "contract_terms_accepted", "contract_signed",
    ],
    EventCategory.SUCCESS: ["journey_completed", "mgm_code_copied", "app_download_clicked"],
    EventCategory.LIFECYCLE: ["journey_abandoned", "app_backgrounded", "app_foregrounded"],
    EventCategory.TECHNICAL: ["api_error", "network_error"],
}

EVENT_CATEGORIES: Dict[str, EventCategory] = {
    event_type: category
    for category, event_types in _CATALOGUE.items()
    for event_type in event_types
}


def categorize_event(event_type: str) -> EventCategory:
    return EVENT_CATEGORIES.get(event_type, EventCategory.CUSTOM)


class EventMetadata(BaseModel):
    """Known analytics fields are typed; anything else lands in `extra`."""

    model_config = ConfigDict(extra="ignore")

    timestamp: Optional[datetime] = None
    button_id: Optional[str] = None
    button_text: Optional[str] = None
    field_name: Optional[str] = None
    is_valid: Optional[bool] = None
    checked: Optional[bool] = None
    error: Optional[str] = None
    channel: Optional[str] = None
    success: Optional[bool] = None
    model: Optional[str] = None
    vendor: Optional[str] = None
    eligible: Optional[bool] = None
    approved_amount: Optional[int] = None
    attempts: Optional[int] = None
    platform: Optional[str] = None
    contract_id: Optional[str] = None
    abandoned_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    extra: Dict[str, Any] = {}

    @model_validator(mode="before")
    @classmethod
    def _collect_extra(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields) - {"extra"}
        extra = dict(data.get("extra") or {})
        fields = {}
        for key, value in data.items():
            if key in known:
                fields[key] = value
            elif key != "extra":
                extra[key] = value
        fields["extra"] = extra
        return fields


class EventBeacon(BaseModel):
    token: str
    event_type: str = Field(..., min_length=1, max_length=50)
    step_name: Optional[str] = None
    metadata: EventMetadata = Field(default_factory=EventMetadata)


class AbandonBeacon(BaseModel):
    token: str
    step_name: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class HeartbeatBeacon(BaseModel):
    token: str


class BeaconAck(BaseModel):
    ok: bool = True


# ──────────────── OTP ────────────────

class OTPSendResponse(BaseModel):
    success: bool = True
    message: str
    already_sent: bool = Field(False, serialization_alias="alreadySent")
    channel: Optional[str] = None
    destination: Optional[str] = None     # masked
    expires_in_seconds: Optional[int] = None


class OTPVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=12)


class OTPVerifyResponse(BaseModel):
    success: bool = True
    message: str
    already_verified: bool = False
    current_step: JourneyStep


# ──────────────── Device ────────────────

class DeviceHints(BaseModel):
    model: Optional[str] = None
    platform: Optional[str] = None
    platform_version: Optional[str] = None
    mobile: Optional[bool] = None


class DeviceDetectRequest(BaseModel):
    hints: Optional[DeviceHints] = None


class DeviceDetectResponse(BaseModel):
    model: str
    vendor: str
    source: str
    confidence: int
    is_mobile: bool
    platform: Optional[str] = None


class DeviceValidateRequest(BaseModel):
    model: str = Field(..., min_length=1, max_length=128)
    vendor: Optional[str] = Field(None, max_length=64)
    user_agent: Optional[str] = None


class DeviceValidateResponse(BaseModel):
    eligible: bool
    approved_amount: Optional[int] = None
    commercial_name: Optional[str] = None
    model: str
    attempts: int = 0
    already_checked: bool = False
    current_step: JourneyStep
    message: str = ""


# ──────────────── Income ────────────────

IncomePlatform = Literal["uber", "99", "ifood"]


class IncomeStartRequest(BaseModel):
    platform: IncomePlatform


class IncomeStartResponse(BaseModel):
    platform: str
    status: str
    widget_url: str
    already_processed: bool = False


class IncomeAccountData(BaseModel):
    user_id: Optional[str] = None
    country: Optional[str] = None
    platform: Optional[str] = None
    account_id: Optional[str] = None


class IncomeWidgetError(BaseModel):
    code: str
    message: str = ""


class IncomeResultRequest(BaseModel):
    event: Literal["user_created", "connection_success", "connection_error"]
    success: bool
    data: Optional[IncomeAccountData] = None
    error: Optional[IncomeWidgetError] = None


class IncomeStatusResponse(BaseModel):
    status: Optional[str] = None     # pending | verified | failed | None (not started)
    platform: Optional[str] = None
    current_step: JourneyStep


# ──────────────── Offer / Guard / Contract ────────────────

class OfferResponse(BaseModel):
    approved_amount: int
    monthly_rate: float
    installments: int
    installment_value: int
    total: int
    device_model: Optional[str] = None
    commercial_name: Optional[str] = None


class GuardRegisterRequest(BaseModel):
    imei: str


class ContractResponse(BaseModel):
    lead_name: str
    approved_amount: int
    installments: int
    installment_value: int
    total: int
    monthly_rate: float
    device_model: Optional[str] = None
    guard_imei: Optional[str] = None
    contract_id: Optional[str] = None
    signed_at: Optional[datetime] = None
    amounts_display: Dict[str, str] = {}


class ContractSignRequest(BaseModel):
    accept_terms: bool


class ContractSignResponse(BaseModel):
    contract_id: str
    signed_at: datetime
    current_step: JourneyStep
    already_processed: bool = False


# ──────────────── Admin ────────────────

class AdminDashboardResponse(BaseModel):
    total_journeys: int
    completion_rate: float
    funnel: Dict[str, int]
    status_distribution: Dict[str, int]
    device_approval_rate: float
    avg_completion_seconds: float


class JourneyEventEntry(BaseModel):
    id: int
    journey_id: str
    event_type: str
    category: str
    step_name: str
    event_metadata: Optional[Dict] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class EligibleDeviceIn(BaseModel):
    brand: str = Field(..., min_length=1, max_length=64)
    model_pattern: str = Field(..., min_length=1, max_length=256)
    description: Optional[str] = Field(None, max_length=128)
    approved_amount: Optional[int] = Field(None, gt=0)
    active: bool = True


class EligibleDeviceUpdate(BaseModel):
    brand: Optional[str] = Field(None, min_length=1, max_length=64)
    model_pattern: Optional[str] = Field(None, min_length=1, max_length=256)
    description: Optional[str] = Field(None, max_length=128)
    approved_amount: Optional[int] = Field(None, gt=0)
    active: Optional[bool] = None


class EligibleDeviceOut(BaseModel):
    id: int
    brand: str
    model_pattern: str
    description: Optional[str] = None
    approved_amount: Optional[int] = None
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpireSweepResponse(BaseModel):
    expired: int


# ──────────────── Generic ────────────────

class ErrorResponse(BaseModel):
    error: str
    message: str
    reason: Optional[str] = None
    details: Dict[str, Any] = {}
