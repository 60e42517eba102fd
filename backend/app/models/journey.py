"""
Journey Model — One applicant's progress through the credit funnel.
Maps to the 'journeys' table.
"""
import enum

from sqlalchemy import Column, String, DateTime, JSON, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.clock import utcnow


class JourneyStep(str, enum.Enum):
    CPF = "cpf"
    OTP = "otp"
    DEVICE = "device"
    INCOME = "income"
    OFFER = "offer"
    GUARD_REGISTRATION = "guard_registration"
    CONTRACT = "contract"
    SUCCESS = "success"

    @property
    def position(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def code(self) -> str:
        """Two-digit analytics code (00..07)."""
        return f"{self.position:02d}"

    @property
    def next(self) -> "JourneyStep | None":
        position = self.position + 1
        return STEP_ORDER[position] if position < len(STEP_ORDER) else None


STEP_ORDER = list(JourneyStep)


class JourneyStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


class IncomeStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class Journey(Base):
    __tablename__ = "journeys"

    id = Column(String(36), primary_key=True, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)

    status = Column(String(16), default=JourneyStatus.IN_PROGRESS.value, nullable=False, index=True)
    current_step = Column(String(24), default=JourneyStep.OTP.value, nullable=False)

    otp_verified_at = Column(DateTime, nullable=True)

    # Device eligibility
    device_model = Column(String(128))
    device_vendor = Column(String(64))
    device_commercial_name = Column(String(128))
    user_agent = Column(String(256))
    device_eligible = Column(Boolean, nullable=True)
    approved_amount = Column(Integer, nullable=True)
    device_attempts = Column(Integer, default=0, nullable=False)
    device_checked_at = Column(DateTime, nullable=True)

    # Income verification
    income_platform = Column(String(16))   # uber | 99 | ifood
    income_status = Column(String(16))     # pending | verified | failed
    income_account_id = Column(String(64))
    income_data = Column(JSON, default=dict)
    income_checked_at = Column(DateTime, nullable=True)

    offer_accepted_at = Column(DateTime, nullable=True)

    guard_imei = Column(String(15))
    guard_verified_at = Column(DateTime, nullable=True)

    contract_id = Column(String(32))
    contract_signed_at = Column(DateTime, nullable=True)

    ip_address = Column(String(45))
    last_heartbeat_at = Column(DateTime, nullable=True)

    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, nullable=True)

    lead = relationship("Lead", lazy="joined")

    @property
    def step(self) -> JourneyStep:
        return JourneyStep(self.current_step)
