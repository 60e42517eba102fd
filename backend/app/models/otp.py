"""
OTP Code Model — Hashed one-time codes issued per journey.
"""
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index, text

from app.database import Base
from app.utils.clock import utcnow


class OTPCode(Base):
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    journey_id = Column(String(36), ForeignKey("journeys.id"), nullable=False, index=True)

    code_hash = Column(String(64), nullable=False)   # HMAC-SHA256 of the code
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    used_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # One unused code per journey; expired ones are marked used before issuing.
        Index(
            "uq_otp_codes_active_journey",
            "journey_id",
            unique=True,
            sqlite_where=text("used = 0"),
            postgresql_where=text("used = false"),
        ),
    )
