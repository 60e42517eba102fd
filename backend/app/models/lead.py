"""
Lead Model — Applicant identity and registration data, keyed by CPF.
"""
from sqlalchemy import Column, String, Integer, DateTime, Boolean

from app.database import Base
from app.utils.clock import utcnow


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    cpf = Column(String(11), unique=True, nullable=False, index=True)   # digits only

    full_name = Column(String(100), nullable=False)
    phone = Column(String(13), nullable=False)      # 55 + DDD + number
    phone2 = Column(String(13))
    email = Column(String(254))
    birth_date = Column(String(10))                 # DD/MM/YYYY

    # Address
    cep = Column(String(8))
    street = Column(String(256))
    number = Column(String(16))
    complement = Column(String(50))
    neighborhood = Column(String(128))
    city = Column(String(128))
    uf = Column(String(2))

    blacklisted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ")[0]
