"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import get_settings

settings = get_settings()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

if _is_sqlite:
    # Ensure data directory exists
    _db_path = settings.DATABASE_URL.replace("sqlite:///", "")
    if os.path.dirname(_db_path):
        os.makedirs(os.path.dirname(_db_path), exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},  # Required for SQLite
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish.

    Anything not committed when the request fails is rolled back on close.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Called once at application startup."""
    from app.models import lead as _lead_model          # noqa: F401
    from app.models import journey as _journey_model    # noqa: F401
    from app.models import otp as _otp_model            # noqa: F401
    from app.models import event as _event_model        # noqa: F401
    from app.models import device as _device_model      # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
