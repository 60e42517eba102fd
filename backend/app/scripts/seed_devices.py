"""
Seed Devices — Load the default eligible-device allowlist.

Usage (from backend/):
    python -m app.scripts.seed_devices
"""
from app.database import SessionLocal, init_db
from app.services.device_service import DeviceService
from app.utils.logger import get_logger

logger = get_logger("seed_devices")


def main():
    init_db()
    db = SessionLocal()
    try:
        added = DeviceService.seed_defaults(db)
        total = len(DeviceService.list_devices(db))
    finally:
        db.close()
    logger.info("Allowlist seeded: %d added, %d total", added, total)


if __name__ == "__main__":
    main()
