"""
Credit Journey Backend — Uvicorn Launcher

Usage:
    python run.py --reload
    python run.py --seed-devices --port 8080
"""
import argparse

import uvicorn

from app.config import get_settings
from app.utils.logger import get_logger

logger = get_logger("run")


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--seed-devices", action="store_true", help="Load the default device allowlist first")
    args = parser.parse_args()

    if args.seed_devices:
        from app.scripts import seed_devices
        seed_devices.main()

    logger.info("%s %s listening on %s:%d (%s)",
                settings.APP_NAME, settings.APP_VERSION, args.host, args.port, settings.ENVIRONMENT)
    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
