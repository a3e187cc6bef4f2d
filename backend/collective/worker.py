"""Offer sweeper: expires overdue waitlist offers on a fixed interval.

Run with ``python -m collective.worker``. Several copies may run at once;
the conditional updates in offer_service make a double sweep harmless.
"""
import logging
import time
from typing import Optional

from collective.config import settings
from collective.database import SessionLocal
from collective.services import offer_service

logger = logging.getLogger(__name__)


def run_once() -> offer_service.SweepResult:
    db = SessionLocal()
    try:
        return offer_service.sweep_expired_offers(db)
    finally:
        db.close()


def run_forever(interval: Optional[int] = None) -> None:
    interval = interval or settings.OFFER_SWEEP_INTERVAL_SECONDS
    logger.info("Offer sweeper started (every %ds)", interval)
    while True:
        try:
            result = run_once()
            if result.expired:
                logger.info("Expired %d offers, promoted %d", result.expired, len(result.promoted))
        except Exception:
            logger.exception("Offer sweep failed; retrying next tick")
        time.sleep(interval)


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    run_forever()
